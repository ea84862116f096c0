"""Hosted Postgres REST (Supabase) configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_var, optional_float_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

SUPABASE_TIMEOUT_SECONDS = 15.0
DEFAULT_POLL_SECONDS = 5.0
DEFAULT_SCHEMA = "public"


@dataclass(frozen=True)
class SupabaseConfig:
    """Holds the REST endpoint, credentials and HTTP behaviour."""

    url: str
    api_key: str
    resilience: ResilienceConfig
    schema: str = DEFAULT_SCHEMA
    poll_interval_seconds: float = DEFAULT_POLL_SECONDS

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/"


def _auth_headers(api_key: str, schema: str) -> dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
        "Accept-Profile": schema,
    }


def build_supabase_config(
    *,
    url: str,
    api_key: str,
    schema: str = DEFAULT_SCHEMA,
    poll_interval_seconds: float = DEFAULT_POLL_SECONDS,
    resilience: ResilienceConfig | None = None,
) -> SupabaseConfig:
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(f"SUPABASE_URL must be an http(s) URL, got {url!r}")
    rest_url = f"{url.rstrip('/')}/rest/v1/"
    return SupabaseConfig(
        url=url,
        api_key=api_key,
        schema=schema,
        poll_interval_seconds=poll_interval_seconds,
        resilience=resilience
        or ResilienceConfig(
            name="supabase",
            base_url=rest_url,
            timeout_seconds=SUPABASE_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=10, per_seconds=1.0),
            default_headers=_auth_headers(api_key, schema),
        ),
    )


def get_supabase_config(*, resilience: ResilienceConfig | None = None) -> SupabaseConfig:
    values = require_env_vars(("SUPABASE_URL", "SUPABASE_ANON_KEY"))
    return build_supabase_config(
        url=values["SUPABASE_URL"],
        api_key=values["SUPABASE_ANON_KEY"],
        schema=optional_env_var("SUPABASE_SCHEMA", DEFAULT_SCHEMA),
        poll_interval_seconds=optional_float_env_var(
            "SKILLTIMELINE_POLL_SECONDS", DEFAULT_POLL_SECONDS
        ),
        resilience=resilience,
    )
