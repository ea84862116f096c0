"""PostgREST client for the hosted Postgres backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, cast

import httpx
from pydantic import ValidationError

from skilltimeline.adapters.http_resilience import ResilientClient
from skilltimeline.config.supabase import SupabaseConfig, get_supabase_config
from skilltimeline.domain.ports.fetching import (
    RawEventSource,
    ReferenceDirectory,
    SkillApplicationSource,
)
from skilltimeline.domain.timeline.model import related_metadata_prefix

from .schema import ErrorResponse, EventHeadRow
from .translator import (
    parse_organization,
    parse_raw_events,
    parse_skill,
    parse_skill_application,
    parse_user,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Collection

    from skilltimeline.config.http_resilience import ResilienceConfig
    from skilltimeline.domain.ports.changes import ChangeKey
    from skilltimeline.domain.timeline.model import (
        OrganizationRecord,
        RawEventRecord,
        SkillApplicationRecord,
        SkillRecord,
        UserRecord,
    )

log = getLogger(__name__)

EVENTS_TABLE = "audit_logs"
EVENT_COLUMNS = (
    "id,event_time,event_type,user_id,entity_id,entity_type,description,changes,metadata"
)
PROFILE_COLUMNS = "id,first_name,last_name,email"
CUSTOMER_COLUMNS = "id,name"
SKILL_COLUMNS = "id,name,category"
SKILL_APPLICATION_COLUMNS = "id,user_id,skill_id,customer_id,proficiency,start_date,end_date,notes"

type QueryParams = list[tuple[str, str]]


class SupabaseAPIError(RuntimeError):
    """Raised when PostgREST returns an application-level error."""

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _in_filter(ids: Collection[str]) -> str:
    quoted = ",".join(f'"{value}"' for value in ids)
    return f"in.({quoted})"


def _event_filters(
    subject_entity_type: str | None, subject_entity_id: str | None
) -> QueryParams:
    params: QueryParams = []
    if subject_entity_type:
        params.append(("entity_type", f"eq.{subject_entity_type}"))
        if subject_entity_id:
            params.append(("entity_id", f"eq.{subject_entity_id}"))
    return params


@dataclass(slots=True)
class SupabaseClient:
    """Reads the activity log and reference tables over PostgREST."""

    config: SupabaseConfig = field(default_factory=get_supabase_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _session: ResilientClient | None = field(default=None, init=False, repr=False)

    @property
    def resilience(self) -> ResilienceConfig:
        return self.config.resilience

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SupabaseClient]:
        """Route every query inside the block through one HTTP client and rate limiter.

        Outside a session each query opens and closes its own client.
        """

        if self._session is not None:
            yield self
            return
        async with self.client_factory(self.resilience) as client:
            self._session = client
            try:
                yield self
            finally:
                self._session = None

    # ------------------------------------------------------------ activity log

    async def query_events(
        self,
        *,
        subject_entity_type: str | None = None,
        subject_entity_id: str | None = None,
        limit: int,
        offset: int = 0,
    ) -> list[RawEventRecord]:
        params: QueryParams = [
            ("select", EVENT_COLUMNS),
            *_event_filters(subject_entity_type, subject_entity_id),
            ("order", "event_time.desc"),
            ("limit", str(limit)),
        ]
        if offset:
            params.append(("offset", str(offset)))
        rows = await self._select(EVENTS_TABLE, params)
        return parse_raw_events(rows)

    async def query_related_mentions(
        self,
        *,
        related_entity_type: str,
        related_entity_id: str,
        limit: int,
    ) -> list[RawEventRecord]:
        prefix = related_metadata_prefix(related_entity_type)
        mention = (
            f"(metadata->>{prefix}_id.eq.{related_entity_id},"
            f"metadata->>{prefix}_name.not.is.null)"
        )
        params: QueryParams = [
            ("select", EVENT_COLUMNS),
            ("or", mention),
            ("order", "event_time.desc"),
            ("limit", str(limit)),
        ]
        rows = await self._select(EVENTS_TABLE, params)
        records = parse_raw_events(rows)
        log.debug(
            "Found %d metadata mentions of %s/%s", len(records), prefix, related_entity_id
        )
        return records

    async def latest_event_head(self, key: ChangeKey) -> EventHeadRow | None:
        params: QueryParams = [
            ("select", "id,event_time"),
            *_event_filters(key.subject_entity_type, key.subject_entity_id),
            ("order", "event_time.desc,id.desc"),
            ("limit", "1"),
        ]
        rows = await self._select(EVENTS_TABLE, params)
        if not rows:
            return None
        return EventHeadRow.model_validate(rows[0])

    # ------------------------------------------------------------ reference data

    async def fetch_users(self, ids: Collection[str]) -> list[UserRecord]:
        rows = await self._select_by_ids("profiles", PROFILE_COLUMNS, ids)
        return [parse_user(row) for row in rows]

    async def fetch_organizations(self, ids: Collection[str]) -> list[OrganizationRecord]:
        rows = await self._select_by_ids("customers", CUSTOMER_COLUMNS, ids)
        return [parse_organization(row) for row in rows]

    async def fetch_skills(self, ids: Collection[str]) -> list[SkillRecord]:
        rows = await self._select_by_ids("skills", SKILL_COLUMNS, ids)
        return [parse_skill(row) for row in rows]

    async def fetch_skill_applications(
        self,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
    ) -> list[SkillApplicationRecord]:
        params: QueryParams = [("select", SKILL_APPLICATION_COLUMNS)]
        if user_id is not None:
            params.append(("user_id", f"eq.{user_id}"))
        if organization_id is not None:
            params.append(("customer_id", f"eq.{organization_id}"))
        rows = await self._select("skill_applications", params)
        return [parse_skill_application(row) for row in rows]

    # ------------------------------------------------------------ transport

    async def _select_by_ids(
        self, table: str, columns: str, ids: Collection[str]
    ) -> list[object]:
        unique_ids = sorted({value for value in ids if value})
        if not unique_ids:
            return []
        return await self._select(table, [("select", columns), ("id", _in_filter(unique_ids))])

    async def _select(self, table: str, params: QueryParams) -> list[object]:
        if self._session is not None:
            return await self._perform_request(client=self._session, table=table, params=params)
        async with self.client_factory(self.resilience) as client:
            return await self._perform_request(client=client, table=table, params=params)

    async def _perform_request(
        self,
        *,
        client: ResilientClient,
        table: str,
        params: QueryParams,
    ) -> list[object]:
        url = f"{self.config.rest_url}{table}"
        response = await client.get(url, params=httpx.QueryParams(params))

        if response.is_error:
            error = _parse_error(response)
            if error is not None:
                log.error(f"PostgREST error on {table} ({error.code}): {error.message}")
                raise SupabaseAPIError(
                    error.message, code=error.code, status=response.status_code
                ) from None
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, list):
            raise SupabaseAPIError(f"Unexpected PostgREST payload for {table}")
        return cast(list[object], payload)


def _parse_error(response: httpx.Response) -> ErrorResponse | None:
    try:
        return ErrorResponse.model_validate(response.json())
    except (ValueError, ValidationError):
        return None


if TYPE_CHECKING:
    _source_check: RawEventSource = SupabaseClient()
    _directory_check: ReferenceDirectory = SupabaseClient()
    _applications_check: SkillApplicationSource = SupabaseClient()
