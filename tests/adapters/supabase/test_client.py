from __future__ import annotations

import asyncio
from collections.abc import Callable  # noqa: TC003

import httpx
import pytest

from skilltimeline.adapters.http_resilience import ResilientClient
from skilltimeline.adapters.supabase import SupabaseAPIError, SupabaseClient
from skilltimeline.config import (
    MissingConfigurationError,
    ResilienceConfig,
    build_supabase_config,
)
from skilltimeline.domain.ports import ChangeKey
from skilltimeline.domain.timeline import (
    EventKind,
    FieldChange,
    Operation,
    OrganizationRecord,
    SkillRecord,
    UserRecord,
)
from tests.support.supabase import make_client_factory, make_supabase_client


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> SupabaseClient:
    return make_supabase_client(handler)


def _audit_row(row_id: object = 42, **overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "id": row_id,
        "event_time": "2025-03-01T12:00:00+00:00",
        "event_type": "UPDATE",
        "user_id": "user-1",
        "entity_type": "customers",
        "entity_id": 7,
        "description": "Renamed customer",
        "changes": [{"field": "name", "oldValue": "Acme", "newValue": "Acme Corp"}],
        "metadata": {"customer_name": "Acme Corp"},
    }
    row.update(overrides)
    return row


def test_query_events_sends_postgrest_filters() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=[_audit_row()])

    records = asyncio.run(
        _client(handler).query_events(
            subject_entity_type="customers", subject_entity_id="7", limit=20
        )
    )

    (request,) = captured
    assert request.url.path == "/rest/v1/audit_logs"
    assert request.url.params["entity_type"] == "eq.customers"
    assert request.url.params["entity_id"] == "eq.7"
    assert request.url.params["order"] == "event_time.desc"
    assert request.url.params["limit"] == "20"
    assert "metadata" in request.url.params["select"]
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"

    (record,) = records
    assert record.id == "42"
    assert record.operation is Operation.UPDATE
    assert record.subject_entity_id == "7"
    assert record.occurred_at.tzinfo is not None
    assert record.field_changes == (FieldChange("name", "Acme", "Acme Corp"),)
    assert record.metadata == {"customer_name": "Acme Corp"}


def test_query_events_without_filters_lists_everything() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "entity_type" not in request.url.params
        assert "entity_id" not in request.url.params
        return httpx.Response(200, json=[])

    assert asyncio.run(_client(handler).query_events(limit=5)) == []


def test_unparseable_rows_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    rows = [_audit_row(1), {"id": 2, "event_type": "CREATE"}, _audit_row(3, changes={"a": 1})]

    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, json=rows)

    records = asyncio.run(_client(handler).query_events(limit=20))

    assert [record.id for record in records] == ["1", "3"]
    assert records[1].field_changes == ()
    assert "Skipping unparseable audit_logs row 2" in caplog.text


def test_legacy_event_type_becomes_recorded_kind() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        row = _audit_row(event_type="SKILL_APPLIED", entity_type="skill_applications")
        return httpx.Response(200, json=[row])

    (record,) = asyncio.run(_client(handler).query_events(limit=20))

    assert record.operation is Operation.UNKNOWN
    assert record.recorded_kind is EventKind.SKILL_APPLIED


def test_query_related_mentions_uses_or_filter() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=[_audit_row()])

    records = asyncio.run(
        _client(handler).query_related_mentions(
            related_entity_type="customers", related_entity_id="7", limit=10
        )
    )

    assert len(records) == 1
    params = captured[0].url.params
    assert params["or"] == "(metadata->>customer_id.eq.7,metadata->>customer_name.not.is.null)"
    assert params["limit"] == "10"


def test_reference_lookups_use_in_filter() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        table = request.url.path.rsplit("/", 1)[-1]
        assert request.url.params["id"].startswith("in.(")
        payloads: dict[str, list[dict[str, object]]] = {
            "profiles": [{"id": "user-1", "first_name": "Ada", "last_name": "Lovelace"}],
            "customers": [{"id": 7, "name": "Acme"}],
            "skills": [{"id": 12, "name": "Python", "category": "Languages"}],
        }
        return httpx.Response(200, json=payloads[table])

    client = _client(handler)

    async def lookups() -> tuple[
        list[UserRecord], list[OrganizationRecord], list[SkillRecord], list[SkillRecord]
    ]:
        return (
            await client.fetch_users(["user-1", "user-1"]),
            await client.fetch_organizations(["7"]),
            await client.fetch_skills(["12"]),
            await client.fetch_skills([]),
        )

    users, organizations, skills, no_skills = asyncio.run(lookups())

    assert paths == ["/rest/v1/profiles", "/rest/v1/customers", "/rest/v1/skills"]
    assert [user.display_name for user in users] == ["Ada Lovelace"]
    assert [org.name for org in organizations] == ["Acme"]
    assert [skill.id for skill in skills] == [12]
    assert no_skills == []


def test_in_filter_quotes_ids() -> None:
    captured: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request.url.params["id"])
        return httpx.Response(200, json=[])

    asyncio.run(_client(handler).fetch_users(["b", "a"]))

    assert captured == ['in.("a","b")']


def test_fetch_skill_applications_filters_and_maps_end_date() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/rest/v1/skill_applications"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.url.params["customer_id"] == "eq.7"
        return httpx.Response(
            200,
            json=[
                {"id": 1, "user_id": "user-1", "skill_id": 12, "customer_id": 7},
                {
                    "id": 2,
                    "user_id": "user-1",
                    "skill_id": 13,
                    "customer_id": 7,
                    "proficiency": "Expert",
                    "start_date": "2024-01-01",
                    "end_date": "2024-06-30",
                },
            ],
        )

    records = asyncio.run(
        _client(handler).fetch_skill_applications(user_id="user-1", organization_id="7")
    )

    assert [(record.skill_id, record.ended) for record in records] == [(12, False), (13, True)]
    assert records[1].organization_id == 7
    assert records[1].proficiency == "Expert"


def test_latest_event_head() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["order"] == "event_time.desc,id.desc"
        assert request.url.params["limit"] == "1"
        if request.url.params.get("entity_type") == "eq.skills":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json=[{"id": 99, "event_time": "2025-03-01T12:00:00Z"}])

    client = _client(handler)

    head = asyncio.run(client.latest_event_head(ChangeKey("customers", "7")))
    empty = asyncio.run(client.latest_event_head(ChangeKey("skills")))

    assert head is not None
    assert head.id == "99"
    assert empty is None


def test_error_payload_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(
            400,
            json={
                "code": "42703",
                "message": "column audit_logs.nope does not exist",
                "details": None,
                "hint": None,
            },
        )

    with pytest.raises(SupabaseAPIError) as excinfo:
        asyncio.run(_client(handler).query_events(limit=1))

    assert excinfo.value.code == "42703"
    assert excinfo.value.status == 400


def test_http_error_without_payload_raises_status_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(_client(handler).query_events(limit=1))


def test_non_list_payload_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, json={"id": 1})

    with pytest.raises(SupabaseAPIError, match="Unexpected PostgREST payload"):
        asyncio.run(_client(handler).query_events(limit=1))


def test_client_reads_configuration_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

    with pytest.raises(MissingConfigurationError):
        SupabaseClient()


def _counting_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[SupabaseClient, list[ResilientClient]]:
    opened: list[ResilientClient] = []
    factory = make_client_factory(handler)

    def counting_factory(resilience: ResilienceConfig) -> ResilientClient:
        client = factory(resilience)
        opened.append(client)
        return client

    client = SupabaseClient(
        config=build_supabase_config(url="https://demo.supabase.co", api_key="anon-key"),
        client_factory=counting_factory,
    )
    return client, opened


def test_session_shares_one_rate_limited_client() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    client, opened = _counting_client(handler)

    async def scenario() -> None:
        async with client.session():
            await asyncio.gather(
                client.query_events(limit=5),
                client.query_events(subject_entity_type="skills", limit=5),
                client.fetch_users(["user-1"]),
            )

    asyncio.run(scenario())

    (shared,) = opened
    assert shared.config.ratelimit is not None
    assert shared._limiter is not None  # noqa: SLF001  # type: ignore[reportPrivateUsage]


def test_queries_outside_a_session_open_their_own_client() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    client, opened = _counting_client(handler)

    async def scenario() -> None:
        await client.query_events(limit=5)
        await client.query_events(limit=5)
        async with client.session(), client.session():
            await client.query_events(limit=5)

    asyncio.run(scenario())

    assert len(opened) == 3


def test_query_events_pages_with_offset() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=[])

    async def scenario() -> None:
        client = _client(handler)
        await client.query_events(subject_entity_type="skill_applications", limit=50)
        await client.query_events(subject_entity_type="skill_applications", limit=50, offset=100)

    asyncio.run(scenario())

    first, second = captured
    assert "offset" not in first.url.params
    assert second.url.params["offset"] == "100"
    assert second.url.params["limit"] == "50"
