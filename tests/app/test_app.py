from __future__ import annotations

import asyncio

import httpx

from skilltimeline.adapters.http_resilience import ResilientClient
from skilltimeline.adapters.supabase import SupabaseClient
from skilltimeline.app import check_skill_applications, load_timeline, watch_timeline
from skilltimeline.config import ResilienceConfig, build_supabase_config
from skilltimeline.domain.timeline import (
    EventKind,
    OrganizationRef,
    Ready,
    SkillRef,
    TimelineFilters,
    TimelineState,
)
from tests.support.supabase import make_client_factory, make_supabase_client

AUDIT_ROWS: list[dict[str, object]] = [
    {
        "id": 1,
        "event_time": "2025-03-01T12:00:00Z",
        "event_type": "CREATE",
        "user_id": "user-1",
        "entity_type": "skill_applications",
        "entity_id": 3,
        "description": "Applied Python at Acme",
        "metadata": {
            "skill_id": 12,
            "customer_id": 7,
            "user_id": "user-2",
            "proficiency": "Expert",
        },
    },
    {
        "id": 2,
        "event_time": "2025-03-01T13:00:00Z",
        "event_type": "UPDATE",
        "user_id": "user-1",
        "entity_type": "customers",
        "entity_id": 7,
        "description": "Updated customer",
        "changes": [{"field": "name", "oldValue": "Acme Inc", "newValue": "Acme"}],
        "metadata": None,
    },
]

REFERENCE_ROWS: dict[str, list[dict[str, object]]] = {
    "profiles": [
        {"id": "user-1", "first_name": "Ada", "last_name": "Lovelace"},
        {"id": "user-2", "first_name": "Grace", "last_name": "Hopper"},
    ],
    "customers": [{"id": 7, "name": "Acme"}],
    "skills": [{"id": 12, "name": "Python"}],
    "skill_applications": [
        {"id": 1, "user_id": "user-2", "skill_id": 12, "customer_id": 7, "end_date": None}
    ],
}


def _handler(request: httpx.Request) -> httpx.Response:
    table = request.url.path.rsplit("/", 1)[-1]
    if table != "audit_logs":
        return httpx.Response(200, json=REFERENCE_ROWS[table])

    params = request.url.params
    if params.get("limit") == "1" and params.get("select") == "id,event_time":
        return httpx.Response(200, json=[{"id": 2, "event_time": "2025-03-01T13:00:00Z"}])
    entity_type = params.get("entity_type")
    rows = [
        row
        for row in AUDIT_ROWS
        if entity_type is None or f"eq.{row['entity_type']}" == entity_type
    ]
    rows.sort(key=lambda row: str(row["event_time"]), reverse=True)
    return httpx.Response(200, json=rows)


def test_load_timeline_end_to_end() -> None:
    events = load_timeline(TimelineFilters(), client=make_supabase_client(_handler))

    assert [event.id for event in events] == ["2", "1"]
    updated, applied = events
    assert updated.kind is EventKind.ORGANIZATION_UPDATED
    assert updated.related_organization == OrganizationRef(id=7, name="Acme")
    assert updated.actor.display_name == "Ada Lovelace"
    assert applied.kind is EventKind.SKILL_APPLIED
    assert applied.related_skill == SkillRef(id=12, name="Python", proficiency_level="Expert")
    assert applied.related_organization == OrganizationRef(id=7, name="Acme")
    assert applied.related_user is not None
    assert applied.related_user.display_name == "Grace Hopper"


def test_check_skill_applications_end_to_end() -> None:
    report = check_skill_applications(user_id="user-2", client=make_supabase_client(_handler))

    assert report.converged
    assert len(report.table_active) == 1


def test_watch_timeline_publishes_initial_state() -> None:
    states: list[TimelineState] = []
    stop = asyncio.Event()
    stop.set()

    final = watch_timeline(
        TimelineFilters(subject_entity_type="customers", subject_entity_id="7"),
        on_state=states.append,
        client=make_supabase_client(_handler, poll_interval_seconds=0.01),
        stop=stop,
    )

    assert isinstance(final, Ready)
    assert [event.id for event in final.events] == ["2"]
    assert len(states) == 2


def test_one_http_client_serves_a_whole_invocation() -> None:
    opened: list[ResilientClient] = []
    factory = make_client_factory(_handler)

    def counting_factory(resilience: ResilienceConfig) -> ResilientClient:
        opened.append(factory(resilience))
        return opened[-1]

    client = SupabaseClient(
        config=build_supabase_config(url="https://demo.supabase.co", api_key="anon-key"),
        client_factory=counting_factory,
    )

    load_timeline(TimelineFilters(), client=client)
    check_skill_applications(user_id="user-2", client=client)

    assert len(opened) == 2
