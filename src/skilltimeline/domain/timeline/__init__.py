"""Unified activity timeline built from the raw activity log.

Flow: raw records -> classify -> resolve -> normalize -> assemble, with
``feed`` holding consumer-facing state and ``reconcile`` checking that the
timeline agrees with the live relationship table.
"""

from __future__ import annotations

from .assemble import TimelineAssembler, build_event, build_events, merge_records, sort_events
from .classify import classify, is_skill_application
from .feed import Failed, Loading, Ready, TimelineFeed, TimelineState
from .model import (
    PLACEHOLDER_ID,
    UNKNOWN_USER,
    Actor,
    EventKind,
    FieldChange,
    MalformedRecordError,
    Operation,
    OrganizationRecord,
    OrganizationRef,
    RawEventRecord,
    ReferenceDirectories,
    RelatedEntities,
    SkillApplicationRecord,
    SkillRecord,
    SkillRef,
    SubjectRef,
    TimelineFetchError,
    TimelineFilters,
    UnifiedEvent,
    UserRecord,
    UserRef,
)
from .normalize import normalize
from .reconcile import (
    DEFAULT_HISTORY_PAGE_SIZE,
    ApplicationKey,
    ReconciliationReport,
    check_convergence,
    reconcile_applications,
)
from .resolve import resolve_actor, resolve_related

__all__ = [
    "DEFAULT_HISTORY_PAGE_SIZE",
    "PLACEHOLDER_ID",
    "UNKNOWN_USER",
    "Actor",
    "ApplicationKey",
    "EventKind",
    "Failed",
    "FieldChange",
    "Loading",
    "MalformedRecordError",
    "Operation",
    "OrganizationRecord",
    "OrganizationRef",
    "RawEventRecord",
    "Ready",
    "ReconciliationReport",
    "ReferenceDirectories",
    "RelatedEntities",
    "SkillApplicationRecord",
    "SkillRecord",
    "SkillRef",
    "SubjectRef",
    "TimelineAssembler",
    "TimelineFeed",
    "TimelineFetchError",
    "TimelineFilters",
    "TimelineState",
    "UnifiedEvent",
    "UserRecord",
    "UserRef",
    "build_event",
    "build_events",
    "check_convergence",
    "classify",
    "is_skill_application",
    "merge_records",
    "normalize",
    "reconcile_applications",
    "resolve_actor",
    "resolve_related",
    "sort_events",
]
