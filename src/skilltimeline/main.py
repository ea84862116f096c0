#!/usr/bin/env python3

# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

import httpx
from dotenv import load_dotenv

from skilltimeline.adapters.supabase import SupabaseAPIError
from skilltimeline.app import check_skill_applications, load_timeline, watch_timeline
from skilltimeline.common.logging import configure_logging
from skilltimeline.config import ConfigurationError
from skilltimeline.domain.timeline import (
    Failed,
    Ready,
    TimelineFetchError,
    TimelineFilters,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from skilltimeline.domain.timeline import ReconciliationReport, TimelineState, UnifiedEvent


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show the unified activity timeline")
    parser.add_argument("--entity-type", help="Only events about this subject table")
    parser.add_argument("--entity-id", help="Only events about this subject id")
    parser.add_argument(
        "--related-type",
        help="Also include events mentioning this entity type in metadata (e.g. customer)",
    )
    parser.add_argument("--related-id", help="Id of the related entity")
    parser.add_argument(
        "--limit",
        type=int,
        default=TimelineFilters().limit,
        help="Maximum number of records per query (default: %(default)s)",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and reprint the timeline whenever it changes",
    )
    parser.add_argument(
        "--reconcile-user",
        metavar="USER_ID",
        help="Check that USER_ID's skill applications agree with the timeline",
    )
    parser.add_argument(
        "--reconcile-customer",
        metavar="CUSTOMER_ID",
        help="Check that CUSTOMER_ID's skill applications agree with the timeline",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(list(argv))


def _build_filters(args: argparse.Namespace) -> TimelineFilters:
    if bool(args.related_type) != bool(args.related_id):
        raise ValueError("--related-type and --related-id must be given together")
    return TimelineFilters(
        subject_entity_type=args.entity_type,
        subject_entity_id=args.entity_id,
        related_entity_type=args.related_type,
        related_entity_id=args.related_id,
        limit=args.limit,
    )


def format_event(event: UnifiedEvent) -> str:
    """Render one event as a single terminal line."""

    parts = [
        event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        event.kind.value,
        event.actor.display_name,
    ]
    if event.related_skill is not None:
        skill = event.related_skill.name
        if event.related_skill.proficiency_level:
            skill = f"{skill} ({event.related_skill.proficiency_level})"
        parts.append(skill)
    if event.related_organization is not None:
        parts.append(f"@ {event.related_organization.name}")
    if event.related_user is not None:
        parts.append(f"-> {event.related_user.display_name}")
    if event.subject is not None and len(parts) == 3:
        parts.append(f"{event.subject.entity_type}#{event.subject.entity_id}")
    if event.notes:
        parts.append(f'"{event.notes}"')
    return "  ".join(parts)


def _print_events(events: Sequence[UnifiedEvent]) -> None:
    if not events:
        print("No activity yet.")
        return
    for event in events:
        print(format_event(event))


def _print_state(state: TimelineState) -> None:
    if isinstance(state, Ready):
        print(f"--- {len(state.events)} events")
        _print_events(state.events)
    elif isinstance(state, Failed):
        print(f"Error: {state.error} (will retry on next change)", file=sys.stderr)


def _print_report(report: ReconciliationReport) -> None:
    print(f"converged: {report.converged}")
    for key in sorted(report.missing_from_timeline):
        print(f"missing from timeline: {key.user_id} skill={key.skill_id} at={key.organization_id}")
    for key in sorted(report.missing_from_table):
        print(f"missing from table: {key.user_id} skill={key.skill_id} at={key.organization_id}")
    if report.unverifiable_event_ids:
        print(f"unverifiable events: {', '.join(report.unverifiable_event_ids)}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(argv if argv is not None else sys.argv[1:])
        filters = _build_filters(parsed_args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    configure_logging(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        force=True,
    )

    try:
        if parsed_args.reconcile_user or parsed_args.reconcile_customer:
            report = check_skill_applications(
                user_id=parsed_args.reconcile_user,
                organization_id=parsed_args.reconcile_customer,
            )
            _print_report(report)
            sys.exit(0 if report.converged else 1)
        if parsed_args.watch:
            watch_timeline(filters, on_state=_print_state)
            return
        _print_events(load_timeline(filters))

    except (ConfigurationError, TimelineFetchError, SupabaseAPIError, httpx.HTTPError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    print("\nClosed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
