"""Public interface for the hosted Postgres REST adapter."""

from __future__ import annotations

from .changes import PollingChangeFeed
from .client import SupabaseAPIError, SupabaseClient
from .schema import AuditLogRow, AuditLogRowInput, ChangePayload
from .translator import parse_raw_event, parse_raw_events

__all__ = [
    "AuditLogRow",
    "AuditLogRowInput",
    "ChangePayload",
    "PollingChangeFeed",
    "SupabaseAPIError",
    "SupabaseClient",
    "parse_raw_event",
    "parse_raw_events",
]
