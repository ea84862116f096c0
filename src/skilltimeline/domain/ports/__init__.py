"""Domain port definitions for adapters."""

from __future__ import annotations

from .changes import ChangeFeed, ChangeKey, ChangeNotification
from .fetching import RawEventSource, ReferenceDirectory, SkillApplicationSource

__all__ = [
    "ChangeFeed",
    "ChangeKey",
    "ChangeNotification",
    "RawEventSource",
    "ReferenceDirectory",
    "SkillApplicationSource",
]
