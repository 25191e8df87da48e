from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class UsagePattern(str, Enum):
    PROVIDE_ACCESS = "provide-access"
    PROHIBIT_ACCESS = "prohibit-access"
    N_TIMES_USAGE = "n-times-usage"
    USAGE_DURING_INTERVAL = "usage-during-interval"
    DURATION_USAGE = "duration-usage"
    USAGE_UNTIL_DELETION = "usage-until-deletion"
    USAGE_LOGGING = "usage-logging"
    USAGE_NOTIFICATION = "usage-notification"


@dataclass(slots=True, frozen=True)
class TimeInterval:
    start: datetime
    end: datetime


@dataclass(slots=True, frozen=True)
class UsageDuration:
    years: int = 0
    months: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: float = 0.0


@dataclass(slots=True)
class PostDuty:
    action: str
    endpoint: str | None = None


@dataclass(slots=True)
class Permission:
    """A permission entry as written in the policy document.

    Attribute values stay raw here; ``PolicyReader`` turns them into typed values and
    reports malformed input at the point a check needs it.
    """

    title: str | None = None
    description: str | None = None
    actions: list[str] = field(default_factory=list)
    interval: Any = None
    duration: Any = None
    pip_endpoint: Any = None
    max_access: Any = None
    delete_by: Any = None
    post_duties: list[PostDuty] = field(default_factory=list)


@dataclass(slots=True)
class Contract:
    id: str | None
    permissions: list[Permission]
