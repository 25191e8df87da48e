from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any

from custodia.core.errors import PolicyError
from custodia.core.time import parse_iso_datetime
from custodia.domain.models.policy import (
    Contract,
    Permission,
    PostDuty,
    TimeInterval,
    UsageDuration,
    UsagePattern,
)

_DURATION_RE = re.compile(
    r"^P(?!$)"
    r"(?:(?P<years>\d+)Y)?"
    r"(?:(?P<months>\d+)M)?"
    r"(?:(?P<weeks>\d+)W)?"
    r"(?:(?P<days>\d+)D)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+)H)?"
    r"(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)

NOTIFY_ACTIONS = {"notify", "inform"}
LOG_ACTIONS = {"log"}
PROHIBIT_ACTIONS = {"prohibit", "deny"}


class PolicyReader:
    """Extracts plain values from JSON policy documents.

    Accessors raise ``PolicyError`` for missing or malformed values; deciding whether
    that denies access is up to the caller.
    """

    def parse_contract(self, document: str | dict[str, Any] | None) -> Contract:
        if document is None:
            raise PolicyError("Resource has no policy document")
        raw = document
        if isinstance(document, str):
            try:
                raw = json.loads(document)
            except json.JSONDecodeError as exc:
                raise PolicyError(f"Policy document is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise PolicyError("Policy document must be a JSON object")

        permissions_raw = raw.get("permissions")
        if not isinstance(permissions_raw, list):
            raise PolicyError("Policy document must contain a 'permissions' list")

        return Contract(
            id=str(raw["id"]) if raw.get("id") is not None else None,
            permissions=[self._parse_permission(item) for item in permissions_raw],
        )

    def first_permission(self, contract: Contract) -> Permission:
        if not contract.permissions:
            raise PolicyError("Contract has no permission")
        return contract.permissions[0]

    def notification_duty(self, contract: Contract) -> PostDuty:
        """First notify/inform duty of the first permission, wherever it sits among the duties."""
        permission = self.first_permission(contract)
        for duty in permission.post_duties:
            if duty.action in NOTIFY_ACTIONS:
                return duty
        raise PolicyError("Permission has no notification duty")

    def required_checks(self, contract: Contract) -> list[UsagePattern]:
        """Usage patterns carried by the first permission, in evaluation order.

        Gating checks come first; duties with side effects come last so they only run
        for accesses that are actually granted.
        """
        if not contract.permissions:
            return [UsagePattern.PROHIBIT_ACCESS]
        permission = contract.permissions[0]
        if PROHIBIT_ACTIONS.intersection(permission.actions):
            return [UsagePattern.PROHIBIT_ACCESS]

        checks: list[UsagePattern] = []
        if permission.interval is not None:
            checks.append(UsagePattern.USAGE_DURING_INTERVAL)
        if permission.duration is not None:
            checks.append(UsagePattern.DURATION_USAGE)
        if permission.delete_by is not None:
            checks.append(UsagePattern.USAGE_UNTIL_DELETION)
        if permission.max_access is not None:
            checks.append(UsagePattern.N_TIMES_USAGE)
        duty_actions = {duty.action for duty in permission.post_duties}
        if NOTIFY_ACTIONS.intersection(duty_actions):
            checks.append(UsagePattern.USAGE_NOTIFICATION)
        if LOG_ACTIONS.intersection(duty_actions):
            checks.append(UsagePattern.USAGE_LOGGING)
        return checks

    def get_time_interval(self, permission: Permission) -> TimeInterval:
        interval = permission.interval
        if not isinstance(interval, dict):
            raise PolicyError("Permission has no time interval")
        return TimeInterval(
            start=self._parse_datetime(interval.get("start"), "interval start"),
            end=self._parse_datetime(interval.get("end"), "interval end"),
        )

    def get_duration(self, permission: Permission) -> UsageDuration:
        raw = permission.duration
        if not isinstance(raw, str):
            raise PolicyError("Permission has no duration")
        match = _DURATION_RE.match(raw.strip().upper())
        if match is None:
            raise PolicyError(f"Malformed duration: {raw!r}")
        parts = match.groupdict()
        return UsageDuration(
            years=int(parts["years"] or 0),
            months=int(parts["months"] or 0),
            days=int(parts["days"] or 0) + 7 * int(parts["weeks"] or 0),
            hours=int(parts["hours"] or 0),
            minutes=int(parts["minutes"] or 0),
            seconds=float(parts["seconds"] or 0),
        )

    def get_pip_endpoint(self, permission: Permission) -> str:
        endpoint = permission.pip_endpoint
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise PolicyError("Permission has no PIP endpoint")
        return endpoint.strip()

    def get_max_access(self, permission: Permission) -> int:
        raw = permission.max_access
        if isinstance(raw, bool) or raw is None:
            raise PolicyError("Permission has no max-access count")
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise PolicyError(f"Malformed max-access count: {raw!r}") from exc
        if value < 0:
            raise PolicyError(f"Max-access count must not be negative: {value}")
        return value

    def get_endpoint(self, duty: PostDuty) -> str:
        if not duty.endpoint:
            raise PolicyError(f"Post-duty '{duty.action}' has no endpoint")
        return duty.endpoint

    def get_date(self, permission: Permission) -> datetime | None:
        if permission.delete_by is None:
            return None
        return self._parse_datetime(permission.delete_by, "delete-by date")

    @staticmethod
    def _parse_datetime(value: Any, label: str) -> datetime:
        if not isinstance(value, str) or not value.strip():
            raise PolicyError(f"Missing {label}")
        try:
            return parse_iso_datetime(value)
        except ValueError as exc:
            raise PolicyError(f"Malformed {label}: {value!r}") from exc

    @staticmethod
    def _parse_permission(raw: Any) -> Permission:
        if not isinstance(raw, dict):
            raise PolicyError("Permission entries must be JSON objects")
        actions_raw = raw.get("action") or []
        if isinstance(actions_raw, str):
            actions_raw = [actions_raw]
        duties: list[PostDuty] = []
        for duty_raw in raw.get("post_duties") or []:
            if not isinstance(duty_raw, dict):
                raise PolicyError("Post-duty entries must be JSON objects")
            endpoint = duty_raw.get("endpoint")
            duties.append(
                PostDuty(
                    action=str(duty_raw.get("action") or "").strip().lower(),
                    endpoint=str(endpoint).strip() if endpoint else None,
                )
            )
        return Permission(
            title=raw.get("title"),
            description=raw.get("description"),
            actions=[str(a).strip().lower() for a in actions_raw],
            interval=raw.get("interval"),
            duration=raw.get("duration"),
            pip_endpoint=raw.get("pip_endpoint"),
            max_access=raw.get("max_access"),
            delete_by=raw.get("delete_by"),
            post_duties=duties,
        )
