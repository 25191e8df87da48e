from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from custodia.application.services.policy_reader import PolicyReader
from custodia.core.config import Settings
from custodia.core.errors import MessageDispatchError, PolicyError, RemoteFetchError
from custodia.core.time import add_months, now_utc, parse_iso_datetime
from custodia.domain.models.policy import Contract, Permission, UsageDuration
from custodia.infrastructure.http.transport import HttpTransport
from custodia.infrastructure.messaging.message_service import MessageService

logger = logging.getLogger(__name__)


class PolicyVerifier:
    """Independent usage-control checks.

    Each check returns True to allow and False to inhibit access. None of them decides
    which other checks run; that is ``AccessGate``'s job.
    """

    def __init__(
        self,
        reader: PolicyReader,
        message_service: MessageService,
        transport: HttpTransport,
        settings: Settings,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.reader = reader
        self.message_service = message_service
        self.transport = transport
        self.settings = settings
        self.clock = clock

    def log_access(self) -> bool:
        try:
            response = self.message_service.send_log_message()
        except MessageDispatchError as exc:
            logger.error("Access log failed: %s", exc)
            return False
        if response is None or response.status != 200:
            logger.error("NOT LOGGED")
        return True

    def send_notification(self, contract: Contract) -> bool:
        try:
            recipient = self.reader.get_endpoint(self.reader.notification_duty(contract))
        except PolicyError as exc:
            logger.error("Notification recipient unavailable: %s", exc)
            return False

        try:
            response = self.message_service.send_notification_message(recipient)
        except MessageDispatchError as exc:
            logger.error("Notification failed: %s", exc)
            return False
        if response is None or response.status != 200:
            logger.error("NOT NOTIFIED")
        return True

    def check_interval(self, contract: Contract) -> bool:
        try:
            interval = self.reader.get_time_interval(self.reader.first_permission(contract))
        except PolicyError as exc:
            logger.warning("Interval check denied: %s", exc)
            return False
        now = self.clock()
        return interval.start < now < interval.end

    @staticmethod
    def check_date(now: datetime, deadline: datetime) -> bool:
        """True if ``now`` is later than ``deadline``."""
        return now > deadline

    def duration_expiry(self, created_at: datetime | str, permission: Permission) -> datetime:
        """End of the usage period granted by ``permission``.

        Raises ``PolicyError`` when the duration is malformed or the end falls outside
        the representable calendar.
        """
        duration = self.reader.get_duration(permission)
        try:
            created = parse_iso_datetime(created_at) if isinstance(created_at, str) else created_at
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            return expiry_date(created, duration)
        except (ValueError, OverflowError) as exc:
            raise PolicyError(f"Usage period {permission.duration!r} from {created_at} cannot be computed: {exc}") from exc

    def check_duration(self, created_at: datetime | str, contract: Contract) -> bool:
        """True while ``created_at`` plus the permitted duration lies in the future."""
        try:
            expiry = self.duration_expiry(created_at, self.reader.first_permission(contract))
        except PolicyError as exc:
            logger.warning("Duration check denied: %s", exc)
            return False
        return not self.check_date(self.clock(), expiry)

    def check_for_delete(self, permission: Permission) -> bool:
        """True if the permission's delete-by date has passed.

        Malformed dates raise ``PolicyError``; a deletion is never decided on them.
        """
        deadline = self.reader.get_date(permission)
        if deadline is None:
            return False
        return self.check_date(self.clock(), deadline)

    def check_frequency(self, contract: Contract, resource_id: str) -> bool:
        try:
            permission = self.reader.first_permission(contract)
            max_access = self.reader.get_max_access(permission)
            pip = self.reader.get_pip_endpoint(permission)
            body = self.transport.get_tls_basic_auth(
                f"{pip}{resource_id}/access",
                self.settings.pip_username,
                self.settings.pip_password,
            )
            accessed = int(body.decode("utf-8").strip())
        except (PolicyError, RemoteFetchError, UnicodeDecodeError, ValueError) as exc:
            logger.warning("Frequency check for resource %s denied: %s", resource_id, exc)
            return False

        if accessed > max_access:
            logger.info("Resource %s accessed %d times, limit is %d", resource_id, accessed, max_access)
            return False
        return True


def expiry_date(created: datetime, duration: UsageDuration) -> datetime:
    # Units are added smallest first, matching calendar arithmetic on the creation date.
    moment = created + timedelta(seconds=duration.seconds)
    moment += timedelta(minutes=duration.minutes)
    moment += timedelta(hours=duration.hours)
    moment += timedelta(days=duration.days)
    moment = add_months(moment, duration.months)
    return add_months(moment, 12 * duration.years)
