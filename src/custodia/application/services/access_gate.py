from __future__ import annotations

import logging
from dataclasses import dataclass

from custodia.application.services.policy_reader import PolicyReader
from custodia.application.services.policy_verifier import PolicyVerifier
from custodia.application.services.representation_router import RepresentationRouter
from custodia.application.services.resource_service import ResourceService
from custodia.core.errors import InvalidResourceError, PolicyDeniedError, PolicyError, ResourceNotFoundError
from custodia.domain.models.policy import Contract, UsagePattern
from custodia.domain.models.resource import Resource

logger = logging.getLogger(__name__)

ACCESS_DENIED_MESSAGE = "Access denied."


@dataclass(slots=True)
class SweepResult:
    deleted: list[str]
    failed: dict[str, str]


class AccessGate:
    """Runs usage control in front of every data read and drives policy-based deletion."""

    def __init__(
        self,
        verifier: PolicyVerifier,
        reader: PolicyReader,
        router: RepresentationRouter,
        resource_service: ResourceService,
    ) -> None:
        self.verifier = verifier
        self.reader = reader
        self.router = router
        self.resource_service = resource_service

    def check_usage(self, contract: Contract, resource_id: str, created_at: str) -> bool:
        for pattern in self.reader.required_checks(contract):
            if not self._run_check(pattern, contract, resource_id, created_at):
                logger.info("Access to resource %s denied by %s", resource_id, pattern.value)
                return False
        return True

    def read_resource(self, resource_id: str) -> bytes:
        self._authorize(self._load(resource_id))
        return self.router.read_any_representation(resource_id)

    def read_representation(self, resource_id: str, representation_id: str) -> bytes:
        self._authorize(self._load(resource_id))
        return self.resource_service.read_data(resource_id, representation_id)

    def enforce_deletion(self, resource_id: str) -> bool:
        """Delete the resource if its policy says it has expired.

        Policy problems propagate as ``PolicyError``; nothing is deleted on them.
        """
        resource = self.resource_service.get(resource_id)
        if resource is None:
            return False
        contract = self.reader.parse_contract(resource.metadata.policy)
        permission = self.reader.first_permission(contract)

        expired = False
        if permission.delete_by is not None:
            expired = self.verifier.check_for_delete(permission)
        if not expired and permission.duration is not None:
            expiry = self.verifier.duration_expiry(resource.created_at, permission)
            expired = self.verifier.check_date(self.verifier.clock(), expiry)

        if expired:
            self.resource_service.delete(resource_id)
            logger.info("Deleted resource %s after its usage period ended", resource_id)
        return expired

    def sweep_expired(self) -> SweepResult:
        result = SweepResult(deleted=[], failed={})
        for resource_id in self.resource_service.resource_repo.list_ids():
            try:
                if self.enforce_deletion(resource_id):
                    result.deleted.append(resource_id)
            except (PolicyError, InvalidResourceError) as exc:
                logger.error("Deletion check for resource %s failed: %s", resource_id, exc)
                result.failed[resource_id] = str(exc)
        return result

    def _run_check(self, pattern: UsagePattern, contract: Contract, resource_id: str, created_at: str) -> bool:
        if pattern is UsagePattern.PROVIDE_ACCESS:
            return True
        if pattern is UsagePattern.PROHIBIT_ACCESS:
            return False
        if pattern is UsagePattern.USAGE_DURING_INTERVAL:
            return self.verifier.check_interval(contract)
        if pattern is UsagePattern.DURATION_USAGE:
            return self.verifier.check_duration(created_at, contract)
        if pattern is UsagePattern.USAGE_UNTIL_DELETION:
            try:
                return not self.verifier.check_for_delete(self.reader.first_permission(contract))
            except PolicyError as exc:
                logger.warning("Deletion date of resource %s unreadable: %s", resource_id, exc)
                return False
        if pattern is UsagePattern.N_TIMES_USAGE:
            return self.verifier.check_frequency(contract, resource_id)
        if pattern is UsagePattern.USAGE_NOTIFICATION:
            return self.verifier.send_notification(contract)
        if pattern is UsagePattern.USAGE_LOGGING:
            return self.verifier.log_access()
        logger.error("No check implemented for usage pattern %r", pattern)
        return False

    def _load(self, resource_id: str) -> Resource:
        resource = self.resource_service.get(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"The resource does not exist: {resource_id}")
        return resource

    def _authorize(self, resource: Resource) -> None:
        try:
            contract = self.reader.parse_contract(resource.metadata.policy)
        except PolicyError as exc:
            logger.warning("Policy of resource %s unreadable: %s", resource.id, exc)
            raise PolicyDeniedError(ACCESS_DENIED_MESSAGE) from exc
        if not self.check_usage(contract, resource.id, resource.created_at):
            raise PolicyDeniedError(ACCESS_DENIED_MESSAGE)
