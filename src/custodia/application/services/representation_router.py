from __future__ import annotations

import logging
from dataclasses import dataclass

from custodia.application.services.resource_service import ResourceService
from custodia.core.errors import CustodiaError, NoReadableRepresentationError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReadAttempt:
    representation_id: str
    data: bytes | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


class RepresentationRouter:
    """Serves a resource from whichever of its representations can be read.

    Representations are tried one after another in ascending id order. Only a
    successful read ends the loop; every failure is logged and the next one is tried.
    """

    def __init__(self, resource_service: ResourceService) -> None:
        self.resource_service = resource_service

    def read_any_representation(self, resource_id: str) -> bytes:
        attempts = self.attempt_all(resource_id)
        for attempt in attempts:
            if attempt.ok:
                return attempt.data

        # A valid resource always has a representation, so this is an unexpected state
        # unless the resource itself went bad in the meantime.
        self.resource_service.ensure_valid(self.resource_service.resource_repo.get_by_id(resource_id))
        raise NoReadableRepresentationError(
            f"None of the {len(attempts)} representation(s) of resource {resource_id} could be read."
        )

    def attempt_all(self, resource_id: str) -> list[ReadAttempt]:
        """Try representations in order and stop after the first success."""
        representations = self.resource_service.get_all_representations(resource_id)
        attempts: list[ReadAttempt] = []
        for representation_id in sorted(representations):
            attempt = self._attempt(resource_id, representation_id)
            attempts.append(attempt)
            if attempt.ok:
                break
        return attempts

    def _attempt(self, resource_id: str, representation_id: str) -> ReadAttempt:
        try:
            data = self.resource_service.read_data(resource_id, representation_id)
        except CustodiaError as exc:
            logger.warning(
                "Representation %s of resource %s failed (%s): %s",
                representation_id,
                resource_id,
                type(exc).__name__,
                exc,
            )
            return ReadAttempt(representation_id=representation_id, error=exc)
        except Exception as exc:
            logger.warning(
                "Representation %s of resource %s failed unexpectedly",
                representation_id,
                resource_id,
                exc_info=True,
            )
            return ReadAttempt(representation_id=representation_id, error=exc)
        return ReadAttempt(representation_id=representation_id, data=data)
