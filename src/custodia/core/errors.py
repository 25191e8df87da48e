from __future__ import annotations


class CustodiaError(Exception):
    """Base error for all user-facing Custodia exceptions."""


class ConfigurationError(CustodiaError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(CustodiaError):
    """Raised when .custodia metadata is missing."""


class ValidationError(CustodiaError):
    """Raised when model invariants fail."""


class InvalidResourceError(ValidationError):
    """Raised when a stored or to-be-stored resource violates the resource invariant."""


class ResourceNotFoundError(CustodiaError):
    """Raised when a resource or representation does not exist."""


class ResourceAlreadyExistsError(CustodiaError):
    """Raised when a resource or representation id is already taken."""


class ResourceCreationError(CustodiaError):
    """Raised when a resource cannot be created."""


class IdentifierExhaustedError(CustodiaError):
    """Raised when no free identifier could be generated."""


class ResourceConflictError(CustodiaError):
    """Raised when a concurrent writer changed a resource between read and write."""


class BackendError(CustodiaError):
    """Base error for failures while reading representation data."""


class RemoteFetchError(BackendError):
    """Raised when a remote backend cannot be read."""

    kind = "transport-failure"


class MalformedAddressError(RemoteFetchError):
    """Raised when a backend address is not a usable URL."""

    kind = "malformed-address"


class TransportFailureError(RemoteFetchError):
    """Raised when the transport fails or the remote answers with a non-success status."""

    kind = "transport-failure"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class BackendUnavailableError(BackendError):
    """Raised when a representation's backend could not deliver data."""

    def __init__(self, message: str, kind: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind


class NoBackendConfiguredError(BackendError):
    """Raised when a representation has no backend source."""


class UnsupportedSourceError(BackendError):
    """Raised when a backend source type has no fetch strategy."""


class NoReadableRepresentationError(BackendError):
    """Raised when no representation of a valid resource yielded data."""


class PolicyError(CustodiaError):
    """Raised when policy input is missing or malformed."""


class PolicyDeniedError(CustodiaError):
    """Raised when usage control refuses an access."""


class MessageDispatchError(CustodiaError):
    """Raised when a log or notification message cannot be sent."""
