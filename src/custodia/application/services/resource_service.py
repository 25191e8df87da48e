from __future__ import annotations

import copy
import logging
from typing import Callable

from custodia.application.services.backend_resolver import BackendSourceResolver
from custodia.core.errors import (
    BackendUnavailableError,
    IdentifierExhaustedError,
    InvalidResourceError,
    NoBackendConfiguredError,
    RemoteFetchError,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceCreationError,
    ResourceNotFoundError,
)
from custodia.core.ids import DEFAULT_ID_ATTEMPTS, new_unique_id
from custodia.core.time import now_utc_iso
from custodia.domain.models.resource import (
    Resource,
    ResourceMetadata,
    ResourceRepresentation,
    SourceType,
)
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo

logger = logging.getLogger(__name__)


def resource_problem(resource: Resource | None) -> str | None:
    """Describe why ``resource`` breaks the stored-resource invariant, or None if valid."""
    if resource is None:
        return "The resource cannot be null."
    if resource.metadata is None:
        return "The resource metadata cannot be null."
    if resource.metadata.representations is None:
        return "The resource representation cannot be null."
    if len(resource.metadata.representations) < 1:
        return "The resource representation must have at least one element."
    return None


class ResourceService:
    """Stores offered resources and reads their representation data.

    Every mutation is a read-modify-write guarded by the row revision: a writer that
    lost a race gets ``ResourceConflictError`` rather than overwriting the other change.
    """

    def __init__(
        self,
        resource_repo: ResourceRepo,
        archive_store: ArchiveStore,
        resolver: BackendSourceResolver,
        *,
        default_policy: str,
        id_attempts: int = DEFAULT_ID_ATTEMPTS,
    ) -> None:
        self.resource_repo = resource_repo
        self.archive_store = archive_store
        self.resolver = resolver
        self.default_policy = default_policy
        self.id_attempts = id_attempts

    def create(self, metadata: ResourceMetadata) -> str:
        try:
            resource_id = new_unique_id(self.resource_repo.exists, attempts=self.id_attempts)
        except IdentifierExhaustedError as exc:
            raise ResourceCreationError("Failed to create resource.") from exc

        self.create_with_id(metadata, resource_id)
        return resource_id

    def create_with_id(self, metadata: ResourceMetadata, resource_id: str) -> None:
        if self.resource_repo.exists(resource_id):
            raise ResourceAlreadyExistsError(f"The resource does already exist: {resource_id}")

        stored = copy.deepcopy(metadata)
        stored.policy = self.default_policy
        self._assign_missing_representation_ids(stored)
        self._insert(resource_id, stored)

    def create_requested(self, metadata: ResourceMetadata) -> str:
        """Store a resource received from another party, keeping its contract offer.

        Every representation gets a freshly generated id.
        """
        stored = copy.deepcopy(metadata)
        representations: dict[str, ResourceRepresentation] = {}
        for representation in (stored.representations or {}).values():
            representation.id = self._new_representation_id(representations)
            representations[representation.id] = representation
        stored.representations = representations

        try:
            resource_id = new_unique_id(self.resource_repo.exists, attempts=self.id_attempts)
        except IdentifierExhaustedError as exc:
            raise ResourceCreationError("Failed to create resource.") from exc
        self._insert(resource_id, stored)
        return resource_id

    def set_data(self, resource_id: str, data: bytes) -> None:
        def _attach(resource: Resource) -> None:
            digest, relpath = self.archive_store.store_bytes_immutable(data)
            resource.data_digest = digest
            resource.data_relpath = str(relpath)

        self._mutate(resource_id, _attach)

    def update_metadata(self, resource_id: str, metadata: ResourceMetadata) -> None:
        replacement = copy.deepcopy(metadata)
        self._assign_missing_representation_ids(replacement)

        def _replace(resource: Resource) -> None:
            resource.metadata = replacement

        self._mutate(resource_id, _replace)

    def update_policy(self, resource_id: str, policy: str) -> None:
        def _patch(metadata: ResourceMetadata) -> None:
            metadata.policy = policy

        self.update_with(resource_id, _patch)

    def update_with(self, resource_id: str, mutate: Callable[[ResourceMetadata], None]) -> None:
        """Apply ``mutate`` to the stored metadata under the revision check."""

        def _apply(resource: Resource) -> None:
            mutate(resource.metadata)

        self._mutate(resource_id, _apply)

    def delete(self, resource_id: str) -> bool:
        """Remove a resource. Deleting an absent id also counts as success."""
        existed = self.resource_repo.delete_by_id(resource_id)
        if not existed:
            logger.info("Delete requested for absent resource %s", resource_id)
        return True

    def get(self, resource_id: str) -> Resource | None:
        resource = self.resource_repo.get_by_id(resource_id)
        if resource is None:
            return None
        self.ensure_valid(resource)
        return resource

    def get_metadata(self, resource_id: str) -> ResourceMetadata:
        return self._require(resource_id).metadata

    def get_all_representations(self, resource_id: str) -> dict[str, ResourceRepresentation]:
        return self.get_metadata(resource_id).representations

    def get_representation(self, resource_id: str, representation_id: str) -> ResourceRepresentation | None:
        return self.get_all_representations(resource_id).get(representation_id)

    def list_resources(self, limit: int = 100) -> list[Resource]:
        return self.resource_repo.list(limit=limit)

    def list_offered(self, limit: int = 1000) -> dict[str, ResourceMetadata]:
        return {
            resource.id: resource.metadata
            for resource in self.resource_repo.list(limit=limit)
            if resource_problem(resource) is None
        }

    def resource_exists(self, resource_id: str) -> bool:
        try:
            return self.get(resource_id) is not None
        except InvalidResourceError:
            return False

    def add_representation(self, resource_id: str, representation: ResourceRepresentation) -> str:
        representations = self.get_all_representations(resource_id)
        representation_id = self._new_representation_id(representations)
        return self.add_representation_with_id(resource_id, representation, representation_id)

    def add_representation_with_id(
        self,
        resource_id: str,
        representation: ResourceRepresentation,
        representation_id: str,
    ) -> str:
        added = copy.deepcopy(representation)
        added.id = representation_id

        def _add(metadata: ResourceMetadata) -> None:
            if representation_id in metadata.representations:
                raise ResourceAlreadyExistsError(
                    f"The representation does already exist: {representation_id}"
                )
            metadata.representations[representation_id] = added

        self.update_with(resource_id, _add)
        return representation_id

    def update_representation(
        self,
        resource_id: str,
        representation_id: str,
        representation: ResourceRepresentation,
    ) -> None:
        replacement = copy.deepcopy(representation)
        replacement.id = representation_id

        def _replace(metadata: ResourceMetadata) -> None:
            if representation_id not in metadata.representations:
                logger.warning(
                    "Tried to update representation %s with resource %s.",
                    representation_id,
                    resource_id,
                )
                raise ResourceNotFoundError(f"The resource representation does not exist: {representation_id}")
            metadata.representations[representation_id] = replacement

        self.update_with(resource_id, _replace)

    def delete_representation(self, resource_id: str, representation_id: str) -> bool:
        if representation_id not in self.get_all_representations(resource_id):
            logger.warning(
                "Tried to delete representation %s with resource %s.",
                representation_id,
                resource_id,
            )
            return False

        def _remove(metadata: ResourceMetadata) -> None:
            metadata.representations.pop(representation_id, None)

        self.update_with(resource_id, _remove)
        return True

    def read_data(self, resource_id: str, representation_id: str) -> bytes:
        resource = self._require(resource_id)
        representation = resource.metadata.representations.get(representation_id)
        if representation is None:
            raise ResourceNotFoundError(f"The resource representation does not exist: {representation_id}")
        return self._read_representation(resource, representation)

    def ensure_valid(self, resource: Resource | None) -> None:
        problem = resource_problem(resource)
        if problem is not None:
            raise InvalidResourceError(problem)

    def _read_representation(self, resource: Resource, representation: ResourceRepresentation) -> bytes:
        source = representation.source
        if source is None:
            raise NoBackendConfiguredError("The resource has no defined backend.")

        if source.type is SourceType.LOCAL:
            return self._read_local_payload(resource)

        try:
            return self.resolver.fetch(source)
        except RemoteFetchError as exc:
            raise BackendUnavailableError(
                f"The resource could not be fetched from its backend: {exc}",
                kind=exc.kind,
            ) from exc

    def _read_local_payload(self, resource: Resource) -> bytes:
        if resource.data_relpath is None or resource.data_digest is None:
            raise BackendUnavailableError(f"Resource {resource.id} has no stored payload.")
        if not self.archive_store.verify_archived_integrity(resource.data_relpath, resource.data_digest):
            raise BackendUnavailableError(f"Stored payload of resource {resource.id} failed its integrity check.")
        try:
            return self.archive_store.read_bytes(resource.data_relpath)
        except OSError as exc:
            raise BackendUnavailableError(f"Stored payload of resource {resource.id} is unreadable: {exc}") from exc

    def _require(self, resource_id: str) -> Resource:
        resource = self.get(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"The resource does not exist: {resource_id}")
        return resource

    def _insert(self, resource_id: str, metadata: ResourceMetadata) -> None:
        now = now_utc_iso()
        resource = Resource(id=resource_id, created_at=now, modified_at=now, metadata=metadata)
        problem = resource_problem(resource)
        if problem is not None:
            raise InvalidResourceError(f"Not a valid resource. {problem}")
        if not self.resource_repo.insert(resource):
            raise ResourceAlreadyExistsError(f"The resource does already exist: {resource_id}")

    def _mutate(self, resource_id: str, change: Callable[[Resource], None]) -> None:
        resource = self._require(resource_id)
        expected_revision = resource.revision
        change(resource)
        resource.modified_at = now_utc_iso()

        problem = resource_problem(resource)
        if problem is not None:
            raise InvalidResourceError(f"Not a valid resource. {problem}")
        if not self.resource_repo.compare_and_swap(resource, expected_revision):
            raise ResourceConflictError(
                f"Resource {resource_id} changed concurrently; reload it and retry the update."
            )

    def _assign_missing_representation_ids(self, metadata: ResourceMetadata) -> None:
        if metadata.representations is None:
            return
        assigned: dict[str, ResourceRepresentation] = {}
        pending: list[ResourceRepresentation] = []
        for key, representation in metadata.representations.items():
            if representation.id is None:
                pending.append(representation)
            else:
                representation.id = key
                assigned[key] = representation
        for representation in pending:
            representation.id = self._new_representation_id(assigned)
            assigned[representation.id] = representation
        metadata.representations = assigned

    def _new_representation_id(self, siblings: dict[str, ResourceRepresentation]) -> str:
        try:
            return new_unique_id(lambda candidate: candidate in siblings, attempts=self.id_attempts)
        except IdentifierExhaustedError as exc:
            raise ResourceCreationError("Failed to create representation id.") from exc
