from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from custodia.application.services.access_gate import AccessGate
from custodia.application.services.backend_resolver import BackendSourceResolver
from custodia.application.services.description_import_service import DescriptionImportService
from custodia.application.services.policy_reader import PolicyReader
from custodia.application.services.policy_verifier import PolicyVerifier
from custodia.application.services.representation_router import RepresentationRouter
from custodia.application.services.resource_service import ResourceService
from custodia.core.config import AppPaths, Settings, default_policy_document, load_settings
from custodia.core.time import now_utc
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo
from custodia.infrastructure.http.transport import HttpTransport
from custodia.infrastructure.messaging.message_service import MessageService


@dataclass(slots=True)
class Runtime:
    settings: Settings
    resource_service: ResourceService
    router: RepresentationRouter
    reader: PolicyReader
    verifier: PolicyVerifier
    gate: AccessGate
    importer: DescriptionImportService


def build_runtime(
    paths: AppPaths,
    settings: Settings | None = None,
    *,
    transport: HttpTransport | None = None,
    default_policy: str | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> Runtime:
    settings = settings or load_settings()
    transport = transport or HttpTransport(timeout_seconds=settings.http_timeout_seconds)

    resource_service = ResourceService(
        ResourceRepo(paths.db_path),
        ArchiveStore(paths.archive_dir),
        BackendSourceResolver(transport),
        default_policy=default_policy or default_policy_document(),
        id_attempts=settings.id_attempts,
    )
    router = RepresentationRouter(resource_service)
    reader = PolicyReader()
    messages = MessageService(
        transport,
        connector_id=settings.connector_id,
        log_endpoint=settings.log_endpoint,
    )
    verifier = PolicyVerifier(reader, messages, transport, settings, clock=clock)
    return Runtime(
        settings=settings,
        resource_service=resource_service,
        router=router,
        reader=reader,
        verifier=verifier,
        gate=AccessGate(verifier, reader, router, resource_service),
        importer=DescriptionImportService(resource_service),
    )
