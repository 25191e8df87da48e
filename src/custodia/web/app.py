from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable

from fastapi import FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from custodia.application.runtime import Runtime, build_runtime
from custodia.application.services.project_service import ProjectService
from custodia.core.config import AppPaths, Settings
from custodia.core.errors import (
    BackendError,
    CustodiaError,
    PolicyDeniedError,
    ProjectNotInitializedError,
    ResourceAlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from custodia.core.time import now_utc
from custodia.domain.models.resource import Resource, ResourceMetadata, ResourceRepresentation
from custodia.infrastructure.http.transport import HttpTransport


class BackendSourceRequest(BaseModel):
    type: str
    url: str | None = None
    username: str | None = None
    password: str | None = None


class RepresentationRequest(BaseModel):
    id: str | None = None
    media_type: str = ""
    byte_size: int = 0
    filename: str = ""
    source: BackendSourceRequest | None = None


class MetadataRequest(BaseModel):
    title: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    publisher: str | None = None
    license: str | None = None
    version: str | None = None
    policy: str | None = None
    representations: list[RepresentationRequest] = Field(default_factory=list)


class CreateResourceRequest(MetadataRequest):
    id: str | None = None


class PolicyRequest(BaseModel):
    policy: dict[str, Any] | str


def _metadata_from_request(req: MetadataRequest) -> ResourceMetadata:
    raw = req.model_dump(exclude={"id"})
    return ResourceMetadata.from_dict(raw)


def _representation_from_request(req: RepresentationRequest) -> ResourceRepresentation:
    return ResourceRepresentation.from_dict(req.model_dump())


def _metadata_payload(metadata: ResourceMetadata | None) -> dict[str, Any] | None:
    if metadata is None:
        return None
    payload = metadata.to_dict()
    for rep in (payload.get("representations") or {}).values():
        source = rep.get("source")
        if source and source.get("password"):
            source["password"] = "***"
    return payload


def _resource_payload(resource: Resource) -> dict[str, Any]:
    return {
        "id": resource.id,
        "created_at": resource.created_at,
        "modified_at": resource.modified_at,
        "revision": resource.revision,
        "has_data": resource.has_data,
        "metadata": _metadata_payload(resource.metadata),
    }


_ERROR_STATUS: list[tuple[type[CustodiaError], int]] = [
    (PolicyDeniedError, 403),
    (ResourceNotFoundError, 404),
    (ResourceAlreadyExistsError, 409),
    (ResourceConflictError, 409),
    (ProjectNotInitializedError, 409),
    (ValidationError, 422),
    (BackendError, 502),
]


def _status_for(exc: CustodiaError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 400


def create_app(
    paths: AppPaths,
    *,
    settings: Settings | None = None,
    transport: HttpTransport | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> FastAPI:
    app = FastAPI(title="Custodia", version="0.1.0")
    project_service = ProjectService(paths)
    cached: dict[str, Runtime] = {}

    def get_runtime() -> Runtime:
        if not project_service.is_initialized():
            raise ProjectNotInitializedError("Project is not initialized. POST /api/init first.")
        if "runtime" not in cached:
            cached["runtime"] = build_runtime(paths, settings, transport=transport, clock=clock)
        return cached["runtime"]

    @app.exception_handler(CustodiaError)
    async def handle_custodia_error(request: Request, exc: CustodiaError) -> JSONResponse:
        return JSONResponse(status_code=_status_for(exc), content={"ok": False, "detail": str(exc)})

    @app.post("/api/init")
    def api_init() -> dict[str, Any]:
        result = project_service.init_project()
        return {
            "ok": True,
            "db_path": str(result.db_path),
            "db_created": result.db_created,
            "created_dirs": [str(p) for p in result.created_dirs],
            "resource_count": result.resource_count,
        }

    @app.get("/api/resources")
    def api_resources(limit: int = Query(default=100, ge=1, le=100000)) -> dict[str, Any]:
        resources = [_resource_payload(r) for r in get_runtime().resource_service.list_resources(limit=limit)]
        return {"ok": True, "count": len(resources), "resources": resources}

    @app.get("/api/catalog")
    def api_catalog(limit: int = Query(default=1000, ge=1, le=100000)) -> dict[str, Any]:
        offered = get_runtime().resource_service.list_offered(limit=limit)
        return {
            "ok": True,
            "count": len(offered),
            "resources": {resource_id: _metadata_payload(metadata) for resource_id, metadata in offered.items()},
        }

    @app.post("/api/resources", status_code=201)
    def api_create_resource(req: CreateResourceRequest) -> dict[str, Any]:
        service = get_runtime().resource_service
        metadata = _metadata_from_request(req)
        if req.id:
            service.create_with_id(metadata, req.id)
            resource_id = req.id
        else:
            resource_id = service.create(metadata)
        return {"ok": True, "id": resource_id}

    @app.get("/api/resources/{resource_id}")
    def api_resource_detail(resource_id: str) -> dict[str, Any]:
        resource = get_runtime().resource_service.get(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"Resource not found: {resource_id}")
        return {"ok": True, "resource": _resource_payload(resource)}

    @app.put("/api/resources/{resource_id}")
    def api_update_resource(resource_id: str, req: MetadataRequest) -> dict[str, Any]:
        get_runtime().resource_service.update_metadata(resource_id, _metadata_from_request(req))
        return {"ok": True, "id": resource_id}

    @app.delete("/api/resources/{resource_id}")
    def api_delete_resource(resource_id: str) -> dict[str, Any]:
        return {"ok": get_runtime().resource_service.delete(resource_id), "id": resource_id}

    @app.put("/api/resources/{resource_id}/policy")
    def api_update_policy(resource_id: str, req: PolicyRequest) -> dict[str, Any]:
        policy = req.policy if isinstance(req.policy, str) else json.dumps(req.policy, sort_keys=True)
        get_runtime().resource_service.update_policy(resource_id, policy)
        return {"ok": True, "id": resource_id}

    @app.put("/api/resources/{resource_id}/data")
    async def api_set_data(resource_id: str, request: Request) -> dict[str, Any]:
        data = await request.body()
        await run_in_threadpool(lambda: get_runtime().resource_service.set_data(resource_id, data))
        return {"ok": True, "id": resource_id, "size_bytes": len(data)}

    @app.get("/api/resources/{resource_id}/data")
    def api_read_data(resource_id: str) -> Response:
        data = get_runtime().gate.read_resource(resource_id)
        return Response(content=data, media_type="application/octet-stream")

    @app.get("/api/resources/{resource_id}/representations")
    def api_representations(resource_id: str) -> dict[str, Any]:
        metadata = get_runtime().resource_service.get_metadata(resource_id)
        payload = _metadata_payload(metadata) or {}
        return {"ok": True, "representations": payload.get("representations") or {}}

    @app.post("/api/resources/{resource_id}/representations", status_code=201)
    def api_add_representation(resource_id: str, req: RepresentationRequest) -> dict[str, Any]:
        service = get_runtime().resource_service
        representation = _representation_from_request(req)
        if req.id:
            rep_id = service.add_representation_with_id(resource_id, representation, req.id)
        else:
            rep_id = service.add_representation(resource_id, representation)
        return {"ok": True, "id": rep_id}

    @app.put("/api/resources/{resource_id}/representations/{representation_id}")
    def api_update_representation(
        resource_id: str,
        representation_id: str,
        req: RepresentationRequest,
    ) -> dict[str, Any]:
        get_runtime().resource_service.update_representation(
            resource_id, representation_id, _representation_from_request(req)
        )
        return {"ok": True, "id": representation_id}

    @app.delete("/api/resources/{resource_id}/representations/{representation_id}")
    def api_delete_representation(resource_id: str, representation_id: str) -> dict[str, Any]:
        deleted = get_runtime().resource_service.delete_representation(resource_id, representation_id)
        if not deleted:
            raise ResourceNotFoundError(f"Representation not found: {representation_id}")
        return {"ok": True, "id": representation_id}

    @app.get("/api/resources/{resource_id}/representations/{representation_id}/data")
    def api_read_representation_data(resource_id: str, representation_id: str) -> Response:
        data = get_runtime().gate.read_representation(resource_id, representation_id)
        return Response(content=data, media_type="application/octet-stream")

    @app.post("/api/maintenance/sweep")
    def api_sweep() -> dict[str, Any]:
        result = get_runtime().gate.sweep_expired()
        return {"ok": not result.failed, "deleted": result.deleted, "failed": result.failed}

    return app
