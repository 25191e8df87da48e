from __future__ import annotations

import json
from typing import Any

from custodia.application.services.resource_service import ResourceService
from custodia.core.errors import ValidationError
from custodia.domain.models.resource import BackendSource, ResourceMetadata, ResourceRepresentation


class DescriptionImportService:
    """Stores resources described by another party and the data fetched for them."""

    def __init__(self, resource_service: ResourceService) -> None:
        self.resource_service = resource_service

    def save_metadata(self, description: str | dict[str, Any]) -> str:
        raw = self._load(description)
        metadata = self._build_metadata(raw)
        return self.resource_service.create_requested(metadata)

    def save_data(self, resource_id: str, payload: bytes | str) -> None:
        data = payload.encode("utf-8") if isinstance(payload, str) else payload
        self.resource_service.set_data(resource_id, data)

    def resource_exists(self, resource_id: str) -> bool:
        return self.resource_service.resource_exists(resource_id)

    @staticmethod
    def _load(description: str | dict[str, Any]) -> dict[str, Any]:
        if isinstance(description, dict):
            return description
        try:
            raw = json.loads(description)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Resource description is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise ValidationError("Resource description must be a JSON object")
        return raw

    @staticmethod
    def _build_metadata(raw: dict[str, Any]) -> ResourceMetadata:
        title = str(raw.get("title") or "").strip()
        if not title:
            raise ValidationError("Resource description has no title")

        representations_raw = raw.get("representations")
        if not isinstance(representations_raw, list) or not representations_raw:
            raise ValidationError("Resource description must list at least one representation")

        representations: dict[str, ResourceRepresentation] = {}
        for index, item in enumerate(representations_raw):
            if not isinstance(item, dict):
                raise ValidationError("Representation entries must be JSON objects")
            try:
                byte_size = int(item.get("byte_size") or 0)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid byte_size in representation {index}") from exc
            representations[f"#{index}"] = ResourceRepresentation(
                id=None,
                media_type=str(item.get("media_type") or ""),
                byte_size=byte_size,
                filename=str(item.get("filename") or ""),
                source=BackendSource.local(),
            )

        offer = raw.get("contract_offer")
        if isinstance(offer, (dict, list)):
            policy = json.dumps(offer, sort_keys=True)
        else:
            policy = str(offer) if offer else None

        keywords = raw.get("keywords") or []
        if not isinstance(keywords, list):
            raise ValidationError("Resource description keywords must be a list")

        return ResourceMetadata(
            title=title,
            description=str(raw.get("description") or ""),
            keywords=[str(k) for k in keywords if str(k).strip()],
            policy=policy,
            publisher=raw.get("publisher"),
            license=raw.get("license"),
            version=None if raw.get("version") is None else str(raw.get("version")),
            representations=representations,
        )
