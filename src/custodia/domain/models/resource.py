from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from custodia.core.errors import ValidationError


class SourceType(str, Enum):
    LOCAL = "local"
    HTTP_GET = "http-get"
    HTTPS_GET = "https-get"
    HTTPS_GET_BASICAUTH = "https-get-basicauth"


@dataclass(slots=True)
class BackendSource:
    type: SourceType
    url: str | None = None
    username: str | None = None
    password: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "url": self.url,
            "username": self.username,
            "password": self.password,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> BackendSource:
        try:
            source_type = SourceType(str(raw.get("type") or "").strip().lower())
        except ValueError as exc:
            raise ValidationError(f"Unknown backend source type: {raw.get('type')!r}") from exc
        return cls(
            type=source_type,
            url=_opt_str(raw.get("url")),
            username=_opt_str(raw.get("username")),
            password=_opt_str(raw.get("password")),
        )

    @classmethod
    def local(cls) -> BackendSource:
        return cls(type=SourceType.LOCAL)


@dataclass(slots=True)
class ResourceRepresentation:
    id: str | None
    media_type: str
    byte_size: int
    filename: str
    source: BackendSource | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "media_type": self.media_type,
            "byte_size": self.byte_size,
            "filename": self.filename,
            "source": self.source.to_dict() if self.source is not None else None,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceRepresentation:
        source_raw = raw.get("source")
        if source_raw is not None and not isinstance(source_raw, dict):
            raise ValidationError("Representation source must be an object")
        try:
            byte_size = int(raw.get("byte_size") or 0)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid representation byte_size: {raw.get('byte_size')!r}") from exc
        return cls(
            id=_opt_str(raw.get("id")),
            media_type=str(raw.get("media_type") or ""),
            byte_size=byte_size,
            filename=str(raw.get("filename") or ""),
            source=BackendSource.from_dict(source_raw) if source_raw is not None else None,
        )


@dataclass(slots=True)
class ResourceMetadata:
    title: str
    description: str = ""
    keywords: list[str] = field(default_factory=list)
    policy: str | None = None
    publisher: str | None = None
    license: str | None = None
    version: str | None = None
    representations: dict[str, ResourceRepresentation] | None = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "keywords": list(self.keywords),
            "policy": self.policy,
            "publisher": self.publisher,
            "license": self.license,
            "version": self.version,
            "representations": (
                {rep_id: rep.to_dict() for rep_id, rep in self.representations.items()}
                if self.representations is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ResourceMetadata:
        if not isinstance(raw, dict):
            raise ValidationError("Resource metadata must be an object")
        reps_raw = raw.get("representations", {})
        representations: dict[str, ResourceRepresentation] | None
        if reps_raw is None:
            representations = None
        elif isinstance(reps_raw, dict):
            representations = {}
            for rep_id, rep_raw in reps_raw.items():
                rep = ResourceRepresentation.from_dict(rep_raw)
                rep.id = str(rep_id)
                representations[str(rep_id)] = rep
        elif isinstance(reps_raw, list):
            # Unkeyed entries get a placeholder key; the service assigns real ids.
            representations = {}
            for index, rep_raw in enumerate(reps_raw):
                rep = ResourceRepresentation.from_dict(rep_raw)
                representations[rep.id or f"#{index}"] = rep
        else:
            raise ValidationError("Resource representations must be an object or a list")

        keywords_raw = raw.get("keywords") or []
        if not isinstance(keywords_raw, list):
            raise ValidationError("Resource keywords must be a list")
        keywords: list[str] = []
        for keyword in keywords_raw:
            clean = str(keyword).strip()
            if clean and clean not in keywords:
                keywords.append(clean)

        return cls(
            title=str(raw.get("title") or ""),
            description=str(raw.get("description") or ""),
            keywords=keywords,
            policy=_opt_str(raw.get("policy")),
            publisher=_opt_str(raw.get("publisher")),
            license=_opt_str(raw.get("license")),
            version=_opt_str(raw.get("version")),
            representations=representations,
        )


@dataclass(slots=True)
class Resource:
    id: str
    created_at: str
    modified_at: str
    metadata: ResourceMetadata | None
    data_digest: str | None = None
    data_relpath: str | None = None
    revision: int = 0

    @property
    def has_data(self) -> bool:
        return self.data_relpath is not None


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
