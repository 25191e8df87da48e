import logging
from pathlib import Path

import pytest

from custodia.application.services.backend_resolver import BackendSourceResolver
from custodia.application.services.representation_router import RepresentationRouter
from custodia.application.services.resource_service import ResourceService
from custodia.core.config import default_policy_document
from custodia.core.errors import (
    InvalidResourceError,
    NoReadableRepresentationError,
    ResourceNotFoundError,
    TransportFailureError,
)
from custodia.domain.models.resource import (
    BackendSource,
    Resource,
    ResourceMetadata,
    ResourceRepresentation,
    SourceType,
)
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo
from custodia.infrastructure.db.sqlite import initialize_schema


class ScriptedTransport:
    def __init__(self, answers) -> None:
        self.answers = answers
        self.requested: list[str] = []

    def get_plain(self, url):
        self.requested.append(url)
        answer = self.answers[url]
        if isinstance(answer, Exception):
            raise answer
        return answer

    get_tls = get_plain


def _bootstrap(tmp_path: Path, transport: ScriptedTransport):
    db_path = tmp_path / "custodia.db"
    initialize_schema(db_path)
    repo = ResourceRepo(db_path)
    service = ResourceService(
        repo,
        ArchiveStore(tmp_path / "archive"),
        BackendSourceResolver(transport),
        default_policy=default_policy_document(),
    )
    return repo, service, RepresentationRouter(service)


def _http_rep(rep_id: str, url: str) -> ResourceRepresentation:
    return ResourceRepresentation(
        id=rep_id,
        media_type="csv",
        byte_size=0,
        filename=f"{rep_id}.csv",
        source=BackendSource(type=SourceType.HTTP_GET, url=url),
    )


def test_router_falls_through_to_next_representation(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    transport = ScriptedTransport(
        {
            "http://primary.example/a": TransportFailureError("connection refused"),
            "http://mirror.example/a": b"a,b,c",
        }
    )
    _, service, router = _bootstrap(tmp_path, transport)
    resource_id = service.create(
        ResourceMetadata(
            title="Table",
            representations={
                "a-primary": _http_rep("a-primary", "http://primary.example/a"),
                "b-mirror": _http_rep("b-mirror", "http://mirror.example/a"),
            },
        )
    )

    with caplog.at_level(logging.WARNING):
        data = router.read_any_representation(resource_id)

    assert data == b"a,b,c"
    assert transport.requested == ["http://primary.example/a", "http://mirror.example/a"]
    assert "a-primary" in caplog.text
    assert "BackendUnavailableError" in caplog.text


def test_router_stops_after_first_success(tmp_path: Path) -> None:
    transport = ScriptedTransport(
        {
            "http://one.example/": b"first",
            "http://two.example/": b"second",
        }
    )
    _, service, router = _bootstrap(tmp_path, transport)
    resource_id = service.create(
        ResourceMetadata(
            title="Two",
            representations={
                "1": _http_rep("1", "http://one.example/"),
                "2": _http_rep("2", "http://two.example/"),
            },
        )
    )

    attempts = router.attempt_all(resource_id)

    assert [a.representation_id for a in attempts] == ["1"]
    assert attempts[0].ok
    assert transport.requested == ["http://one.example/"]


def test_router_survives_unexpected_errors(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    transport = ScriptedTransport(
        {
            "http://boom.example/": RuntimeError("driver crashed"),
            "http://ok.example/": b"fine",
        }
    )
    _, service, router = _bootstrap(tmp_path, transport)
    resource_id = service.create(
        ResourceMetadata(
            title="Mixed",
            representations={
                "1": _http_rep("1", "http://boom.example/"),
                "2": _http_rep("2", "http://ok.example/"),
            },
        )
    )

    with caplog.at_level(logging.WARNING):
        assert router.read_any_representation(resource_id) == b"fine"

    assert "failed unexpectedly" in caplog.text


def test_router_reports_no_readable_representation(tmp_path: Path) -> None:
    transport = ScriptedTransport(
        {
            "http://one.example/": TransportFailureError("timeout"),
            "http://two.example/": TransportFailureError("HTTP 503", status=503),
        }
    )
    _, service, router = _bootstrap(tmp_path, transport)
    resource_id = service.create(
        ResourceMetadata(
            title="Down",
            representations={
                "1": _http_rep("1", "http://one.example/"),
                "2": _http_rep("2", "http://two.example/"),
            },
        )
    )

    with pytest.raises(NoReadableRepresentationError):
        router.read_any_representation(resource_id)

    attempts = router.attempt_all(resource_id)
    assert len(attempts) == 2
    assert not any(a.ok for a in attempts)


def test_router_surfaces_invalid_and_missing_resources(tmp_path: Path) -> None:
    repo, _, router = _bootstrap(tmp_path, ScriptedTransport({}))
    repo.save(
        Resource(
            id="hollow",
            created_at="2024-01-01T00:00:00+00:00",
            modified_at="2024-01-01T00:00:00+00:00",
            metadata=ResourceMetadata(title="Hollow", representations=None),
        )
    )

    with pytest.raises(InvalidResourceError):
        router.read_any_representation("hollow")
    with pytest.raises(ResourceNotFoundError):
        router.read_any_representation("absent")
