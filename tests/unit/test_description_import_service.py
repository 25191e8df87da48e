import json
from pathlib import Path

import pytest

from custodia.application.services.backend_resolver import BackendSourceResolver
from custodia.application.services.description_import_service import DescriptionImportService
from custodia.application.services.resource_service import ResourceService
from custodia.core.config import default_policy_document
from custodia.core.errors import ResourceNotFoundError, ValidationError
from custodia.domain.models.resource import SourceType
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo
from custodia.infrastructure.db.sqlite import initialize_schema


def _bootstrap(tmp_path: Path):
    db_path = tmp_path / "custodia.db"
    initialize_schema(db_path)
    service = ResourceService(
        ResourceRepo(db_path),
        ArchiveStore(tmp_path / "archive"),
        BackendSourceResolver(transport=None),
        default_policy=default_policy_document(),
    )
    return service, DescriptionImportService(service)


def _description() -> dict:
    return {
        "title": "Traffic Counts",
        "description": "Counts per junction",
        "keywords": ["traffic", "", "city"],
        "publisher": "https://city.example/",
        "version": 2,
        "contract_offer": {"permissions": [{"action": "use", "max_access": 10}]},
        "representations": [
            {"media_type": "csv", "byte_size": 120, "filename": "counts.csv"},
            {"media_type": "json", "byte_size": "300", "filename": "counts.json"},
        ],
    }


def test_save_metadata_keeps_offer_and_generates_representation_ids(tmp_path: Path) -> None:
    service, importer = _bootstrap(tmp_path)

    resource_id = importer.save_metadata(json.dumps(_description()))

    metadata = service.get_metadata(resource_id)
    assert metadata.title == "Traffic Counts"
    assert metadata.keywords == ["traffic", "city"]
    assert metadata.version == "2"
    assert json.loads(metadata.policy) == {"permissions": [{"action": "use", "max_access": 10}]}
    assert metadata.policy != default_policy_document()

    representations = metadata.representations
    assert len(representations) == 2
    for rep_id, rep in representations.items():
        assert rep.id == rep_id
        assert not rep_id.startswith("#")
        assert rep.source.type is SourceType.LOCAL
    assert sorted(rep.byte_size for rep in representations.values()) == [120, 300]
    assert importer.resource_exists(resource_id)


def test_save_data_attaches_payload(tmp_path: Path) -> None:
    service, importer = _bootstrap(tmp_path)
    resource_id = importer.save_metadata(_description())

    importer.save_data(resource_id, "junction,count\nA,12\n")

    rep_id = next(iter(service.get_all_representations(resource_id)))
    assert service.read_data(resource_id, rep_id) == b"junction,count\nA,12\n"
    with pytest.raises(ResourceNotFoundError):
        importer.save_data("unknown", b"x")


@pytest.mark.parametrize(
    "description",
    [
        "{not json",
        "[1, 2]",
        {"representations": [{"media_type": "csv"}]},
        {"title": "No reps", "representations": []},
        {"title": "Bad rep", "representations": ["csv"]},
        {"title": "Bad size", "representations": [{"byte_size": "big"}]},
        {"title": "Bad keywords", "keywords": "a,b", "representations": [{}]},
    ],
)
def test_save_metadata_rejects_bad_descriptions(tmp_path: Path, description) -> None:
    service, importer = _bootstrap(tmp_path)

    with pytest.raises(ValidationError):
        importer.save_metadata(description)

    assert service.list_resources() == []
