import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from custodia.application.services.access_gate import ACCESS_DENIED_MESSAGE, AccessGate
from custodia.application.services.backend_resolver import BackendSourceResolver
from custodia.application.services.policy_reader import PolicyReader
from custodia.application.services.policy_verifier import PolicyVerifier
from custodia.application.services.representation_router import RepresentationRouter
from custodia.application.services.resource_service import ResourceService
from custodia.core.config import Settings, default_policy_document
from custodia.core.errors import PolicyDeniedError, PolicyError, ResourceNotFoundError
from custodia.domain.models.resource import BackendSource, ResourceMetadata, ResourceRepresentation
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo
from custodia.infrastructure.db.sqlite import initialize_schema
from custodia.infrastructure.http.transport import TransportResponse


class StubTransport:
    def __init__(self, pip_count: bytes = b"0") -> None:
        self.pip_count = pip_count
        self.pip_requests: list[str] = []

    def get_tls_basic_auth(self, url, username, password):
        self.pip_requests.append(url)
        return self.pip_count


class RecordingMessages:
    def __init__(self) -> None:
        self.sent: list[str] = []

    def send_log_message(self):
        self.sent.append("log")
        return TransportResponse(status=200, body=b"")

    def send_notification_message(self, recipient):
        self.sent.append(f"notify:{recipient}")
        return TransportResponse(status=200, body=b"")


class SpyRouter(RepresentationRouter):
    def __init__(self, resource_service: ResourceService) -> None:
        super().__init__(resource_service)
        self.reads: list[str] = []

    def read_any_representation(self, resource_id: str) -> bytes:
        self.reads.append(resource_id)
        return super().read_any_representation(resource_id)


def _bootstrap(tmp_path: Path, now: datetime | None = None, transport: StubTransport | None = None):
    db_path = tmp_path / "custodia.db"
    initialize_schema(db_path)
    transport = transport or StubTransport()
    service = ResourceService(
        ResourceRepo(db_path),
        ArchiveStore(tmp_path / "archive"),
        BackendSourceResolver(transport),
        default_policy=default_policy_document(),
    )
    reader = PolicyReader()
    messages = RecordingMessages()
    settings = Settings(
        http_timeout_seconds=5.0,
        pip_username="admin",
        pip_password="password",
        log_endpoint="https://log.example/",
        connector_id="urn:test:connector",
        id_attempts=8,
    )
    clock = (lambda: now) if now is not None else (lambda: datetime.now(timezone.utc))
    verifier = PolicyVerifier(reader, messages, transport, settings, clock=clock)
    router = SpyRouter(service)
    gate = AccessGate(verifier, reader, router, service)
    return service, gate, router, messages


def _stored(service: ResourceService, policy: dict | str | None, data: bytes = b"payload") -> str:
    resource_id = service.create(
        ResourceMetadata(
            title="Sensor Feed",
            representations={
                "r1": ResourceRepresentation(
                    id="r1",
                    media_type="json",
                    byte_size=len(data),
                    filename="feed.json",
                    source=BackendSource.local(),
                )
            },
        )
    )
    service.set_data(resource_id, data)
    if policy is not None:
        service.update_policy(resource_id, policy if isinstance(policy, str) else json.dumps(policy))
    return resource_id


def test_default_policy_provides_access(tmp_path: Path) -> None:
    service, gate, router, _ = _bootstrap(tmp_path)
    resource_id = _stored(service, None)

    assert gate.read_resource(resource_id) == b"payload"
    assert gate.read_representation(resource_id, "r1") == b"payload"
    assert router.reads == [resource_id]


def test_denial_never_reaches_the_router(tmp_path: Path) -> None:
    service, gate, router, _ = _bootstrap(tmp_path)
    resource_id = _stored(service, {"permissions": [{"action": "prohibit"}]})

    with pytest.raises(PolicyDeniedError) as exc_info:
        gate.read_resource(resource_id)

    assert str(exc_info.value) == ACCESS_DENIED_MESSAGE
    assert router.reads == []
    with pytest.raises(PolicyDeniedError):
        gate.read_representation(resource_id, "r1")


def test_unreadable_policy_denies_access(tmp_path: Path) -> None:
    service, gate, router, _ = _bootstrap(tmp_path)
    resource_id = _stored(service, "this is not a policy")

    with pytest.raises(PolicyDeniedError, match="Access denied"):
        gate.read_resource(resource_id)
    assert router.reads == []


def test_missing_resource_is_not_found_rather_than_denied(tmp_path: Path) -> None:
    _, gate, _, _ = _bootstrap(tmp_path)

    with pytest.raises(ResourceNotFoundError):
        gate.read_resource("nope")


def test_interval_gate_short_circuits_before_duties(tmp_path: Path) -> None:
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    service, gate, router, messages = _bootstrap(tmp_path, now=now)
    policy = {
        "permissions": [
            {
                "action": "use",
                "interval": {"start": "2024-06-01T00:00:00Z", "end": "2024-07-01T00:00:00Z"},
                "post_duties": [{"action": "log"}],
            }
        ]
    }
    resource_id = _stored(service, policy)

    with pytest.raises(PolicyDeniedError):
        gate.read_resource(resource_id)

    assert messages.sent == []
    assert router.reads == []


def test_frequency_and_duties_run_for_granted_access(tmp_path: Path) -> None:
    transport = StubTransport(pip_count=b"2")
    service, gate, _, messages = _bootstrap(tmp_path, transport=transport)
    policy = {
        "permissions": [
            {
                "action": "use",
                "max_access": 3,
                "pip_endpoint": "https://pip.example/",
                "post_duties": [
                    {"action": "notify", "endpoint": "https://peer.example/inbox"},
                    {"action": "log"},
                ],
            }
        ]
    }
    resource_id = _stored(service, policy)

    assert gate.read_resource(resource_id) == b"payload"
    assert transport.pip_requests == [f"https://pip.example/{resource_id}/access"]
    assert messages.sent == ["notify:https://peer.example/inbox", "log"]

    transport.pip_count = b"4"
    with pytest.raises(PolicyDeniedError):
        gate.read_resource(resource_id)


def test_check_usage_duration(tmp_path: Path) -> None:
    now = datetime(2024, 1, 3, tzinfo=timezone.utc)
    _, gate, _, _ = _bootstrap(tmp_path, now=now)
    contract = PolicyReader().parse_contract({"permissions": [{"action": "use", "duration": "P1D"}]})

    assert gate.check_usage(contract, "res-1", "2024-01-02T12:00:00+00:00") is True
    assert gate.check_usage(contract, "res-1", "2024-01-01T12:00:00+00:00") is False


def test_enforce_deletion_by_date(tmp_path: Path) -> None:
    now = datetime.now(timezone.utc)
    service, gate, _, _ = _bootstrap(tmp_path, now=now)
    expired_id = _stored(
        service,
        {"permissions": [{"action": "use", "delete_by": (now - timedelta(days=1)).isoformat()}]},
    )
    current_id = _stored(
        service,
        {"permissions": [{"action": "use", "delete_by": (now + timedelta(days=1)).isoformat()}]},
    )

    assert gate.enforce_deletion(expired_id) is True
    assert service.get(expired_id) is None
    assert gate.enforce_deletion(current_id) is False
    assert service.get(current_id) is not None
    assert gate.enforce_deletion("nope") is False


def test_enforce_deletion_by_duration(tmp_path: Path) -> None:
    service, gate, _, _ = _bootstrap(tmp_path, now=datetime.now(timezone.utc) + timedelta(days=2))
    expired_id = _stored(service, {"permissions": [{"action": "use", "duration": "P1D"}]})
    current_id = _stored(service, {"permissions": [{"action": "use", "duration": "P1W"}]})

    assert gate.enforce_deletion(expired_id) is True
    assert gate.enforce_deletion(current_id) is False
    assert service.get(current_id) is not None


def test_enforce_deletion_propagates_malformed_policy(tmp_path: Path) -> None:
    service, gate, _, _ = _bootstrap(tmp_path)
    bad_date_id = _stored(service, {"permissions": [{"action": "use", "delete_by": "soon"}]})
    bad_duration_id = _stored(service, {"permissions": [{"action": "use", "duration": "forever"}]})

    with pytest.raises(PolicyError):
        gate.enforce_deletion(bad_date_id)
    with pytest.raises(PolicyError):
        gate.enforce_deletion(bad_duration_id)

    assert service.get(bad_date_id) is not None
    assert service.get(bad_duration_id) is not None


def test_sweep_expired_reports_deletions_and_failures(tmp_path: Path) -> None:
    now = datetime.now(timezone.utc)
    service, gate, _, _ = _bootstrap(tmp_path, now=now)
    expired_id = _stored(
        service,
        {"permissions": [{"action": "use", "delete_by": (now - timedelta(hours=1)).isoformat()}]},
    )
    kept_id = _stored(service, None)
    broken_id = _stored(service, {"permissions": [{"action": "use", "delete_by": "never"}]})

    result = gate.sweep_expired()

    assert result.deleted == [expired_id]
    assert list(result.failed) == [broken_id]
    assert service.get(kept_id) is not None
    assert service.get(broken_id) is not None


def test_notification_duty_listed_after_log_duty(tmp_path: Path) -> None:
    service, gate, router, messages = _bootstrap(tmp_path)
    policy = {
        "permissions": [
            {
                "action": "use",
                "post_duties": [
                    {"action": "log"},
                    {"action": "notify", "endpoint": "https://peer.example/notify"},
                ],
            }
        ]
    }
    resource_id = _stored(service, policy)

    assert gate.read_resource(resource_id) == b"payload"
    assert messages.sent == ["notify:https://peer.example/notify", "log"]
    assert router.reads == [resource_id]


@pytest.mark.parametrize("duration", ["P99999Y", "PT99999999999999999999S"])
def test_out_of_range_duration_denies_access(tmp_path: Path, duration: str) -> None:
    service, gate, router, _ = _bootstrap(tmp_path)
    resource_id = _stored(service, {"permissions": [{"action": "use", "duration": duration}]})

    with pytest.raises(PolicyDeniedError):
        gate.read_resource(resource_id)
    assert router.reads == []

    with pytest.raises(PolicyError):
        gate.enforce_deletion(resource_id)
    assert service.get(resource_id) is not None


def test_sweep_expired_survives_out_of_range_durations(tmp_path: Path) -> None:
    now = datetime.now(timezone.utc)
    service, gate, _, _ = _bootstrap(tmp_path, now=now)
    overflow_id = _stored(service, {"permissions": [{"action": "use", "duration": "PT99999999999999999999S"}]})
    far_year_id = _stored(service, {"permissions": [{"action": "use", "duration": "P99999Y"}]})
    expired_id = _stored(
        service,
        {"permissions": [{"action": "use", "delete_by": (now - timedelta(hours=1)).isoformat()}]},
    )

    result = gate.sweep_expired()

    assert result.deleted == [expired_id]
    assert sorted(result.failed) == sorted([overflow_id, far_year_id])
    assert service.get(overflow_id) is not None
    assert service.get(far_year_id) is not None
