import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from custodia.core.config import default_policy_document, load_paths, load_settings, paths_under
from custodia.core.errors import IdentifierExhaustedError
from custodia.core.ids import DEFAULT_ID_ATTEMPTS, new_unique_id
from custodia.core.logging import configure_logging
from custodia.core.time import add_months, parse_iso_datetime


def test_new_unique_id_skips_taken_candidates() -> None:
    candidates = iter(["a", "b", "c"])
    taken = {"a", "b"}

    assert new_unique_id(lambda value: value in taken, factory=lambda: next(candidates)) == "c"


def test_new_unique_id_gives_up_after_attempts() -> None:
    calls: list[int] = []

    def _always_taken(value: str) -> bool:
        calls.append(1)
        return True

    with pytest.raises(IdentifierExhaustedError):
        new_unique_id(_always_taken, attempts=4)
    assert len(calls) == 4


def test_parse_iso_datetime_normalizes_to_utc() -> None:
    assert parse_iso_datetime("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_iso_datetime("2024-01-01T00:00:00").tzinfo is timezone.utc
    with pytest.raises(ValueError):
        parse_iso_datetime("tomorrow")


def test_add_months_clamps_day() -> None:
    moment = datetime(2023, 1, 31, 8, 30, tzinfo=timezone.utc)

    assert add_months(moment, 1) == datetime(2023, 2, 28, 8, 30, tzinfo=timezone.utc)
    assert add_months(moment, 13) == datetime(2024, 2, 29, 8, 30, tzinfo=timezone.utc)
    assert add_months(moment, -2) == datetime(2022, 11, 30, 8, 30, tzinfo=timezone.utc)
    assert add_months(moment, 0) is moment


def test_load_paths_honours_custodia_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CUSTODIA_HOME", raising=False)
    default = load_paths(tmp_path)
    assert default.db_path == tmp_path.resolve() / ".custodia" / "custodia.db"

    monkeypatch.setenv("CUSTODIA_HOME", str(tmp_path / "elsewhere"))
    custom = load_paths(tmp_path)
    assert custom.custodia_dir == (tmp_path / "elsewhere").resolve()
    assert custom.archive_dir == custom.custodia_dir / "archive"
    assert default == paths_under(tmp_path.resolve())


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CUSTODIA_PIP_USERNAME", "CUSTODIA_PIP_PASSWORD", "CUSTODIA_LOG_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CUSTODIA_HTTP_TIMEOUT_SECONDS", "not-a-number")
    monkeypatch.setenv("CUSTODIA_ID_ATTEMPTS", "7")

    settings = load_settings()

    assert settings.http_timeout_seconds == 30.0
    assert settings.id_attempts == 7
    assert (settings.pip_username, settings.pip_password) == ("admin", "password")
    assert settings.log_endpoint is None

    monkeypatch.setenv("CUSTODIA_LOG_ENDPOINT", "  https://clearing.example/log ")
    assert load_settings().log_endpoint == "https://clearing.example/log"

    monkeypatch.delenv("CUSTODIA_ID_ATTEMPTS")
    assert load_settings().id_attempts == DEFAULT_ID_ATTEMPTS


def test_default_policy_document_provides_access() -> None:
    document = json.loads(default_policy_document())
    assert document["permissions"][0]["action"] == ["use"]


def test_configure_logging_levels() -> None:
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, list(root.handlers)
    try:
        configure_logging(0)
        assert root.level == logging.WARNING
        configure_logging(5)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
