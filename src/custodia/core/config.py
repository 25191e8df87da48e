from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from custodia.core.ids import DEFAULT_ID_ATTEMPTS


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    custodia_dir: Path
    db_path: Path
    archive_dir: Path


@dataclass(frozen=True)
class Settings:
    http_timeout_seconds: float
    pip_username: str
    pip_password: str
    log_endpoint: str | None
    connector_id: str
    id_attempts: int


DEFAULT_CUSTODIA_DIRNAME = ".custodia"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_PIP_USERNAME = "admin"
DEFAULT_PIP_PASSWORD = "password"
DEFAULT_CONNECTOR_ID = "urn:custodia:connector"


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    custodia_home_raw = os.getenv("CUSTODIA_HOME")
    if custodia_home_raw:
        return paths_under(root, Path(custodia_home_raw).expanduser().resolve())
    return paths_under(root)


def paths_under(root: Path, custodia_dir: Path | None = None) -> AppPaths:
    """Build paths rooted at ``root`` without consulting the environment."""
    custodia_dir = custodia_dir or root / DEFAULT_CUSTODIA_DIRNAME
    return AppPaths(
        project_root=root,
        custodia_dir=custodia_dir,
        db_path=custodia_dir / "custodia.db",
        archive_dir=custodia_dir / "archive",
    )


def load_settings() -> Settings:
    log_endpoint = (os.getenv("CUSTODIA_LOG_ENDPOINT") or "").strip() or None
    return Settings(
        http_timeout_seconds=read_float_env("CUSTODIA_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
        pip_username=os.getenv("CUSTODIA_PIP_USERNAME") or DEFAULT_PIP_USERNAME,
        pip_password=os.getenv("CUSTODIA_PIP_PASSWORD") or DEFAULT_PIP_PASSWORD,
        log_endpoint=log_endpoint,
        connector_id=os.getenv("CUSTODIA_CONNECTOR_ID") or DEFAULT_CONNECTOR_ID,
        id_attempts=read_int_env("CUSTODIA_ID_ATTEMPTS", DEFAULT_ID_ATTEMPTS),
    )


def default_policy_document() -> str:
    """Contract offer attached to every resource created through the offer path."""
    return json.dumps(
        {
            "permissions": [
                {
                    "title": "Example Usage Policy",
                    "description": "provide-access",
                    "action": ["use"],
                }
            ]
        },
        sort_keys=True,
    )


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default
