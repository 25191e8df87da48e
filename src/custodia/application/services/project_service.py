from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from custodia.core.config import AppPaths
from custodia.core.files import ensure_directory
from custodia.infrastructure.archive.store import ArchiveStore
from custodia.infrastructure.db.repos.resource_repo import ResourceRepo
from custodia.infrastructure.db.sqlite import initialize_schema

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InitResult:
    created_dirs: list[Path]
    db_path: Path
    db_created: bool
    resource_count: int


class ProjectService:
    """Creates the project state directory, resource database and payload archive.

    Initialization is idempotent: on an existing project it only brings the schema
    up to date and reports how many resources are already offered.
    """

    def __init__(self, paths: AppPaths) -> None:
        self.paths = paths

    def init_project(self) -> InitResult:
        created_dirs = [p for p in (self.paths.custodia_dir, self.paths.archive_dir) if not p.exists()]
        db_created = not self.paths.db_path.exists()

        ensure_directory(self.paths.custodia_dir)
        ArchiveStore(self.paths.archive_dir).ensure_archive_layout()
        initialize_schema(self.paths.db_path)

        resource_count = len(ResourceRepo(self.paths.db_path).list_ids())
        if db_created:
            logger.info("Created resource database %s", self.paths.db_path)
        return InitResult(
            created_dirs=created_dirs,
            db_path=self.paths.db_path,
            db_created=db_created,
            resource_count=resource_count,
        )

    def is_initialized(self) -> bool:
        return self.paths.db_path.exists()
