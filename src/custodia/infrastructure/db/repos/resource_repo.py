from __future__ import annotations

import json
import logging
from pathlib import Path

from custodia.core.errors import ValidationError
from custodia.domain.models.resource import Resource, ResourceMetadata
from custodia.infrastructure.db.sqlite import get_connection

logger = logging.getLogger(__name__)


class ResourceRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, resource: Resource) -> bool:
        """Insert a new row; returns False when the id is already taken."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO resources (
                    id,
                    created_at,
                    modified_at,
                    revision,
                    metadata_json,
                    data_digest,
                    data_relpath
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    resource.id,
                    resource.created_at,
                    resource.modified_at,
                    resource.revision,
                    self._dump_metadata(resource),
                    resource.data_digest,
                    resource.data_relpath,
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def save(self, resource: Resource) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO resources (
                    id,
                    created_at,
                    modified_at,
                    revision,
                    metadata_json,
                    data_digest,
                    data_relpath
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    modified_at = excluded.modified_at,
                    revision = excluded.revision,
                    metadata_json = excluded.metadata_json,
                    data_digest = excluded.data_digest,
                    data_relpath = excluded.data_relpath
                """,
                (
                    resource.id,
                    resource.created_at,
                    resource.modified_at,
                    resource.revision,
                    self._dump_metadata(resource),
                    resource.data_digest,
                    resource.data_relpath,
                ),
            )
            conn.commit()

    def compare_and_swap(self, resource: Resource, expected_revision: int) -> bool:
        """Write ``resource`` only if the stored revision is still ``expected_revision``."""
        next_revision = expected_revision + 1
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE resources
                SET modified_at = ?, revision = ?, metadata_json = ?, data_digest = ?, data_relpath = ?
                WHERE id = ? AND revision = ?
                """,
                (
                    resource.modified_at,
                    next_revision,
                    self._dump_metadata(resource),
                    resource.data_digest,
                    resource.data_relpath,
                    resource.id,
                    expected_revision,
                ),
            )
            conn.commit()
        if cursor.rowcount != 1:
            return False
        resource.revision = next_revision
        return True

    def get_by_id(self, resource_id: str) -> Resource | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM resources WHERE id = ?",
                (resource_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def exists(self, resource_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM resources WHERE id = ?",
                (resource_id,),
            ).fetchone()
        return row is not None

    def list(self, limit: int = 100) -> list[Resource]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM resources
                ORDER BY created_at DESC, id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def list_ids(self) -> list[str]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute("SELECT id FROM resources ORDER BY created_at, id").fetchall()
        return [row["id"] for row in rows]

    def delete_by_id(self, resource_id: str) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
            conn.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _dump_metadata(resource: Resource) -> str | None:
        if resource.metadata is None:
            return None
        return json.dumps(resource.metadata.to_dict(), ensure_ascii=True, sort_keys=True)

    @staticmethod
    def _to_model(row) -> Resource:
        metadata: ResourceMetadata | None = None
        if row["metadata_json"]:
            try:
                metadata = ResourceMetadata.from_dict(json.loads(row["metadata_json"]))
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning("Stored metadata for resource %s is unreadable: %s", row["id"], exc)
        return Resource(
            id=row["id"],
            created_at=row["created_at"],
            modified_at=row["modified_at"],
            metadata=metadata,
            data_digest=row["data_digest"],
            data_relpath=row["data_relpath"],
            revision=row["revision"],
        )
