from __future__ import annotations

import hashlib
from pathlib import Path

from custodia.core.files import ensure_directory, make_read_only, write_bytes_atomic


class ArchiveStore:
    """Content-addressed payload storage for locally hosted resource data."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def ensure_archive_layout(self) -> None:
        ensure_directory(self.base_dir)
        ensure_directory(self.base_dir / "sha256")

    def archive_relpath_for_digest(self, digest_sha256: str, suffix: str = "") -> Path:
        shard_a = digest_sha256[:2]
        shard_b = digest_sha256[2:4]
        name = f"{digest_sha256}{suffix}"
        return Path("sha256") / shard_a / shard_b / name

    def archive_abspath_for_digest(self, digest_sha256: str, suffix: str = "") -> Path:
        return self.base_dir / self.archive_relpath_for_digest(digest_sha256, suffix)

    def store_bytes_immutable(self, data: bytes) -> tuple[str, Path]:
        """Store ``data`` once under its digest; returns ``(digest, relpath)``."""
        self.ensure_archive_layout()
        digest_sha256 = hashlib.sha256(data).hexdigest()
        dst = self.archive_abspath_for_digest(digest_sha256)

        if not dst.exists():
            write_bytes_atomic(data, dst)
            make_read_only(dst)

        return digest_sha256, self.archive_relpath_for_digest(digest_sha256)

    def read_bytes(self, relpath: str) -> bytes:
        return (self.base_dir / relpath).read_bytes()

    def verify_archived_integrity(self, relpath: str, expected_digest: str) -> bool:
        path = self.base_dir / relpath
        if not path.exists():
            return False
        return hashlib.sha256(path.read_bytes()).hexdigest() == expected_digest
