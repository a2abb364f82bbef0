"""Backup-guarded, atomic file access for artifacts."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .errors import ArtifactNotFound
from .nfo_config import logged

logger = logging.getLogger("buildmend.store")

BACKUP_MARKER = ".backup."
_BACKUP_STAMP = re.compile(r"\.backup\.(\d{8}_\d{6})(?:\.(\d+))?$")


@logged
class ArtifactStore:
    """Safe read/write/backup/restore of files below a project root.

    Paths may be absolute or relative to ``root``. Writes go to a temp file
    in the target directory and are moved into place with ``os.replace`` so
    a reader never observes a truncated artifact.
    """

    def __init__(self, root: Path, *, clock: Optional[Callable[[], datetime]] = None):
        self.root = Path(root)
        self._clock = clock or datetime.now

    def resolve(self, path: Path | str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root / p

    def exists(self, path: Path | str) -> bool:
        return self.resolve(path).is_file()

    def read(self, path: Path | str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise ArtifactNotFound(target) from None

    def read_optional(self, path: Path | str) -> Optional[bytes]:
        try:
            return self.read(path)
        except ArtifactNotFound:
            return None

    def backup(self, path: Path | str) -> Optional[Path]:
        """Copy the file to ``<path>.backup.<YYYYmmdd_HHMMSS>``.

        Returns ``None`` when there is nothing to back up. An existing backup
        with the same timestamp is never overwritten; a counter is appended.
        """
        target = self.resolve(path)
        if not target.is_file():
            logger.debug("No backup for %s: file absent", target)
            return None

        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}")
        counter = 0
        while candidate.exists():
            counter += 1
            candidate = target.with_name(f"{target.name}{BACKUP_MARKER}{stamp}.{counter}")

        # exclusive create so a concurrent backup of the same stamp can't clobber ours
        with open(candidate, "xb") as out, open(target, "rb") as src:
            shutil.copyfileobj(src, out)
        shutil.copystat(target, candidate)
        logger.info("Backup created: %s", candidate)
        return candidate

    def write(self, path: Path | str, data: bytes) -> Path:
        """Atomically replace ``path`` with ``data``."""
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            if target.exists():
                shutil.copymode(target, tmp)
            else:
                tmp.chmod(0o644)
            os.replace(tmp, target)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.debug("Wrote %d bytes to %s", len(data), target)
        return target

    def restore(self, backup_path: Path | str, path: Path | str) -> Path:
        """Copy a backup back over the target (atomically)."""
        source = self.resolve(backup_path)
        if not source.is_file():
            raise ArtifactNotFound(source)
        restored = self.write(path, source.read_bytes())
        logger.info("Restored %s from %s", restored, source)
        return restored

    def remove(self, path: Path | str) -> bool:
        target = self.resolve(path)
        if not target.exists():
            return False
        target.unlink()
        logger.info("Removed %s", target)
        return True

    def backups(self, path: Path | str) -> list[Path]:
        """All backups of ``path``, oldest first."""
        target = self.resolve(path)
        if not target.parent.is_dir():
            return []

        found: list[tuple[str, int, Path]] = []
        for candidate in target.parent.iterdir():
            if not candidate.name.startswith(f"{target.name}{BACKUP_MARKER}"):
                continue
            m = _BACKUP_STAMP.search(candidate.name)
            if not m:
                continue
            found.append((m.group(1), int(m.group(2) or 0), candidate))
        return [p for _, _, p in sorted(found)]

    def latest_backup(self, path: Path | str) -> Optional[Path]:
        items = self.backups(path)
        return items[-1] if items else None
