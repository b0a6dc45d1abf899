"""
Timestamped backup snapshots of the output file with count-based retention.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


DEFAULT_PREFIX = 'articles_backup_'
TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'
SUFFIX = '.jsonl'


class BackupRotator:
    """
    Copies the output file to ``<directory>/<prefix><YYYYMMDD_HHMMSS>.jsonl``
    and keeps only the ``retention`` most recent copies.

    Names sort lexicographically in age order, so pruning works on the
    sorted name list. A second rotation within the same second gets a
    ``_001``, ``_002``... suffix.
    """

    def __init__(
        self,
        directory: str | Path,
        retention: int,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], datetime] | None = None,
    ):
        if retention < 1:
            raise ValueError(f"retention must be positive, got {retention}")
        self.directory = Path(directory)
        self.retention = retention
        self.prefix = prefix
        self._clock = clock or datetime.now

    def rotate(self, source: str | Path) -> Path | None:
        """
        Snapshot ``source`` and prune old snapshots.

        Returns the new backup path, or None if the source does not exist
        yet. OSErrors propagate; the store treats them as warnings.
        """
        source = Path(source)
        if not source.exists():
            return None

        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._next_name()
        shutil.copy2(source, target)
        logger.debug("Created backup: %s", target)

        self.prune()
        return target

    def prune(self) -> list[Path]:
        """Delete all but the newest ``retention`` backups. Returns removed paths."""
        backups = self.list_backups()
        excess = backups[:-self.retention] if len(backups) > self.retention else []
        removed = []
        for path in excess:
            try:
                path.unlink()
                removed.append(path)
            except OSError as e:
                logger.warning("Failed to remove old backup %s: %s", path, e)
        if removed:
            logger.debug("Pruned %d old backup(s)", len(removed))
        return removed

    def list_backups(self) -> list[Path]:
        """Existing backups, oldest first."""
        if not self.directory.is_dir():
            return []
        return sorted(
            p for p in self.directory.glob(f"{self.prefix}*{SUFFIX}")
            if p.is_file()
        )

    def _next_name(self) -> Path:
        stamp = self._clock().strftime(TIMESTAMP_FORMAT)
        target = self.directory / f"{self.prefix}{stamp}{SUFFIX}"
        n = 0
        while target.exists():
            n += 1
            target = self.directory / f"{self.prefix}{stamp}_{n:03d}{SUFFIX}"
        return target
