"""
Deduplicating append-only JSON Lines article store.

One JSON object per line, appended in save order. Deduplication is by
fingerprint (``Article.content_hash``): the in-memory index is rebuilt from
the file when the store opens and updated after every successful write.

Usage:
    from storage.jsonl import JsonlStore, SaveResult

    with JsonlStore("data/articles.jsonl") as store:
        if store.save(article) is SaveResult.SAVED:
            ...
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, Iterator, NamedTuple

from scrape.models import Article

from .backup import BackupRotator

logger = logging.getLogger(__name__)


class StoreClosedError(RuntimeError):
    """Raised on any store operation after close()."""


class SaveResult(str, Enum):
    SAVED = 'saved'
    DUPLICATE = 'duplicate'
    FAILED = 'failed'


class BatchResult(NamedTuple):
    saved: int
    skipped: int
    failed: int


@dataclass
class StoreStats:
    count: int
    size_bytes: int
    last_modified: datetime | None
    format: str
    path: str


class JsonlStore:
    """
    Append-only article store with fingerprint deduplication.

    Safe to share between worker threads: a single lock serializes the
    check-and-insert, the append and the backup rotation.
    """

    format = 'jsonl'

    def __init__(self, path: str | Path, backup: BackupRotator | None = None, fsync: bool = True):
        self.path = Path(path)
        self.backup = backup
        self.fsync = fsync

        self._lock = threading.Lock()
        self._handle: IO[bytes] | None = None
        self._closed = False
        self._index: set[str] = set()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load_index()

    # -- context manager -----------------------------------------------------

    def __enter__(self) -> 'JsonlStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- writes ----------------------------------------------------------------

    def save(self, article: Article) -> SaveResult:
        """
        Append one article unless its fingerprint is already stored.

        Returns SAVED, DUPLICATE or FAILED. Backup failures are logged and
        do not affect the result.
        """
        with self._lock:
            self._check_open()
            if article.content_hash in self._index:
                logger.debug("Duplicate article skipped: %s", article.url)
                return SaveResult.DUPLICATE

            try:
                line = _encode(article)
            except (TypeError, ValueError) as e:
                logger.error("Failed to encode article %s: %s", article.url, e)
                return SaveResult.FAILED

            self._backup()

            try:
                self._write(line)
            except OSError:
                logger.exception("Failed to write article %s", article.url)
                return SaveResult.FAILED

            self._index.add(article.content_hash)
            logger.debug("Article saved: %s", article.title)
            return SaveResult.SAVED

    def save_batch(self, articles: Iterable[Article]) -> BatchResult:
        """
        Append several articles with one backup rotation and one write.

        Duplicates (against the index and within the batch) are skipped;
        articles that fail to encode are logged and counted as failed. If
        the write itself fails, every encoded article counts as failed.
        """
        with self._lock:
            self._check_open()

            lines: list[bytes] = []
            pending: list[str] = []
            seen: set[str] = set()
            skipped = failed = 0

            for article in articles:
                fp = article.content_hash
                if fp in self._index or fp in seen:
                    skipped += 1
                    continue
                try:
                    lines.append(_encode(article))
                except (TypeError, ValueError) as e:
                    logger.error("Failed to encode article %s: %s", article.url, e)
                    failed += 1
                    continue
                seen.add(fp)
                pending.append(fp)

            if not lines:
                return BatchResult(0, skipped, failed)

            self._backup()

            try:
                self._write(b''.join(lines))
            except OSError:
                logger.exception("Failed to write batch of %d articles", len(lines))
                return BatchResult(0, skipped, failed + len(lines))

            self._index.update(pending)
            logger.info("Batch saved: %d saved, %d skipped, %d failed", len(lines), skipped, failed)
            return BatchResult(len(lines), skipped, failed)

    # -- reads -----------------------------------------------------------------

    def exists(self, fingerprint: str) -> bool:
        with self._lock:
            self._check_open()
            return fingerprint in self._index

    def iter_articles(self) -> Iterator[Article]:
        """
        Yield every stored article in file order.

        Each call re-reads the file from the start. Malformed lines are
        logged and skipped.
        """
        self._check_open()
        for lineno, record in self._iter_records():
            try:
                yield Article.from_record(record)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping malformed record at %s:%d: %s", self.path, lineno, e)

    def load_all(self) -> list[Article]:
        return list(self.iter_articles())

    def stats(self) -> StoreStats:
        self._check_open()
        if not self.path.exists():
            return StoreStats(0, 0, None, self.format, str(self.path))

        with self._lock:
            if self._handle is not None:
                self._handle.flush()
            st = self.path.stat()
        count = sum(1 for _ in self._iter_records())
        return StoreStats(
            count=count,
            size_bytes=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            format=self.format,
            path=str(self.path),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    # -- lifecycle -------------------------------------------------------------

    def close(self) -> None:
        """Flush and release the file handle. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._handle is not None:
                try:
                    self._handle.flush()
                    if self.fsync:
                        os.fsync(self._handle.fileno())
                finally:
                    self._handle.close()
                    self._handle = None
            logger.debug("Store closed: %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    # -- internals -------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError(f"store is closed: {self.path}")

    def _load_index(self) -> None:
        if not self.path.exists():
            return
        for lineno, record in self._iter_records():
            fp = record.get('content_hash') if isinstance(record, dict) else None
            if isinstance(fp, str) and fp:
                self._index.add(fp)
            else:
                logger.warning("Record without content_hash at %s:%d", self.path, lineno)
        logger.info("Loaded %d existing fingerprints from %s", len(self._index), self.path)

    def _iter_records(self) -> Iterator[tuple[int, dict]]:
        if not self.path.exists():
            return
        with open(self.path, 'rb') as f:
            for lineno, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw.decode('utf-8'))
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    logger.warning("Skipping corrupt line %s:%d: %s", self.path, lineno, e)
                    continue
                if not isinstance(record, dict):
                    logger.warning("Skipping non-object line %s:%d", self.path, lineno)
                    continue
                yield lineno, record

    def _backup(self) -> None:
        if self.backup is None:
            return
        if self._handle is not None:
            self._handle.flush()
        try:
            self.backup.rotate(self.path)
        except OSError as e:
            logger.warning("Backup failed for %s: %s", self.path, e)

    def _write(self, data: bytes) -> None:
        if self._handle is None:
            self._open_for_append()
        try:
            self._handle.write(data)
            self._handle.flush()
            if self.fsync:
                os.fsync(self._handle.fileno())
        except OSError:
            # The file may now end mid-line; reopening re-checks the tail
            self._drop_handle()
            raise

    def _open_for_append(self) -> None:
        handle = open(self.path, 'ab')
        try:
            if handle.tell() > 0 and not _ends_with_newline(self.path):
                logger.warning("Terminating partial last line in %s", self.path)
                handle.write(b'\n')
                handle.flush()
        except OSError:
            handle.close()
            raise
        self._handle = handle

    def _drop_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except OSError as e:
            logger.warning("Error closing %s after failed write: %s", self.path, e)


def _ends_with_newline(path: Path) -> bool:
    with open(path, 'rb') as f:
        f.seek(-1, os.SEEK_END)
        return f.read(1) == b'\n'


def _encode(article: Article) -> bytes:
    """One JSON line as UTF-8. Raises ValueError for text that cannot be encoded."""
    return (json.dumps(article.to_record(), ensure_ascii=False) + '\n').encode('utf-8')
