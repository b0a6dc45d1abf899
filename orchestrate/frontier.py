"""
Crawl frontier: the visited set plus scope and depth bounds.

Every URL is offered at most once. The check-and-insert happens under one
lock, so two workers discovering the same link concurrently cannot both
enqueue it.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urldefrag, urlparse

from scrape.classify import URLClassifier
from scrape.models import PageType

logger = logging.getLogger(__name__)


class EntryState(str, Enum):
    DISCOVERED = "discovered"
    ENQUEUED = "enqueued"
    VISITING = "visiting"
    EXTRACTED = "extracted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FrontierEntry:
    url: str
    depth: int
    page_type: PageType
    state: EntryState = EntryState.DISCOVERED


class CrawlScope:
    """Host allow-list, http(s)-only, and exclusion patterns."""

    def __init__(self, allowed_domains: list[str], classifier: URLClassifier):
        self.allowed_domains = {d.lower() for d in allowed_domains}
        self.classifier = classifier

    def in_scope(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https"):
            return False
        host = (parsed.hostname or "").lower()
        if not host or (self.allowed_domains and host not in self.allowed_domains):
            return False
        return not self.classifier.matches_exclusion(url)


def normalize_url(url: str) -> str:
    """Drop the fragment; everything else is kept as-is."""
    return urldefrag(url.strip())[0]


class Frontier:
    """Thread-safe visited set with depth and scope bounds."""

    def __init__(self, scope: CrawlScope, max_depth: int):
        self.scope = scope
        self.max_depth = max_depth
        self._entries: dict[str, FrontierEntry] = {}
        self._lock = threading.Lock()
        self._closed = False

    def offer(self, url: str, depth: int, page_type: PageType | None = None) -> FrontierEntry | None:
        """
        Record a newly discovered URL.

        Returns the new entry (state ENQUEUED) if the URL is unseen, in
        scope and within max depth; otherwise None. First discovery wins:
        a URL seen before keeps its original depth.
        """
        url = normalize_url(url)
        if depth > self.max_depth:
            return None
        if not self.scope.in_scope(url):
            return None
        if page_type is None:
            page_type = self.scope.classifier.classify(url)

        with self._lock:
            if self._closed or url in self._entries:
                return None
            entry = FrontierEntry(url, depth, page_type, EntryState.ENQUEUED)
            self._entries[url] = entry
            return entry

    def claim(self, url: str, depth: int) -> bool:
        """
        Mark a URL reached without an offer (a redirect target) as visited.

        Returns False if it had been seen already.
        """
        url = normalize_url(url)
        with self._lock:
            if url in self._entries:
                return False
            self._entries[url] = FrontierEntry(
                url, depth, self.scope.classifier.classify(url), EntryState.VISITING,
            )
            return True

    def mark(self, url: str, state: EntryState) -> None:
        url = normalize_url(url)
        with self._lock:
            entry = self._entries.get(url)
            if entry is not None:
                entry.state = state

    def get(self, url: str) -> FrontierEntry | None:
        with self._lock:
            return self._entries.get(normalize_url(url))

    def seen(self, url: str) -> bool:
        with self._lock:
            return normalize_url(url) in self._entries

    def close(self) -> None:
        """Stop accepting offers."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def counts(self) -> Counter:
        """Entries by state."""
        with self._lock:
            return Counter(e.state.value for e in self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
