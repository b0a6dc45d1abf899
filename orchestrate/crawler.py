"""
Traversal orchestrator.

Seeds the frontier, drives the fetch engine, and runs every fetched page
through classify → extract → save → discover → enqueue. Page handlers run
on the engine's worker threads; all shared state (frontier, stats, store)
is lock-protected.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Protocol

from fetch.config import Page
from fetch.fetcher import FetchError
from scrape.extractor import NotExtractable, extract_article
from scrape.links import discover_links
from scrape.models import PageType
from storage import JsonlStore, SaveResult

from .config import Settings
from .frontier import CrawlScope, EntryState, Frontier, normalize_url

logger = logging.getLogger(__name__)


PROGRESS_EVERY = 50


class Engine(Protocol):
    def start(self, on_page, on_error) -> None: ...
    def schedule_visit(self, url: str, depth: int) -> bool: ...
    def wait(self) -> None: ...
    def stop(self) -> None: ...


@dataclass
class CrawlStats:
    """Run counters. Increments are thread-safe."""

    start_time: datetime | None = None
    end_time: datetime | None = None
    urls_visited: int = 0
    fetch_errors: int = 0
    handler_errors: int = 0
    articles_extracted: int = 0
    articles_saved: int = 0
    duplicates: int = 0
    extraction_skipped: int = 0
    write_errors: int = 0
    pages_by_type: Counter = field(default_factory=Counter)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str, n: int = 1) -> int:
        with self._lock:
            value = getattr(self, name) + n
            setattr(self, name, value)
            return value

    def count_page_type(self, page_type: PageType) -> None:
        with self._lock:
            self.pages_by_type[page_type.value] += 1

    def begin(self) -> None:
        self.start_time = datetime.now(timezone.utc)
        self.end_time = None

    def finish(self) -> None:
        self.end_time = datetime.now(timezone.utc)

    @property
    def duration(self) -> float:
        """Seconds from start to end (or to now while running)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "start_time": self.start_time.isoformat() if self.start_time else None,
                "end_time": self.end_time.isoformat() if self.end_time else None,
                "duration_sec": round(self.duration, 1),
                "urls_visited": self.urls_visited,
                "fetch_errors": self.fetch_errors,
                "handler_errors": self.handler_errors,
                "articles_extracted": self.articles_extracted,
                "articles_saved": self.articles_saved,
                "duplicates": self.duplicates,
                "extraction_skipped": self.extraction_skipped,
                "write_errors": self.write_errors,
                "pages_by_type": dict(self.pages_by_type),
            }


class Crawler:
    """Crawls one site from its start URLs and stores the articles found."""

    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        store: JsonlStore | None = None,
        dry_run: bool = False,
        on_page: Callable[[Page, CrawlStats], None] | None = None,
    ):
        if store is None and not dry_run:
            raise ValueError("a store is required unless dry_run is set")

        self.settings = settings
        self.engine = engine
        self.store = store
        self.dry_run = dry_run
        self.on_page = on_page

        self.classifier = settings.build_classifier()
        self.link_rules = settings.build_link_rules(self.classifier)
        self.selectors = settings.selectors.article
        self.frontier = Frontier(
            CrawlScope(settings.target.allowed_domains, self.classifier),
            settings.crawler.max_depth,
        )
        self.stats = CrawlStats()

    def run(self) -> CrawlStats:
        """Crawl until the frontier drains (or stop() is called)."""
        self.stats.begin()
        self.engine.start(self.handle_page, self.handle_error)

        for url in self.settings.target.start_urls:
            entry = self.frontier.offer(url, 0)
            if entry is None:
                logger.warning("Start URL out of scope or repeated: %s", url)
                continue
            self.engine.schedule_visit(entry.url, entry.depth)

        self.engine.wait()
        self.stats.finish()
        logger.info(
            "Crawl finished: %d visited, %d saved, %d duplicates in %.1fs",
            self.stats.urls_visited, self.stats.articles_saved,
            self.stats.duplicates, self.stats.duration,
        )
        return self.stats

    def stop(self) -> None:
        """Stop enqueuing; in-flight pages finish."""
        self.frontier.close()
        self.engine.stop()

    # -- handlers (worker threads) ---------------------------------------------

    def handle_page(self, page: Page) -> None:
        visited = self.stats.incr("urls_visited")
        self.frontier.mark(page.url, EntryState.VISITING)

        try:
            self._process(page)
        except Exception:
            logger.exception("Failed to process %s", page.url)
            self.stats.incr("handler_errors")
            self.frontier.mark(page.url, EntryState.FAILED)

        if visited % PROGRESS_EVERY == 0:
            self._log_progress()
        if self.on_page is not None:
            self.on_page(page, self.stats)

    def handle_error(self, url: str, depth: int, error: FetchError) -> None:
        self.stats.incr("fetch_errors")
        self.frontier.mark(url, EntryState.FAILED)
        logger.warning("Fetch failed (depth %d): %s", depth, error)

    def _process(self, page: Page) -> None:
        url = normalize_url(page.final_url or page.url)
        if url != normalize_url(page.url) and not self.frontier.claim(url, page.depth):
            # Redirected onto a page that is handled on its own
            logger.debug("Redirect target already seen: %s -> %s", page.url, url)
            self.frontier.mark(page.url, EntryState.SKIPPED)
            return

        page_type = self.classifier.classify(url)
        self.stats.count_page_type(page_type)

        state = EntryState.SKIPPED
        if page_type is PageType.ARTICLE:
            if self._extract_and_save(page, url):
                state = EntryState.EXTRACTED
        self.frontier.mark(page.url, state)

        self._discover(page, url)

    def _extract_and_save(self, page: Page, url: str) -> bool:
        try:
            article = extract_article(page.soup, url, self.classifier, self.selectors)
        except NotExtractable as e:
            logger.info("Skipped %s: %s", url, e.reason)
            self.stats.incr("extraction_skipped")
            return False

        self.stats.incr("articles_extracted")
        if self.dry_run:
            logger.info("[dry-run] Article: %s (%d words)", article.title, article.word_count)
            return True

        result = self.store.save(article)
        if result is SaveResult.SAVED:
            self.stats.incr("articles_saved")
        elif result is SaveResult.DUPLICATE:
            self.stats.incr("duplicates")
        else:
            self.stats.incr("write_errors")
        return True

    def _discover(self, page: Page, url: str) -> None:
        if self.frontier.closed:
            return
        child_depth = page.depth + 1
        links = discover_links(page.soup, url, self.link_rules)
        for link in sorted(links, key=lambda l: l.url):
            entry = self.frontier.offer(link.url, child_depth, link.page_type)
            if entry is not None:
                self.engine.schedule_visit(entry.url, entry.depth)

    def _log_progress(self) -> None:
        s = self.stats
        logger.info(
            "Progress: %d visited, %d extracted, %d saved, %d duplicates, %d errors (%.0fs)",
            s.urls_visited, s.articles_extracted, s.articles_saved,
            s.duplicates, s.fetch_errors + s.write_errors, s.duration,
        )
