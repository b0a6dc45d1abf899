"""
Concurrent fetch engine: a bounded worker pool that fetches scheduled URLs
and hands parsed pages (or errors) back through callbacks.

    engine = FetchEngine(FetchConfig(parallel_jobs=4))
    engine.start(on_page=handle_page, on_error=handle_error)
    engine.schedule_visit("https://example.com/", depth=0)
    engine.wait()      # returns once nothing is queued or in flight
    engine.close()

Callbacks run on worker threads and may schedule further visits. An
exception raised by a callback is logged and does not stop the engine.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable
from urllib.parse import urlparse

import requests

from .config import FetchConfig, Page
from .fetcher import FetchError, fetch_page, is_allowed_domain
from .robots import RobotsCache

logger = logging.getLogger(__name__)


PageHandler = Callable[[Page], None]
ErrorHandler = Callable[[str, int, FetchError], None]

WAIT_POLL_INTERVAL = 0.5


class DomainThrottle:
    """Spaces requests to the same host at least ``delay`` seconds apart."""

    def __init__(self, stop_event: threading.Event | None = None):
        self._next_slot: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop = stop_event or threading.Event()

    def wait(self, url: str, delay: float) -> bool:
        """Block until the host's next slot. Returns False if stopped meanwhile."""
        if delay <= 0:
            return not self._stop.is_set()

        host = (urlparse(url).hostname or '').lower()
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot.get(host, now))
            self._next_slot[host] = slot + delay

        pause = slot - now
        if pause > 0:
            return not self._stop.wait(pause)
        return not self._stop.is_set()


class FetchEngine:
    """Thread-pool fetcher with per-domain pacing and robots.txt checks."""

    def __init__(self, config: FetchConfig | None = None, robots: RobotsCache | None = None):
        self.config = config or FetchConfig()
        if robots is None and self.config.respect_robots_txt:
            robots = RobotsCache(self.config.user_agent)
        self.robots = robots

        self._stop = threading.Event()
        self.throttle = DomainThrottle(self._stop)

        self._executor: ThreadPoolExecutor | None = None
        self._on_page: PageHandler | None = None
        self._on_error: ErrorHandler | None = None

        self._in_flight = 0
        self._cond = threading.Condition()

        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()

    # -- lifecycle -------------------------------------------------------------

    def start(self, on_page: PageHandler, on_error: ErrorHandler | None = None) -> None:
        if self._executor is not None:
            raise RuntimeError("engine already started")
        self._on_page = on_page
        self._on_error = on_error
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.parallel_jobs),
            thread_name_prefix='fetch',
        )

    def stop(self) -> None:
        """Stop fetching. Queued visits are dropped; running handlers finish."""
        if not self._stop.is_set():
            logger.info("Stopping fetch engine")
        self._stop.set()
        with self._cond:
            self._cond.notify_all()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def wait(self) -> None:
        """Block until no visit is queued or in flight."""
        with self._cond:
            while self._in_flight > 0:
                # Timed wait keeps the main thread responsive to signals
                self._cond.wait(timeout=WAIT_POLL_INTERVAL)

    def close(self) -> None:
        self.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        with self._sessions_lock:
            for session in self._sessions:
                session.close()
            self._sessions.clear()

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    # -- scheduling ------------------------------------------------------------

    def schedule_visit(self, url: str, depth: int) -> bool:
        """Queue a visit. Returns False if the engine is stopped or not started."""
        if self._executor is None or self._stop.is_set():
            return False

        with self._cond:
            self._in_flight += 1
        try:
            self._executor.submit(self._visit, url, depth)
        except RuntimeError:
            # Executor already shut down
            self._done()
            return False
        return True

    def _visit(self, url: str, depth: int) -> None:
        try:
            if self._stop.is_set():
                return
            try:
                page = self.fetch_and_parse(url)
            except FetchError as e:
                # Visits cut short by stop() are not failures
                if self._on_error is not None and not self._stop.is_set():
                    self._call(url, self._on_error, url, depth, e)
                return
            page.depth = depth
            self._call(url, self._on_page, page)
        finally:
            self._done()

    def _done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            if self._in_flight <= 0:
                self._cond.notify_all()

    def _call(self, url: str, handler, *args) -> None:
        try:
            handler(*args)
        except Exception:
            logger.exception("Handler failed for %s", url)

    # -- fetching --------------------------------------------------------------

    def fetch_and_parse(self, url: str) -> Page:
        """
        Fetch one URL synchronously, honoring domain, robots and pacing.

        Raises:
            FetchError
        """
        if not is_allowed_domain(url, self.config.allowed_domains):
            raise FetchError(url, "domain not allowed")

        delay = self.config.request_delay
        if self.robots is not None:
            if not self.robots.is_allowed(url):
                raise FetchError(url, "disallowed by robots.txt")
            robots_delay = self.robots.crawl_delay(url)
            if robots_delay is not None and robots_delay > delay:
                delay = robots_delay

        if not self.throttle.wait(url, delay):
            raise FetchError(url, "cancelled")

        logger.debug("Visiting %s", url)
        return fetch_page(url, self.config, session=self._session(), stop_event=self._stop)

    def _session(self) -> requests.Session:
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session
