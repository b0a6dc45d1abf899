"""
Robots.txt parser and compliance checker.

Supports:
- User-agent matching
- Allow/Disallow rules
- Crawl-delay directive

Usage:
    from fetch.robots import RobotsCache

    robots = RobotsCache(user_agent="ArticleCrawler/0.1")
    if robots.is_allowed("https://example.com/some/path"):
        # proceed with crawl
    delay = robots.crawl_delay("https://example.com")  # respect rate limit
"""

from __future__ import annotations

import logging
import threading
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import requests

logger = logging.getLogger(__name__)


REQUEST_TIMEOUT = 10


class RobotsChecker:
    """
    Robots.txt rules for one site.

    Uses Python's RobotFileParser for rule matching, plus custom
    parsing for the Crawl-delay directive.
    """

    def __init__(self, base_url: str, user_agent: str):
        parsed = urlparse(base_url)
        self.base_url = f"{parsed.scheme}://{parsed.netloc}"
        self.robots_url = urljoin(self.base_url, '/robots.txt')
        self.user_agent = user_agent
        # Product token without version, for section matching
        self.agent_token = user_agent.split('/')[0].strip().lower()

        self._parser = RobotFileParser()
        self._parser.set_url(self.robots_url)

        self.found = False
        self.crawl_delay: float | None = None
        self.error: str | None = None

    @classmethod
    def fetch(cls, base_url: str, user_agent: str, session: requests.Session | None = None) -> 'RobotsChecker':
        """Fetch and parse robots.txt for a site."""
        checker = cls(base_url, user_agent)
        checker._fetch_and_parse(session or requests)
        return checker

    def _fetch_and_parse(self, http) -> None:
        try:
            resp = http.get(
                self.robots_url,
                timeout=REQUEST_TIMEOUT,
                headers={'User-Agent': self.user_agent},
                allow_redirects=True,
            )
        except requests.RequestException as e:
            # Unreachable robots.txt = everything allowed
            self.error = str(e)
            logger.debug("robots.txt unavailable for %s: %s", self.base_url, e)
            return

        if resp.status_code == 200:
            self.parse(resp.text)
        elif resp.status_code not in (404, 403, 410):
            self.error = f"Unexpected status: {resp.status_code}"

    def parse(self, content: str) -> None:
        """Load rules from robots.txt text."""
        self.found = True
        self._parser.parse(content.splitlines())
        self._parse_crawl_delay(content)

    def _parse_crawl_delay(self, content: str) -> None:
        # A section naming our agent overrides the wildcard section
        delays: dict[str, float] = {}
        section: str | None = None

        for line in content.splitlines():
            line = line.split('#', 1)[0].strip()
            if ':' not in line:
                continue

            directive, _, value = line.partition(':')
            directive = directive.strip().lower()
            value = value.strip()

            if directive == 'user-agent':
                agent = value.lower()
                if agent == '*':
                    section = '*'
                elif agent and agent in self.agent_token:
                    section = 'ours'
                else:
                    section = None
            elif directive == 'crawl-delay' and section is not None:
                try:
                    delays[section] = float(value)
                except ValueError:
                    pass

        self.crawl_delay = delays.get('ours', delays.get('*'))

    def is_allowed(self, url_or_path: str) -> bool:
        """
        Check if a URL or path may be crawled.

        Args:
            url_or_path: Full URL or path (e.g., "/admin" or "https://example.com/admin")
        """
        if not self.found:
            return True

        if url_or_path.startswith('http'):
            url = url_or_path
        else:
            url = urljoin(self.base_url, url_or_path)

        return self._parser.can_fetch(self.user_agent, url)


class RobotsCache:
    """Per-site RobotsChecker cache, safe to share between worker threads."""

    def __init__(self, user_agent: str, session: requests.Session | None = None):
        self.user_agent = user_agent
        self.session = session
        self._cache: dict[str, RobotsChecker] = {}
        self._lock = threading.Lock()

    def checker_for(self, url: str) -> RobotsChecker:
        parsed = urlparse(url)
        key = f"{parsed.scheme}://{parsed.netloc}".lower()
        # Held across the fetch so each site's robots.txt is requested once
        with self._lock:
            checker = self._cache.get(key)
            if checker is None:
                checker = RobotsChecker.fetch(key, self.user_agent, session=self.session)
                self._cache[key] = checker
            return checker

    def is_allowed(self, url: str) -> bool:
        return self.checker_for(url).is_allowed(url)

    def crawl_delay(self, url: str) -> float | None:
        return self.checker_for(url).crawl_delay

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
