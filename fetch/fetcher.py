"""
Single-page fetch with retries: requests → content-type check → lxml parse.
"""

from __future__ import annotations

import logging
import threading
import time
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from .config import DEFAULT_HEADERS, HTML_CONTENT_TYPES, FetchConfig, Page

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when a URL cannot be fetched as an HTML page."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status_code = status_code


def is_html(content_type: str) -> bool:
    content_type = content_type.lower()
    return any(t in content_type for t in HTML_CONTENT_TYPES)


def is_allowed_domain(url: str, allowed_domains: list[str]) -> bool:
    """Exact (case-insensitive) host match against the allow-list."""
    if not allowed_domains:
        return True
    host = (urlparse(url).hostname or '').lower()
    return host in {d.lower() for d in allowed_domains}


def build_headers(config: FetchConfig) -> dict:
    headers = DEFAULT_HEADERS.copy()
    headers['User-Agent'] = config.user_agent
    return headers


def fetch_page(
    url: str,
    config: FetchConfig | None = None,
    session: requests.Session | None = None,
    stop_event: threading.Event | None = None,
) -> Page:
    """
    Fetch URL and parse it as HTML.

    Network errors and 5xx responses are retried ``config.retries`` times
    with a linear backoff. Redirects are followed; the final URL must still
    be on an allowed domain.

    Raises:
        FetchError: request failed, non-2xx status, non-HTML content, or
            redirect off the allowed domains
    """
    if config is None:
        config = FetchConfig()
    http = session or requests

    last_error: FetchError | None = None
    for attempt in range(config.retries + 1):
        if attempt:
            delay = config.retry_backoff * attempt
            logger.debug("Retrying %s in %.1fs (attempt %d)", url, delay, attempt + 1)
            if stop_event is not None:
                if stop_event.wait(delay):
                    break
            else:
                time.sleep(delay)

        start = time.monotonic()
        try:
            resp = http.get(
                url,
                headers=build_headers(config),
                timeout=config.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            last_error = FetchError(url, f"request failed ({type(e).__name__}: {e})")
            continue

        if resp.status_code >= 500:
            last_error = FetchError(url, f"server error {resp.status_code}", resp.status_code)
            continue
        if resp.status_code >= 400:
            raise FetchError(url, f"HTTP {resp.status_code}", resp.status_code)

        final_url = resp.url or url
        if not is_allowed_domain(final_url, config.allowed_domains):
            raise FetchError(url, f"redirected off allowed domains to {final_url}", resp.status_code)

        content_type = resp.headers.get('Content-Type', '')
        if not is_html(content_type):
            raise FetchError(url, f"not HTML ({content_type or 'no content type'})", resp.status_code)

        return Page(
            url=url,
            final_url=final_url,
            status_code=resp.status_code,
            soup=BeautifulSoup(resp.text, 'lxml'),
            content_type=content_type,
            elapsed=time.monotonic() - start,
        )

    if last_error is None:
        last_error = FetchError(url, "cancelled")
    raise last_error
