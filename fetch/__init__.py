"""
Fetch layer: HTTP fetch, HTML parse, robots.txt, pacing, worker pool.

Primary interface:
    from fetch import FetchConfig, FetchEngine

    engine = FetchEngine(FetchConfig(allowed_domains=["example.com"]))
    page = engine.fetch_and_parse("https://example.com/")
    # page.final_url, page.status_code, page.soup
"""

from .config import FetchConfig, Page
from .engine import DomainThrottle, FetchEngine
from .fetcher import FetchError, fetch_page, is_allowed_domain
from .robots import RobotsCache, RobotsChecker


__all__ = [
    'DomainThrottle',
    'FetchConfig',
    'FetchEngine',
    'FetchError',
    'Page',
    'RobotsCache',
    'RobotsChecker',
    'fetch_page',
    'is_allowed_domain',
]
