"""
Configuration and result types for the fetch layer.
"""

from dataclasses import dataclass, field

from bs4 import BeautifulSoup


DEFAULT_USER_AGENT = "ArticleCrawler/0.1"

# Content types accepted as HTML pages
HTML_CONTENT_TYPES = ('text/html', 'application/xhtml')

# Default request headers
DEFAULT_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive',
}


@dataclass
class FetchConfig:
    """Configuration for fetch operations."""

    timeout: float = 30.0
    request_delay: float = 1.0  # minimum gap between requests to one domain
    parallel_jobs: int = 2
    retries: int = 2  # extra attempts on network errors and 5xx
    retry_backoff: float = 0.5  # seconds, multiplied by the attempt number
    user_agent: str = DEFAULT_USER_AGENT
    respect_robots_txt: bool = True
    allowed_domains: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings) -> 'FetchConfig':
        c = settings.crawler
        return cls(
            timeout=c.timeout,
            request_delay=c.request_delay,
            parallel_jobs=c.parallel_jobs,
            retries=c.retries,
            user_agent=c.user_agent,
            respect_robots_txt=c.respect_robots_txt,
            allowed_domains=list(settings.target.allowed_domains),
        )


@dataclass
class Page:
    """A fetched and parsed HTML page."""

    url: str  # URL as requested
    final_url: str  # URL after redirects
    status_code: int
    soup: BeautifulSoup
    depth: int = 0
    content_type: str = ''
    elapsed: float = 0.0
