"""
Link discovery: which outgoing links of a page are worth following.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from .classify import DEFAULT_LISTING_ROOTS, DEFAULT_PAGINATION_MARKER, URLClassifier
from .models import PageType

logger = logging.getLogger(__name__)


SKIP_SCHEMES = ('mailto:', 'javascript:', 'tel:')


@dataclass(frozen=True)
class DiscoveredLink:
    url: str
    page_type: PageType


@dataclass
class LinkRules:
    """Acceptance rules for discovered links."""

    classifier: URLClassifier = field(default_factory=URLClassifier)
    listing_roots: list[str] = field(default_factory=lambda: list(DEFAULT_LISTING_ROOTS))
    pagination_marker: str = DEFAULT_PAGINATION_MARKER
    link_selector: str = 'a[href]'

    def accepts(self, url: str) -> bool:
        """
        A link is followed when it either

        - has an article shape, ends with '/', is not a bare listing root
          and has no pagination marker, or
        - carries the pagination marker (next listing page).
        """
        path = urlparse(url).path or '/'

        if self.pagination_marker and self.pagination_marker in path:
            return True

        return (
            path.endswith('/')
            and path not in self.listing_roots
            and self.classifier.matches_article_shape(url)
        )


def discover_links(soup: BeautifulSoup, page_url: str, rules: LinkRules | None = None) -> set[DiscoveredLink]:
    """
    Find candidate links on a page.

    Hrefs are resolved against the page URL and stripped of fragments.
    Scope, depth and visited checks are left to the frontier.
    """
    if rules is None:
        rules = LinkRules()

    found: set[DiscoveredLink] = set()
    for a in soup.select(rules.link_selector):
        href = a.get('href')
        if not href or not isinstance(href, str):
            continue
        href = href.strip()
        if not href or href.startswith('#') or href.lower().startswith(SKIP_SCHEMES):
            continue

        try:
            full_url, _ = urldefrag(urljoin(page_url, href))
        except ValueError:
            logger.debug("Skipping malformed href %r on %s", href, page_url)
            continue

        if urlparse(full_url).scheme not in ('http', 'https'):
            continue
        if not rules.accepts(full_url):
            continue

        found.add(DiscoveredLink(full_url, rules.classifier.classify(full_url)))

    return found
