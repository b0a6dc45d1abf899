"""
URL classification: article / listing / other.

Classification is purely syntactic. Rules are evaluated in order and the
first match wins:

1. exclusion glob (static assets, tag pages, feeds) -> other
2. article path shape -> article
3. listing path shape (root, section root, paginated listing) -> listing
4. anything else -> other
"""

from __future__ import annotations

import re
from typing import Iterable, Pattern
from urllib.parse import urlparse

from .models import PageType


# Article path shapes, matched against the URL path
DEFAULT_ARTICLE_PATTERNS = [
    r"^/posts/[^/]+/$",             # /posts/article-name/
    r"^/posts/\d+/[^/]+/$",         # /posts/2023/article-name/
    r"^/posts/[^/]+/[^/]+/$",       # /posts/category/article-name/
    r"^/posts/[^/]+-[^/]+/$",       # /posts/article-name-with-dashes/
    r"^/posts/[^/]+_[^/]+/$",       # /posts/article_name_with_underscores/
]

DEFAULT_LISTING_PATTERNS = [
    r"^/$",
    r"^/posts/$",
    r"^/posts/page/\d+/$",
]

DEFAULT_LISTING_ROOTS = ["/", "/posts/"]

DEFAULT_PAGINATION_MARKER = "/page/"

DEFAULT_EXCLUDE_PATTERNS = [
    "*.jpg", "*.jpeg", "*.png", "*.gif", "*.svg", "*.webp",
    "*.pdf", "*.css", "*.js", "*.xml",
    "/assets/*", "/images/*", "/tags/*", "/categories/*",
]


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a glob where ``*`` matches any run of characters.

    Every other character is literal and the pattern is anchored at both
    ends.
    """
    parts = pattern.split("*")
    return re.compile("^" + ".*".join(re.escape(p) for p in parts) + "$", re.DOTALL)


class GlobPattern:
    """An exclusion glob.

    Patterns starting with ``/`` are matched against the URL path (plus
    query string); anything else is matched against the full URL.
    """

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.path_only = pattern.startswith("/")
        self._regex = glob_to_regex(pattern)

    def matches(self, url: str, path_and_query: str) -> bool:
        target = path_and_query if self.path_only else url
        if self._regex.match(target):
            return True
        # "/assets/*" should still exclude "/assets/x.png?v=2"
        if self.path_only and "?" in target:
            return bool(self._regex.match(target.split("?", 1)[0]))
        return False

    def __repr__(self) -> str:
        return f"GlobPattern({self.pattern!r})"


class URLClassifier:
    """Ordered-rule URL classifier."""

    def __init__(
        self,
        exclude_patterns: Iterable[str] | None = None,
        article_patterns: Iterable[str] | None = None,
        listing_patterns: Iterable[str] | None = None,
        pagination_marker: str = DEFAULT_PAGINATION_MARKER,
    ):
        if exclude_patterns is None:
            exclude_patterns = DEFAULT_EXCLUDE_PATTERNS
        if article_patterns is None:
            article_patterns = DEFAULT_ARTICLE_PATTERNS
        if listing_patterns is None:
            listing_patterns = DEFAULT_LISTING_PATTERNS

        self.exclude_patterns = [GlobPattern(p) for p in exclude_patterns]
        self.article_patterns = [re.compile(p) for p in article_patterns]
        self.listing_patterns = [re.compile(p) for p in listing_patterns]
        self.pagination_marker = pagination_marker

    def classify(self, url: str) -> PageType:
        """Classify a URL string."""
        parts = _split(url)
        if parts is None:
            return PageType.OTHER
        path, path_and_query = parts

        if self._excluded(url, path_and_query):
            return PageType.OTHER
        if self._article_shaped(path):
            return PageType.ARTICLE
        if any(p.search(path) for p in self.listing_patterns):
            return PageType.LISTING
        return PageType.OTHER

    def matches_exclusion(self, url: str) -> bool:
        parts = _split(url)
        if parts is None:
            return True
        return self._excluded(url, parts[1])

    def matches_article_shape(self, url: str) -> bool:
        parts = _split(url)
        if parts is None:
            return False
        return self._article_shaped(parts[0])

    def _excluded(self, url: str, path_and_query: str) -> bool:
        return any(p.matches(url, path_and_query) for p in self.exclude_patterns)

    def _article_shaped(self, path: str) -> bool:
        if self.pagination_marker and self.pagination_marker in path:
            return False
        return any(p.search(path) for p in self.article_patterns)


def _split(url: str) -> tuple[str, str] | None:
    """Return (path, path+query) for an http(s) URL, or None if malformed."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    path = parsed.path or "/"
    path_and_query = f"{path}?{parsed.query}" if parsed.query else path
    return path, path_and_query
