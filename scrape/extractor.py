"""
Article extraction with ordered selector fallback.

Each field is looked up by trying the configured CSS selectors in order and
returning on the first non-empty result:

    title          -> selectors, then the <title> tag split on '|'
    content        -> first selector with a non-empty match (mandatory)
    author         -> selectors (optional)
    published_date -> selectors, preferring the datetime attribute (optional)

A missing title or body raises NotExtractable. That is a skip, not an
error: the crawl carries on with the next page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .classify import URLClassifier
from .content import count_words, normalize_whitespace, sanitize_element, to_plain_text
from .dates import parse_published_date
from .hasher import fingerprint
from .models import Article, PageType

logger = logging.getLogger(__name__)


TITLE_SEPARATOR = '|'


class NotExtractable(Exception):
    """Raised when a page does not yield an article."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason}: {url}")
        self.url = url
        self.reason = reason


@dataclass
class ArticleSelectors:
    """Ordered CSS selector lists for each article field."""

    title: list[str] = field(default_factory=lambda: [
        'h1', '.post-title', '.entry-title', 'article h1', 'main h1',
    ])
    content: list[str] = field(default_factory=lambda: [
        'article', 'main', '.post-content', '.entry-content', '.content', '.post-body',
    ])
    author: list[str] = field(default_factory=lambda: [
        '.author', '.post-author', '.by-author', '.post-meta .author',
    ])
    published_date: list[str] = field(default_factory=lambda: [
        'time[datetime]', '.post-date', '.published', '.date', '.post-meta time',
    ])


def extract_article(
    soup: BeautifulSoup,
    url: str,
    classifier: URLClassifier,
    selectors: ArticleSelectors | None = None,
    now: datetime | None = None,
) -> Article:
    """
    Extract an Article from a parsed page.

    Args:
        soup: Parsed page
        url: URL of the page (used for classification and the record)
        classifier: URL classifier; only article URLs are extracted
        selectors: Ordered selector lists (defaults if None)
        now: Extraction timestamp (current UTC time if None)

    Returns:
        Article

    Raises:
        NotExtractable: page is not an article, or title/body is missing
    """
    if selectors is None:
        selectors = ArticleSelectors()

    page_type = classifier.classify(url)
    if page_type is not PageType.ARTICLE:
        raise NotExtractable(url, f"not an article page ({page_type.value})")

    title = extract_title(soup, selectors.title)
    if not title:
        raise NotExtractable(url, "no title found")

    body = extract_body(soup, selectors.content)
    if body is None:
        raise NotExtractable(url, "no content found")

    cleaned = sanitize_element(body)
    plain_text = to_plain_text(cleaned)
    if not plain_text:
        raise NotExtractable(url, "content is empty after cleaning")

    article = Article(
        url=url,
        title=title,
        content=cleaned.decode_contents().strip(),
        plain_text=plain_text,
        author=extract_author(soup, selectors.author),
        published_date=extract_published_date(soup, selectors.published_date),
        scraped_at=now or datetime.now(timezone.utc),
        word_count=count_words(plain_text),
        content_hash=fingerprint(title, plain_text),
    )
    logger.debug("Extracted article: %s (words: %d)", title, article.word_count)
    return article


def extract_title(soup: BeautifulSoup, selectors: list[str]) -> str | None:
    for selector in selectors:
        for el in _select(soup, selector):
            text = normalize_whitespace(el.get_text(separator=' '))
            if el.name == 'title':
                text = split_page_title(text)
            if text:
                return text

    # Fallback: "Article title | Site name" from the <title> tag
    if soup.title is not None:
        return split_page_title(normalize_whitespace(soup.title.get_text()))
    return None


def split_page_title(page_title: str) -> str | None:
    """First non-empty segment of a '|'-separated page title."""
    for part in page_title.split(TITLE_SEPARATOR):
        part = part.strip()
        if part:
            return part
    return None


def extract_body(soup: BeautifulSoup, selectors: list[str]) -> Tag | None:
    """First element, in selector order, with non-empty inner markup."""
    for selector in selectors:
        for el in _select(soup, selector):
            if el.decode_contents().strip():
                return el
    return None


def extract_author(soup: BeautifulSoup, selectors: list[str]) -> str | None:
    for selector in selectors:
        for el in _select(soup, selector):
            text = normalize_whitespace(el.get_text(separator=' '))
            if text:
                return text
    return None


def extract_published_date(soup: BeautifulSoup, selectors: list[str]) -> datetime | None:
    for selector in selectors:
        el = next(iter(_select(soup, selector)), None)
        if el is None:
            continue
        # Machine-readable timestamp wins over the visible text
        raw = el.get('datetime') or el.get_text(separator=' ')
        parsed = parse_published_date(raw.strip() if isinstance(raw, str) else None)
        if parsed is not None:
            return parsed
    return None


def _select(soup: BeautifulSoup, selector: str) -> list[Tag]:
    selector = selector.strip()
    if not selector:
        return []
    try:
        return soup.select(selector)
    except SelectorSyntaxError as exc:
        logger.warning("Invalid selector %r: %s", selector, exc)
        return []
