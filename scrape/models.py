"""
Data structures for the page pipeline.

- PageType: syntactic category assigned to a URL
- Article: one extracted unit of content, as persisted in the JSONL output
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class PageType(str, Enum):
    """Classification of a URL before any fetch-dependent decision."""

    ARTICLE = "article"
    LISTING = "listing"
    OTHER = "other"


@dataclass(frozen=True)
class Article:
    """An extracted article.

    Field names follow the on-disk record format. ``content`` is the
    sanitized markup of the article body and ``content_hash`` is the
    fingerprint used for deduplication: a digest of ``title + plain_text``.
    Two articles with the same ``content_hash`` are duplicates even when
    their URLs differ.
    """

    url: str
    title: str
    content: str
    plain_text: str
    scraped_at: datetime
    word_count: int
    content_hash: str
    author: str | None = None
    published_date: datetime | None = None

    @property
    def fingerprint(self) -> str:
        return self.content_hash

    def to_record(self) -> dict[str, Any]:
        """Convert to the JSON object written as one output line.

        Optional fields are omitted when absent.
        """
        record: dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "plain_text": self.plain_text,
        }
        if self.author:
            record["author"] = self.author
        if self.published_date is not None:
            record["published_date"] = self.published_date.isoformat()
        record["scraped_at"] = self.scraped_at.isoformat()
        record["word_count"] = self.word_count
        record["content_hash"] = self.content_hash
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Article":
        """Rebuild an Article from a decoded output line.

        Raises KeyError / ValueError / TypeError on malformed records.
        """
        published = record.get("published_date")
        return cls(
            url=str(record["url"]),
            title=str(record["title"]),
            content=str(record["content"]),
            plain_text=str(record["plain_text"]),
            scraped_at=_parse_timestamp(record["scraped_at"]),
            word_count=int(record["word_count"]),
            content_hash=str(record["content_hash"]),
            author=record.get("author") or None,
            published_date=_parse_timestamp(published) if published else None,
        )


def _parse_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
