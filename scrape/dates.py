"""
Published-date parsing against a fixed list of accepted formats.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


DATE_FORMATS = [
    '%Y-%m-%dT%H:%M:%S%z',      # 2024-05-01T10:00:00+09:00 / ...Z
    '%Y-%m-%dT%H:%M:%S.%f%z',   # with fractional seconds
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d',
    '%Y/%m/%d',
    '%B %d, %Y',                # January 2, 2006
    '%b %d, %Y',                # Jan 2, 2006
]


def parse_published_date(date_str: str | None) -> datetime | None:
    """
    Parse a date string into an aware datetime.

    Naive values are taken as UTC. Returns None when no format matches.
    """
    if not date_str:
        return None

    date_str = ' '.join(date_str.split())

    for fmt in DATE_FORMATS:
        try:
            dt = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt

    logger.debug("Could not parse date: %r", date_str)
    return None
