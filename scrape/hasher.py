"""
Content hashing for deduplication.
"""

import hashlib


def hash_content(text: str, length: int | None = None) -> str:
    """
    Hash text content for identity tracking.

    Args:
        text: The text to hash
        length: Truncate the hex digest to this many chars (full digest if None)

    Returns:
        SHA-256 hex digest
    """
    digest = hashlib.sha256(text.encode('utf-8', errors='replace')).hexdigest()
    return digest[:length] if length else digest


def fingerprint(title: str, plain_text: str) -> str:
    """
    Fingerprint an article by its title and plain text.

    Byte-identical title and text always give the same fingerprint,
    regardless of the URL the article was found at.
    """
    return hash_content(title + plain_text)
