"""
Body sanitizing and text derivation for extracted article markup.
"""

from __future__ import annotations

import copy
import re

from bs4 import Comment, Tag


# Elements that never carry article content
STRIP_TAGS = [
    'script', 'style', 'nav', 'header', 'footer', 'aside',
    'noscript', 'iframe', 'form',
]
# Known boilerplate containers
STRIP_SELECTORS = [
    '.advertisement', '.ads', '.social-share', '.comments',
    '.sidebar', '.menu', '.navigation',
]
# Attributes that survive sanitizing, per element
KEEP_ATTRS = {
    'a': ('href',),
    'img': ('src', 'alt'),
}

_WHITESPACE = re.compile(r'\s+')


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to a single space and trim the ends."""
    return _WHITESPACE.sub(' ', text).strip()


def count_words(text: str) -> int:
    return len(text.split())


def sanitize_element(element: Tag) -> Tag:
    """
    Return a cleaned copy of a body element.

    - drops non-content subtrees (STRIP_TAGS, STRIP_SELECTORS)
    - drops markup comments
    - strips every attribute except a[href] and img[src, alt]
    - drops paragraphs left without text or images

    The parsed page is not modified.
    """
    node = copy.copy(element)

    for el in node.find_all(STRIP_TAGS):
        if not el.decomposed:
            el.decompose()
    for el in node.select(', '.join(STRIP_SELECTORS)):
        if not el.decomposed:
            el.decompose()

    for comment in node.find_all(string=lambda t: isinstance(t, Comment)):
        comment.extract()

    for el in node.find_all(True):
        _strip_attributes(el)

    remove_empty_paragraphs(node)
    return node


def to_plain_text(element: Tag) -> str:
    """Visible text of an element with whitespace collapsed."""
    return normalize_whitespace(element.get_text(separator=' '))


def remove_empty_paragraphs(node: Tag) -> None:
    for p in node.find_all('p'):
        if p.decomposed:
            continue
        if not p.get_text(strip=True) and p.find('img') is None:
            p.decompose()


def _strip_attributes(el: Tag) -> None:
    keep = KEEP_ATTRS.get(el.name, ())
    if el.name == 'img' and not el.get('src'):
        lazy = _resolve_img_src(el)
        if lazy:
            el['src'] = lazy
    el.attrs = {k: v for k, v in el.attrs.items() if k in keep}


def _resolve_img_src(tag: Tag) -> str | None:
    """Resolve image source from common lazy-load attributes."""
    for attr in ['data-src', 'data-original', 'data-lazy', 'data-srcset']:
        val = tag.get(attr)
        if val and isinstance(val, str):
            return val.split(',')[0].split()[0]
    return None
