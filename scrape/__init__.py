"""
Page pipeline: classify a URL, extract an article, discover links.

    from scrape import URLClassifier, extract_article, discover_links

    classifier = URLClassifier()
    if classifier.classify(url) is PageType.ARTICLE:
        article = extract_article(soup, url, classifier)
"""

from .classify import URLClassifier, glob_to_regex
from .extractor import ArticleSelectors, NotExtractable, extract_article
from .hasher import fingerprint, hash_content
from .links import DiscoveredLink, LinkRules, discover_links
from .models import Article, PageType


__all__ = [
    'Article',
    'ArticleSelectors',
    'DiscoveredLink',
    'LinkRules',
    'NotExtractable',
    'PageType',
    'URLClassifier',
    'discover_links',
    'extract_article',
    'fingerprint',
    'glob_to_regex',
    'hash_content',
]
