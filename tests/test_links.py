"""
Tests for scrape/links.py and scrape/hasher.py.
"""

import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from bs4 import BeautifulSoup

from scrape.hasher import fingerprint, hash_content
from scrape.links import DiscoveredLink, LinkRules, discover_links
from scrape.models import PageType


PAGE_URL = "https://example.com/posts/"


def links_in(body: str, page_url: str = PAGE_URL, rules: LinkRules | None = None) -> set[str]:
    soup = BeautifulSoup(f"<html><body>{body}</body></html>", "lxml")
    return {link.url for link in discover_links(soup, page_url, rules)}


class TestDiscoverLinks:

    def test_relative_article_link_resolved(self):
        assert links_in('<a href="hello-world/">x</a>') == {"https://example.com/posts/hello-world/"}

    def test_fragment_removed(self):
        assert links_in('<a href="/posts/a-b/#comments">x</a>') == {"https://example.com/posts/a-b/"}

    def test_same_url_collapses(self):
        body = '<a href="/posts/a-b/">1</a><a href="/posts/a-b/#top">2</a><a href="https://example.com/posts/a-b/">3</a>'
        assert links_in(body) == {"https://example.com/posts/a-b/"}

    def test_pagination_link_accepted(self):
        assert links_in('<a href="/posts/page/2/">next</a>') == {"https://example.com/posts/page/2/"}

    def test_pagination_marker_anywhere(self):
        assert links_in('<a href="/archive/page/7">older</a>') == {"https://example.com/archive/page/7"}

    def test_rejected_links(self):
        body = """
        <a href="/posts/">all posts</a>
        <a href="/">home</a>
        <a href="/about/">about</a>
        <a href="/posts/no-slash">no slash</a>
        <a href="#top">top</a>
        <a href="mailto:me@example.com">mail</a>
        <a href="javascript:void(0)">js</a>
        <a href="tel:+100">call</a>
        <a href="">empty</a>
        <a>no href</a>
        """
        assert links_in(body) == set()

    def test_off_domain_links_are_kept_for_the_frontier(self):
        # Scope is the frontier's job
        assert links_in('<a href="https://other.org/posts/a-b/">x</a>') == {"https://other.org/posts/a-b/"}

    def test_page_type_attached(self):
        soup = BeautifulSoup('<a href="/posts/a-b/">a</a><a href="/posts/page/2/">p</a>', "lxml")
        found = discover_links(soup, PAGE_URL)
        assert DiscoveredLink("https://example.com/posts/a-b/", PageType.ARTICLE) in found
        assert DiscoveredLink("https://example.com/posts/page/2/", PageType.LISTING) in found

    def test_custom_link_selector(self):
        rules = LinkRules(link_selector="nav.pager a[href]")
        body = '<a href="/posts/a-b/">a</a><nav class="pager"><a href="/posts/page/2/">2</a></nav>'
        assert links_in(body, rules=rules) == {"https://example.com/posts/page/2/"}


class TestHasher:

    def test_full_digest(self):
        assert len(hash_content("abc")) == 64

    def test_truncated_digest(self):
        assert hash_content("abc", length=16) == hash_content("abc")[:16]

    def test_fingerprint_deterministic(self):
        assert fingerprint("Title", "Body text") == fingerprint("Title", "Body text")

    def test_fingerprint_changes_with_content(self):
        assert fingerprint("Title", "Body text") != fingerprint("Title", "Body text!")
        assert fingerprint("Title", "Body") != fingerprint("Title 2", "Body")

    def test_fingerprint_is_digest_of_concatenation(self):
        assert fingerprint("ab", "c") == hash_content("abc")
