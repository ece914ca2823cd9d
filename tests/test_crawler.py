import logging

import pytest

from lead_harvester.cache import PageCache
from lead_harvester.crawler import DomainCrawler
from lead_harvester.errors import FetchError

HOME = """
<html><head><title>Blue Voyage</title></head><body>
  <a href="/contact-us#form">Contact us</a>
  <a href="/our-team">Team</a>
  <a href="/blog/post">Blog</a>
  <a href="https://other-site.org/contact">External</a>
</body></html>
"""


class DictFetcher:
    def __init__(self, pages: dict[str, str], failing: set[str] | None = None) -> None:
        self._pages = pages
        self._failing = failing or set()
        self.calls: list[str] = []

    def fetch(self, url: str) -> str | None:
        self.calls.append(url)
        if url in self._failing:
            raise FetchError(url, "boom")
        return self._pages.get(url)


class FakeBrowserFetcher:
    def __init__(self, pages: dict[str, str]) -> None:
        self._pages = pages
        self.batches: list[list[str]] = []

    def fetch_many(self, urls: list[str]) -> dict[str, str]:
        self.batches.append(list(urls))
        return {url: self._pages[url] for url in urls if url in self._pages}


class DenyPolicy:
    def __init__(self, denied_paths: set[str]) -> None:
        self._denied = denied_paths

    def is_allowed(self, origin: str, path: str) -> bool:
        _ = origin
        return path not in self._denied


def test_crawl_fetches_seeds_and_discovered_links_in_order() -> None:
    pages = {
        "https://blue-voyage.co.uk/": HOME,
        "https://blue-voyage.co.uk/contact": "<p>contact</p>",
        "https://blue-voyage.co.uk/contact-us": "<p>contact us</p>",
        "https://blue-voyage.co.uk/our-team": "<p>team</p>",
    }
    fetcher = DictFetcher(pages)
    crawler = DomainCrawler(cache=PageCache(), logger=logging.getLogger("test"), fetcher=fetcher)

    result = crawler.crawl("blue-voyage.co.uk")

    assert [page.url for page in result] == [
        "https://blue-voyage.co.uk/",
        "https://blue-voyage.co.uk/contact",
        "https://blue-voyage.co.uk/contact-us",
        "https://blue-voyage.co.uk/our-team",
    ]
    assert fetcher.calls[0] == "https://blue-voyage.co.uk/"
    assert "https://blue-voyage.co.uk/blog/post" not in fetcher.calls
    assert "https://other-site.org/contact" not in fetcher.calls


def test_page_failures_do_not_abort_the_crawl() -> None:
    pages = {"https://blue-voyage.co.uk/about": "<p>about</p>"}
    fetcher = DictFetcher(
        pages, failing={"https://blue-voyage.co.uk/", "https://blue-voyage.co.uk/contact"}
    )
    crawler = DomainCrawler(cache=PageCache(), logger=logging.getLogger("test"), fetcher=fetcher)

    result = crawler.crawl("blue-voyage.co.uk")

    assert [page.url for page in result] == ["https://blue-voyage.co.uk/about"]


def test_unreachable_domain_yields_no_pages() -> None:
    crawler = DomainCrawler(
        cache=PageCache(), logger=logging.getLogger("test"), fetcher=DictFetcher({})
    )
    assert crawler.crawl("nowhere-travel.net") == []


def test_shared_cache_fetches_each_url_once_across_crawls() -> None:
    cache = PageCache()
    fetcher = DictFetcher({"https://blue-voyage.co.uk/": HOME})
    crawler = DomainCrawler(cache=cache, logger=logging.getLogger("test"), fetcher=fetcher)

    crawler.crawl("blue-voyage.co.uk")
    crawler.crawl("blue-voyage.co.uk")

    assert fetcher.calls.count("https://blue-voyage.co.uk/") == 1


def test_browser_strategy_fetches_seeds_then_discovered_links() -> None:
    pages = {
        "https://blue-voyage.co.uk/": HOME,
        "https://blue-voyage.co.uk/contact-us": "<p>contact us</p>",
    }
    browser = FakeBrowserFetcher(pages)
    crawler = DomainCrawler(
        cache=PageCache(),
        logger=logging.getLogger("test"),
        browser_fetcher=browser,
        robots_policy=DenyPolicy({"/partners"}),
    )

    result = crawler.crawl("blue-voyage.co.uk")

    assert browser.batches[0] == [
        "https://blue-voyage.co.uk/",
        "https://blue-voyage.co.uk/contact",
        "https://blue-voyage.co.uk/about",
    ]
    assert browser.batches[1] == [
        "https://blue-voyage.co.uk/contact-us",
        "https://blue-voyage.co.uk/our-team",
    ]
    assert [page.url for page in result] == [
        "https://blue-voyage.co.uk/",
        "https://blue-voyage.co.uk/contact-us",
    ]


def test_crawler_requires_a_fetch_strategy() -> None:
    with pytest.raises(ValueError):
        DomainCrawler(cache=PageCache(), logger=logging.getLogger("test"))


def test_malformed_homepage_link_does_not_discard_the_domain() -> None:
    home = (
        "<title>Blue Travel</title><p>Tours in Turkey and Istanbul. info@blue-travel.com</p>"
        '<a href="http://[broken">Broken</a><a href="/contact-us">Contact</a>'
    )
    pages = {
        "https://blue-travel.com/": home,
        "https://blue-travel.com/contact-us": "<p>sales@blue-travel.com</p>",
    }
    crawler = DomainCrawler(
        cache=PageCache(), logger=logging.getLogger("test"), fetcher=DictFetcher(pages)
    )

    result = crawler.crawl("blue-travel.com")

    assert [page.url for page in result] == [
        "https://blue-travel.com/",
        "https://blue-travel.com/contact-us",
    ]


def test_malformed_link_in_browser_mode_is_skipped() -> None:
    home = '<a href="http://[broken">Broken</a><a href="/contact-us">Contact</a>'
    pages = {
        "https://blue-travel.com/": home,
        "https://blue-travel.com/contact-us": "<p>sales@blue-travel.com</p>",
    }
    browser = FakeBrowserFetcher(pages)
    crawler = DomainCrawler(
        cache=PageCache(), logger=logging.getLogger("test"), browser_fetcher=browser
    )

    result = crawler.crawl("blue-travel.com")

    assert [page.url for page in result] == [
        "https://blue-travel.com/",
        "https://blue-travel.com/contact-us",
    ]
    assert browser.batches[1] == ["https://blue-travel.com/contact-us"]
