"""Per-domain crawl: seed paths, homepage link discovery, shared page cache."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urljoin, urlparse

from .cache import PageCache
from .domains import origin_of
from .errors import FetchError
from .extraction import find_contact_links
from .models import AllowPolicy, BrowserFetcher, PageFetcher, PageResult

SEED_PATHS = ("/", "/contact", "/about", "/partners")
DEFAULT_PAGE_WORKERS = 3


class DomainCrawler:
    """Fetch a bounded set of pages for one domain.

    Exactly one of ``fetcher`` (plain HTTP, pages fetched in parallel) or
    ``browser_fetcher`` (rendered, pages fetched in sequential batches) drives
    the crawl. Every page goes through the run-wide ``cache``.
    """

    def __init__(
        self,
        *,
        cache: PageCache,
        logger: logging.Logger,
        fetcher: PageFetcher | None = None,
        browser_fetcher: BrowserFetcher | None = None,
        robots_policy: AllowPolicy | None = None,
        page_workers: int = DEFAULT_PAGE_WORKERS,
    ) -> None:
        if fetcher is None and browser_fetcher is None:
            raise ValueError("DomainCrawler needs a fetcher or a browser_fetcher.")
        self._cache = cache
        self._logger = logger
        self._fetcher = fetcher
        self._browser_fetcher = browser_fetcher
        self._robots_policy = robots_policy
        self._page_workers = page_workers

    def crawl(self, domain: str) -> list[PageResult]:
        """Return the pages that loaded; an empty list means nothing usable."""
        homepage = origin_of(domain) + "/"
        to_fetch: dict[str, None] = dict.fromkeys(urljoin(homepage, path) for path in SEED_PATHS)
        if self._browser_fetcher is not None:
            return self._crawl_with_browser(domain, homepage, to_fetch)
        return self._crawl_with_requests(domain, homepage, to_fetch)

    def _crawl_with_requests(
        self, domain: str, homepage: str, to_fetch: dict[str, None]
    ) -> list[PageResult]:
        pages: dict[str, str] = {}
        try:
            home_html = self._fetch(homepage)
        except FetchError as exc:
            self._logger.warning("Failed to fetch homepage for %s: %s", domain, exc)
            home_html = None
        if home_html is not None:
            pages[homepage] = home_html
            for link in find_contact_links(home_html, homepage):
                to_fetch.setdefault(link, None)

        remaining = [url for url in to_fetch if url != homepage]
        if remaining:
            with ThreadPoolExecutor(max_workers=self._page_workers) as executor:
                for url, html in zip(remaining, executor.map(self._fetch_quietly, remaining)):
                    if html is not None:
                        pages[url] = html
        return [PageResult(url=url, html=pages[url]) for url in to_fetch if url in pages]

    def _fetch(self, url: str) -> str | None:
        assert self._fetcher is not None
        return self._cache.get_or_fetch(url, self._fetcher.fetch)

    def _fetch_quietly(self, url: str) -> str | None:
        try:
            return self._fetch(url)
        except FetchError as exc:
            self._logger.debug("Fetch failed for %s: %s", url, exc)
            return None

    def _is_allowed(self, url: str) -> bool:
        if self._robots_policy is None:
            return True
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        return self._robots_policy.is_allowed(origin, parsed.path or "/")

    def _crawl_with_browser(
        self, domain: str, homepage: str, to_fetch: dict[str, None]
    ) -> list[PageResult]:
        seeds = [url for url in to_fetch if self._is_allowed(url)]
        self._browser_batch(domain, [url for url in seeds if url not in self._cache])

        home_html = self._cache.get(homepage)
        if home_html is not None:
            for link in find_contact_links(home_html, homepage):
                to_fetch.setdefault(link, None)

        discovered = [
            url
            for url in to_fetch
            if url not in seeds and url not in self._cache and self._is_allowed(url)
        ]
        self._browser_batch(domain, discovered)

        pages: list[PageResult] = []
        for url in to_fetch:
            html = self._cache.get(url)
            if html is not None:
                pages.append(PageResult(url=url, html=html))
        return pages

    def _browser_batch(self, domain: str, urls: list[str]) -> None:
        if not urls:
            return
        assert self._browser_fetcher is not None
        try:
            fetched = self._browser_fetcher.fetch_many(urls)
        except FetchError as exc:
            self._logger.warning("Browser fetch failed for %s: %s", domain, exc)
            return
        for url, html in fetched.items():
            self._cache.put_if_absent(url, html)
