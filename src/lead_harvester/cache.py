"""Run-scoped page cache shared by every crawl."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from threading import Lock

Loader = Callable[[str], str | None]


class PageCache:
    """URL -> HTML cache with atomic check-and-claim.

    The first caller for a URL runs the loader; concurrent callers for the same
    URL wait on that caller's result. Only successful loads are kept, so a
    denied or failed URL can be attempted again later in the run.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._pages: dict[str, str] = {}
        self._inflight: dict[str, Future[str | None]] = {}
        self._fetch_count = 0

    def get_or_fetch(self, url: str, loader: Loader) -> str | None:
        with self._lock:
            if url in self._pages:
                return self._pages[url]
            pending = self._inflight.get(url)
            if pending is None:
                pending = Future()
                self._inflight[url] = pending
                owner = True
                self._fetch_count += 1
            else:
                owner = False

        if not owner:
            return pending.result()

        try:
            html = loader(url)
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(url, None)
            pending.set_exception(exc)
            raise
        with self._lock:
            self._inflight.pop(url, None)
            if html is not None:
                self._pages[url] = html
        pending.set_result(html)
        return html

    def get(self, url: str) -> str | None:
        with self._lock:
            return self._pages.get(url)

    def put_if_absent(self, url: str, html: str) -> str:
        """Store html unless a page is already cached; return the cached value."""
        with self._lock:
            return self._pages.setdefault(url, html)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._pages

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    @property
    def fetch_count(self) -> int:
        """Number of loader invocations so far."""
        with self._lock:
            return self._fetch_count
