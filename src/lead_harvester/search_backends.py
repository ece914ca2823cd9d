"""Search backend implementations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from urllib.parse import unquote

from bs4 import BeautifulSoup
from requests import Session
from requests.exceptions import RequestException

from .models import SearchLocale, SearchResult
from .validation import is_supported_url

SERPAPI_URL = "https://serpapi.com/search.json"
GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
GOOGLE_CSE_MAX_NUM = 10
SEARXNG_PAGE_SIZE = 20
DUCKDUCKGO_BASES = ("https://html.duckduckgo.com/html/", "https://duckduckgo.com/html/")

ProviderFn = Callable[[str, int, SearchLocale], list[SearchResult]]


def _decode_ddg_href(href: str) -> str | None:
    if not href:
        return None
    if "uddg=" not in href:
        return href
    encoded = href.split("uddg=")[-1].split("&", maxsplit=1)[0]
    return unquote(encoded)


def _dedupe(results: list[SearchResult], num: int) -> list[SearchResult]:
    seen: set[str] = set()
    output: list[SearchResult] = []
    for item in results:
        if item.url in seen or not is_supported_url(item.url):
            continue
        seen.add(item.url)
        output.append(item)
        if len(output) >= num:
            break
    return output


def _results_from_items(
    items: object, *, link_keys: tuple[str, ...], snippet_keys: tuple[str, ...]
) -> list[SearchResult]:
    output: list[SearchResult] = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        link = next((item[key] for key in link_keys if item.get(key)), None)
        if not isinstance(link, str):
            continue
        snippet = next((item[key] for key in snippet_keys if item.get(key)), "")
        output.append(
            SearchResult(url=link, title=str(item.get("title") or ""), snippet=str(snippet))
        )
    return output


class FallbackSearchBackend:
    """SerpApi -> Google CSE -> SearXNG -> DuckDuckGo fallback search backend.

    ``provider`` pins a single backend; ``"auto"`` walks the chain and falls
    through whenever a provider is unconfigured, fails or returns nothing.
    DuckDuckGo needs no credentials and always closes the chain.
    """

    def __init__(
        self,
        session: Session,
        *,
        timeout: float,
        serpapi_key: str | None,
        searxng_url: str | None,
        logger: logging.Logger,
        provider: str = "auto",
        google_cse_key: str | None = None,
        google_cse_cx: str | None = None,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._serpapi_key = serpapi_key
        self._google_cse_key = google_cse_key
        self._google_cse_cx = google_cse_cx
        self._searxng_url = searxng_url.rstrip("/") if searxng_url else None
        self._provider = provider
        self._logger = logger
        self._providers: dict[str, ProviderFn] = {
            "serpapi": self._search_serpapi,
            "google": self._search_google_cse,
            "searxng": self._search_searxng,
            "duckduckgo": self._search_duckduckgo,
        }

    def _configured(self, name: str) -> bool:
        if name == "serpapi":
            return bool(self._serpapi_key)
        if name == "google":
            return bool(self._google_cse_key and self._google_cse_cx)
        if name == "searxng":
            return bool(self._searxng_url)
        return True

    def _chain(self) -> list[str]:
        if self._provider != "auto":
            return [self._provider] if self._configured(self._provider) else []
        return [name for name in self._providers if self._configured(name)]

    def search(
        self, query: str, num: int, locale: SearchLocale | None = None
    ) -> list[SearchResult]:
        target = locale or SearchLocale()
        for name in self._chain():
            results = _dedupe(self._providers[name](query, num, target), num)
            if results:
                return results
            self._logger.debug("%s returned nothing for %r", name, query)
        return []

    def _get_json(self, label: str, url: str, params: dict[str, object]) -> object | None:
        try:
            response = self._session.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()
        except (RequestException, ValueError) as exc:
            self._logger.warning("%s search failed: %s", label, exc)
            return None

    def _search_serpapi(self, query: str, num: int, locale: SearchLocale) -> list[SearchResult]:
        params: dict[str, object] = {
            "q": query,
            "engine": "google",
            "num": min(100, num),
            "api_key": self._serpapi_key,
        }
        if locale.gl:
            params["gl"] = locale.gl
        if locale.google_domain:
            params["google_domain"] = locale.google_domain
        payload = self._get_json("SerpApi", SERPAPI_URL, params)
        if payload is None:
            return []
        if not isinstance(payload, dict):
            self._logger.warning("SerpApi returned an unexpected payload type")
            return []
        return _results_from_items(
            payload.get("organic_results"), link_keys=("link", "url"), snippet_keys=("snippet",)
        )

    def _search_google_cse(
        self, query: str, num: int, locale: SearchLocale
    ) -> list[SearchResult]:
        params: dict[str, object] = {
            "key": self._google_cse_key,
            "cx": self._google_cse_cx,
            "q": query,
            "num": min(GOOGLE_CSE_MAX_NUM, max(1, num)),
        }
        if locale.gl:
            params["gl"] = locale.gl
        payload = self._get_json("Google CSE", GOOGLE_CSE_URL, params)
        if payload is None:
            return []
        if not isinstance(payload, dict):
            self._logger.warning("Google CSE returned an unexpected payload type")
            return []
        return _results_from_items(
            payload.get("items"), link_keys=("link",), snippet_keys=("snippet",)
        )

    def _search_searxng(self, query: str, num: int, locale: SearchLocale) -> list[SearchResult]:
        output: list[SearchResult] = []
        max_pages = max(1, -(-num // SEARXNG_PAGE_SIZE))
        for page in range(1, max_pages + 1):
            params: dict[str, object] = {"q": query, "format": "json", "pageno": page}
            if locale.language:
                params["language"] = locale.language
            payload = self._get_json("SearXNG", f"{self._searxng_url}/search", params)
            items = payload.get("results") if isinstance(payload, dict) else None
            if not items or not isinstance(items, list):
                break
            output.extend(
                _results_from_items(
                    items, link_keys=("url", "link"), snippet_keys=("content", "snippet")
                )
            )
            if len(output) >= num:
                break
        return output

    def _search_duckduckgo(
        self, query: str, num: int, locale: SearchLocale
    ) -> list[SearchResult]:
        output: list[SearchResult] = []
        for base in DUCKDUCKGO_BASES:
            try:
                response = self._session.get(base, params={"q": query}, timeout=self._timeout)
            except RequestException as exc:
                self._logger.debug("DuckDuckGo search failed: %s", exc)
                continue
            if response.status_code != 200:
                continue
            soup = BeautifulSoup(response.text, "html.parser")
            for anchor in soup.find_all("a", href=True):
                href = str(anchor.get("href")).strip()
                decoded = _decode_ddg_href(href)
                if decoded and decoded.startswith("http"):
                    href = decoded
                if href.startswith("javascript:") or "duckduckgo.com" in href:
                    continue
                if href.startswith("http"):
                    output.append(SearchResult(url=href, title=anchor.get_text(" ", strip=True)))
                if len(output) >= num:
                    break
            if output:
                break
        return output
