"""HTTP and browser fetchers."""

from __future__ import annotations

import logging
import time
import urllib.robotparser
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from threading import Lock
from typing import Any
from urllib.parse import urlparse

from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .errors import FetchError
from .models import AllowPolicy
from .validation import is_supported_url, polite_sleep

ROBOTS_TIMEOUT = 5.0

DEFAULT_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Cache-Control": "max-age=0",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}

SleepFn = Callable[[float], None]


class RobotsPolicy:
    """robots.txt cache and allow checks. Fails open on any fetch or parse problem."""

    def __init__(
        self,
        *,
        session: Session,
        user_agent: str,
        logger: logging.Logger,
        timeout: float = ROBOTS_TIMEOUT,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._logger = logger
        self._timeout = timeout
        self._cache: dict[str, Future[urllib.robotparser.RobotFileParser | None]] = {}
        self._lock = Lock()

    def is_allowed(self, origin: str, path: str) -> bool:
        """Return True if robots policy allows ``path`` on ``origin``."""
        parser = self._parser_for(origin)
        if parser is None:
            return True
        try:
            return parser.can_fetch(self._user_agent, origin.rstrip("/") + (path or "/"))
        except Exception as exc:  # robotparser edge cases must not block a crawl
            self._logger.debug("robots.txt check failed for %s%s: %s", origin, path, exc)
            return True

    def _parser_for(self, origin: str) -> urllib.robotparser.RobotFileParser | None:
        # The first caller for an origin loads robots.txt; concurrent callers wait on it.
        with self._lock:
            pending = self._cache.get(origin)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._cache[origin] = pending
        if not owner:
            return pending.result()

        try:
            parser = self._load(origin)
        except BaseException as exc:
            with self._lock:
                self._cache.pop(origin, None)
            pending.set_exception(exc)
            raise
        pending.set_result(parser)
        return parser

    def _load(self, origin: str) -> urllib.robotparser.RobotFileParser | None:
        robots_url = origin.rstrip("/") + "/robots.txt"
        try:
            response = self._session.get(robots_url, timeout=self._timeout)
        except RequestException as exc:
            self._logger.debug("robots.txt unreachable for %s: %s", origin, exc)
            return None
        if response.status_code >= 400:
            return None
        parser = urllib.robotparser.RobotFileParser()
        parser.set_url(robots_url)
        try:
            parser.parse(str(response.text).splitlines())
        except Exception as exc:  # malformed robots.txt means allowed
            self._logger.debug("robots.txt unparsable for %s: %s", origin, exc)
            return None
        return parser


def make_session(user_agent: str, pool_size: int = 10) -> Session:
    """Create a requests session with browser-like headers and a sized connection pool."""
    session = Session()
    session.headers.update({"User-Agent": user_agent, **DEFAULT_HEADERS})
    # Retries are scheduled by RequestsFetcher, not by the connection pool.
    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=Retry(total=0, read=False),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class RequestsFetcher:
    """Requests-based fetcher with robots checks and an explicit backoff schedule."""

    def __init__(
        self,
        *,
        session: Session,
        robots_policy: AllowPolicy,
        timeout: float,
        retries: int,
        backoff_delays: Sequence[float],
        logger: logging.Logger,
        sleep_fn: SleepFn = time.sleep,
    ) -> None:
        self._session = session
        self._robots_policy = robots_policy
        self._timeout = timeout
        self._retries = retries
        self._backoff_delays = tuple(backoff_delays)
        self._logger = logger
        self._sleep_fn = sleep_fn

    def fetch(self, url: str) -> str | None:
        if not is_supported_url(url):
            self._logger.debug("Skipping unsupported URL: %s", url)
            return None
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        if not self._robots_policy.is_allowed(origin, parsed.path or "/"):
            self._logger.info("Skipping due to robots.txt: %s", url)
            return None

        last_error: RequestException | None = None
        for attempt in range(self._retries):
            try:
                response = self._session.get(
                    url,
                    timeout=self._timeout,
                    headers={"Referer": origin + "/"},
                )
                response.raise_for_status()
                return str(response.text)
            except RequestException as exc:
                last_error = exc
                self._logger.debug(
                    "Fetch attempt %d/%d failed for %s: %s", attempt + 1, self._retries, url, exc
                )
                if attempt < self._retries - 1 and attempt < len(self._backoff_delays):
                    self._sleep_fn(self._backoff_delays[attempt])
        raise FetchError(url, last_error)


def _default_driver_factory(user_agent: str, timeout: float) -> Any:
    try:
        from selenium import webdriver
        from selenium.webdriver.chrome.service import (
            Service as ChromeService,
        )
        from webdriver_manager.chrome import ChromeDriverManager
    except ImportError as exc:  # pragma: no cover - exercised only when browser mode requested
        raise FetchError(
            "selenium", "Selenium dependencies are not installed. Use pip install .[selenium]."
        ) from exc

    options = webdriver.ChromeOptions()
    options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")
    options.add_argument("--no-first-run")
    options.add_argument("--window-size=1280,800")
    options.add_argument("--lang=en-US")
    options.add_argument(f"user-agent={user_agent}")
    try:
        service = ChromeService(ChromeDriverManager().install())
        driver = webdriver.Chrome(service=service, options=options)
    except Exception as exc:  # pragma: no cover - integration behavior
        raise FetchError("selenium", f"Failed to start Selenium driver: {exc}") from exc
    driver.set_page_load_timeout(timeout)
    return driver


class SeleniumFetcher:
    """Browser-rendered batch fetcher; one headless browser per batch, pages fetched in sequence."""

    def __init__(
        self,
        *,
        user_agent: str,
        timeout: float,
        inter_request_delay: float,
        logger: logging.Logger,
        driver_factory: Callable[[str, float], Any] = _default_driver_factory,
        sleep_fn: Callable[[float, float], None] = polite_sleep,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._inter_request_delay = inter_request_delay
        self._logger = logger
        self._driver_factory = driver_factory
        self._sleep_fn = sleep_fn

    def fetch_many(self, urls: list[str]) -> dict[str, str]:
        results: dict[str, str] = {}
        targets = [url for url in urls if is_supported_url(url)]
        if not targets:
            return results
        driver = self._driver_factory(self._user_agent, self._timeout)
        try:
            for url in targets:
                if self._inter_request_delay > 0:
                    self._sleep_fn(self._inter_request_delay, self._inter_request_delay * 1.5)
                try:
                    driver.get(url)
                    html = str(driver.page_source)
                except Exception as exc:  # WebDriverException, TimeoutException
                    self._logger.debug("Browser fetch failed for %s: %s", url, exc)
                    continue
                if html:
                    results[url] = html
        finally:
            self._quit(driver)
        return results

    def _quit(self, driver: Any) -> None:
        try:
            driver.quit()
        except Exception as exc:  # pragma: no cover - integration behavior
            self._logger.debug("Browser did not shut down cleanly: %s", exc)
