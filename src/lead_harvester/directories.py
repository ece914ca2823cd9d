"""Candidate domains scraped from tour-operator directories."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from requests import Session
from requests.exceptions import RequestException

from .domains import DomainFilter, normalize_domain
from .models import DirectorySource, DomainRecord
from .validation import polite_sleep

TOURRADAR_BASE = "https://www.tourradar.com"
TOURRADAR_OPERATORS_URL = f"{TOURRADAR_BASE}/g/turkey-tour-operators"
TOURRADAR_SNIPPET = "Tour operator from the TourRadar operators list"

# Operator profiles link out to these as well; none of them is the operator's own site.
PROFILE_SKIP_HOSTS = (
    "tourradar.com",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "youtube.com",
    "linkedin.com",
    "tripadvisor.com",
    "google.com",
)
DIRECTORY_SKIP_DOMAINS = frozenset(
    {
        "tourradar.com",
        "bookmundi.com",
        "tripadvisor.com",
        "viator.com",
        "getyourguide.com",
        "booking.com",
        "expedia.com",
        "google.com",
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "youtube.com",
        "linkedin.com",
        "pinterest.com",
        "tiktok.com",
    }
)

_OPERATOR_SLUG_RE = re.compile(r"/o/([a-z0-9-]+)", re.IGNORECASE)

SleepFn = Callable[[float, float], None]
DomainCallback = Callable[[DomainRecord], Any]


@dataclass(frozen=True)
class DirectoryOperator:
    """One operator profile listed on a directory page."""

    slug: str
    name: str
    profile_url: str


def page_url(base_url: str, page: int) -> str:
    if page <= 1:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}page={page}"


def _anchors(html: str) -> Iterable[tuple[str, str]]:
    for anchor in BeautifulSoup(html or "", "html.parser").find_all("a", href=True):
        yield str(anchor["href"]).strip(), anchor.get_text(" ", strip=True)


def parse_tourradar_operators(html: str) -> list[DirectoryOperator]:
    """Operator profile links (``/o/<slug>``) on a TourRadar listing page."""
    operators: list[DirectoryOperator] = []
    seen: set[str] = set()
    for href, text in _anchors(html):
        if "/o/" not in href or len(text) < 2:
            continue
        match = _OPERATOR_SLUG_RE.search(href)
        if match is None:
            continue
        slug = match.group(1).lower()
        if slug in seen:
            continue
        try:
            profile_url = urljoin(TOURRADAR_BASE, href)
        except ValueError:
            continue
        seen.add(slug)
        operators.append(DirectoryOperator(slug=slug, name=text, profile_url=profile_url))
    return operators


def find_operator_website(html: str) -> str | None:
    """The operator's own site from a profile page.

    A link labelled "website" or "visit" wins; otherwise the first external
    link that is not a social network or travel marketplace.
    """
    links = list(_anchors(html))
    for href, text in links:
        label = text.lower()
        if ("website" in label or "visit" in label) and href.startswith("http"):
            if "tourradar.com" not in href:
                return href
    for href, _text in links:
        if not href.startswith("http"):
            continue
        if any(host in href for host in PROFILE_SKIP_HOSTS):
            continue
        if len(normalize_domain(href)) > 3:
            return href
    return None


def parse_directory_links(html: str, source: DirectorySource) -> list[DomainRecord]:
    """External links on a generic directory page, as domain records."""
    own_domain = normalize_domain(source.url)
    label = source.name or "generic"
    records: list[DomainRecord] = []
    seen: set[str] = set()
    for href, text in _anchors(html):
        if not href.startswith("http"):
            continue
        domain = normalize_domain(href)
        if not domain or domain == own_domain or domain in DIRECTORY_SKIP_DOMAINS:
            continue
        if domain in seen:
            continue
        seen.add(domain)
        records.append(
            DomainRecord(
                domain=domain,
                sample_url=href,
                discovery_query=f"directory:{label}",
                title=text or domain,
                snippet=f"Found on {source.name or source.url}",
            )
        )
    return records


class DirectoryScraper:
    """Walk directory listings page by page and stream new domains to a callback.

    A failed listing page ends that directory; the other directories still run.
    """

    def __init__(
        self,
        session: Session,
        *,
        timeout: float,
        logger: logging.Logger,
        sleep_fn: SleepFn = polite_sleep,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._logger = logger
        self._sleep = sleep_fn

    def discover(
        self,
        sources: Iterable[DirectorySource],
        *,
        on_domain: DomainCallback,
        domain_filter: DomainFilter | None = None,
        seen: set[str] | None = None,
    ) -> list[DomainRecord]:
        known = seen if seen is not None else set()
        records: list[DomainRecord] = []
        for source in sources:
            if source.kind == "tourradar":
                found = self._scrape_tourradar(source)
            elif source.url:
                found = self._scrape_generic(source)
            else:
                self._logger.warning("Directory %s has no url; skipping", source.name)
                continue
            added = 0
            for record in found:
                if record.domain in known:
                    continue
                if domain_filter is not None and domain_filter.excludes(record.domain):
                    self._logger.debug("Directory dropped excluded domain %s", record.domain)
                    continue
                known.add(record.domain)
                records.append(record)
                added += 1
                on_domain(record)
            self._logger.info("Directory %s: %d new domains", source.name, added)
        return records

    def _fetch(self, url: str) -> str:
        response = self._session.get(url, timeout=self._timeout)
        response.raise_for_status()
        return response.text

    def _listing_pages(self, source: DirectorySource, base_url: str) -> Iterable[str]:
        for page in range(1, max(1, source.max_pages) + 1):
            if page > 1:
                self._sleep(source.delay, source.delay)
            url = page_url(base_url, page)
            try:
                yield self._fetch(url)
            except RequestException as exc:
                self._logger.error("Directory page %s failed: %s", url, exc)
                return

    def _scrape_tourradar(self, source: DirectorySource) -> list[DomainRecord]:
        operators: list[DirectoryOperator] = []
        slugs: set[str] = set()
        for html in self._listing_pages(source, source.url or TOURRADAR_OPERATORS_URL):
            found = parse_tourradar_operators(html)
            if not found:
                break
            for operator in found:
                if operator.slug not in slugs:
                    slugs.add(operator.slug)
                    operators.append(operator)
        self._logger.info("TourRadar listed %d operators", len(operators))

        records: list[DomainRecord] = []
        for operator in operators:
            self._sleep(source.delay, source.delay)
            website = self._operator_website(operator)
            domain = normalize_domain(website) if website else ""
            if not domain or domain == "tourradar.com":
                continue
            records.append(
                DomainRecord(
                    domain=domain,
                    sample_url=website or f"https://{domain}",
                    discovery_query=f"directory:tourradar:{operator.slug}",
                    title=operator.name,
                    snippet=TOURRADAR_SNIPPET,
                )
            )
        return records

    def _operator_website(self, operator: DirectoryOperator) -> str | None:
        try:
            return find_operator_website(self._fetch(operator.profile_url))
        except RequestException as exc:
            self._logger.debug("Operator profile %s failed: %s", operator.profile_url, exc)
            return None

    def _scrape_generic(self, source: DirectorySource) -> list[DomainRecord]:
        records: list[DomainRecord] = []
        for html in self._listing_pages(source, source.url):
            records.extend(parse_directory_links(html, source))
        return records
