"""Candidate domain sources: search queries and domain list files."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .domains import DomainFilter, normalize_domain
from .errors import ConfigError
from .models import DomainRecord, Market, SearchBackend, SearchLocale
from .validation import is_supported_url, load_lines_from_file, polite_sleep

SleepFn = Callable[[float, float], None]
DomainCallback = Callable[[DomainRecord], Any]

# JSON keys used in saved domain lists, mapped to DomainRecord fields.
RECORD_KEYS = {
    "domain": "domain",
    "sampleUrl": "sample_url",
    "queryUsed": "discovery_query",
    "title": "title",
    "snippet": "snippet",
    "country": "country",
    "city": "city",
}

DEFAULT_TOP_MARKETS = (
    Market("United Kingdom", language="en-GB", gl="gb", google_domain="google.co.uk"),
    Market("Germany", language="de-DE", gl="de", google_domain="google.de"),
    Market("France", language="fr-FR", gl="fr", google_domain="google.fr"),
    Market("Netherlands", language="nl-NL", gl="nl", google_domain="google.nl"),
    Market("USA", language="en-US", gl="us", google_domain="google.com"),
    Market("Australia", language="en-AU", gl="au", google_domain="google.com.au"),
    Market("Russia", language="ru-RU", gl="ru", google_domain="google.ru"),
    Market("China", language="zh-CN", gl="cn", google_domain="google.com"),
    Market("Japan", language="ja-JP", gl="jp", google_domain="google.co.jp"),
    Market("South Korea", language="ko-KR", gl="kr", google_domain="google.co.kr"),
)

# Searched once per market when the "broad+markets" strategy is active.
MARKET_CORE_KEYWORDS = (
    "Turkey tours",
    "Turkey tour operator",
    "Turkey travel agency",
    "Turkey DMC",
    "Turkey incoming tours",
    "Turkey B2B tours",
    "Turkey wholesale tours",
    "Cappadocia tours",
)


@dataclass(frozen=True)
class SearchQuery:
    text: str
    country: str = ""
    city: str = ""
    locale: SearchLocale | None = None


def build_queries(
    keywords: Iterable[str],
    countries: Iterable[str] = (),
    cities: Iterable[str] = (),
) -> list[SearchQuery]:
    """Each keyword alone, then keyword x country and keyword x city, deduplicated."""
    keyword_list = [item.strip() for item in keywords if item and item.strip()]
    country_list = [item.strip() for item in countries if item and item.strip()]
    city_list = [item.strip() for item in cities if item and item.strip()]

    queries: list[SearchQuery] = []
    seen: set[str] = set()

    def add(text: str, country: str = "", city: str = "") -> None:
        key = text.lower()
        if key in seen:
            return
        seen.add(key)
        queries.append(SearchQuery(text=text, country=country, city=city))

    for keyword in keyword_list:
        add(keyword)
    for keyword in keyword_list:
        for country in country_list:
            add(f"{keyword} {country}", country=country)
        for city in city_list:
            add(f"{keyword} {city}", city=city)
    return queries


def resolve_markets(markets: Iterable[Market | str] = ()) -> list[Market]:
    """Fill in locale data for known market names; no markets means the defaults."""
    known = {market.name.lower(): market for market in DEFAULT_TOP_MARKETS}
    resolved: list[Market] = []
    for market in markets:
        if isinstance(market, str):
            market = Market(name=market.strip())
        if not market.name:
            continue
        if not (market.language or market.gl or market.google_domain):
            market = known.get(market.name.lower(), market)
        resolved.append(market)
    return resolved or list(DEFAULT_TOP_MARKETS)


def build_market_queries(
    keywords: Iterable[str],
    markets: Iterable[Market],
    core_keywords: Iterable[str] = MARKET_CORE_KEYWORDS,
) -> list[SearchQuery]:
    """Every keyword once without a locale, then core keywords searched in each market.

    Queries are deduplicated on text, language and ``gl`` together, so the
    same phrase is still searched once per market.
    """
    keyword_list = [item.strip() for item in keywords if item and item.strip()]
    core_list = [item.strip() for item in core_keywords if item and item.strip()]

    queries: list[SearchQuery] = []
    seen: set[tuple[str, str, str]] = set()

    def add(text: str, market: Market | None = None) -> None:
        locale = market.locale if market is not None else None
        key = (text.lower(), locale.language if locale else "", locale.gl if locale else "")
        if key in seen:
            return
        seen.add(key)
        country = market.name if market is not None else ""
        queries.append(SearchQuery(text=text, country=country, locale=locale))

    for keyword in keyword_list:
        add(keyword)
    for market in markets:
        for keyword in core_list:
            add(keyword, market)
    return queries


def discover_domains(
    queries: list[SearchQuery],
    *,
    backend: SearchBackend,
    on_domain: DomainCallback,
    logger: logging.Logger,
    domain_filter: DomainFilter | None = None,
    results_per_query: int = 20,
    sleep_fn: SleepFn = polite_sleep,
    min_delay: float = 0.9,
    max_delay: float = 2.2,
    seen: set[str] | None = None,
) -> list[DomainRecord]:
    """Run every query and stream each new, non-excluded domain to ``on_domain``.

    Records are pushed as soon as they are found so the caller can start
    crawling before discovery finishes. Returns the records in discovery order.
    """
    known = seen if seen is not None else set()
    records: list[DomainRecord] = []

    for index, query in enumerate(queries):
        if index > 0:
            sleep_fn(min_delay, max_delay)
        if query.locale is not None and query.country:
            logger.info("Searching: %s [%s]", query.text, query.country)
        else:
            logger.info("Searching: %s", query.text)
        try:
            results = backend.search(query.text, results_per_query, query.locale)
        except Exception as exc:
            logger.error("Discovery query failed for %r: %s", query.text, exc)
            continue
        added = 0
        for result in results:
            domain = normalize_domain(result.url)
            if not domain or domain in known:
                continue
            if domain_filter is not None and domain_filter.excludes(domain):
                logger.debug("Discovery dropped excluded domain %s", domain)
                continue
            known.add(domain)
            record = DomainRecord(
                domain=domain,
                sample_url=result.url,
                discovery_query=query.text,
                title=result.title,
                snippet=result.snippet,
                country=query.country,
                city=query.city,
            )
            records.append(record)
            added += 1
            on_domain(record)
        logger.info(" --> %d results, %d new domains", len(results), added)
    return records


def _record_from_json(item: Any, path: str) -> DomainRecord | None:
    if isinstance(item, str):
        domain = normalize_domain(item)
        return DomainRecord.for_domain(domain) if domain else None
    if not isinstance(item, dict):
        raise ConfigError(f"Domain list {path} contains an entry that is not an object or string.")
    domain = normalize_domain(str(item.get("domain") or item.get("sampleUrl") or ""))
    if not domain:
        return None
    fields = {
        target: str(item.get(key) or "")
        for key, target in RECORD_KEYS.items()
        if key != "domain"
    }
    if not fields["discovery_query"]:
        fields["discovery_query"] = str(item.get("discoveryQuery") or "")
    if not fields["sample_url"]:
        fields["sample_url"] = f"https://{domain}"
    return DomainRecord(domain=domain, **fields)


def load_domain_records(path: str) -> list[DomainRecord]:
    """Load a domain list: a JSON array of records/strings, or one URL or domain per line."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read domain list {path}: {exc}") from exc

    candidates: list[DomainRecord | None] = []
    if raw.lstrip().startswith(("[", "{")):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Domain list {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise ConfigError(f"Domain list {path} must be a JSON array.")
        candidates = [_record_from_json(item, path) for item in data]
    else:
        for line in load_lines_from_file(path):
            domain = normalize_domain(line)
            if domain:
                if is_supported_url(line):
                    candidates.append(DomainRecord.for_domain(domain, sample_url=line))
                else:
                    candidates.append(DomainRecord.for_domain(domain))

    records: list[DomainRecord] = []
    seen: set[str] = set()
    for record in candidates:
        if record is None or record.domain in seen:
            continue
        seen.add(record.domain)
        records.append(record)
    return records


def write_domain_records(path: str, records: Iterable[DomainRecord]) -> None:
    """Save records as a JSON array readable by :func:`load_domain_records`."""
    payload = [
        {key: getattr(record, target) for key, target in RECORD_KEYS.items()}
        for record in records
    ]
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
