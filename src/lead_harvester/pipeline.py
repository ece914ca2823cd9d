"""Core orchestration pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from requests import Session

from .cache import PageCache
from .config import PipelineConfig
from .crawler import DomainCrawler
from .directories import DirectoryScraper
from .discovery import (
    MARKET_CORE_KEYWORDS,
    SearchQuery,
    build_market_queries,
    build_queries,
    discover_domains,
    load_domain_records,
    resolve_markets,
    write_domain_records,
)
from .domains import DomainFilter
from .fetchers import RequestsFetcher, RobotsPolicy, SeleniumFetcher, make_session
from .llm import build_external_extractor
from .models import DomainRecord, ExternalEmailExtractor, RunLog, SearchBackend
from .scheduler import PipelineScheduler
from .search_backends import FallbackSearchBackend
from .sink import ResultSink
from .validation import mx_check, polite_sleep

SleepFn = Callable[[float, float], None]
MxCheckFn = Callable[[str], bool]
DomainCallback = Callable[[DomainRecord], Any]

DEFAULT_DOMAINS_OUT = "domains.json"


def _llm_call_counter(extractor: ExternalEmailExtractor | None) -> Callable[[], int]:
    return lambda: int(getattr(extractor, "calls", 0) or 0)


def build_discovery_queries(config: PipelineConfig) -> list[SearchQuery]:
    """Queries for the configured strategy."""
    if config.query_strategy == "broad+markets":
        return build_market_queries(
            config.keywords,
            resolve_markets(config.top_markets),
            config.market_keywords or MARKET_CORE_KEYWORDS,
        )
    return build_queries(config.keywords, config.countries, config.cities)


def collect_domains(
    config: PipelineConfig,
    *,
    search_backend: SearchBackend | None,
    directory_scraper: DirectoryScraper | None,
    on_domain: DomainCallback,
    logger: logging.Logger,
    domain_filter: DomainFilter | None = None,
    sleep_fn: SleepFn = polite_sleep,
    seen: set[str] | None = None,
) -> list[DomainRecord]:
    """Search queries first, then directories; every new domain goes to ``on_domain``."""
    known = seen if seen is not None else set()
    records: list[DomainRecord] = []
    if config.runs_search and search_backend is not None:
        queries = build_discovery_queries(config)
        logger.info("Running %d discovery queries (%s)", len(queries), config.query_strategy)
        records.extend(
            discover_domains(
                queries,
                backend=search_backend,
                on_domain=on_domain,
                logger=logger,
                domain_filter=domain_filter,
                results_per_query=config.results_per_query,
                sleep_fn=sleep_fn,
                min_delay=config.min_delay,
                max_delay=config.max_delay,
                seen=known,
            )
        )
    if config.runs_directories and directory_scraper is not None:
        logger.info("Scraping %d directories", len(config.directories))
        records.extend(
            directory_scraper.discover(
                config.directories, on_domain=on_domain, domain_filter=domain_filter, seen=known
            )
        )
    return records


def harvest_leads(
    config: PipelineConfig,
    *,
    crawler: DomainCrawler,
    external_extractor: ExternalEmailExtractor | None,
    sink: ResultSink,
    search_backend: SearchBackend | None,
    logger: logging.Logger,
    directory_scraper: DirectoryScraper | None = None,
    mx_checker: MxCheckFn = mx_check,
    sleep_fn: SleepFn = polite_sleep,
) -> tuple[RunLog, list[DomainRecord]]:
    """Feed domains into the scheduler, drain it and return the run log and discovered records.

    Domains from ``config.domains_file`` go first; search and directory results
    are streamed into the scheduler as they arrive, so crawling overlaps
    discovery. A discovery failure is logged and the domains already queued
    are still drained.
    """
    loaded: list[DomainRecord] = []
    if config.domains_file:
        loaded = load_domain_records(config.domains_file)
        logger.info("Loaded %d domains from %s", len(loaded), config.domains_file)

    domain_filter = DomainFilter(tlds=config.excluded_tlds, hints=config.excluded_domain_hints)
    scheduler = PipelineScheduler(
        config,
        crawler=crawler,
        external_extractor=external_extractor,
        sink=sink,
        logger=logger,
        domain_filter=domain_filter,
        mx_checker=mx_checker,
    )
    sink.start()

    records: list[DomainRecord] = list(loaded)
    for record in loaded:
        scheduler.add_domain(record)

    try:
        records.extend(
            collect_domains(
                config,
                search_backend=search_backend,
                directory_scraper=directory_scraper,
                on_domain=scheduler.add_domain,
                logger=logger,
                domain_filter=domain_filter,
                sleep_fn=sleep_fn,
                seen={record.domain for record in records},
            )
        )
    except Exception as exc:
        logger.error("Discovery stopped early: %s", exc)

    run_log = scheduler.drain(llm_calls=_llm_call_counter(external_extractor))
    return run_log, records


def _search_backend(
    config: PipelineConfig, session: Session, logger: logging.Logger
) -> FallbackSearchBackend | None:
    if not config.runs_search:
        return None
    return FallbackSearchBackend(
        session,
        timeout=config.request_timeout,
        serpapi_key=config.serpapi_key,
        searxng_url=config.searxng_url,
        google_cse_key=config.google_cse_key,
        google_cse_cx=config.google_cse_cx,
        provider=config.search_provider,
        logger=logger,
    )


def _directory_scraper(
    config: PipelineConfig, session: Session, logger: logging.Logger
) -> DirectoryScraper | None:
    if not config.runs_directories:
        return None
    return DirectoryScraper(session, timeout=config.request_timeout, logger=logger)


def run_discovery(
    config: PipelineConfig, *, logger: logging.Logger, sleep_fn: SleepFn = polite_sleep
) -> list[DomainRecord]:
    """Discover domains without crawling them and merge them into the domains file."""
    out_path = config.domains_out or DEFAULT_DOMAINS_OUT
    existing: list[DomainRecord] = []
    if Path(out_path).exists():
        existing = load_domain_records(out_path)
        logger.info("Merging into %d existing domains from %s", len(existing), out_path)

    session = make_session(config.user_agent)
    try:
        found = collect_domains(
            config,
            search_backend=_search_backend(config, session, logger),
            directory_scraper=_directory_scraper(config, session, logger),
            on_domain=lambda record: None,
            logger=logger,
            domain_filter=DomainFilter(
                tlds=config.excluded_tlds, hints=config.excluded_domain_hints
            ),
            sleep_fn=sleep_fn,
            seen={record.domain for record in existing},
        )
    finally:
        session.close()

    records = existing + found
    write_domain_records(out_path, records)
    logger.info("Discovered %d new domains; wrote %d to %s", len(found), len(records), out_path)
    return records


def run_pipeline(config: PipelineConfig, *, logger: logging.Logger) -> RunLog:
    """Build concrete dependencies, execute the pipeline, and persist outputs."""
    pool_size = config.effective_workers * config.page_workers + 2
    session = make_session(config.user_agent, pool_size=pool_size)
    robots_policy = RobotsPolicy(session=session, user_agent=config.user_agent, logger=logger)
    cache = PageCache()
    if config.use_browser:
        logger.warning(
            "Browser mode enabled; domain concurrency capped at %d.", config.effective_workers
        )
        browser_fetcher = SeleniumFetcher(
            user_agent=config.user_agent,
            timeout=config.request_timeout,
            inter_request_delay=config.inter_request_delay,
            logger=logger,
        )
        crawler = DomainCrawler(
            cache=cache,
            logger=logger,
            browser_fetcher=browser_fetcher,
            robots_policy=robots_policy,
            page_workers=config.page_workers,
        )
    else:
        fetcher = RequestsFetcher(
            session=session,
            robots_policy=robots_policy,
            timeout=config.request_timeout,
            retries=config.retries,
            backoff_delays=config.backoff_delays,
            logger=logger,
        )
        crawler = DomainCrawler(
            cache=cache, logger=logger, fetcher=fetcher, page_workers=config.page_workers
        )

    sink = ResultSink(output_path=config.output, logs_dir=config.logs_dir, logger=logger)
    try:
        run_log, records = harvest_leads(
            config,
            crawler=crawler,
            external_extractor=build_external_extractor(config, session=session, logger=logger),
            sink=sink,
            search_backend=_search_backend(config, session, logger),
            directory_scraper=_directory_scraper(config, session, logger),
            logger=logger,
        )
    finally:
        session.close()

    if config.domains_out:
        write_domain_records(config.domains_out, records)
        logger.info("Wrote %d domain records to %s", len(records), config.domains_out)
    logger.info("Wrote %d leads to %s", len(sink.rows), config.output)
    return run_log
