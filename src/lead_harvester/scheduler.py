"""Bounded concurrent per-domain processing with snowball re-submission."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Condition, Lock

from tqdm import tqdm

from .config import PipelineConfig
from .crawler import DomainCrawler
from .domains import DomainFilter, normalize_domain
from .extraction import extract_emails_from_pages, find_business_name
from .models import (
    DomainRecord,
    DomainState,
    EmailCandidate,
    ExternalEmailExtractor,
    LeadRow,
    PageResult,
    RunLog,
)
from .scoring import score_relevance
from .sink import ResultSink
from .snowball import extract_outbound_domains

MxCheckFn = Callable[[str], bool]


class PipelineScheduler:
    """Runs one task per unique domain on a bounded thread pool.

    ``add_domain`` may be called from the feeding thread and from running
    tasks (snowball). A domain is claimed under the lock at submission time,
    so it is processed at most once per run. ``drain`` waits until the
    in-flight counter reaches zero; children are counted before their parent
    task returns, so the counter cannot reach zero while work is reachable.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        crawler: DomainCrawler,
        external_extractor: ExternalEmailExtractor | None,
        sink: ResultSink,
        logger: logging.Logger,
        domain_filter: DomainFilter | None = None,
        mx_checker: MxCheckFn | None = None,
    ) -> None:
        self._config = config
        self._crawler = crawler
        self._external = external_extractor
        self._sink = sink
        self._logger = logger
        self._filter = domain_filter or DomainFilter(
            tlds=config.excluded_tlds, hints=config.excluded_domain_hints
        )
        self._mx_checker = mx_checker if config.verify_mx else None

        self._lock = Lock()
        self._idle = Condition(self._lock)
        self._in_flight = 0
        self._states: dict[str, DomainState] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=config.effective_workers, thread_name_prefix="domain"
        )
        self._progress = tqdm(
            total=0, desc="domains", unit="domain", disable=not config.show_progress
        )
        self._closed = False

    @property
    def processed_domains(self) -> set[str]:
        with self._lock:
            return set(self._states)

    def state_of(self, domain: str) -> DomainState | None:
        with self._lock:
            return self._states.get(normalize_domain(domain))

    def add_domain(self, record: DomainRecord, depth: int = 0) -> bool:
        """Queue a domain; returns False when it was already claimed this run."""
        domain = normalize_domain(record.domain)
        if not domain:
            return False
        with self._lock:
            if self._closed:
                raise RuntimeError("Scheduler has been drained; no more domains accepted.")
            if domain in self._states:
                return False
            self._states[domain] = DomainState.PENDING
            self._in_flight += 1
            self._progress.total += 1
            self._progress.refresh()
        future = self._executor.submit(self._run_task, domain, record, depth)
        future.add_done_callback(self._task_done)
        return True

    def drain(self, *, llm_calls: Callable[[], int] | None = None) -> RunLog:
        """Block until every submitted task (including snowball tasks) finishes."""
        with self._idle:
            while self._in_flight > 0:
                self._idle.wait()
            self._closed = True
            domains_processed = len(self._states)
        self._executor.shutdown(wait=True)
        self._progress.close()
        calls = llm_calls() if llm_calls is not None else 0
        return self._sink.finish(llm_calls=calls, domains_processed=domains_processed)

    def _task_done(self, future: Future[None]) -> None:
        with self._idle:
            self._in_flight -= 1
            self._progress.update(1)
            if self._in_flight == 0:
                self._idle.notify_all()

    def _set_state(self, domain: str, state: DomainState) -> None:
        with self._lock:
            self._states[domain] = state

    def _run_task(self, domain: str, record: DomainRecord, depth: int) -> None:
        try:
            self._process(domain, record, depth)
        except Exception as exc:
            self._set_state(domain, DomainState.FAILED)
            self._logger.error("Processing failed for %s: %s", domain, exc)
            self._sink.record_error(domain, str(exc))

    def _process(self, domain: str, record: DomainRecord, depth: int) -> None:
        self._set_state(domain, DomainState.IN_FLIGHT)
        if self._filter.excludes(domain):
            self._logger.info("Skipping excluded domain %s", domain)
            self._sink.record_skip(domain, "excluded domain")
            self._set_state(domain, DomainState.SKIPPED_PRE_CRAWL)
            return

        self._logger.info("Processing %s (depth %d)", domain, depth)
        pages = self._crawler.crawl(domain)
        self._sink.record_crawl_requests(len(pages))
        self._logger.info("Crawled %s: %d pages", domain, len(pages))
        if not pages:
            self._logger.warning("Skipping %s: no pages fetched", domain)
            self._sink.record_skip(domain, "no pages fetched")
            self._set_state(domain, DomainState.SKIPPED_POST_CRAWL)
            return

        candidates = extract_emails_from_pages(
            pages,
            external=self._external,
            max_per_domain=self._config.max_emails_per_domain,
            text_max_chars=self._config.ai_text_max_chars,
            mx_checker=self._mx_checker,
        )
        self._logger.info("Extracted %d emails from %s", len(candidates), domain)

        relevance = score_relevance(
            " ".join(page.html for page in pages), self._config.unrelated_keywords
        )

        if self._config.snowball_enabled and depth < self._config.snowball_max_depth:
            self._snowball(domain, pages, depth)

        min_score = self._config.min_relevance_score
        if relevance.score < min_score:
            self._logger.warning(
                "Skipping %s: relevance %d below threshold %d", domain, relevance.score, min_score
            )
            self._sink.record_skip(
                domain,
                f"score below threshold ({relevance.score} < {min_score})",
                relevance_score=relevance.score,
                min_score=min_score,
            )
            self._set_state(domain, DomainState.SKIPPED_POST_CRAWL)
            return

        rows = self._build_rows(record, domain, pages, candidates, relevance.score)
        self._sink.record_leads(domain, rows)
        self._set_state(domain, DomainState.COMPLETED)
        self._logger.info("Done %s: %d leads", domain, len(rows))

    def _snowball(self, domain: str, pages: list[PageResult], depth: int) -> None:
        outbound = [
            candidate
            for candidate in extract_outbound_domains(pages, domain)
            if not self._filter.excludes(candidate)
        ]
        for candidate in outbound[: self._config.snowball_max_per_source]:
            child = DomainRecord.for_domain(
                candidate,
                discovery_query=f"snowball:{domain}",
                snippet=f"Discovered via partner link on {domain}",
            )
            if self.add_domain(child, depth + 1):
                self._sink.record_snowball()
                self._logger.info("Snowball: %s -> %s", domain, candidate)

    @staticmethod
    def _build_rows(
        record: DomainRecord,
        domain: str,
        pages: list[PageResult],
        candidates: list[EmailCandidate],
        relevance_score: int,
    ) -> list[LeadRow]:
        business_name = find_business_name(pages)
        return [
            LeadRow(
                business_name=business_name,
                domain=domain,
                country=record.country,
                city=record.city,
                email=candidate.email,
                email_type=candidate.email_type,
                confidence=candidate.confidence,
                relevance_score=relevance_score,
                source_url=candidate.source_url,
                discovered_by_query=record.discovery_query,
            )
            for candidate in candidates
        ]
