"""Incremental result sink: leads CSV, skip log and run summary."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from .io_csv import append_rows, write_header
from .models import LeadRow, RunLog

SKIP_LOG_NAME = "skipped.log"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


class ResultSink:
    """Accumulates lead rows and persists them per domain as they arrive.

    Rows for a domain are appended to the CSV before they are added to the
    in-memory accumulator, so an interrupted run keeps every domain that
    finished. Skips are written to the skip log immediately.
    """

    def __init__(
        self,
        *,
        output_path: str,
        logs_dir: str,
        logger: logging.Logger,
        clock: Clock = _utc_now,
    ) -> None:
        self._output_path = output_path
        self._logs_dir = Path(logs_dir)
        self._logger = logger
        self._clock = clock
        self._lock = Lock()
        self._rows: list[LeadRow] = []
        self._started_at = clock()
        self._run_log = RunLog(date=self._started_at.strftime("%Y%m%d"))
        self._run_log.timing["start_time"] = _iso(self._started_at)
        self._summary_path: Path | None = None

    @property
    def skip_log_path(self) -> Path:
        return self._logs_dir / SKIP_LOG_NAME

    @property
    def summary_path(self) -> Path | None:
        return self._summary_path

    @property
    def rows(self) -> list[LeadRow]:
        with self._lock:
            return list(self._rows)

    @property
    def run_log(self) -> RunLog:
        return self._run_log

    def start(self) -> None:
        """Write the CSV header and reset the skip log; call once before any rows."""
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            write_header(self._output_path)
            self.skip_log_path.write_text("", encoding="utf-8")

    def record_leads(self, domain: str, rows: list[LeadRow]) -> None:
        if not rows:
            return
        with self._lock:
            append_rows(self._output_path, [row.as_csv_row() for row in rows])
            self._rows.extend(rows)
            self._run_log.totals["leads_count"] = len(self._rows)
            self._run_log.totals["emails_count"] = len(self._rows)
        self._logger.debug("Flushed %d rows for %s", len(rows), domain)

    def record_skip(self, domain: str, reason: str, **details: Any) -> None:
        with self._lock:
            self._run_log.skipped.append({"domain": domain, "reason": reason, **details})
            self._append_skip_line(domain, reason)

    def record_error(self, domain: str, message: str) -> None:
        with self._lock:
            self._run_log.errors.append({"domain": domain, "message": message})
            self._append_skip_line(domain, f"error: {message}")

    def record_snowball(self) -> None:
        with self._lock:
            self._run_log.totals["snowball_domains"] += 1

    def record_crawl_requests(self, count: int) -> None:
        with self._lock:
            self._run_log.rate_limit_stats["crawl_requests"] += count

    def finish(self, *, llm_calls: int = 0, domains_processed: int = 0) -> RunLog:
        """Finalize totals and timing and write the run summary JSON once."""
        ended_at = self._clock()
        with self._lock:
            log = self._run_log
            log.totals["leads_count"] = len(self._rows)
            log.totals["emails_count"] = len(self._rows)
            log.totals["domains_processed"] = domains_processed
            log.rate_limit_stats["llm_calls"] = llm_calls
            log.timing["end_time"] = _iso(ended_at)
            log.timing["duration_ms"] = int((ended_at - self._started_at).total_seconds() * 1000)
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            self._summary_path = self._logs_dir / f"run-{log.date}.json"
            self._summary_path.write_text(json.dumps(log.to_dict(), indent=2), encoding="utf-8")
        self._logger.info(
            "Run complete: %d leads from %d domains (%d snowball, %d skipped, %d errors) in %d ms",
            log.totals["leads_count"],
            log.totals["domains_processed"],
            log.totals["snowball_domains"],
            len(log.skipped),
            len(log.errors),
            log.timing["duration_ms"],
        )
        return log

    def _append_skip_line(self, domain: str, reason: str) -> None:
        with self.skip_log_path.open("a", encoding="utf-8") as file_obj:
            file_obj.write(f"{domain}\t{reason}\n")
