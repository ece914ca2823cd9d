"""Protocols and lightweight model types."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol


class PageFetcher(Protocol):
    """Contract for single-URL HTML fetchers."""

    def fetch(self, url: str) -> str | None:
        """Return HTML, None when policy denies the URL, or raise FetchError."""


class BrowserFetcher(Protocol):
    """Contract for browser-rendered batch fetchers."""

    def fetch_many(self, urls: list[str]) -> dict[str, str]:
        """Return HTML for the URLs that loaded; failures are omitted."""


class AllowPolicy(Protocol):
    """Contract for allow/deny predicates such as robots.txt."""

    def is_allowed(self, origin: str, path: str) -> bool:
        """Return True when the path may be fetched."""


class ExternalEmailExtractor(Protocol):
    """Contract for best-effort email extraction from page text."""

    def extract_emails(self, text: str, source_url: str, max_chars: int) -> list[EmailCandidate]:
        """Return candidate emails; never raises."""


class SearchBackend(Protocol):
    """Contract for search providers."""

    def search(
        self, query: str, num: int, locale: SearchLocale | None = None
    ) -> list[SearchResult]:
        """Return organic results for a query, geo-targeted when a locale is given."""


class DomainState(str, enum.Enum):
    """Lifecycle of one domain inside a run."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    SKIPPED_PRE_CRAWL = "skipped_pre_crawl"
    SKIPPED_POST_CRAWL = "skipped_post_crawl"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchLocale:
    """Geo-targeting hints understood by the search providers.

    ``language`` goes to SearXNG, ``gl`` and ``google_domain`` to the
    Google-backed providers. Empty fields are not sent.
    """

    language: str = ""
    gl: str = ""
    google_domain: str = ""


@dataclass(frozen=True)
class Market:
    """A source market searched with its own locale."""

    name: str
    language: str = ""
    gl: str = ""
    google_domain: str = ""

    @property
    def locale(self) -> SearchLocale:
        return SearchLocale(language=self.language, gl=self.gl, google_domain=self.google_domain)


@dataclass(frozen=True)
class DirectorySource:
    """An operator directory to scrape for candidate domains."""

    name: str
    url: str = ""
    kind: str = "generic"
    max_pages: int = 5
    delay: float = 2.0


@dataclass(frozen=True)
class SearchResult:
    """One organic search hit."""

    url: str
    title: str = ""
    snippet: str = ""


@dataclass(frozen=True)
class DomainRecord:
    """A candidate domain and where it came from."""

    domain: str
    sample_url: str = ""
    discovery_query: str = ""
    title: str = ""
    snippet: str = ""
    country: str = ""
    city: str = ""

    @classmethod
    def for_domain(cls, domain: str, **fields: str) -> DomainRecord:
        fields.setdefault("sample_url", f"https://{domain}")
        return cls(domain=domain, **fields)


@dataclass(frozen=True)
class PageResult:
    url: str
    html: str


@dataclass(frozen=True)
class EmailCandidate:
    """A validated, normalized email with provenance."""

    email: str
    email_type: str
    confidence: float
    source_url: str
    extracted_by: str


@dataclass(frozen=True)
class LeadRow:
    business_name: str
    domain: str
    country: str
    city: str
    email: str
    email_type: str
    confidence: float
    relevance_score: int
    source_url: str
    discovered_by_query: str

    def as_csv_row(self) -> dict[str, str]:
        return {key: "" if value is None else str(value) for key, value in asdict(self).items()}


@dataclass
class RunLog:
    """Aggregate counters, skips and errors for one run."""

    date: str
    totals: dict[str, int] = field(
        default_factory=lambda: {
            "domains_processed": 0,
            "leads_count": 0,
            "emails_count": 0,
            "snowball_domains": 0,
        }
    )
    errors: list[dict[str, str]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)
    timing: dict[str, Any] = field(
        default_factory=lambda: {"start_time": None, "end_time": None, "duration_ms": None}
    )
    rate_limit_stats: dict[str, int] = field(
        default_factory=lambda: {"llm_calls": 0, "crawl_requests": 0}
    )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
