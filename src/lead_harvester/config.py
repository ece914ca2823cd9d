"""Runtime configuration model."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .domains import EXCLUDED_DOMAIN_HINTS, EXCLUDED_TLDS
from .errors import ConfigError
from .models import DirectorySource, Market
from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_WORKERS = 10
DEFAULT_BROWSER_WORKERS = 2
DEFAULT_PAGE_WORKERS = 3
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_DELAYS = (1.0, 2.0, 4.0)
DEFAULT_INTER_REQUEST_DELAY = 0.8
DEFAULT_MIN_RELEVANCE_SCORE = 2
DEFAULT_MAX_EMAILS_PER_DOMAIN = 5
DEFAULT_AI_TEXT_MAX_CHARS = 4000
DEFAULT_OPENROUTER_MODEL = "meta-llama/llama-3.1-8b-instruct:free"
DEFAULT_RESULTS_PER_QUERY = 20
SEARCH_PROVIDERS = ("auto", "serpapi", "google", "searxng", "duckduckgo")
PROVIDER_ALIASES = {"googlecse": "google"}
QUERY_STRATEGIES = ("full", "broad+markets")
DEFAULT_DIRECTORY_PAGES = 5
DEFAULT_DIRECTORY_DELAY = 2.0


@dataclass(frozen=True)
class PipelineConfig:
    """Validated configuration used by the lead pipeline."""

    output: str = "leads.csv"
    domains_file: str | None = None
    domains_out: str | None = None
    logs_dir: str = "logs"
    keywords: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    cities: tuple[str, ...] = ()
    workers: int = DEFAULT_WORKERS
    page_workers: int = DEFAULT_PAGE_WORKERS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    retries: int = DEFAULT_RETRIES
    backoff_delays: tuple[float, ...] = DEFAULT_BACKOFF_DELAYS
    user_agent: str = DEFAULT_USER_AGENT
    use_browser: bool = False
    inter_request_delay: float = DEFAULT_INTER_REQUEST_DELAY
    min_relevance_score: int = DEFAULT_MIN_RELEVANCE_SCORE
    unrelated_keywords: tuple[str, ...] = ()
    enable_ai_extract: bool = True
    openrouter_key: str | None = None
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    ai_text_max_chars: int = DEFAULT_AI_TEXT_MAX_CHARS
    max_emails_per_domain: int = DEFAULT_MAX_EMAILS_PER_DOMAIN
    verify_mx: bool = False
    snowball_enabled: bool = False
    snowball_max_depth: int = 1
    snowball_max_per_source: int = 10
    excluded_tlds: tuple[str, ...] = EXCLUDED_TLDS
    excluded_domain_hints: tuple[str, ...] = EXCLUDED_DOMAIN_HINTS
    search_provider: str = "auto"
    serpapi_key: str | None = None
    searxng_url: str | None = None
    results_per_query: int = DEFAULT_RESULTS_PER_QUERY
    google_cse_key: str | None = None
    google_cse_cx: str | None = None
    query_strategy: str = "full"
    top_markets: tuple[Market, ...] = ()
    market_keywords: tuple[str, ...] = ()
    directories: tuple[DirectorySource, ...] = ()
    skip_directories: bool = False
    discover_only: bool = False
    min_delay: float = 0.9
    max_delay: float = 2.2
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            workers=self.workers,
            page_workers=self.page_workers,
            request_timeout=self.request_timeout,
            retries=self.retries,
            backoff_delays=self.backoff_delays,
            max_emails_per_domain=self.max_emails_per_domain,
            ai_text_max_chars=self.ai_text_max_chars,
            snowball_max_depth=self.snowball_max_depth,
            snowball_max_per_source=self.snowball_max_per_source,
            inter_request_delay=self.inter_request_delay,
        )
        if self.search_provider not in SEARCH_PROVIDERS:
            raise ConfigError(
                f"--search-provider must be one of {', '.join(SEARCH_PROVIDERS)}."
            )
        if self.query_strategy not in QUERY_STRATEGIES:
            raise ConfigError(f"queryStrategy must be one of {', '.join(QUERY_STRATEGIES)}.")
        if self.runs_search:
            if self.search_provider == "serpapi" and not self.serpapi_key:
                raise ConfigError("SerpApi selected but no key found. Set SERPAPI_KEY.")
            if self.search_provider == "google" and not (
                self.google_cse_key and self.google_cse_cx
            ):
                raise ConfigError(
                    "Google CSE selected but key or engine id missing. "
                    "Set GOOGLE_CSE_API_KEY and GOOGLE_CSE_CX."
                )
            if self.search_provider == "searxng" and not self.searxng_url:
                raise ConfigError("SearXNG selected but no instance URL found. Set SEARXNG_URL.")
        if self.discover_only and not (self.runs_search or self.runs_directories):
            raise ConfigError("Discover-only mode needs keywords or directories to search.")
        if self.min_delay < 0 or self.min_delay > self.max_delay:
            raise ConfigError("search delays must satisfy 0 <= min <= max.")
        if self.results_per_query < 1:
            raise ConfigError("resultsPerQuery must be >= 1.")

    @property
    def effective_workers(self) -> int:
        """Domain concurrency; browser instances are heavyweight, so cap them."""
        if self.use_browser:
            return min(self.workers, DEFAULT_BROWSER_WORKERS)
        return self.workers

    @property
    def runs_search(self) -> bool:
        """Market queries need no user keywords; the plain strategy does."""
        return bool(self.keywords) or self.query_strategy == "broad+markets"

    @property
    def runs_directories(self) -> bool:
        return bool(self.directories) and not self.skip_directories


def load_config_file(path: str) -> dict[str, Any]:
    """Read a JSON config file into a mapping."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object.")
    return data


def _str_tuple(value: Any, key: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"Config key {key!r} must be a list of strings.")
    return tuple(value)


def _ms_to_seconds(value: Any, key: str) -> float:
    if not isinstance(value, (int, float)):
        raise ConfigError(f"Config key {key!r} must be a number of milliseconds.")
    return float(value) / 1000.0


def normalize_provider(value: str) -> str:
    provider = value.strip().lower()
    return PROVIDER_ALIASES.get(provider, provider)


def _markets(value: Any) -> tuple[Market, ...]:
    """Market names, or objects with name/searxngLang/serpGl/serpDomain."""
    if not isinstance(value, list):
        raise ConfigError("Config key 'topMarkets' must be a list.")
    markets: list[Market] = []
    for item in value:
        if isinstance(item, str):
            markets.append(Market(name=item))
        elif isinstance(item, dict) and item.get("name"):
            markets.append(
                Market(
                    name=str(item["name"]),
                    language=str(item.get("searxngLang") or ""),
                    gl=str(item.get("serpGl") or ""),
                    google_domain=str(item.get("serpDomain") or ""),
                )
            )
        else:
            raise ConfigError("Each topMarkets entry must be a name or an object with a name.")
    return tuple(markets)


def _directories(value: Any) -> tuple[DirectorySource, ...]:
    if not isinstance(value, list):
        raise ConfigError("Config key 'directories' must be a list.")
    sources: list[DirectorySource] = []
    for item in value:
        if not isinstance(item, dict):
            raise ConfigError("Each directories entry must be an object.")
        name = str(item.get("name") or "")
        url = str(item.get("url") or "")
        kind = "tourradar" if str(item.get("type") or name).lower() == "tourradar" else "generic"
        if kind == "generic" and not url:
            raise ConfigError(f"Directory {name or '<unnamed>'} needs a url.")
        delay = DEFAULT_DIRECTORY_DELAY
        if "delayMs" in item:
            delay = _ms_to_seconds(item["delayMs"], "delayMs")
        sources.append(
            DirectorySource(
                name=name or kind,
                url=url,
                kind=kind,
                max_pages=int(item.get("maxPages", DEFAULT_DIRECTORY_PAGES)),
                delay=delay,
            )
        )
    return tuple(sources)


def config_values_from_file(data: dict[str, Any]) -> dict[str, Any]:
    """Translate the JSON config file layout into PipelineConfig keyword values."""
    try:
        return _translate_file_values(data)
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc


def _translate_file_values(data: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "minRelevanceScore" in data:
        values["min_relevance_score"] = int(data["minRelevanceScore"])
    for key, target in (
        ("unrelatedKeywords", "unrelated_keywords"),
        ("keywords", "keywords"),
        ("countries", "countries"),
        ("cities", "cities"),
    ):
        if key in data:
            values[target] = _str_tuple(data[key], key)

    extraction = data.get("extraction") or {}
    if "concurrency" in extraction:
        values["workers"] = int(extraction["concurrency"])
    if "pageConcurrency" in extraction:
        values["page_workers"] = int(extraction["pageConcurrency"])
    if "timeoutMs" in extraction:
        values["request_timeout"] = _ms_to_seconds(extraction["timeoutMs"], "timeoutMs")
    if "retries" in extraction:
        values["retries"] = int(extraction["retries"])
    if "retryDelaysMs" in extraction:
        delays = extraction["retryDelaysMs"]
        if not isinstance(delays, list):
            raise ConfigError("Config key 'retryDelaysMs' must be a list.")
        values["backoff_delays"] = tuple(_ms_to_seconds(item, "retryDelaysMs") for item in delays)
    if "useBrowser" in extraction:
        values["use_browser"] = bool(extraction["useBrowser"])
    if "delayBetweenRequestsMs" in extraction:
        values["inter_request_delay"] = _ms_to_seconds(
            extraction["delayBetweenRequestsMs"], "delayBetweenRequestsMs"
        )
    if "enableAiExtract" in extraction:
        values["enable_ai_extract"] = bool(extraction["enableAiExtract"])
    if "aiTextMaxChars" in extraction:
        values["ai_text_max_chars"] = int(extraction["aiTextMaxChars"])
    if "maxEmailsPerDomain" in extraction:
        values["max_emails_per_domain"] = int(extraction["maxEmailsPerDomain"])
    if "verifyMx" in extraction:
        values["verify_mx"] = bool(extraction["verifyMx"])
    model = (extraction.get("openRouter") or {}).get("model")
    if model:
        values["openrouter_model"] = str(model)

    snowball = data.get("snowball") or {}
    if "enabled" in snowball:
        values["snowball_enabled"] = snowball["enabled"] is True
    if "maxDepth" in snowball:
        values["snowball_max_depth"] = int(snowball["maxDepth"])
    if "maxNewDomainsPerSource" in snowball:
        values["snowball_max_per_source"] = int(snowball["maxNewDomainsPerSource"])

    discovery = data.get("discovery") or {}
    if "provider" in discovery:
        values["search_provider"] = normalize_provider(str(discovery["provider"]))
    if "searxngUrl" in discovery:
        values["searxng_url"] = str(discovery["searxngUrl"])
    if "googleCx" in discovery:
        values["google_cse_cx"] = str(discovery["googleCx"])
    if "resultsPerQuery" in discovery:
        values["results_per_query"] = int(discovery["resultsPerQuery"])
    if "queryStrategy" in discovery:
        values["query_strategy"] = str(discovery["queryStrategy"]).lower()
    if "topMarkets" in discovery:
        values["top_markets"] = _markets(discovery["topMarkets"])
    if "coreKeywords" in discovery:
        values["market_keywords"] = _str_tuple(discovery["coreKeywords"], "coreKeywords")

    if "directories" in data:
        values["directories"] = _directories(data["directories"])

    exclusion = data.get("exclusion") or {}
    if "tlds" in exclusion:
        values["excluded_tlds"] = _str_tuple(exclusion["tlds"], "tlds")
    if "hints" in exclusion:
        values["excluded_domain_hints"] = _str_tuple(exclusion["hints"], "hints")
    return values
