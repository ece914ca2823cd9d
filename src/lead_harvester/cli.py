"""CLI entrypoint for lead-harvester."""

from __future__ import annotations

import argparse
import os
from collections.abc import Sequence
from typing import Any

from .config import (
    DEFAULT_OPENROUTER_MODEL,
    QUERY_STRATEGIES,
    SEARCH_PROVIDERS,
    PipelineConfig,
    config_values_from_file,
    load_config_file,
    normalize_provider,
)
from .errors import ConfigError
from .logging_utils import configure_logging, get_logger
from .pipeline import run_discovery, run_pipeline
from .validation import load_lines_from_file


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description=(
            "Lead Harvester - crawl candidate domains, extract and rank contact emails, "
            "score relevance, and expand through partner links."
        )
    )
    parser.add_argument("--domains", help="Domain list: JSON records or one URL/domain per line.")
    query_group = parser.add_mutually_exclusive_group(required=False)
    query_group.add_argument("--queries", nargs="+", help="Search keywords for discovery.")
    query_group.add_argument("--queries-file", help="Path to keyword file (one per line).")
    parser.add_argument("--countries", nargs="+", help="Countries combined with each keyword.")
    parser.add_argument("--cities", nargs="+", help="Cities combined with each keyword.")
    parser.add_argument("--config", help="Path to a JSON config file.")
    parser.add_argument("--output", help="Output CSV path (default: leads.csv).")
    parser.add_argument("--domains-out", help="Write discovered domain records to this JSON path.")
    parser.add_argument("--logs-dir", help="Directory for skipped.log and run summaries.")
    parser.add_argument("--min-score", type=int, help="Minimum relevance score to keep a domain.")
    parser.add_argument(
        "--workers", type=int, help="Concurrent domains (capped at 2 in browser mode)."
    )
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds.")
    parser.add_argument("--retries", type=int, help="Fetch attempts per page.")
    parser.add_argument("--model", help=f"OpenRouter model (default: {DEFAULT_OPENROUTER_MODEL}).")
    parser.add_argument("--no-ai", action="store_true", help="Disable LLM email extraction.")
    parser.add_argument(
        "--use-browser", action="store_true", help="Render pages with headless Chrome (Selenium)."
    )
    parser.add_argument(
        "--snowball", action="store_true", help="Follow outbound partner links to new domains."
    )
    parser.add_argument("--snowball-max-depth", type=int, help="Maximum snowball depth.")
    parser.add_argument("--max-emails", type=int, help="Maximum emails kept per domain.")
    parser.add_argument(
        "--verify-mx", action="store_true", help="Drop emails whose domain has no MX/A record."
    )
    parser.add_argument("--serpapi-key", help="SerpApi key (or set SERPAPI_KEY env var).")
    parser.add_argument("--searxng-url", help="SearXNG instance URL (or set SEARXNG_URL env var).")
    parser.add_argument(
        "--search-provider",
        type=normalize_provider,
        choices=SEARCH_PROVIDERS,
        help=(
            "Pin a search provider; 'auto' falls back "
            "SerpApi -> Google CSE -> SearXNG -> DuckDuckGo."
        ),
    )
    parser.add_argument(
        "--query-strategy",
        choices=QUERY_STRATEGIES,
        help=(
            "'full' combines keywords with countries/cities; "
            "'broad+markets' adds per-market locale queries."
        ),
    )
    parser.add_argument(
        "--skip-directories", action="store_true", help="Do not scrape configured directories."
    )
    parser.add_argument(
        "--discover-only",
        action="store_true",
        help="Only discover domains and merge them into --domains-out (default: domains.json).",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    has_input = args.domains or args.queries or args.queries_file or args.config
    if not (has_input or args.query_strategy == "broad+markets"):
        parser.error(
            "Provide --domains, --queries, --queries-file, --query-strategy broad+markets, "
            "or a --config with keywords or directories."
        )
    return args


def _materialize_keywords(args: argparse.Namespace) -> tuple[str, ...] | None:
    if args.queries:
        return tuple(args.queries)
    if args.queries_file:
        try:
            return tuple(load_lines_from_file(args.queries_file))
        except OSError as exc:
            raise ConfigError(f"Cannot read queries file {args.queries_file}: {exc}") from exc
    return None


def namespace_to_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge config file, CLI flags and environment into a validated PipelineConfig."""
    values: dict[str, Any] = {}
    if args.config:
        values.update(config_values_from_file(load_config_file(args.config)))

    keywords = _materialize_keywords(args)
    overrides: dict[str, Any] = {
        "domains_file": args.domains,
        "keywords": keywords,
        "countries": tuple(args.countries) if args.countries else None,
        "cities": tuple(args.cities) if args.cities else None,
        "output": args.output,
        "domains_out": args.domains_out,
        "logs_dir": args.logs_dir,
        "min_relevance_score": args.min_score,
        "workers": args.workers,
        "request_timeout": args.timeout,
        "retries": args.retries,
        "openrouter_model": args.model,
        "snowball_max_depth": args.snowball_max_depth,
        "max_emails_per_domain": args.max_emails,
        "search_provider": args.search_provider,
        "query_strategy": args.query_strategy,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    if args.no_ai:
        values["enable_ai_extract"] = False
    if args.use_browser:
        values["use_browser"] = True
    if args.snowball:
        values["snowball_enabled"] = True
    if args.verify_mx:
        values["verify_mx"] = True
    if args.no_progress:
        values["show_progress"] = False
    if args.skip_directories:
        values["skip_directories"] = True
    if args.discover_only:
        values["discover_only"] = True

    values["openrouter_key"] = os.getenv("OPENROUTER_API_KEY") or None
    values["serpapi_key"] = args.serpapi_key or os.getenv("SERPAPI_KEY") or None
    searxng_url = args.searxng_url or os.getenv("SEARXNG_URL") or values.get("searxng_url")
    values["searxng_url"] = searxng_url or None
    values["google_cse_key"] = os.getenv("GOOGLE_CSE_API_KEY") or None
    values["google_cse_cx"] = os.getenv("GOOGLE_CSE_CX") or values.get("google_cse_cx") or None
    user_agent = os.getenv("USER_AGENT")
    if user_agent:
        values["user_agent"] = user_agent

    config = PipelineConfig(**values)
    if not (config.domains_file or config.runs_search or config.runs_directories):
        raise ConfigError("No input: provide --domains, discovery keywords or directories.")
    return config


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
        if config.discover_only:
            run_discovery(config, logger=logger)
            return 0
        run_log = run_pipeline(config, logger=logger)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    logger.info(
        "Wrote %d leads to %s (%d domains processed)",
        run_log.totals["leads_count"],
        config.output,
        run_log.totals["domains_processed"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
