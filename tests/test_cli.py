import json
from pathlib import Path

import pytest

from lead_harvester import cli
from lead_harvester.config import PipelineConfig
from lead_harvester.errors import ConfigError
from lead_harvester.models import DomainRecord, RunLog

ENV_KEYS = (
    "OPENROUTER_API_KEY",
    "SERPAPI_KEY",
    "SEARXNG_URL",
    "USER_AGENT",
    "GOOGLE_CSE_API_KEY",
    "GOOGLE_CSE_CX",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_parse_args_with_queries() -> None:
    args = cli.parse_args(["--queries", "Turkey tours", "Cappadocia trips", "--snowball"])
    assert args.queries == ["Turkey tours", "Cappadocia trips"]
    assert args.snowball is True
    assert args.workers is None


def test_parse_args_with_domains_only() -> None:
    args = cli.parse_args(["--domains", "domains.txt"])
    assert args.domains == "domains.txt"


def test_parse_args_requires_source() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_queries_and_queries_file_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--queries", "a", "--queries-file", "q.txt"])


def test_namespace_to_config_applies_flags_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    monkeypatch.setenv("SERPAPI_KEY", "env-serp")
    monkeypatch.setenv("USER_AGENT", "lead-bot/1.0")
    args = cli.parse_args(
        [
            "--queries",
            "Turkey tours",
            "--cities",
            "London",
            "--workers",
            "3",
            "--min-score",
            "3",
            "--no-ai",
            "--verify-mx",
            "--no-progress",
        ]
    )
    config = cli.namespace_to_config(args)
    assert config.keywords == ("Turkey tours",)
    assert config.cities == ("London",)
    assert config.workers == 3
    assert config.min_relevance_score == 3
    assert config.enable_ai_extract is False
    assert config.verify_mx is True
    assert config.show_progress is False
    assert config.openrouter_key == "or-key"
    assert config.serpapi_key == "env-serp"
    assert config.user_agent == "lead-bot/1.0"


def test_cli_flag_beats_env_for_search_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERPAPI_KEY", "env-serp")
    monkeypatch.setenv("SEARXNG_URL", "http://env-searx")
    args = cli.parse_args(
        ["--queries", "q", "--serpapi-key", "flag-serp", "--searxng-url", "http://flag-searx"]
    )
    config = cli.namespace_to_config(args)
    assert config.serpapi_key == "flag-serp"
    assert config.searxng_url == "http://flag-searx"


def test_config_file_values_are_overridden_by_flags(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps(
            {
                "keywords": ["Turkey tours"],
                "minRelevanceScore": 4,
                "extraction": {"concurrency": 8, "timeoutMs": 5000},
                "snowball": {"enabled": True, "maxDepth": 2},
                "discovery": {"searxngUrl": "http://file-searx"},
            }
        ),
        encoding="utf-8",
    )
    args = cli.parse_args(["--config", str(config_path), "--workers", "2"])
    config = cli.namespace_to_config(args)
    assert config.keywords == ("Turkey tours",)
    assert config.min_relevance_score == 4
    assert config.workers == 2
    assert config.request_timeout == 5.0
    assert config.snowball_enabled is True
    assert config.snowball_max_depth == 2
    assert config.searxng_url == "http://file-searx"


def test_queries_file_is_read(tmp_path: Path) -> None:
    queries = tmp_path / "queries.txt"
    queries.write_text("# keywords\nTurkey tours\n\nGulet cruises\n", encoding="utf-8")
    config = cli.namespace_to_config(cli.parse_args(["--queries-file", str(queries)]))
    assert config.keywords == ("Turkey tours", "Gulet cruises")


def test_missing_queries_file_is_a_config_error(tmp_path: Path) -> None:
    args = cli.parse_args(["--queries-file", str(tmp_path / "missing.txt")])
    with pytest.raises(ConfigError):
        cli.namespace_to_config(args)


def test_config_without_any_input_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"minRelevanceScore": 2}), encoding="utf-8")
    with pytest.raises(ConfigError, match="No input"):
        cli.namespace_to_config(cli.parse_args(["--config", str(config_path)]))


def test_main_returns_zero_on_success(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[PipelineConfig] = []

    def fake_run(config: PipelineConfig, *, logger: object) -> RunLog:
        seen.append(config)
        return RunLog(date="20260301")

    monkeypatch.setattr(cli, "run_pipeline", fake_run)
    assert cli.main(["--queries", "Turkey tours", "--no-progress"]) == 0
    assert seen[0].keywords == ("Turkey tours",)


def test_main_returns_two_on_invalid_config() -> None:
    assert cli.main(["--queries", "Turkey tours", "--workers", "0"]) == 2


def test_main_returns_two_when_pinned_provider_has_no_key() -> None:
    assert cli.main(["--queries", "Turkey tours", "--search-provider", "serpapi"]) == 2


def test_main_returns_two_on_pipeline_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_run(config: PipelineConfig, *, logger: object) -> RunLog:
        raise ConfigError("Domain list domains.json is not valid JSON")

    monkeypatch.setattr(cli, "run_pipeline", failing_run)
    assert cli.main(["--domains", "domains.json"]) == 2


def test_googlecse_alias_and_env_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_CSE_API_KEY", "gkey")
    monkeypatch.setenv("GOOGLE_CSE_CX", "engine-id")
    args = cli.parse_args(["--queries", "Turkey DMC", "--search-provider", "googlecse"])
    config = cli.namespace_to_config(args)
    assert config.search_provider == "google"
    assert config.google_cse_key == "gkey"
    assert config.google_cse_cx == "engine-id"


def test_pinned_google_without_engine_id_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_CSE_API_KEY", "gkey")
    assert cli.main(["--queries", "q", "--search-provider", "google"]) == 2


def test_market_strategy_needs_no_keywords() -> None:
    args = cli.parse_args(["--query-strategy", "broad+markets"])
    config = cli.namespace_to_config(args)
    assert config.keywords == ()
    assert config.runs_search is True


def _directory_config(tmp_path: Path) -> str:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"directories": [{"name": "tourradar", "maxPages": 2}]}), encoding="utf-8"
    )
    return str(config_path)


def test_directories_count_as_input(tmp_path: Path) -> None:
    config = cli.namespace_to_config(cli.parse_args(["--config", _directory_config(tmp_path)]))
    assert config.runs_directories is True
    assert config.directories[0].kind == "tourradar"
    assert config.directories[0].max_pages == 2


def test_skip_directories_leaves_no_input(tmp_path: Path) -> None:
    args = cli.parse_args(["--config", _directory_config(tmp_path), "--skip-directories"])
    with pytest.raises(ConfigError, match="No input"):
        cli.namespace_to_config(args)


def test_discover_only_skips_the_crawl(monkeypatch: pytest.MonkeyPatch) -> None:
    discovered: list[PipelineConfig] = []

    def fake_discovery(config: PipelineConfig, *, logger: object) -> list[DomainRecord]:
        discovered.append(config)
        return [DomainRecord.for_domain("acme-travel.com")]

    def unexpected_run(config: PipelineConfig, *, logger: object) -> RunLog:
        raise AssertionError("crawl must not run in discover-only mode")

    monkeypatch.setattr(cli, "run_discovery", fake_discovery)
    monkeypatch.setattr(cli, "run_pipeline", unexpected_run)
    assert cli.main(["--queries", "Turkey tours", "--discover-only", "--no-progress"]) == 0
    assert discovered[0].discover_only is True
    assert discovered[0].domains_out is None
