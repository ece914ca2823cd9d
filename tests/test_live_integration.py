import os
from pathlib import Path

import pytest

from lead_harvester.cli import main

requires_live = pytest.mark.skipif(
    os.getenv("RUN_LIVE_INTEGRATION") != "1",
    reason="Set RUN_LIVE_INTEGRATION=1 to execute live integration tests.",
)


@requires_live
def test_live_help_command_smoke() -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])
    assert exc_info.value.code == 0


@requires_live
def test_live_single_domain_run(tmp_path: Path) -> None:
    domains = tmp_path / "domains.txt"
    domains.write_text("https://www.python.org/\n", encoding="utf-8")
    output = tmp_path / "leads.csv"
    exit_code = main(
        [
            "--domains",
            str(domains),
            "--output",
            str(output),
            "--logs-dir",
            str(tmp_path / "logs"),
            "--min-score",
            "0",
            "--no-ai",
            "--no-progress",
        ]
    )
    assert exit_code == 0
    assert output.read_text(encoding="utf-8").startswith("business_name,domain,")
    assert list((tmp_path / "logs").glob("run-*.json"))
