"""CSV serialization helpers."""

from __future__ import annotations

import csv
import io
from pathlib import Path

CSV_FIELDS = [
    "business_name",
    "domain",
    "country",
    "city",
    "email",
    "email_type",
    "confidence",
    "relevance_score",
    "source_url",
    "discovered_by_query",
]


def write_header(path: str) -> None:
    """Create (or truncate) the leads CSV with only its header row."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        csv.DictWriter(file_obj, fieldnames=CSV_FIELDS).writeheader()


def render_rows(rows: list[dict[str, str]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def append_rows(path: str, rows: list[dict[str, str]]) -> None:
    """Append rows without a header using a single write call."""
    if not rows:
        return
    payload = render_rows(rows)
    with Path(path).open("a", newline="", encoding="utf-8") as file_obj:
        file_obj.write(payload)
        file_obj.flush()
