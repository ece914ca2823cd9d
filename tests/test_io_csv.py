import csv
from pathlib import Path

from lead_harvester.io_csv import CSV_FIELDS, append_rows, write_header


def _row(email: str) -> dict[str, str]:
    return {
        "business_name": "Blue Voyage, Ltd",
        "domain": "blue-voyage.co.uk",
        "country": "United Kingdom",
        "city": "",
        "email": email,
        "email_type": "generic",
        "confidence": "0.9",
        "relevance_score": "3",
        "source_url": "https://blue-voyage.co.uk/contact",
        "discovered_by_query": "Turkey tours",
    }


def test_write_header_creates_parent_and_overwrites(tmp_path: Path) -> None:
    output = tmp_path / "nested" / "leads.csv"
    write_header(str(output))
    append_rows(str(output), [_row("info@blue-voyage.co.uk")])
    write_header(str(output))
    assert output.read_text(encoding="utf-8").splitlines() == [",".join(CSV_FIELDS)]


def test_append_rows_quotes_fields_and_preserves_order(tmp_path: Path) -> None:
    output = tmp_path / "leads.csv"
    write_header(str(output))
    append_rows(str(output), [_row("info@blue-voyage.co.uk"), _row("sales@blue-voyage.co.uk")])
    append_rows(str(output), [])

    with output.open(newline="", encoding="utf-8") as file_obj:
        rows = list(csv.DictReader(file_obj))
    assert [row["email"] for row in rows] == ["info@blue-voyage.co.uk", "sales@blue-voyage.co.uk"]
    assert rows[0]["business_name"] == "Blue Voyage, Ltd"
    assert list(rows[0].keys()) == CSV_FIELDS
