import pytest

from lead_harvester import extraction
from lead_harvester.extraction import (
    canonicalize_url,
    extract_emails_from_pages,
    extract_emails_regex,
    find_business_name,
    find_contact_links,
    merge_candidates,
    visible_text,
)
from lead_harvester.models import EmailCandidate, PageResult


class FakeExtractor:
    def __init__(self, results: dict[str, list[EmailCandidate]]) -> None:
        self._results = results
        self.texts: list[str] = []

    def extract_emails(self, text: str, source_url: str, max_chars: int) -> list[EmailCandidate]:
        self.texts.append(text[:max_chars])
        return self._results.get(source_url, [])


def _ai(
    email: str, confidence: float = 0.95, source_url: str = "https://site.com/"
) -> EmailCandidate:
    return EmailCandidate(
        email=email,
        email_type="unknown",
        confidence=confidence,
        source_url=source_url,
        extracted_by="ai",
    )


def test_extract_emails_regex_prefers_mailto_and_dedupes() -> None:
    html = """
    <html><body>
      <a href="mailto:Sales@Site.com?subject=Hi">Write</a>
      <p>Reach sales@site.com or Info@Site.com, phone 0212 555.</p>
      <script>var x = "tracker@site.com";</script>
    </body></html>
    """
    found = extract_emails_regex(html, "https://site.com/contact")
    assert [item.email for item in found] == ["sales@site.com", "info@site.com"]
    assert all(item.confidence == 0.9 for item in found)
    assert all(item.extracted_by == "regex" for item in found)
    assert found[0].email_type == "generic"
    assert found[0].source_url == "https://site.com/contact"


def test_extract_emails_regex_rejects_fused_text_and_junk() -> None:
    html = "<p>info@site.comphone office@site.com.you noreply@site.com jane@site.com</p>"
    found = extract_emails_regex(html, "https://site.com/")
    assert [item.email for item in found] == ["jane@site.com"]
    assert found[0].email_type == "personal"


def test_visible_text_strips_scripts_and_entities() -> None:
    text = visible_text("<p>Hello&nbsp;there</p><style>.x{}</style><script>alert(1)</script>")
    assert "alert" not in text
    assert ".x" not in text
    assert "&nbsp;" not in text
    assert "Hello" in text


def test_find_contact_links_keeps_same_origin_keyword_paths() -> None:
    html = """
    <a href="/contact">Contact</a>
    <a href="/contact#map">Contact Again</a>
    <a href="/partners/list">Partners</a>
    <a href="mailto:team@site.com">Mail</a>
    <a href="https://elsewhere.org/about">Elsewhere</a>
    <a href="/gallery">Gallery</a>
    """
    links = find_contact_links(html, "https://site.com/")
    assert links == ["https://site.com/contact", "https://site.com/partners/list"]


def test_find_contact_links_skips_malformed_hrefs() -> None:
    html = '<a href="http://[broken">Broken</a><a href="/contact">Contact</a>'
    assert find_contact_links(html, "https://site.com/") == ["https://site.com/contact"]


def test_canonicalize_url() -> None:
    assert canonicalize_url("/about#team", "https://site.com/home") == "https://site.com/about"


def test_find_business_name_uses_homepage_title_then_h1() -> None:
    pages = [
        PageResult(url="https://site.com/contact", html="<title>Contact</title>"),
        PageResult(url="https://site.com/", html="<title> Blue Voyage </title>"),
    ]
    assert find_business_name(pages) == "Blue Voyage"
    h1_only = [PageResult(url="https://site.com/", html="<h1>Alpine Trails</h1>")]
    assert find_business_name(h1_only) == "Alpine Trails"
    assert find_business_name([PageResult(url="https://site.com/about", html="<h1>x</h1>")]) == ""


def test_merge_marks_collisions_as_both_with_max_confidence() -> None:
    pattern = extract_emails_regex("<p>info@site.com</p>", "https://site.com/contact")
    merged = merge_candidates(pattern, [_ai("INFO@site.com ", 0.95)])
    assert len(merged) == 1
    assert merged[0].email == "info@site.com"
    assert merged[0].extracted_by == "both"
    assert merged[0].confidence == 0.95
    assert merged[0].email_type == "generic"
    assert merged[0].source_url == "https://site.com/contact"


def test_merge_adds_new_external_and_drops_invalid_ones() -> None:
    pattern = extract_emails_regex("<p>info@site.com</p>", "https://site.com/")
    merged = merge_candidates(
        pattern,
        [_ai("jane@site.com", 0.7), _ai("noreply@site.com"), _ai("made-up@site.comphone")],
    )
    assert [item.email for item in merged] == ["info@site.com", "jane@site.com"]
    assert merged[1].extracted_by == "ai"
    assert merged[1].confidence == 0.7


def test_extract_emails_from_pages_merges_ranks_and_caps() -> None:
    pages = [
        PageResult(url="https://site.com/", html="<p>jane@site.com</p>"),
        PageResult(url="https://site.com/contact", html="<p>info@site.com sales@site.com</p>"),
        PageResult(url="https://site.com/about", html=""),
    ]
    external = FakeExtractor({"https://site.com/contact": [_ai("info@site.com", 0.99)]})
    result = extract_emails_from_pages(
        pages, external=external, max_per_domain=2, text_max_chars=10
    )
    assert [item.email for item in result] == ["info@site.com", "sales@site.com"]
    assert result[0].extracted_by == "both"
    assert result[0].confidence == 0.99
    assert len(external.texts) == 2
    assert all(len(text) <= 10 for text in external.texts)


def test_extract_emails_from_pages_drops_domains_failing_mx() -> None:
    pages = [PageResult(url="https://site.com/", html="<p>info@site.com info@dead-site.net</p>")]
    checked: list[str] = []

    def mx_checker(email: str) -> bool:
        checked.append(email)
        return not email.endswith("@dead-site.net")

    result = extract_emails_from_pages(pages, mx_checker=mx_checker)
    assert [item.email for item in result] == ["info@site.com"]
    assert checked == ["info@site.com", "info@dead-site.net"]


def test_pattern_only_extraction_skips_the_text_pass(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(html: str) -> str:
        raise AssertionError("visible_text must not run without an external extractor")

    monkeypatch.setattr(extraction, "visible_text", fail)
    pages = [PageResult(url="https://site.com/", html="<p>info@site.com</p>")]
    result = extract_emails_from_pages(pages, external=None)
    assert [item.email for item in result] == ["info@site.com"]
