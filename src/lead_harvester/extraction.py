"""HTML parsing, pattern-based email extraction and cross-source merging."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import replace
from urllib.parse import unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from .emails import classify_email, is_acceptable, normalize_email, rank_candidates
from .models import EmailCandidate, ExternalEmailExtractor, PageResult

CONTACT_LINK_KEYWORDS = (
    "contact",
    "about",
    "team",
    "partners",
    "affiliates",
    "our-partners",
    "network",
)
PATTERN_CONFIDENCE = 0.9

# The address must end at a non-alphanumeric character or end of input, so
# "info@site.comphone" never yields a truncated "info@site.com".
EMAIL_REGEX = re.compile(r"\b[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}(?=[^a-zA-Z0-9]|$)")

_ESCAPED_ANGLE_RE = re.compile(r"\\?u003[ce]", re.IGNORECASE)
_NAMED_ENTITY_RE = re.compile(r"&[a-z]+;", re.IGNORECASE)
_NUMERIC_ENTITY_RE = re.compile(r"&#\d+;")
_MAILTO_SPLIT_RE = re.compile(r"[?&]")

MxCheckFn = Callable[[str], bool]


def canonicalize_url(href: str, base: str) -> str:
    """Resolve relative URLs and strip hash fragments."""
    return urljoin(base, href).split("#", maxsplit=1)[0]


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def sanitize_text(text: str) -> str:
    """Strip escaped angle brackets and leftover HTML entities."""
    text = _ESCAPED_ANGLE_RE.sub(" ", text)
    text = _NAMED_ENTITY_RE.sub(" ", text)
    return _NUMERIC_ENTITY_RE.sub(" ", text)


def visible_text(html: str) -> str:
    """Return page text without script/style content."""
    soup = _soup(html)
    for tag in soup(["script", "style"]):
        tag.decompose()
    return sanitize_text(soup.get_text(" "))


def find_contact_links(html: str, base_url: str) -> list[str]:
    """Same-origin links whose path mentions contact, about, team or partners."""
    base = urlparse(base_url)
    links: list[str] = []
    seen: set[str] = set()
    for anchor in _soup(html).find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.lower().startswith(("mailto:", "tel:", "javascript:")):
            continue
        try:
            full = canonicalize_url(href, base_url)
            parsed = urlparse(full)
        except ValueError:
            # Malformed hrefs such as "http://[broken" are skipped one at a time.
            continue
        if parsed.scheme != base.scheme or parsed.netloc.lower() != base.netloc.lower():
            continue
        path = parsed.path.lower()
        if any(keyword in path for keyword in CONTACT_LINK_KEYWORDS) and full not in seen:
            seen.add(full)
            links.append(full)
    return links


def find_business_name(pages: list[PageResult]) -> str:
    """Homepage <title>, else its first <h1>, else empty."""
    for page in pages:
        if (urlparse(page.url).path.rstrip("/") or "/") != "/":
            continue
        soup = _soup(page.html)
        if soup.title is not None:
            title = soup.title.get_text(strip=True)
            if title:
                return title
        heading = soup.find("h1")
        if heading is not None:
            return heading.get_text(strip=True)
        return ""
    return ""


def _mailto_addresses(soup: BeautifulSoup) -> Iterable[str]:
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href.lower().startswith("mailto:"):
            continue
        address = _MAILTO_SPLIT_RE.split(href[len("mailto:") :], maxsplit=1)[0]
        address = unquote(address).strip()
        if address:
            yield address


def extract_emails_regex(html: str, source_url: str) -> list[EmailCandidate]:
    """mailto: links first, then addresses in the visible text."""
    soup = _soup(html)
    raw: list[str] = list(_mailto_addresses(soup))
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = sanitize_text(soup.get_text(" "))
    raw.extend(match.group(0) for match in EMAIL_REGEX.finditer(text))

    output: list[EmailCandidate] = []
    seen: set[str] = set()
    for value in raw:
        email = normalize_email(value)
        if email in seen or not is_acceptable(email):
            continue
        seen.add(email)
        output.append(
            EmailCandidate(
                email=email,
                email_type=classify_email(email),
                confidence=PATTERN_CONFIDENCE,
                source_url=source_url,
                extracted_by="regex",
            )
        )
    return output


def merge_candidates(
    pattern: list[EmailCandidate], external: list[EmailCandidate]
) -> list[EmailCandidate]:
    """Pattern results are the base; external results only corroborate or add."""
    merged: dict[str, EmailCandidate] = {}
    for candidate in pattern:
        merged.setdefault(candidate.email, candidate)
    for candidate in external:
        email = normalize_email(candidate.email)
        if not is_acceptable(email):
            continue
        existing = merged.get(email)
        if existing is None:
            merged[email] = replace(candidate, email=email)
            continue
        merged[email] = replace(
            existing,
            extracted_by="both",
            confidence=max(existing.confidence, candidate.confidence),
        )
    return list(merged.values())


def _filter_mx(candidates: list[EmailCandidate], mx_checker: MxCheckFn) -> list[EmailCandidate]:
    verdicts: dict[str, bool] = {}
    kept: list[EmailCandidate] = []
    for candidate in candidates:
        domain = candidate.email.split("@", maxsplit=1)[1]
        if domain not in verdicts:
            verdicts[domain] = mx_checker(candidate.email)
        if verdicts[domain]:
            kept.append(candidate)
    return kept


def extract_emails_from_pages(
    pages: list[PageResult],
    *,
    external: ExternalEmailExtractor | None = None,
    max_per_domain: int = 5,
    text_max_chars: int = 4000,
    mx_checker: MxCheckFn | None = None,
) -> list[EmailCandidate]:
    """Pattern extraction plus optional external extraction, merged, ranked and capped."""
    pattern: list[EmailCandidate] = []
    found_externally: list[EmailCandidate] = []
    for page in pages:
        pattern.extend(extract_emails_regex(page.html, page.url))
        if external is None or not page.html:
            continue
        text = visible_text(page.html)
        if text.strip():
            found_externally.extend(external.extract_emails(text, page.url, text_max_chars))

    merged = merge_candidates(pattern, found_externally)
    if mx_checker is not None:
        merged = _filter_mx(merged, mx_checker)
    return rank_candidates(merged, max_per_domain)
