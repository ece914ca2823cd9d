"""Outbound partner-link discovery (snowball)."""

from __future__ import annotations

from collections.abc import Iterable

from bs4 import BeautifulSoup

from .domains import normalize_domain
from .models import PageResult

# Hostname fragments that suggest a peer business in this vertical.
PEER_DOMAIN_HINTS = (
    "tour",
    "travel",
    "voyage",
    "holiday",
    "excursion",
    "adventure",
    "explore",
    "journey",
    "trek",
    "safari",
    "cruise",
    "expedit",
    "discover",
    "wander",
)

# Anchor text that suggests the link points at a partner.
PEER_TEXT_HINTS = (
    "tour",
    "travel",
    "agency",
    "operator",
    "partner",
    "holiday",
    "excursion",
    "voyage",
    "booking",
    "adventure",
)

SKIP_DOMAINS = frozenset(
    {
        "tripadvisor.com",
        "viator.com",
        "getyourguide.com",
        "booking.com",
        "expedia.com",
        "hotels.com",
        "airbnb.com",
        "kayak.com",
        "skyscanner.com",
        "trivago.com",
        "google.com",
        "facebook.com",
        "instagram.com",
        "twitter.com",
        "youtube.com",
        "linkedin.com",
        "pinterest.com",
        "tiktok.com",
        "wikipedia.org",
        "reddit.com",
        "trustpilot.com",
        "tourradar.com",
        "bookmundi.com",
        "responsibletravel.com",
        "lonelyplanet.com",
        "roughguides.com",
        "fodors.com",
    }
)


def _is_skipped(domain: str, skip_domains: Iterable[str]) -> bool:
    return any(domain == skip or domain.endswith("." + skip) for skip in skip_domains)


def extract_outbound_domains(
    pages: list[PageResult],
    own_domain: str,
    *,
    skip_domains: Iterable[str] = SKIP_DOMAINS,
    domain_hints: Iterable[str] = PEER_DOMAIN_HINTS,
    text_hints: Iterable[str] = PEER_TEXT_HINTS,
) -> list[str]:
    """Hostnames of outbound links that look like peer businesses, first-seen order."""
    own = normalize_domain(own_domain)
    skip = tuple(skip_domains)
    host_hints = tuple(domain_hints)
    anchor_hints = tuple(text_hints)
    found: dict[str, None] = {}

    for page in pages:
        if not page.html:
            continue
        soup = BeautifulSoup(page.html, "html.parser")
        for anchor in soup.find_all("a", href=True):
            href = str(anchor["href"]).strip()
            if not href.lower().startswith(("http://", "https://")):
                continue
            domain = normalize_domain(href)
            if not domain or domain == own or domain in found:
                continue
            if _is_skipped(domain, skip):
                continue
            anchor_text = anchor.get_text(" ", strip=True).lower()
            if any(hint in domain for hint in host_hints) or any(
                hint in anchor_text for hint in anchor_hints
            ):
                found[domain] = None
    return list(found)
