"""Hostname normalization and regional exclusion."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlparse

EXCLUDED_TLDS = (".com.tr", ".org.tr", ".net.tr", ".gov.tr", ".edu.tr", ".bel.tr")

# Keywords that mark a locally based operator rather than an international partner.
EXCLUDED_DOMAIN_HINTS = (
    "turkey",
    "turkiye",
    "turco",
    "turk",
    "turkish",
    "istanbul",
    "antalya",
    "cappadocia",
    "kapadokya",
    "bodrum",
    "ephesus",
    "efes",
    "pamukkale",
    "goreme",
    "fethiye",
    "marmaris",
    "kusadasi",
    "alanya",
    "kemer",
    "belek",
    "dalyan",
    "oludeniz",
    "tursab",
)

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_domain(value: str) -> str:
    """Return the bare lowercase hostname without ``www.``, or "" if unparsable."""
    if not value or not isinstance(value, str):
        return ""
    candidate = value.strip()
    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"
    try:
        host = urlparse(candidate).hostname or ""
    except ValueError:
        return ""
    host = host.strip().lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def origin_of(value: str) -> str:
    """Return the ``scheme://host`` origin for a domain or URL."""
    candidate = value.strip()
    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"
    parsed = urlparse(candidate)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def is_excluded_domain(
    domain: str,
    *,
    tlds: Iterable[str] = EXCLUDED_TLDS,
    hints: Iterable[str] = EXCLUDED_DOMAIN_HINTS,
) -> bool:
    """Return True when the domain belongs to an excluded region."""
    if not domain:
        return False
    value = domain.lower()
    if any(value.endswith(tld) for tld in tlds):
        return True
    return any(hint in value for hint in hints)


@dataclass(frozen=True)
class DomainFilter:
    """Configured regional exclusion applied at discovery, crawl and snowball time."""

    tlds: tuple[str, ...] = EXCLUDED_TLDS
    hints: tuple[str, ...] = EXCLUDED_DOMAIN_HINTS

    def excludes(self, domain: str) -> bool:
        return is_excluded_domain(domain, tlds=self.tlds, hints=self.hints)
