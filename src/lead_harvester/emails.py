"""Email address validation, classification and ranking rules."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import EmailCandidate

# Prefixes worth writing to for B2B outreach.
GENERIC_PREFIXES = (
    "info",
    "contact",
    "sales",
    "office",
    "hello",
    "support",
    "enquiry",
    "enquiries",
    "bookings",
    "booking",
    "reservations",
    "reservation",
)

# Prefixes that are never outreach targets; dropped entirely.
JUNK_PREFIXES = (
    "privacy",
    "dpo",
    "compliance",
    "legal",
    "abuse",
    "noreply",
    "no-reply",
    "do-not-reply",
    "donotreply",
    "postmaster",
    "mailer-daemon",
    "webmaster",
    "hostmaster",
    "root",
    "admin",
)

# Placeholder, regulator and infrastructure domains; addresses there are noise.
JUNK_DOMAINS = (
    "sentry.io",
    "inforegulator.org.za",
    "example.com",
    "company.com",
    "siteadresiniz.com",
    "yourdomain.com",
    "domain.com",
    "email.com",
    "test.com",
    "localhost",
    "ftc.gov",
    "adr.org",
    "hs01.kep.tr",
    "ustoa.com",
    "abta.co.uk",
    "caa.co.uk",
    "sedgwick.com",
    "verasafe.com",
    "iyzico.com",
    "dvm.legal",
)

PRIORITY_ORDER = (
    "info",
    "contact",
    "sales",
    "booking",
    "bookings",
    "reservations",
    "office",
    "hello",
    "enquiry",
    "enquiries",
    "support",
)
GENERIC_UNLISTED_PRIORITY = 50
PERSONAL_PRIORITY = 100

COMMON_TLD_PREFIXES = ("com", "net", "org", "co", "travel", "tours", "info")
COUNTRY_CODE_TLDS = frozenset(
    {
        "tr", "uk", "au", "br", "cn", "de", "fr", "jp", "kr", "nl", "ru", "za",
        "in", "my", "sg", "nz", "mx", "ar", "il", "be", "at", "ch", "cz", "dk",
        "es", "fi", "gr", "hu", "ie", "it", "no", "pl", "pt", "ro", "se", "ua",
    }
)
MIN_TLD_LEN = 2
MAX_TLD_LEN = 12
MAX_DOMAIN_LEN = 253

_DIGITS_THEN_LETTER_RE = re.compile(r"^\d+[a-z]", re.IGNORECASE)
_ENTITY_ESCAPE_RE = re.compile(r"^u[0-9a-f]{4}", re.IGNORECASE)
_LEADING_PUNCT_RE = re.compile(r"^[._%+-]")
_PHONE_RUN_RE = re.compile(r"\+?\d{2,}[-.]?\d{2,}")
_ALPHA_RE = re.compile(r"^[a-z]+$", re.IGNORECASE)
_SUSPECT_SUFFIX_RE = re.compile(r"^(com|net|org|co|travel|tours)\.[a-z]{1,4}$", re.IGNORECASE)


def normalize_email(value: str) -> str:
    """Lowercase and strip surrounding whitespace."""
    return str(value).strip().lower()


def local_part(email: str) -> str:
    return email.split("@", maxsplit=1)[0]


def _matches_prefix(local: str, prefixes: Iterable[str]) -> bool:
    return any(
        local == prefix or local.startswith(prefix + ".") or local.startswith(prefix + "-")
        for prefix in prefixes
    )


def is_valid_email(email: str) -> bool:
    """Return False for scraped garbage: phone fragments, fused text, placeholder domains."""
    if email.count("@") != 1:
        return False
    local, domain = email.split("@")
    if not local or not domain:
        return False
    if _DIGITS_THEN_LETTER_RE.match(local):
        return False
    if _ENTITY_ESCAPE_RE.match(local):
        return False
    if _LEADING_PUNCT_RE.match(local):
        return False
    if _PHONE_RUN_RE.search(local):
        return False

    if "." not in domain or len(domain) > MAX_DOMAIN_LEN:
        return False
    labels = domain.split(".")
    tld = labels[-1]
    if not (MIN_TLD_LEN <= len(tld) <= MAX_TLD_LEN) or not _ALPHA_RE.match(tld):
        return False
    # "comphone", "comwebsite": a real TLD with page text fused on.
    if len(tld) > 6 and any(
        tld.startswith(prefix) and len(tld) > len(prefix) for prefix in COMMON_TLD_PREFIXES
    ):
        return False
    # "site.com.you" is fused text; "site.com.tr" is a genuine country-coded domain.
    if len(labels) >= 3 and len(tld) <= 4:
        combined = f"{labels[-2]}.{tld}"
        if _SUSPECT_SUFFIX_RE.match(combined) and tld.lower() not in COUNTRY_CODE_TLDS:
            return False
    lowered = domain.lower()
    if any(lowered == junk or lowered.endswith("." + junk) for junk in JUNK_DOMAINS):
        return False
    return True


def is_junk_prefix(email: str) -> bool:
    return _matches_prefix(local_part(email), JUNK_PREFIXES)


def is_generic(email: str) -> bool:
    return _matches_prefix(local_part(email), GENERIC_PREFIXES)


def classify_email(email: str) -> str:
    return "generic" if is_generic(email) else "personal"


def is_acceptable(email: str) -> bool:
    """Validation plus the junk-prefix filter; applies to every extraction source."""
    return is_valid_email(email) and not is_junk_prefix(email)


def email_priority(candidate: EmailCandidate) -> int:
    """Lower is better: listed prefix by exact then prefix match, then generic, then personal."""
    local = local_part(candidate.email)
    if local in PRIORITY_ORDER:
        return PRIORITY_ORDER.index(local)
    for index, prefix in enumerate(PRIORITY_ORDER):
        if local.startswith(prefix):
            return index
    if candidate.email_type == "generic":
        return GENERIC_UNLISTED_PRIORITY
    return PERSONAL_PRIORITY


def rank_candidates(
    candidates: list[EmailCandidate], max_per_domain: int = 5
) -> list[EmailCandidate]:
    """Order by outreach priority (stable within a bucket) and keep the best ``max_per_domain``."""
    return sorted(candidates, key=email_priority)[:max_per_domain]
