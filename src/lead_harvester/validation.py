"""Validation and runtime guardrails."""

from __future__ import annotations

import random
import socket
import time
from collections.abc import Sequence
from pathlib import Path
from urllib.parse import urlparse

import dns.exception
import dns.resolver

from .errors import ConfigError


def polite_sleep(min_delay: float, max_delay: float) -> None:
    """Sleep within configured bounds."""
    time.sleep(random.uniform(min_delay, max_delay))


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def load_lines_from_file(path: str) -> list[str]:
    """Load non-empty, non-comment lines from a UTF-8 text file."""
    content = Path(path).read_text(encoding="utf-8")
    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def validate_runtime_constraints(
    *,
    workers: int,
    page_workers: int,
    request_timeout: float,
    retries: int,
    backoff_delays: Sequence[float],
    max_emails_per_domain: int,
    ai_text_max_chars: int,
    snowball_max_depth: int,
    snowball_max_per_source: int,
    inter_request_delay: float,
) -> None:
    """Validate runtime configuration and raise ConfigError on invalid values."""
    if workers < 1:
        raise ConfigError("--workers must be >= 1.")
    if page_workers < 1:
        raise ConfigError("page workers must be >= 1.")
    if request_timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if retries < 1:
        raise ConfigError("--retries must be >= 1.")
    if any(delay < 0 for delay in backoff_delays):
        raise ConfigError("retry delays must be >= 0.")
    if max_emails_per_domain < 1:
        raise ConfigError("--max-emails must be >= 1.")
    if ai_text_max_chars < 1:
        raise ConfigError("aiTextMaxChars must be >= 1.")
    if snowball_max_depth < 0:
        raise ConfigError("--snowball-max-depth must be >= 0.")
    if snowball_max_per_source < 0:
        raise ConfigError("maxNewDomainsPerSource must be >= 0.")
    if inter_request_delay < 0:
        raise ConfigError("delayBetweenRequestsMs must be >= 0.")


def mx_check(email: str) -> bool:
    """Return True when target domain has MX or A record."""
    try:
        domain = email.split("@", maxsplit=1)[1]
    except IndexError:
        return False
    try:
        answers = dns.resolver.resolve(domain, "MX", lifetime=8)
        return bool(answers)
    except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers):
        try:
            socket.gethostbyname(domain)
            return True
        except OSError:
            return False
    except dns.exception.DNSException:
        return False
