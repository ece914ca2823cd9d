"""Custom exceptions for the lead harvester."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base exception for this project."""


class ConfigError(HarvesterError):
    """Raised when runtime configuration or input is invalid."""


class FetchError(HarvesterError):
    """Raised when a URL could not be fetched after all retries."""

    def __init__(self, url: str, last_cause: BaseException | str | None = None) -> None:
        self.url = url
        self.last_cause = last_cause
        message = f"Failed to fetch {url}"
        if last_cause is not None:
            message = f"{message}: {last_cause}"
        super().__init__(message)
