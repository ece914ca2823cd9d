"""OpenRouter chat-completion client for email extraction."""

from __future__ import annotations

import json
import logging
import re
from threading import Lock
from typing import Any

from requests import Session
from requests.exceptions import RequestException

from .config import PipelineConfig
from .emails import normalize_email
from .models import EmailCandidate, ExternalEmailExtractor

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_LLM_TIMEOUT = 30.0
EMAIL_TYPES = ("generic", "personal", "unknown")

EXTRACT_PROMPT = (
    "Below is text extracted from a webpage. Extract every email address that appears in "
    "this text. Do not invent or assume any email not explicitly present. For each email, "
    "classify type: generic (e.g. info@, contact@, sales@, booking@, reservations@, office@), "
    "personal, or unknown. Assign a confidence score 0.0-1.0. Reply with only valid JSON, no "
    'markdown or explanation: {"emails": [{"email": "...", "type": "generic|personal|unknown", '
    '"confidence": 0.95}]}'
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)```$", re.DOTALL)


def strip_markdown_json(raw: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    text = (raw or "").strip()
    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence or confidence < 0:  # NaN or negative
        return 0.0
    return min(confidence, 1.0)


def parse_llm_emails(content: str, source_url: str) -> list[EmailCandidate]:
    """Turn the model's JSON reply into candidates; anything malformed yields []."""
    try:
        payload = json.loads(strip_markdown_json(content))
    except json.JSONDecodeError:
        return []
    emails = payload.get("emails") if isinstance(payload, dict) else None
    if not isinstance(emails, list):
        return []

    output: list[EmailCandidate] = []
    for item in emails:
        if not isinstance(item, dict):
            continue
        email = normalize_email(item.get("email") or "")
        if not email or "@" not in email:
            continue
        email_type = str(item.get("type") or "unknown").lower()
        if email_type not in EMAIL_TYPES:
            email_type = "unknown"
        output.append(
            EmailCandidate(
                email=email,
                email_type=email_type,
                confidence=_coerce_confidence(item.get("confidence")),
                source_url=source_url,
                extracted_by="ai",
            )
        )
    return output


class OpenRouterExtractor:
    """Best-effort LLM extraction; returns [] on any failure and never raises."""

    def __init__(
        self,
        *,
        session: Session,
        api_key: str | None,
        model: str,
        logger: logging.Logger,
        timeout: float = DEFAULT_LLM_TIMEOUT,
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._logger = logger
        self._calls = 0
        self._lock = Lock()

    @property
    def calls(self) -> int:
        with self._lock:
            return self._calls

    def extract_emails(self, text: str, source_url: str, max_chars: int) -> list[EmailCandidate]:
        if not self._api_key:
            return []
        snippet = str(text or "")[:max_chars]
        if not snippet.strip():
            return []

        with self._lock:
            self._calls += 1
        try:
            response = self._session.post(
                OPENROUTER_URL,
                json={
                    "model": self._model,
                    "messages": [
                        {"role": "user", "content": f"{EXTRACT_PROMPT}\n\n---\n\n{snippet}"}
                    ],
                    "temperature": 0,
                },
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                    "HTTP-Referer": source_url,
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (RequestException, ValueError) as exc:
            self._logger.debug("OpenRouter extraction failed for %s: %s", source_url, exc)
            return []

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            self._logger.debug("OpenRouter returned no content for %s", source_url)
            return []
        if not isinstance(content, str) or not content:
            return []
        return parse_llm_emails(content, source_url)


def build_external_extractor(
    config: PipelineConfig, *, session: Session, logger: logging.Logger
) -> ExternalEmailExtractor | None:
    """Pick the OpenRouter client when enabled and keyed; None means pattern extraction only."""
    if not config.enable_ai_extract:
        return None
    if not config.openrouter_key:
        logger.warning(
            "AI extraction enabled but no OpenRouter key was found; "
            "set OPENROUTER_API_KEY. Continuing with pattern extraction only."
        )
        return None
    return OpenRouterExtractor(
        session=session,
        api_key=config.openrouter_key,
        model=config.openrouter_model,
        logger=logger,
    )
