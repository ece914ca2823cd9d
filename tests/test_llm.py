import json
import logging
from typing import Any

import requests

from lead_harvester.config import PipelineConfig
from lead_harvester.llm import (
    OpenRouterExtractor,
    build_external_extractor,
    parse_llm_emails,
    strip_markdown_json,
)


class FakeResponse:
    def __init__(self, *, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self._response = response
        self.posts: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posts.append({"url": url, **kwargs})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _completion(content: str) -> dict[str, Any]:
    return {"choices": [{"message": {"content": content}}]}


def _extractor(session: FakeSession, api_key: str | None = "key") -> OpenRouterExtractor:
    return OpenRouterExtractor(
        session=session,  # type: ignore[arg-type]
        api_key=api_key,
        model="some/model",
        logger=logging.getLogger("test"),
    )


def test_strip_markdown_json() -> None:
    assert strip_markdown_json('```json\n{"emails": []}\n```') == '{"emails": []}'
    assert strip_markdown_json('  {"emails": []} ') == '{"emails": []}'


def test_parse_llm_emails_normalizes_entries() -> None:
    content = json.dumps(
        {
            "emails": [
                {"email": " Info@Site.com ", "type": "generic", "confidence": 0.97},
                {"email": "jane@site.com", "type": "boss", "confidence": 7},
                {"email": "odd@site.com", "confidence": "n/a"},
                {"email": "not-an-email"},
                "garbage",
            ]
        }
    )
    result = parse_llm_emails(content, "https://site.com/contact")
    assert [(item.email, item.email_type, item.confidence) for item in result] == [
        ("info@site.com", "generic", 0.97),
        ("jane@site.com", "unknown", 1.0),
        ("odd@site.com", "unknown", 0.0),
    ]
    assert all(item.extracted_by == "ai" for item in result)
    assert all(item.source_url == "https://site.com/contact" for item in result)


def test_parse_llm_emails_malformed_payloads() -> None:
    assert parse_llm_emails("not json", "https://site.com/") == []
    assert parse_llm_emails('{"emails": "nope"}', "https://site.com/") == []
    assert parse_llm_emails("[]", "https://site.com/") == []


def test_extractor_posts_truncated_text_and_counts_calls() -> None:
    content = (
        '```json\n{"emails": '
        '[{"email": "sales@site.com", "type": "generic", "confidence": 0.9}]}\n```'
    )
    session = FakeSession(FakeResponse(payload=_completion(content)))
    extractor = _extractor(session)

    result = extractor.extract_emails("x" * 50, "https://site.com/", max_chars=20)

    assert [item.email for item in result] == ["sales@site.com"]
    assert extractor.calls == 1
    body = session.posts[0]["json"]
    assert body["model"] == "some/model"
    assert body["temperature"] == 0
    assert body["messages"][0]["content"].endswith("x" * 20)
    assert "x" * 21 not in body["messages"][0]["content"]


def test_extractor_never_raises() -> None:
    failures = [
        FakeSession(requests.ConnectionError("down")),
        FakeSession(FakeResponse(status_code=429)),
        FakeSession(FakeResponse(payload=ValueError("bad json"))),
        FakeSession(FakeResponse(payload={"choices": []})),
        FakeSession(FakeResponse(payload=_completion("I found no emails."))),
    ]
    for session in failures:
        assert _extractor(session).extract_emails("info@site.com", "https://site.com/", 100) == []


def test_extractor_skips_without_key_or_text() -> None:
    session = FakeSession(FakeResponse(payload=_completion('{"emails": []}')))
    assert _extractor(session, api_key=None).extract_emails("text", "https://site.com/", 100) == []
    assert _extractor(session).extract_emails("   ", "https://site.com/", 100) == []
    assert session.posts == []


def test_build_external_extractor_selection() -> None:
    session = FakeSession(FakeResponse(payload={}))
    logger = logging.getLogger("test")
    disabled = PipelineConfig(enable_ai_extract=False, openrouter_key="key")
    keyless = PipelineConfig(openrouter_key=None)
    keyed = PipelineConfig(openrouter_key="key")

    build = build_external_extractor
    assert build(disabled, session=session, logger=logger) is None  # type: ignore[arg-type]
    assert build(keyless, session=session, logger=logger) is None  # type: ignore[arg-type]
    assert isinstance(
        build_external_extractor(keyed, session=session, logger=logger),  # type: ignore[arg-type]
        OpenRouterExtractor,
    )
