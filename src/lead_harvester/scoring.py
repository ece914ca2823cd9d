"""Topical relevance scoring."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

CORE_REGION_TERMS = ("turkey", "türkiye")
CORE_REGION_LABEL = "Turkey/Türkiye"
DESTINATION_TERMS = ("antalya", "istanbul", "cappadocia", "pamukkale", "ephesus", "bodrum")

CORE_REGION_POINTS = 2
DESTINATION_POINTS = 1
UNRELATED_PENALTY = 2


@dataclass(frozen=True)
class RelevanceResult:
    score: int
    matched_terms: list[str] = field(default_factory=list)


def score_relevance(
    text: str,
    unrelated_keywords: Iterable[str] = (),
    *,
    core_terms: Iterable[str] = CORE_REGION_TERMS,
    destination_terms: Iterable[str] = DESTINATION_TERMS,
) -> RelevanceResult:
    """+2 for any core-region term, +1 per destination term, -2 for any unrelated keyword."""
    lowered = (text or "").lower()
    score = 0
    matched: list[str] = []

    if any(term.lower() in lowered for term in core_terms):
        score += CORE_REGION_POINTS
        matched.append(CORE_REGION_LABEL)
    for term in dict.fromkeys(term.lower() for term in destination_terms):
        if term in lowered:
            score += DESTINATION_POINTS
            matched.append(term)
    blocklist = [keyword.lower() for keyword in unrelated_keywords if keyword]
    if any(keyword in lowered for keyword in blocklist):
        score -= UNRELATED_PENALTY
        matched.append("unrelated")

    return RelevanceResult(score=score, matched_terms=matched)
