# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Evidence quality score.

Deterministic weighted combination clamped to [0, 1]:

    0.5
    + 0.15 if the language check passed, else - 0.10
    + 0.4 * (avg_credibility - 0.5), or - 0.05 when nothing is cited
    + 0.05 per government source (at most 2)
    + 0.1 * cultural relevance
    + 0.1 for detailed (> 100 words), - 0.1 for brief (< 20 words)
    - 0.15 when every cited source is social media

Government sources sit at the top credibility tier, so citing one more
can only raise the average and never triggers a penalty.
"""

from __future__ import annotations

from dataclasses import dataclass

from blockcast_core.schema.evidence import CulturalEnrichment, SourceCredibility, SourceTier

BASE_SCORE = 0.5
LANGUAGE_VALID_BONUS = 0.15
LANGUAGE_INVALID_PENALTY = 0.10
CREDIBILITY_WEIGHT = 0.4
NO_SOURCE_PENALTY = 0.05
GOVERNMENT_BONUS = 0.05
GOVERNMENT_BONUS_MAX_SOURCES = 2
CULTURAL_WEIGHT = 0.1
DETAIL_BONUS = 0.1
BRIEF_PENALTY = 0.1
SOCIAL_ONLY_PENALTY = 0.15


@dataclass(frozen=True)
class QualityResult:
    score: float
    factors: tuple[str, ...]


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def evidence_quality(
    *,
    language_valid: bool,
    sources: list[SourceCredibility],
    cultural: CulturalEnrichment,
    word_count: int,
    detail_words: int = 100,
    brief_words: int = 20,
) -> QualityResult:
    score = BASE_SCORE
    factors: list[str] = []

    if language_valid:
        score += LANGUAGE_VALID_BONUS
        factors.append("language_valid")
    else:
        score -= LANGUAGE_INVALID_PENALTY
        factors.append("language_questionable")

    if sources:
        avg = sum(s.score for s in sources) / len(sources)
        score += CREDIBILITY_WEIGHT * (avg - 0.5)
        factors.append(f"avg_credibility={avg:.3f}")
    else:
        score -= NO_SOURCE_PENALTY
        factors.append("no_sources")

    gov = sum(1 for s in sources if s.tier == SourceTier.GOVERNMENT)
    if gov:
        score += GOVERNMENT_BONUS * min(gov, GOVERNMENT_BONUS_MAX_SOURCES)
        factors.append(f"government_sources={gov}")

    score += CULTURAL_WEIGHT * cultural.relevance

    if word_count > detail_words:
        score += DETAIL_BONUS
        factors.append("detailed")
    elif word_count < brief_words:
        score -= BRIEF_PENALTY
        factors.append("brief")

    if sources and all(s.tier == SourceTier.SOCIAL_MEDIA for s in sources):
        score -= SOCIAL_ONLY_PENALTY
        factors.append("social_media_only")

    # Round to keep scores stable across platforms before threshold checks.
    return QualityResult(score=round(_clamp01(score), 6), factors=tuple(factors))
