# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Dispute quality evaluation.

    quality = 0.25 * source_credibility
            + 0.20 * temporal_relevance
            + 0.25 * evidence_strength
            + 0.20 * contradiction_strength
            + 0.10 * disputer_reputation

Language quality is computed and reported but carries no weight.
The evaluator is pure: identical inputs give identical assessments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from blockcast_core.disputes.reputation import reputation_score
from blockcast_core.evidence.clustering import significant_words
from blockcast_core.evidence.language import FUNCTION_WORDS, tokenize
from blockcast_core.evidence.sources import (
    average_credibility,
    is_government_source,
    is_social_media,
    score_sources,
)
from blockcast_core.runtime_config import DisputeConfig
from blockcast_core.schema.decision import ResolutionDecision
from blockcast_core.schema.dispute import (
    AdminPriority,
    AssessmentVerdict,
    AttachmentKind,
    BondRecommendation,
    Dispute,
    DisputeAssessment,
    DisputerHistory,
    QualityBreakdown,
)
from blockcast_core.utils.runtime import hours_between
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityWeights:
    source_credibility: float = 0.25
    temporal_relevance: float = 0.20
    evidence_strength: float = 0.25
    contradiction_strength: float = 0.20
    disputer_reputation: float = 0.10

    def total(self) -> float:
        return (
            self.source_credibility
            + self.temporal_relevance
            + self.evidence_strength
            + self.contradiction_strength
            + self.disputer_reputation
        )


DEFAULT_WEIGHTS = QualityWeights()

# Uncited disputes score like a single social-media link.
NO_SOURCE_CREDIBILITY = 0.3
# Applied when every cited source is social media.
SOCIAL_ONLY_FACTOR = 0.5

ATTACHMENT_AUTHENTICITY = {
    AttachmentKind.PDF: 0.8,
    AttachmentKind.IMAGE: 0.7,
    AttachmentKind.VIDEO: 0.6,
    AttachmentKind.OTHER: 0.7,
}
NO_ATTACHMENT_STRENGTH = 0.0
HASH_MISMATCH_FACTOR = 0.5

CONTRADICTION_BASE = 0.3
CONTRADICTORY_TERMS_BONUS = 0.2
ALTERNATIVE_EVIDENCE_BONUS = 0.15
AUTHORITATIVE_SOURCE_BONUS = 0.15
REASONING_OVERLAP_WEIGHT = 0.2

CONTRADICTORY_TERMS: frozenset[str] = frozenset({
    # en
    "false", "incorrect", "wrong", "mistake", "error", "contradicts", "disputes", "refutes",
    "inaccurate", "misleading",
    # fr
    "faux", "fausse", "erroné", "erronée", "inexact", "contredit", "réfute",
    # sw
    "uongo", "makosa", "kosa", "potofu",
    # ar
    "خطأ", "كاذب", "خاطئ", "مضلل",
})
CONTRADICTORY_PHRASES: tuple[str, ...] = ("si kweli", "not true", "غير صحيح", "pas vrai")

FLAG_EVIDENCE_HASH_MISMATCH = "EVIDENCE_HASH_MISMATCH"
FLAG_NO_SOURCES = "NO_SOURCES"
FLAG_NO_ATTACHMENTS = "NO_ATTACHMENTS"
FLAG_POST_CLOSE_EVIDENCE = "POST_CLOSE_EVIDENCE"

_PUNCT_RE = re.compile(r"[.!?؟]")


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def source_credibility(cited_sources: list[str]) -> float:
    avg = average_credibility(score_sources(cited_sources))
    if avg is None:
        return NO_SOURCE_CREDIBILITY
    if all(is_social_media(s) for s in cited_sources):
        return avg * SOCIAL_ONLY_FACTOR
    return avg


def temporal_relevance(evidence_time: datetime, market_close: datetime, *, decay_hours: int = 168) -> float:
    """1.0 for evidence dated before close, then linear decay to 0 over `decay_hours`."""
    delay = hours_between(market_close, evidence_time)
    if delay <= 0:
        return 1.0
    return _clamp01(1.0 - delay / float(decay_hours))


def evidence_strength(dispute: Dispute) -> float:
    if not dispute.attachments:
        strength = NO_ATTACHMENT_STRENGTH
    else:
        scores = []
        for att in dispute.attachments:
            score = ATTACHMENT_AUTHENTICITY.get(att.kind, ATTACHMENT_AUTHENTICITY[AttachmentKind.OTHER])
            if att.authenticity is not None:
                score = (score + att.authenticity) / 2.0
            scores.append(score)
        strength = sum(scores) / len(scores)
    if not dispute.hash_matches:
        strength *= HASH_MISMATCH_FACTOR
    return _clamp01(strength)


def language_quality(text: str, language: str) -> float:
    """Rough writing-quality heuristic; informational only."""
    words = (text or "").split()
    score = 0.5
    if len(words) >= 50:
        score += 0.15
    elif len(words) >= 20:
        score += 0.1
    if _PUNCT_RE.search(text or ""):
        score += 0.15
    if any(c.isupper() for c in text or "") and text != text.upper():
        score += 0.1
    markers = FUNCTION_WORDS.get(language)
    if markers and any(t in markers for t in tokenize(text)):
        score += 0.1
    return _clamp01(score)


def has_contradictory_language(text: str) -> bool:
    lowered = (text or "").lower()
    if any(t in CONTRADICTORY_TERMS for t in tokenize(lowered)):
        return True
    return any(p in lowered for p in CONTRADICTORY_PHRASES)


def reasoning_overlap(text: str, reasoning: str) -> float:
    """Share of the decision reasoning's significant words the dispute addresses."""
    target = significant_words(reasoning)
    if not target:
        return 0.0
    return len(significant_words(text) & target) / len(target)


def contradiction_strength(dispute: Dispute, decision: ResolutionDecision | None) -> float:
    """
    CONTRADICTION_BASE plus a bonus per contradiction signal found.

    A dispute with no signal at all scores 0.0, not the base.
    """
    text = f"{dispute.reason}\n{dispute.evidence_text}"
    bonus = 0.0
    if has_contradictory_language(text):
        bonus += CONTRADICTORY_TERMS_BONUS
    if dispute.attachments:
        bonus += ALTERNATIVE_EVIDENCE_BONUS
    if any(is_government_source(s) for s in dispute.cited_sources):
        bonus += AUTHORITATIVE_SOURCE_BONUS
    if decision is not None and dispute.proposed_outcome is not decision.outcome:
        bonus += REASONING_OVERLAP_WEIGHT * reasoning_overlap(text, decision.reasoning)
    if bonus <= 0.0:
        return 0.0
    return _clamp01(CONTRADICTION_BASE + bonus)


class DisputeQualityEvaluator:
    def __init__(self, config: DisputeConfig | None = None, weights: QualityWeights = DEFAULT_WEIGHTS):
        self.config = config or DisputeConfig()
        self.weights = weights

    def verdict_for(self, quality: float) -> AssessmentVerdict:
        if quality > self.config.valid_above:
            return AssessmentVerdict.LIKELY_VALID
        if quality > self.config.uncertain_above:
            return AssessmentVerdict.UNCERTAIN
        return AssessmentVerdict.LIKELY_INVALID

    def evaluate(
        self,
        dispute: Dispute,
        decision: ResolutionDecision | None,
        market_close: datetime,
        history: DisputerHistory | None = None,
        *,
        now: datetime | None = None,
    ) -> DisputeAssessment:
        cfg = self.config
        w = self.weights
        at = now or dispute.submitted_at
        evidence_time = dispute.evidence_timestamp or dispute.submitted_at

        breakdown = QualityBreakdown(
            source_credibility=round(source_credibility(dispute.cited_sources), 6),
            temporal_relevance=round(
                temporal_relevance(evidence_time, market_close, decay_hours=cfg.temporal_decay_hours), 6
            ),
            evidence_strength=round(evidence_strength(dispute), 6),
            language_quality=round(language_quality(dispute.evidence_text or dispute.reason, dispute.language), 6),
            contradiction_strength=round(contradiction_strength(dispute, decision), 6),
            disputer_reputation=reputation_score(history, at=at),
        )

        weighted = (
            breakdown.source_credibility * w.source_credibility
            + breakdown.temporal_relevance * w.temporal_relevance
            + breakdown.evidence_strength * w.evidence_strength
            + breakdown.contradiction_strength * w.contradiction_strength
            + breakdown.disputer_reputation * w.disputer_reputation
        )
        quality = round(_clamp01(weighted / w.total()), 6)
        verdict = self.verdict_for(quality)

        if verdict is AssessmentVerdict.LIKELY_VALID:
            bond_rec, priority = BondRecommendation.RETURN_WITH_REWARD, AdminPriority.HIGH
        elif verdict is AssessmentVerdict.UNCERTAIN:
            bond_rec, priority = BondRecommendation.RETURN_ONLY, AdminPriority.MEDIUM
        else:
            bond_rec, priority = BondRecommendation.SLASH, AdminPriority.LOW

        flags: list[str] = []
        if not dispute.hash_matches:
            flags.append(FLAG_EVIDENCE_HASH_MISMATCH)
        if not dispute.cited_sources:
            flags.append(FLAG_NO_SOURCES)
        if not dispute.attachments:
            flags.append(FLAG_NO_ATTACHMENTS)
        if breakdown.temporal_relevance < 1.0:
            flags.append(FLAG_POST_CLOSE_EVIDENCE)

        assessment = DisputeAssessment(
            dispute_id=dispute.dispute_id,
            quality_score=quality,
            verdict=verdict,
            validity=verdict.to_validity(),
            breakdown=breakdown,
            auto_resolve=quality > cfg.auto_resolve_above or quality < cfg.auto_resolve_below,
            bond_recommendation=bond_rec,
            admin_priority=priority,
            flags=flags,
            reasoning=self._reasoning(dispute, breakdown),
            assessed_at=at,
        )

        Trace.event(
            "dispute.assessed",
            {
                "dispute_id": dispute.dispute_id,
                "market_id": dispute.market_id,
                "quality": quality,
                "verdict": verdict.value,
                "auto_resolve": assessment.auto_resolve,
                "flags": flags,
            },
        )
        logger.debug(
            "Dispute %s assessed: quality=%.3f verdict=%s priority=%s",
            dispute.dispute_id,
            quality,
            verdict.value,
            priority.value,
        )
        return assessment

    @staticmethod
    def _reasoning(dispute: Dispute, b: QualityBreakdown) -> str:
        timing = "predates" if b.temporal_relevance >= 1.0 else "postdates"
        lines = [
            f"Source credibility: {b.source_credibility * 100:.0f}% ({len(dispute.cited_sources)} sources)",
            f"Temporal relevance: {b.temporal_relevance * 100:.0f}% (evidence {timing} market close)",
            f"Evidence authenticity: {b.evidence_strength * 100:.0f}% ({len(dispute.attachments)} attachments)",
            f"Language quality: {b.language_quality * 100:.0f}% ({dispute.language})",
            f"Contradiction strength: {b.contradiction_strength * 100:.0f}% vs resolution",
            f"Disputer reputation: {b.disputer_reputation * 100:.0f}%",
        ]
        return "; ".join(lines)
