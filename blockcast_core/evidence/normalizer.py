# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Any, Iterable

from blockcast_core.evidence.clustering import cluster_evidence
from blockcast_core.evidence.cultural import CulturalContext, enrich
from blockcast_core.evidence.language import validate_language
from blockcast_core.evidence.quality import evidence_quality
from blockcast_core.evidence.sources import average_credibility, score_sources
from blockcast_core.evidence.stance import detect_stance
from blockcast_core.runtime_config import EvidenceConfig
from blockcast_core.schema.evidence import (
    AnnotatedEvidence,
    ConfidenceLevel,
    EvidenceRecommendations,
    EvidenceSubmission,
    ExclusionReason,
    LanguageAnalysis,
    LanguageValidation,
    NormalizedEvidenceBatch,
    SourceTier,
    Stance,
)
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)

DEFAULT_ATTACHMENT_AUTHENTICITY = 0.7


def normalize_content(text: str) -> str:
    """NFC, strip control characters and collapse whitespace."""
    if not text:
        return ""
    s = unicodedata.normalize("NFC", text)
    s = "".join(ch for ch in s if ch in "\n\t" or unicodedata.category(ch)[0] != "C")
    s = re.sub(r"\s+", " ", s)
    return s.strip()


class EvidenceNormalizer:
    """
    Turns raw evidence submissions into an annotated, clustered batch.

    Pure per submission: the same inputs always produce the same batch.
    Submissions that fail validation stay in the batch with a reason.
    """

    def __init__(self, config: EvidenceConfig | None = None):
        self.config = config or EvidenceConfig()

    def annotate(
        self,
        submission: EvidenceSubmission,
        context: CulturalContext | None = None,
    ) -> AnnotatedEvidence:
        cfg = self.config
        content = normalize_content(submission.content)

        if not content:
            return AnnotatedEvidence(
                submission=submission,
                normalized_content="",
                word_count=0,
                language=LanguageValidation(declared=submission.language),
                quality_score=0.0,
                stance=submission.position or Stance.NEUTRAL,
                stance_declared=submission.position is not None,
                is_valid=False,
                exclusion_reason=ExclusionReason.EMPTY_CONTENT,
            )

        language = validate_language(
            content,
            submission.language,
            min_ratio=cfg.min_language_ratio,
            submission_id=submission.submission_id,
        )
        sources = score_sources(submission.source_links)
        cultural = enrich(content, submission.source_links, context, language=submission.language)
        word_count = len(content.split())
        quality = evidence_quality(
            language_valid=language.is_valid,
            sources=sources,
            cultural=cultural,
            word_count=word_count,
            detail_words=cfg.detail_words,
            brief_words=cfg.brief_words,
        )

        if submission.position is not None:
            stance, declared = submission.position, True
        else:
            stance, declared = detect_stance(content), False

        exclusion: ExclusionReason | None = None
        if not language.is_valid:
            exclusion = ExclusionReason.LANGUAGE_MISMATCH
        elif quality.score < cfg.min_quality:
            exclusion = ExclusionReason.LOW_QUALITY

        return AnnotatedEvidence(
            submission=submission,
            normalized_content=content,
            word_count=word_count,
            language=language,
            sources=sources,
            avg_credibility=average_credibility(sources),
            government_sources=sum(1 for s in sources if s.tier == SourceTier.GOVERNMENT),
            cultural=cultural,
            authenticity=DEFAULT_ATTACHMENT_AUTHENTICITY if submission.attachment_cid else None,
            quality_score=quality.score,
            stance=stance,
            stance_declared=declared,
            is_valid=exclusion is None,
            exclusion_reason=exclusion,
        )

    def normalize(
        self,
        submissions: Iterable[EvidenceSubmission | dict[str, Any]],
        cultural_context: CulturalContext | None = None,
        *,
        market_id: str | None = None,
        target_languages: list[str] | None = None,
    ) -> NormalizedEvidenceBatch:
        parsed = [EvidenceSubmission.parse(s) for s in submissions]
        parsed.sort(key=lambda s: s.submission_id)
        mid = market_id or (parsed[0].market_id if parsed else "")

        annotated = [self.annotate(s, cultural_context) for s in parsed]
        valid = [a for a in annotated if a.is_valid]

        clusters, contradictions = cluster_evidence(
            valid,
            similarity_threshold=self.config.cluster_similarity,
            min_word_len=self.config.significant_word_min_len,
        )
        summary = self._language_summary(annotated, target_languages)
        recommendations = self._recommendations(annotated, valid, contradictions, summary, target_languages)

        batch = NormalizedEvidenceBatch(
            market_id=mid,
            annotated=annotated,
            clusters=clusters,
            contradictions=contradictions,
            language_summary=summary,
            recommendations=recommendations,
        )

        excluded: dict[str, int] = {}
        for a in batch.filtered_out:
            key = a.exclusion_reason.value if a.exclusion_reason else "UNKNOWN"
            excluded[key] = excluded.get(key, 0) + 1

        Trace.event(
            "evidence.normalized",
            {
                "market_id": mid,
                "total": len(annotated),
                "valid": len(valid),
                "excluded": excluded,
                "clusters": len(clusters),
                "contradictions": len(contradictions),
            },
        )
        logger.debug(
            "Normalized %d submissions for market %s: valid=%d excluded=%s",
            len(annotated),
            mid,
            len(valid),
            excluded,
        )
        return batch

    @staticmethod
    def _language_summary(
        annotated: list[AnnotatedEvidence],
        target_languages: list[str] | None,
    ) -> dict[str, LanguageAnalysis]:
        langs: list[str] = list(target_languages or [])
        for a in annotated:
            if a.submission.language not in langs:
                langs.append(a.submission.language)

        summary: dict[str, LanguageAnalysis] = {}
        for lang in langs:
            items = [a for a in annotated if a.submission.language == lang]
            valid = [a for a in items if a.is_valid]
            avg = sum(a.quality_score for a in valid) / len(valid) if valid else 0.0
            top: list[str] = []
            for a in valid:
                for h in a.hosts:
                    if h not in top:
                        top.append(h)
            summary[lang] = LanguageAnalysis(
                language=lang,
                submission_count=len(items),
                valid_count=len(valid),
                average_quality=round(avg, 6),
                top_sources=top[:5],
                quality_distribution={
                    "high": sum(1 for a in valid if a.quality_score > 0.7),
                    "medium": sum(1 for a in valid if 0.5 <= a.quality_score <= 0.7),
                    "low": sum(1 for a in valid if a.quality_score < 0.5),
                },
            )
        return summary

    @staticmethod
    def _recommendations(
        annotated: list[AnnotatedEvidence],
        valid: list[AnnotatedEvidence],
        contradictions,
        summary: dict[str, LanguageAnalysis],
        target_languages: list[str] | None,
    ) -> EvidenceRecommendations:
        sensitive = any(a.cultural.requires_careful_handling for a in valid)
        n = len(valid)
        if n < 3:
            level = ConfidenceLevel.LOW
        elif n < 8:
            level = ConfidenceLevel.MEDIUM
        else:
            level = ConfidenceLevel.HIGH

        missing = [lang for lang in (target_languages or []) if summary.get(lang) is None or summary[lang].valid_count == 0]

        notes: list[str] = []
        if contradictions:
            notes.append(f"{len(contradictions)} cross-language contradiction(s)")
        if sensitive:
            notes.append("culturally sensitive evidence present")
        if len(annotated) - n > n:
            notes.append("more submissions excluded than accepted")

        return EvidenceRecommendations(
            requires_human_review=bool(contradictions) or sensitive,
            confidence_level=level,
            missing_languages=missing,
            notes=notes,
        )
