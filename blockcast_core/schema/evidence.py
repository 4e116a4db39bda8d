# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Evidence contracts.

EvidenceSubmission is what users send. AnnotatedEvidence carries everything
the normalizer derives from it. Submissions that fail validation are kept
with an exclusion reason, never dropped silently.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from blockcast_core.schema.serialization import IngestModel, SchemaModel
from blockcast_core.utils.runtime import ensure_utc


class Stance(str, Enum):
    YES = "YES"
    NO = "NO"
    NEUTRAL = "NEUTRAL"


class SourceTier(str, Enum):
    GOVERNMENT = "government"
    ESTABLISHED_MEDIA = "established_media"
    OFFICIAL_BODY = "official_body"
    ACADEMIC = "academic"
    GENERAL_NEWS = "general_news"
    UNKNOWN = "unknown"
    PERSONAL_BLOG = "personal_blog"
    SOCIAL_MEDIA = "social_media"


class ExclusionReason(str, Enum):
    LANGUAGE_MISMATCH = "LANGUAGE_MISMATCH"
    LOW_QUALITY = "LOW_QUALITY"
    EMPTY_CONTENT = "EMPTY_CONTENT"


class ContradictionSeverity(str, Enum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class EvidenceSubmission(IngestModel):
    submission_id: str = Field(min_length=1)
    market_id: str = Field(min_length=1)
    submitter: str = ""
    content: str = ""
    source_links: list[str] = Field(default_factory=list)
    language: str = "en"
    attachment_cid: str | None = None
    position: Stance | None = None
    submitted_at: datetime

    @field_validator("language")
    @classmethod
    def _lang(cls, v: str) -> str:
        return (v or "").strip().lower()

    @field_validator("submitted_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class LanguageValidation(SchemaModel):
    declared: str
    detected: str | None = None
    ratio: float = 0.0
    scores: dict[str, float] = Field(default_factory=dict)
    is_valid: bool = False


class SourceCredibility(SchemaModel):
    source: str
    host: str | None = None
    tier: SourceTier = SourceTier.UNKNOWN
    score: float = 0.5


class CulturalEnrichment(SchemaModel):
    region: str | None = None
    relevance: float = 0.5
    government_citation: bool = False
    requires_careful_handling: bool = False
    local_knowledge_required: bool = False
    religious_context: list[str] = Field(default_factory=list)
    matched_terms: list[str] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)


class AnnotatedEvidence(SchemaModel):
    submission: EvidenceSubmission
    normalized_content: str = ""
    word_count: int = 0
    language: LanguageValidation
    sources: list[SourceCredibility] = Field(default_factory=list)
    avg_credibility: float | None = None
    government_sources: int = 0
    cultural: CulturalEnrichment = Field(default_factory=CulturalEnrichment)
    authenticity: float | None = None
    quality_score: float = 0.0
    stance: Stance = Stance.NEUTRAL
    stance_declared: bool = False
    is_valid: bool = False
    exclusion_reason: ExclusionReason | None = None

    @property
    def submission_id(self) -> str:
        return self.submission.submission_id

    @property
    def hosts(self) -> list[str]:
        return [s.host for s in self.sources if s.host]


class EvidenceCluster(SchemaModel):
    cluster_id: str
    submission_ids: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    hosts: list[str] = Field(default_factory=list)
    stances: dict[str, Stance] = Field(default_factory=dict)


class CrossLanguageContradiction(SchemaModel):
    cluster_id: str
    languages: list[str]
    submission_ids: list[str]
    severity: ContradictionSeverity
    description: str = ""


class LanguageAnalysis(SchemaModel):
    language: str
    submission_count: int = 0
    valid_count: int = 0
    average_quality: float = 0.0
    top_sources: list[str] = Field(default_factory=list)
    quality_distribution: dict[str, int] = Field(default_factory=dict)


class EvidenceRecommendations(SchemaModel):
    requires_human_review: bool = False
    confidence_level: ConfidenceLevel = ConfidenceLevel.LOW
    missing_languages: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class NormalizedEvidenceBatch(SchemaModel):
    market_id: str
    annotated: list[AnnotatedEvidence] = Field(default_factory=list)
    clusters: list[EvidenceCluster] = Field(default_factory=list)
    contradictions: list[CrossLanguageContradiction] = Field(default_factory=list)
    language_summary: dict[str, LanguageAnalysis] = Field(default_factory=dict)
    recommendations: EvidenceRecommendations = Field(default_factory=EvidenceRecommendations)

    @property
    def valid(self) -> list[AnnotatedEvidence]:
        return [a for a in self.annotated if a.is_valid]

    @property
    def filtered_out(self) -> list[AnnotatedEvidence]:
        return [a for a in self.annotated if not a.is_valid]

    @property
    def requires_careful_handling(self) -> bool:
        return any(a.cultural.requires_careful_handling for a in self.valid)

    @property
    def highest_contradiction(self) -> ContradictionSeverity | None:
        if any(c.severity == ContradictionSeverity.HIGH for c in self.contradictions):
            return ContradictionSeverity.HIGH
        if self.contradictions:
            return ContradictionSeverity.MEDIUM
        return None
