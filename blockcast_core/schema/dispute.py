# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Dispute contracts.

At most one ACTIVE dispute may exist per (market, disputer); the dispute
store enforces that atomically in `create_active`.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from blockcast_core.schema.decision import Outcome
from blockcast_core.schema.serialization import IngestModel, SchemaModel
from blockcast_core.utils.runtime import ensure_utc


class DisputeStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class DisputeValidity(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    UNCERTAIN = "UNCERTAIN"


class AssessmentVerdict(str, Enum):
    LIKELY_VALID = "LIKELY_VALID"
    UNCERTAIN = "UNCERTAIN"
    LIKELY_INVALID = "LIKELY_INVALID"

    def to_validity(self) -> DisputeValidity:
        if self is AssessmentVerdict.LIKELY_VALID:
            return DisputeValidity.VALID
        if self is AssessmentVerdict.LIKELY_INVALID:
            return DisputeValidity.INVALID
        return DisputeValidity.UNCERTAIN


class BondRecommendation(str, Enum):
    RETURN_WITH_REWARD = "RETURN_WITH_REWARD"
    RETURN_ONLY = "RETURN_ONLY"
    SLASH = "SLASH"


class AdminPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AttachmentKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"


def compute_evidence_hash(reason: str, evidence_text: str) -> str:
    """sha256 over the dispute reason and evidence text."""
    payload = f"{reason or ''}\n{evidence_text or ''}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


class DisputeAttachment(SchemaModel):
    cid: str
    kind: AttachmentKind = AttachmentKind.OTHER
    # Authenticity signal from an upstream checker, 0..1, when available.
    authenticity: float | None = Field(default=None, ge=0.0, le=1.0)


class DisputeRequest(IngestModel):
    market_id: str = Field(min_length=1)
    disputer: str = Field(min_length=1)
    reason: str
    evidence_text: str = ""
    evidence_hash: str | None = None
    bond: Decimal
    proposed_outcome: Outcome
    cited_sources: list[str] = Field(default_factory=list)
    evidence_timestamp: datetime | None = None
    attachments: list[DisputeAttachment] = Field(default_factory=list)
    language: str = "en"

    @field_validator("language")
    @classmethod
    def _lang(cls, v: str) -> str:
        return (v or "").strip().lower()

    @field_validator("evidence_timestamp")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class QualityBreakdown(SchemaModel):
    source_credibility: float = 0.0
    temporal_relevance: float = 0.0
    evidence_strength: float = 0.0
    language_quality: float = 0.0
    contradiction_strength: float = 0.0
    disputer_reputation: float = 0.5


class DisputeAssessment(SchemaModel):
    model_config = {"extra": "ignore", "frozen": True}

    dispute_id: str
    quality_score: float = Field(ge=0.0, le=1.0)
    verdict: AssessmentVerdict
    validity: DisputeValidity
    breakdown: QualityBreakdown
    auto_resolve: bool = False
    bond_recommendation: BondRecommendation
    admin_priority: AdminPriority
    flags: list[str] = Field(default_factory=list)
    reasoning: str = ""
    assessed_at: datetime
    adjudicated_by: str | None = None


class Dispute(SchemaModel):
    model_config = {"extra": "ignore", "frozen": True}

    dispute_id: str
    market_id: str
    disputer: str
    reason: str
    evidence_text: str = ""
    evidence_hash: str
    bond: Decimal
    proposed_outcome: Outcome
    cited_sources: list[str] = Field(default_factory=list)
    evidence_timestamp: datetime | None = None
    attachments: list[DisputeAttachment] = Field(default_factory=list)
    language: str = "en"
    status: DisputeStatus = DisputeStatus.ACTIVE
    submitted_at: datetime
    assessment: DisputeAssessment | None = None
    revision: int = 0

    @field_validator("submitted_at", "evidence_timestamp")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def validity(self) -> DisputeValidity | None:
        return self.assessment.validity if self.assessment else None

    @property
    def hash_matches(self) -> bool:
        return self.evidence_hash == compute_evidence_hash(self.reason, self.evidence_text)

    def advance(self, **changes: Any) -> "Dispute":
        changes["revision"] = self.revision + 1
        return self.model_copy(update=changes)


class DisputerHistory(SchemaModel):
    disputer: str
    total_disputes: int = 0
    successful_disputes: int = 0
    account_created_at: datetime | None = None
    last_dispute_at: datetime | None = None

    @field_validator("account_created_at", "last_dispute_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @property
    def success_rate(self) -> float:
        if self.total_disputes <= 0:
            return 0.5
        return max(0.0, min(1.0, self.successful_disputes / self.total_disputes))
