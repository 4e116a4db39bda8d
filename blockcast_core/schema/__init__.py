# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Schema models for markets, evidence, disputes and decisions.
"""

from blockcast_core.schema.decision import (
    DecisionStage,
    Outcome,
    RecommendedAction,
    ResolutionDecision,
    RiskFlag,
    SignalComponent,
)
from blockcast_core.schema.dispute import (
    AdminPriority,
    AssessmentVerdict,
    AttachmentKind,
    BondRecommendation,
    Dispute,
    DisputeAssessment,
    DisputeAttachment,
    DisputeRequest,
    DisputerHistory,
    DisputeStatus,
    DisputeValidity,
    QualityBreakdown,
    compute_evidence_hash,
)
from blockcast_core.schema.evidence import (
    AnnotatedEvidence,
    ConfidenceLevel,
    ContradictionSeverity,
    CrossLanguageContradiction,
    CulturalEnrichment,
    EvidenceCluster,
    EvidenceRecommendations,
    EvidenceSubmission,
    ExclusionReason,
    LanguageAnalysis,
    LanguageValidation,
    NormalizedEvidenceBatch,
    SourceCredibility,
    SourceTier,
    Stance,
)
from blockcast_core.schema.external import ExternalSignal, ExternalSource
from blockcast_core.schema.market import (
    TERMINAL_STATUSES,
    BettingVolume,
    Market,
    MarketStatus,
    compute_dispute_period_end,
)
from blockcast_core.schema.serialization import IngestModel, SchemaModel, dump_schema, load_schema

__all__ = [
    "AdminPriority",
    "AnnotatedEvidence",
    "AssessmentVerdict",
    "AttachmentKind",
    "BettingVolume",
    "BondRecommendation",
    "ConfidenceLevel",
    "ContradictionSeverity",
    "CrossLanguageContradiction",
    "CulturalEnrichment",
    "DecisionStage",
    "Dispute",
    "DisputeAssessment",
    "DisputeAttachment",
    "DisputeRequest",
    "DisputerHistory",
    "DisputeStatus",
    "DisputeValidity",
    "EvidenceCluster",
    "EvidenceRecommendations",
    "EvidenceSubmission",
    "ExclusionReason",
    "ExternalSignal",
    "ExternalSource",
    "IngestModel",
    "LanguageAnalysis",
    "LanguageValidation",
    "Market",
    "MarketStatus",
    "NormalizedEvidenceBatch",
    "Outcome",
    "QualityBreakdown",
    "RecommendedAction",
    "ResolutionDecision",
    "RiskFlag",
    "SchemaModel",
    "SignalComponent",
    "SourceCredibility",
    "SourceTier",
    "Stance",
    "TERMINAL_STATUSES",
    "compute_dispute_period_end",
    "dump_schema",
    "load_schema",
]
