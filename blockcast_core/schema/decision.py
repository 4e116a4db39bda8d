# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Resolution decision contract.

A ResolutionDecision is the frozen output of the multi-signal aggregator.
`confidence` is always the sum of the three signal contributions.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from blockcast_core import SCORING_VERSION
from blockcast_core.schema.serialization import SchemaModel


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"
    INVALID = "INVALID"

    def opposite(self) -> "Outcome":
        if self is Outcome.YES:
            return Outcome.NO
        if self is Outcome.NO:
            return Outcome.YES
        return Outcome.INVALID


class DecisionStage(str, Enum):
    PRELIMINARY = "preliminary"
    FINAL = "final"


class RecommendedAction(str, Enum):
    AUTO_RESOLVE = "AUTO_RESOLVE"
    ADMIN_REVIEW = "ADMIN_REVIEW"
    EXTENDED_REVIEW = "EXTENDED_REVIEW"


class RiskFlag(str, Enum):
    LOW_EVIDENCE_COUNT = "LOW_EVIDENCE_COUNT"
    LANGUAGE_IMBALANCE = "LANGUAGE_IMBALANCE"
    CROSS_LANGUAGE_CONTRADICTION = "CROSS_LANGUAGE_CONTRADICTION"
    LOW_SOURCE_CREDIBILITY = "LOW_SOURCE_CREDIBILITY"
    CATEGORY_SENSITIVE = "CATEGORY_SENSITIVE"
    EXTERNAL_SIGNAL_UNAVAILABLE = "EXTERNAL_SIGNAL_UNAVAILABLE"
    SIGNALS_CONFLICT = "SIGNALS_CONFLICT"
    REQUIRES_CAREFUL_HANDLING = "REQUIRES_CAREFUL_HANDLING"
    NO_BETTING_VOLUME = "NO_BETTING_VOLUME"
    LOW_EXTERNAL_RELIABILITY = "LOW_EXTERNAL_RELIABILITY"
    DISPUTE_COUNTER_EVIDENCE = "DISPUTE_COUNTER_EVIDENCE"


class SignalComponent(SchemaModel):
    """
    One of the three resolution signals.

    `points` is the signal's strength (0..cap) toward `direction`;
    `contribution` is what it adds to the decision's confidence
    (equal to `points` when it agrees with the outcome, else 0).
    """

    model_config = {"extra": "ignore", "frozen": True}

    name: str
    cap: float
    points: float = 0.0
    direction: Outcome | None = None
    contribution: float = 0.0
    available: bool = True
    detail: dict[str, Any] = Field(default_factory=dict)


class ResolutionDecision(SchemaModel):
    model_config = {"extra": "ignore", "frozen": True}

    market_id: str
    stage: DecisionStage
    outcome: Outcome
    confidence: float = Field(ge=0.0, le=100.0)
    betting: SignalComponent
    evidence: SignalComponent
    external: SignalComponent
    risk_flags: list[RiskFlag] = Field(default_factory=list)
    recommended_action: RecommendedAction
    reasoning: str = ""
    decided_at: datetime
    scoring_version: str = SCORING_VERSION

    @property
    def components(self) -> tuple[SignalComponent, SignalComponent, SignalComponent]:
        return (self.betting, self.evidence, self.external)

    def has_flag(self, flag: RiskFlag) -> bool:
        return flag in self.risk_flags
