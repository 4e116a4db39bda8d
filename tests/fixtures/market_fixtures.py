# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors

"""Shared synthetic markets, evidence and disputes for engine tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from blockcast_core.adapters.memory import (
    InMemoryAuditSink,
    InMemoryBondLedger,
    InMemoryDisputeStore,
    InMemoryEvidenceStore,
    InMemoryMarketStore,
    InMemoryReputationSource,
    InMemoryVolumeSource,
)
from blockcast_core.config import BlockcastConfig
from blockcast_core.engine import BlockcastEngine
from blockcast_core.schema.decision import (
    DecisionStage,
    Outcome,
    RecommendedAction,
    ResolutionDecision,
    SignalComponent,
)
from blockcast_core.schema.dispute import (
    AdminPriority,
    AssessmentVerdict,
    BondRecommendation,
    Dispute,
    DisputeAssessment,
    DisputeStatus,
    DisputeValidity,
    QualityBreakdown,
    compute_evidence_hash,
)
from blockcast_core.schema.evidence import EvidenceSubmission, Stance
from blockcast_core.schema.external import ExternalSignal, ExternalSource
from blockcast_core.schema.market import BettingVolume, Market, MarketStatus
from blockcast_core.settlement.types import MoneyCAST
from blockcast_core.verification.feed import FixtureVerificationFeed

MARKET_ID = "mkt-1"
END_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
WINDOW = timedelta(hours=168)

EN_YES_TEXT = (
    "The national team won the final match and the trophy was presented "
    "to the captain in the stadium."
)
EN_NO_TEXT = (
    "The final match was abandoned and the trophy was not presented "
    "to anyone in the stadium."
)
FR_NO_TEXT = (
    "Le match a été annulé et la finale de la coupe n'a pas eu lieu dans le stade."
)

ACADEMIC_LINK = "https://research.uonbi.ac.ke/reports/final-match"
GOV_LINK = "https://www.sports.go.ke/results/final-match"
SOCIAL_LINK = "https://twitter.com/fan_account/status/1234"

DECISION_REASONING = "Outcome YES with confidence 92.0/100."

_VERDICTS = {
    DisputeValidity.VALID: (AssessmentVerdict.LIKELY_VALID, BondRecommendation.RETURN_WITH_REWARD, AdminPriority.HIGH),
    DisputeValidity.UNCERTAIN: (AssessmentVerdict.UNCERTAIN, BondRecommendation.RETURN_ONLY, AdminPriority.MEDIUM),
    DisputeValidity.INVALID: (AssessmentVerdict.LIKELY_INVALID, BondRecommendation.SLASH, AdminPriority.LOW),
}


def make_market(market_id: str = MARKET_ID, **overrides: Any) -> Market:
    payload: dict[str, Any] = {
        "market_id": market_id,
        "claim": "Will the national team win the continental final?",
        "category": "sports",
        "creator": "0xcreator",
        "end_time": END_TIME,
    }
    payload.update(overrides)
    return Market(**payload)


def make_submission(
    index: int,
    *,
    market_id: str = MARKET_ID,
    content: str = EN_YES_TEXT,
    language: str = "en",
    sources: list[str] | None = None,
    position: Stance | None = Stance.YES,
    attachment_cid: str | None = None,
) -> EvidenceSubmission:
    return EvidenceSubmission(
        submission_id=f"sub-{index:03d}",
        market_id=market_id,
        submitter=f"0xuser{index}",
        content=content,
        source_links=[ACADEMIC_LINK] if sources is None else sources,
        language=language,
        attachment_cid=attachment_cid,
        position=position,
        submitted_at=END_TIME - timedelta(hours=index + 1),
    )


def make_volume(yes: str, no: str, market_id: str = MARKET_ID) -> BettingVolume:
    return BettingVolume(market_id=market_id, yes_volume=Decimal(yes), no_volume=Decimal(no))


def make_external(
    market_id: str = MARKET_ID,
    *,
    supports: bool | None = True,
    relevance: float = 0.9,
    count: int = 3,
    reliability: float | None = 0.9,
) -> ExternalSignal:
    return ExternalSignal(
        market_id=market_id,
        sources=[
            ExternalSource(
                url=f"https://source{i}.example.org/articles/final",
                title=f"Report {i}",
                relevance=relevance,
                supports=supports,
            )
            for i in range(count)
        ],
        reliability=reliability,
        provider="fixture",
    )


def make_decision(
    market_id: str = MARKET_ID,
    *,
    outcome: Outcome = Outcome.YES,
    confidence: float = 92.0,
    stage: DecisionStage = DecisionStage.PRELIMINARY,
    reasoning: str = DECISION_REASONING,
    decided_at: datetime = END_TIME,
) -> ResolutionDecision:
    direction = None if outcome is Outcome.INVALID else outcome
    betting = min(25.0, confidence)
    external = min(27.0, max(0.0, confidence - betting))
    evidence = max(0.0, confidence - betting - external)
    return ResolutionDecision(
        market_id=market_id,
        stage=stage,
        outcome=outcome,
        confidence=confidence,
        betting=SignalComponent(name="betting", cap=25.0, points=betting, direction=direction, contribution=betting),
        evidence=SignalComponent(name="evidence", cap=45.0, points=evidence, direction=direction, contribution=evidence),
        external=SignalComponent(name="external", cap=30.0, points=external, direction=direction, contribution=external),
        recommended_action=RecommendedAction.AUTO_RESOLVE,
        reasoning=reasoning,
        decided_at=decided_at,
    )


def make_disputable_market(market_id: str = MARKET_ID, **overrides: Any) -> Market:
    payload: dict[str, Any] = {
        "status": MarketStatus.DISPUTABLE,
        "preliminary": make_decision(market_id),
        "preliminary_resolved_at": END_TIME,
        "dispute_period_end": END_TIME + WINDOW,
        "revision": 2,
    }
    payload.update(overrides)
    return make_market(market_id, **payload)


def make_assessment(
    dispute_id: str,
    *,
    quality: float,
    validity: DisputeValidity,
    evidence_strength: float = 0.5,
    assessed_at: datetime = END_TIME,
) -> DisputeAssessment:
    verdict, bond_rec, priority = _VERDICTS[validity]
    return DisputeAssessment(
        dispute_id=dispute_id,
        quality_score=quality,
        verdict=verdict,
        validity=validity,
        breakdown=QualityBreakdown(source_credibility=0.95, evidence_strength=evidence_strength),
        bond_recommendation=bond_rec,
        admin_priority=priority,
        assessed_at=assessed_at,
    )


def make_dispute(
    dispute_id: str,
    *,
    market_id: str = MARKET_ID,
    disputer: str | None = None,
    bond: str = "10",
    proposed_outcome: Outcome = Outcome.NO,
    validity: DisputeValidity | None = None,
    quality: float = 0.5,
    evidence_strength: float = 0.5,
    submitted_at: datetime | None = None,
    status: DisputeStatus = DisputeStatus.ACTIVE,
    **overrides: Any,
) -> Dispute:
    reason = overrides.pop("reason", "The official results contradict the preliminary resolution.")
    evidence_text = overrides.pop("evidence_text", "Federation report lists the match as abandoned.")
    assessment = None
    if validity is not None:
        assessment = make_assessment(
            dispute_id, quality=quality, validity=validity, evidence_strength=evidence_strength
        )
    payload: dict[str, Any] = {
        "dispute_id": dispute_id,
        "market_id": market_id,
        "disputer": disputer or f"0x{dispute_id}",
        "reason": reason,
        "evidence_text": evidence_text,
        "evidence_hash": compute_evidence_hash(reason, evidence_text),
        "bond": Decimal(bond),
        "proposed_outcome": proposed_outcome,
        "cited_sources": [GOV_LINK],
        "status": status,
        "submitted_at": submitted_at or END_TIME + timedelta(hours=6),
        "assessment": assessment,
    }
    payload.update(overrides)
    return Dispute(**payload)


def make_dispute_request(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "market_id": MARKET_ID,
        "disputer": "0xdisputer",
        "reason": "Official results show the final was abandoned before full time.",
        "evidence_text": "The federation bulletin lists the final as abandoned in the second half.",
        "bond": "10",
        "proposed_outcome": "NO",
        "cited_sources": [GOV_LINK],
        "evidence_timestamp": (END_TIME - timedelta(hours=2)).isoformat(),
        "attachments": [{"cid": "bafy-report", "kind": "pdf"}],
        "language": "en",
    }
    payload.update(overrides)
    return payload


@dataclass
class Harness:
    engine: BlockcastEngine
    markets: InMemoryMarketStore
    evidence: InMemoryEvidenceStore
    disputes: InMemoryDisputeStore
    ledger: InMemoryBondLedger
    volumes: InMemoryVolumeSource
    reputation: InMemoryReputationSource
    feed: FixtureVerificationFeed
    audit: InMemoryAuditSink

    def fund(self, account: str, amount: str) -> None:
        self.ledger.set_balance(account, MoneyCAST.from_str(amount))
        self.ledger.approve(account, self.ledger.custodian, MoneyCAST.from_str(amount))

    def seed_confident_yes(self, market_id: str = MARKET_ID) -> None:
        """900/100 volume, five academic YES submissions, three YES external sources."""
        for i in range(5):
            self.evidence.add(make_submission(i, market_id=market_id))
        self.volumes.put(make_volume("900", "100", market_id))
        self.feed.put(make_external(market_id))


def build_harness(*markets: Market, config: BlockcastConfig | None = None) -> Harness:
    config = config or BlockcastConfig()
    store = InMemoryMarketStore(markets)
    evidence = InMemoryEvidenceStore()
    disputes = InMemoryDisputeStore()
    ledger = InMemoryBondLedger(custodian=config.bond_custodian_address)
    volumes = InMemoryVolumeSource()
    reputation = InMemoryReputationSource()
    feed = FixtureVerificationFeed()
    audit = InMemoryAuditSink()
    engine = BlockcastEngine(
        config,
        markets=store,
        evidence=evidence,
        disputes=disputes,
        ledger=ledger,
        volumes=volumes,
        reputation=reputation,
        audit=audit,
        feed=feed,
    )
    return Harness(
        engine=engine,
        markets=store,
        evidence=evidence,
        disputes=disputes,
        ledger=ledger,
        volumes=volumes,
        reputation=reputation,
        feed=feed,
        audit=audit,
    )
