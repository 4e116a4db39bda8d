# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from blockcast_core.errors import ExternalSignalUnavailableError
from blockcast_core.ports import ExternalVerificationFeed
from blockcast_core.resolution.signals import (
    CounterEvidence,
    betting_signal,
    evidence_signal,
    external_signal,
)
from blockcast_core.runtime_config import ResolutionConfig, VerificationConfig
from blockcast_core.schema.decision import (
    DecisionStage,
    Outcome,
    RecommendedAction,
    ResolutionDecision,
    RiskFlag,
    SignalComponent,
)
from blockcast_core.schema.evidence import ContradictionSeverity, NormalizedEvidenceBatch
from blockcast_core.schema.external import ExternalSignal
from blockcast_core.schema.market import BettingVolume, Market
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)


class MultiSignalAggregator:
    """
    Combines betting, evidence and external signals into a ResolutionDecision.

    `decide` is pure and deterministic. Only `gather_external` touches the
    network, and it never raises for feed failures: it returns None and the
    decision carries EXTERNAL_SIGNAL_UNAVAILABLE instead.
    """

    def __init__(
        self,
        config: ResolutionConfig | None = None,
        *,
        feed: ExternalVerificationFeed | None = None,
        verification: VerificationConfig | None = None,
    ):
        self.config = config or ResolutionConfig()
        self.feed = feed
        self.verification = verification or VerificationConfig()

    async def gather_external(self, market: Market) -> ExternalSignal | None:
        if self.feed is None:
            return None
        timeout = self.verification.timeout_sec
        try:
            return await asyncio.wait_for(self.feed.fetch(market), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("External verification timed out for market %s after %.1fs", market.market_id, timeout)
            Trace.event("resolution.external.timeout", {"market_id": market.market_id, "timeout_sec": timeout})
        except ExternalSignalUnavailableError as e:
            logger.warning("External verification unavailable for market %s: %s", market.market_id, e)
            Trace.event("resolution.external.unavailable", {"market_id": market.market_id, **e.to_trace_dict()})
        return None

    def decide(
        self,
        market: Market,
        evidence: NormalizedEvidenceBatch,
        volume: BettingVolume | None,
        external: ExternalSignal | None,
        stage: DecisionStage,
        *,
        now: datetime,
        counter_evidence: list[CounterEvidence] | tuple[CounterEvidence, ...] = (),
    ) -> ResolutionDecision:
        cfg = self.config
        valid = evidence.valid

        betting = betting_signal(volume, full_skew=cfg.betting_full_skew)
        ev = evidence_signal(valid, counter_evidence, scale=cfg.evidence_scale)
        ext = external_signal(external, scale=cfg.external_scale)

        signed = 0.0
        for comp in (betting, ev, ext):
            if comp.direction is Outcome.YES:
                signed += comp.points
            elif comp.direction is Outcome.NO:
                signed -= comp.points

        if signed > 0:
            outcome = Outcome.YES
        elif signed < 0:
            outcome = Outcome.NO
        else:
            outcome = Outcome.INVALID

        flags: list[RiskFlag] = []
        components: list[SignalComponent] = []
        conflict = False
        for comp in (betting, ev, ext):
            agrees = outcome is not Outcome.INVALID and comp.direction is outcome
            if comp.direction is not None and comp.points > 0 and not agrees:
                conflict = True
            components.append(comp.model_copy(update={"contribution": comp.points if agrees else 0.0}))
        betting, ev, ext = components

        confidence = round(min(100.0, max(0.0, betting.contribution + ev.contribution + ext.contribution)), 6)

        if conflict:
            flags.append(RiskFlag.SIGNALS_CONFLICT)
        if not betting.available:
            flags.append(RiskFlag.NO_BETTING_VOLUME)
        if external is None:
            flags.append(RiskFlag.EXTERNAL_SIGNAL_UNAVAILABLE)
        elif external.reliability is not None and external.reliability < cfg.low_external_reliability:
            flags.append(RiskFlag.LOW_EXTERNAL_RELIABILITY)
        flags.extend(self._evidence_flags(evidence))
        if market.category in cfg.sensitive_categories:
            flags.append(RiskFlag.CATEGORY_SENSITIVE)
        if counter_evidence:
            flags.append(RiskFlag.DISPUTE_COUNTER_EVIDENCE)

        action = self._recommend(confidence, flags, evidence)

        decision = ResolutionDecision(
            market_id=market.market_id,
            stage=stage,
            outcome=outcome,
            confidence=confidence,
            betting=betting,
            evidence=ev,
            external=ext,
            risk_flags=flags,
            recommended_action=action,
            reasoning=self._reasoning(market, outcome, confidence, betting, ev, ext, len(valid)),
            decided_at=now,
        )

        Trace.event(
            "resolution.decision",
            {
                "market_id": market.market_id,
                "stage": stage.value,
                "outcome": outcome.value,
                "confidence": confidence,
                "betting": betting.contribution,
                "evidence": ev.contribution,
                "external": ext.contribution,
                "flags": [f.value for f in flags],
                "action": action.value,
            },
        )
        logger.debug(
            "Decision for %s (%s): outcome=%s confidence=%.2f action=%s",
            market.market_id,
            stage.value,
            outcome.value,
            confidence,
            action.value,
        )
        return decision

    def _evidence_flags(self, evidence: NormalizedEvidenceBatch) -> list[RiskFlag]:
        cfg = self.config
        valid = evidence.valid
        flags: list[RiskFlag] = []

        if len(valid) < cfg.low_evidence_count:
            flags.append(RiskFlag.LOW_EVIDENCE_COUNT)

        counts: dict[str, int] = {}
        for a in valid:
            counts[a.submission.language] = counts.get(a.submission.language, 0) + 1
        if len(counts) >= 2 and max(counts.values()) / len(valid) >= cfg.language_imbalance_share:
            flags.append(RiskFlag.LANGUAGE_IMBALANCE)

        if evidence.contradictions:
            flags.append(RiskFlag.CROSS_LANGUAGE_CONTRADICTION)

        creds = [a.avg_credibility for a in valid if a.avg_credibility is not None]
        if creds and sum(creds) / len(creds) < cfg.low_credibility:
            flags.append(RiskFlag.LOW_SOURCE_CREDIBILITY)

        if evidence.requires_careful_handling:
            flags.append(RiskFlag.REQUIRES_CAREFUL_HANDLING)
        return flags

    def _recommend(
        self,
        confidence: float,
        flags: list[RiskFlag],
        evidence: NormalizedEvidenceBatch,
    ) -> RecommendedAction:
        cfg = self.config
        if confidence > cfg.auto_resolve_above:
            action = RecommendedAction.AUTO_RESOLVE
        elif confidence > cfg.admin_review_above:
            action = RecommendedAction.ADMIN_REVIEW
        else:
            action = RecommendedAction.EXTENDED_REVIEW

        needs_review = (
            RiskFlag.CATEGORY_SENSITIVE in flags
            or RiskFlag.REQUIRES_CAREFUL_HANDLING in flags
            or evidence.highest_contradiction == ContradictionSeverity.HIGH
        )
        if needs_review and action == RecommendedAction.AUTO_RESOLVE:
            action = RecommendedAction.ADMIN_REVIEW
        return action

    @staticmethod
    def _reasoning(
        market: Market,
        outcome: Outcome,
        confidence: float,
        betting: SignalComponent,
        ev: SignalComponent,
        ext: SignalComponent,
        valid_count: int,
    ) -> str:
        parts = [f"Claim: {market.claim}"]
        if outcome is Outcome.INVALID:
            parts.append("Signals are balanced; no resolvable outcome.")
        else:
            parts.append(f"Outcome {outcome.value} with confidence {confidence:.1f}/100.")

        def _describe(comp: SignalComponent, label: str) -> str:
            if not comp.available:
                return f"{label}: unavailable"
            side = comp.direction.value if comp.direction else "neutral"
            return f"{label}: {comp.points:.1f}/{comp.cap:.0f} toward {side}"

        parts.append(_describe(betting, "betting volume"))
        parts.append(_describe(ev, f"evidence ({valid_count} valid submissions)"))
        parts.append(_describe(ext, "external sources"))
        return " ".join(parts[:2]) + " " + "; ".join(parts[2:]) + "."
