# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Market resolution state machine.

    OPEN --end_time--> PENDING_RESOLUTION --> DISPUTABLE --period end--> RESOLVED
      |                                           |
      +--low confidence / balanced--> INVALID <---+ (valid INVALID dispute, admin)

The market store is the only source of truth: every pass re-reads the
record and every status write is a compare-and-set on (status, revision).
Terminal markets are never written again, so `advance` can be called any
number of times. Settlement runs before the terminal write; if it fails the
market stays DISPUTABLE and the next pass retries with the same plan.
Disputes are closed after the terminal write; any left ACTIVE are swept by
`close_disputes` on a later pass.

The preliminary decision only sees evidence submitted by the market end
time, the final decision only evidence submitted by the dispute period end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from blockcast_core.errors import StateConflictError
from blockcast_core.evidence.cultural import CulturalContext
from blockcast_core.evidence.normalizer import EvidenceNormalizer
from blockcast_core.ports import AuditSink, DisputeStore, EvidenceStore, MarketStore, VolumeSource
from blockcast_core.resolution.aggregator import MultiSignalAggregator
from blockcast_core.resolution.signals import CounterEvidence
from blockcast_core.runtime_config import EngineRuntimeConfig
from blockcast_core.schema.decision import DecisionStage, Outcome, RecommendedAction, ResolutionDecision
from blockcast_core.schema.dispute import Dispute, DisputeStatus, DisputeValidity
from blockcast_core.schema.market import Market, MarketStatus, compute_dispute_period_end
from blockcast_core.settlement.calculator import SettlementCalculator
from blockcast_core.settlement.executor import ExecutionReport, SettlementExecutor
from blockcast_core.utils.runtime import ensure_utc
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    market_id: str
    from_status: MarketStatus | None
    to_status: MarketStatus | None
    changed: bool
    decision: ResolutionDecision | None = None
    settlement: ExecutionReport | None = None
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value if self.to_status else None,
            "changed": self.changed,
            "decision": self.decision.to_dict() if self.decision else None,
            "settlement": self.settlement.to_dict() if self.settlement else None,
            "reason": self.reason,
        }


def invalidated_decision(decision: ResolutionDecision, *, now: datetime, reason: str) -> ResolutionDecision:
    """FINAL copy of `decision` resolved INVALID; no signal contributes to an INVALID outcome."""
    zeroed = {c.name: c.model_copy(update={"contribution": 0.0}) for c in decision.components}
    return decision.model_copy(
        update={
            "stage": DecisionStage.FINAL,
            "outcome": Outcome.INVALID,
            "confidence": 0.0,
            "betting": zeroed["betting"],
            "evidence": zeroed["evidence"],
            "external": zeroed["external"],
            "recommended_action": RecommendedAction.ADMIN_REVIEW,
            "reasoning": f"{reason}. {decision.reasoning}",
            "decided_at": now,
        }
    )


def _closing_status(dispute: Dispute) -> DisputeStatus:
    if dispute.assessment is None:
        return DisputeStatus.EXPIRED
    if dispute.assessment.validity == DisputeValidity.INVALID:
        return DisputeStatus.REJECTED
    return DisputeStatus.RESOLVED


class MarketStateMachine:
    def __init__(
        self,
        *,
        markets: MarketStore,
        evidence: EvidenceStore,
        disputes: DisputeStore,
        aggregator: MultiSignalAggregator,
        executor: SettlementExecutor,
        normalizer: EvidenceNormalizer | None = None,
        calculator: SettlementCalculator | None = None,
        volumes: VolumeSource | None = None,
        audit: AuditSink | None = None,
        runtime: EngineRuntimeConfig | None = None,
    ):
        self.runtime = runtime or EngineRuntimeConfig()
        self.markets = markets
        self.evidence = evidence
        self.disputes = disputes
        self.aggregator = aggregator
        self.executor = executor
        self.normalizer = normalizer or EvidenceNormalizer(self.runtime.evidence)
        self.calculator = calculator or SettlementCalculator(self.runtime.settlement)
        self.volumes = volumes
        self.audit = audit

    # -- helpers --------------------------------------------------------------

    def _load(self, market_id: str, operation: str) -> Market:
        market = self.markets.get(market_id)
        if market is None:
            raise StateConflictError(market_id=market_id, expected="existing market", actual="missing", operation=operation)
        return market

    def _write(self, current: Market, new: Market) -> Market:
        stored = self.markets.compare_and_set(
            new, expected_status=current.status, expected_revision=current.revision
        )
        payload = {
            "market_id": current.market_id,
            "from": current.status.value,
            "to": stored.status.value,
            "revision": stored.revision,
            "reason": stored.status_reason,
        }
        if self.audit is not None:
            self.audit.record("market_transition", payload)
        Trace.event("market.transition", payload)
        logger.info("Market %s: %s -> %s", current.market_id, current.status.value, stored.status.value)
        return stored

    def _record_decision(self, decision: ResolutionDecision) -> None:
        if self.audit is not None:
            self.audit.record("resolution_decision", decision.to_dict())

    async def _decide(
        self,
        market: Market,
        stage: DecisionStage,
        now: datetime,
        counter: list[CounterEvidence] | None = None,
    ) -> ResolutionDecision:
        if stage is DecisionStage.PRELIMINARY:
            cutoff = market.end_time
        else:
            cutoff = market.dispute_period_end or now
        batch = self.normalizer.normalize(
            self.evidence.list_for_market(market.market_id, until=cutoff),
            CulturalContext(region=market.region),
            market_id=market.market_id,
            target_languages=list(market.target_languages),
        )
        volume = self.volumes.volume_for(market.market_id) if self.volumes is not None else None
        external = await self.aggregator.gather_external(market)
        return self.aggregator.decide(
            market, batch, volume, external, stage, now=now, counter_evidence=counter or ()
        )

    def _close_active(self, market: Market) -> list[str]:
        closed: list[str] = []
        for d in self.disputes.list_for_market(market.market_id):
            if d.status != DisputeStatus.ACTIVE:
                continue
            status = _closing_status(d)
            try:
                self.disputes.update(d.advance(status=status), expected_revision=d.revision)
            except StateConflictError as e:
                logger.warning("Dispute %s not closed: %s", d.dispute_id, e)
                continue
            closed.append(d.dispute_id)
            Trace.event(
                "dispute.closed",
                {"market_id": market.market_id, "dispute_id": d.dispute_id, "status": status.value},
            )
        return closed

    def _below_threshold(self, decision: ResolutionDecision) -> bool:
        return decision.outcome is Outcome.INVALID or decision.confidence < self.runtime.resolution.min_confidence

    # -- public API -----------------------------------------------------------

    async def advance(self, market_id: str, *, now: datetime) -> TransitionResult:
        now = ensure_utc(now)
        market = self._load(market_id, "advance")

        if market.is_terminal:
            return TransitionResult(market_id, market.status, market.status, False, reason="terminal")

        if market.status == MarketStatus.OPEN:
            if now < market.end_time:
                return TransitionResult(market_id, market.status, market.status, False, reason="market still open")
            return await self._resolve_preliminary(market, now)

        if market.status == MarketStatus.PENDING_RESOLUTION:
            stored = self._open_window(market)
            return TransitionResult(
                market_id, MarketStatus.PENDING_RESOLUTION, stored.status, True, decision=stored.preliminary,
                reason="dispute window opened",
            )

        if market.dispute_period_end is not None and now < market.dispute_period_end:
            return TransitionResult(market_id, market.status, market.status, False, reason="dispute window open")
        return await self._finalize(market, now)

    async def invalidate(self, market_id: str, *, reason: str, admin: str, now: datetime) -> TransitionResult:
        """Admin action: resolve a non-terminal market as INVALID (bettors refunded)."""
        now = ensure_utc(now)
        market = self._load(market_id, "invalidate")
        if market.is_terminal:
            raise StateConflictError(
                market_id=market_id, expected="non-terminal", actual=market.status.value, operation="invalidate"
            )
        note = f"invalidated by {admin}: {reason}"
        if self.audit is not None:
            self.audit.record("admin_invalidate", {"market_id": market_id, "admin": admin, "reason": reason})

        if market.status == MarketStatus.DISPUTABLE:
            return await self._finalize(market, now, forced_reason=note)

        final = invalidated_decision(market.preliminary, now=now, reason=note) if market.preliminary else None
        stored = self._write(market, market.advance(status=MarketStatus.INVALID, final=final, status_reason=note))
        return TransitionResult(market_id, market.status, stored.status, True, decision=final, reason=note)

    def close_disputes(self, market_id: str) -> list[str]:
        """Close disputes still ACTIVE on a terminal market; returns the closed dispute ids."""
        market = self._load(market_id, "close_disputes")
        if not market.is_terminal:
            raise StateConflictError(
                market_id=market_id, expected="terminal", actual=market.status.value, operation="close_disputes"
            )
        closed = self._close_active(market)
        if closed:
            logger.info("Market %s: closed %d stale dispute(s)", market_id, len(closed))
        return closed

    # -- transitions ----------------------------------------------------------

    async def _resolve_preliminary(self, market: Market, now: datetime) -> TransitionResult:
        decision = await self._decide(market, DecisionStage.PRELIMINARY, now)
        self._record_decision(decision)

        if self._below_threshold(decision):
            reason = (
                "signals balanced; no resolvable outcome"
                if decision.outcome is Outcome.INVALID
                else f"confidence {decision.confidence:.1f} below {self.runtime.resolution.min_confidence:.1f}"
            )
            final = invalidated_decision(decision, now=now, reason=reason)
            stored = self._write(
                market,
                market.advance(
                    status=MarketStatus.INVALID,
                    preliminary=decision,
                    final=final,
                    preliminary_resolved_at=now,
                    status_reason=reason,
                ),
            )
            return TransitionResult(market.market_id, MarketStatus.OPEN, stored.status, True, final, reason=reason)

        pending = self._write(
            market,
            market.advance(
                status=MarketStatus.PENDING_RESOLUTION,
                preliminary=decision,
                preliminary_resolved_at=now,
                status_reason=f"preliminary {decision.outcome.value} at {decision.confidence:.1f}",
            ),
        )
        stored = self._open_window(pending)
        return TransitionResult(
            market.market_id, MarketStatus.OPEN, stored.status, True, decision, reason="dispute window opened"
        )

    def _open_window(self, market: Market) -> Market:
        end = compute_dispute_period_end(market.end_time, self.runtime.resolution.dispute_window_hours)
        return self._write(market, market.advance(status=MarketStatus.DISPUTABLE, dispute_period_end=end))

    async def _finalize(self, market: Market, now: datetime, *, forced_reason: str | None = None) -> TransitionResult:
        active = [d for d in self.disputes.list_for_market(market.market_id) if d.status == DisputeStatus.ACTIVE]
        valid = [d for d in active if d.validity == DisputeValidity.VALID]
        preliminary = market.preliminary
        if preliminary is None:
            raise StateConflictError(
                market_id=market.market_id, expected="preliminary decision", actual="none", operation="finalize"
            )

        invalid_proposals = [d for d in valid if d.proposed_outcome is Outcome.INVALID]
        if forced_reason is not None:
            final = invalidated_decision(preliminary, now=now, reason=forced_reason)
            status, reason = MarketStatus.INVALID, forced_reason
        elif invalid_proposals:
            reason = "valid dispute(s) " + ", ".join(d.dispute_id for d in invalid_proposals) + " proposed INVALID"
            final = invalidated_decision(preliminary, now=now, reason=reason)
            status = MarketStatus.INVALID
        elif not valid:
            final = preliminary.model_copy(update={"stage": DecisionStage.FINAL, "decided_at": now})
            status, reason = MarketStatus.RESOLVED, "preliminary outcome confirmed"
        else:
            counter = [
                CounterEvidence(
                    dispute_id=d.dispute_id,
                    outcome=d.proposed_outcome,
                    credibility=d.assessment.breakdown.source_credibility if d.assessment else 0.0,
                )
                for d in valid
            ]
            final = await self._decide(market, DecisionStage.FINAL, now, counter)
            if self._below_threshold(final):
                status = MarketStatus.INVALID
                reason = f"final confidence {final.confidence:.1f} after {len(valid)} valid dispute(s)"
                self._record_decision(final)
                final = invalidated_decision(final, now=now, reason=reason)
            else:
                status = MarketStatus.RESOLVED
                reason = f"final {final.outcome.value} after {len(valid)} valid dispute(s)"

        self._record_decision(final)
        settled_outcome = Outcome.INVALID if status == MarketStatus.INVALID else final.outcome
        plan = self.calculator.build_plan(market, settled_outcome, active, now=now)
        if self.audit is not None:
            self.audit.record("settlement_plan", plan.to_dict())
        # SettlementError propagates; the market stays DISPUTABLE.
        report = self.executor.execute(plan)

        stored = self._write(
            market,
            market.advance(status=status, final=final, status_reason=reason, settlement_plan_id=plan.plan_id),
        )

        self._close_active(stored)

        return TransitionResult(
            market.market_id, market.status, stored.status, True, decision=final, settlement=report, reason=reason
        )
