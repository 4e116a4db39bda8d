# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Dispute filing and assessment.

Filing is gated on four conditions: the market is DISPUTABLE and inside its
window, the disputer's token balance and allowance cover the bond, and the
disputer holds no other ACTIVE dispute on the market. `preflight` checks them
when a form opens; `file_dispute` checks them again right before the bond is
locked, and the dispute store's `create_active` enforces the last one
atomically.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Any, Callable

from blockcast_core.constants import is_supported_language
from blockcast_core.disputes.quality import DisputeQualityEvaluator
from blockcast_core.errors import (
    DuplicateActiveDisputeError,
    InputValidationError,
    InsufficientStakeError,
    StateConflictError,
)
from blockcast_core.ports import AuditSink, BondLedger, DisputeStore, MarketStore, ReputationSource
from blockcast_core.runtime_config import DisputeConfig
from blockcast_core.schema.dispute import (
    AdminPriority,
    AssessmentVerdict,
    BondRecommendation,
    Dispute,
    DisputeAssessment,
    DisputeRequest,
    DisputeStatus,
    DisputeValidity,
    compute_evidence_hash,
)
from blockcast_core.schema.market import Market, MarketStatus
from blockcast_core.settlement.ledger import bond_lock_key, bond_release_key
from blockcast_core.settlement.types import MoneyCAST
from blockcast_core.utils.runtime import ensure_utc
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)

_VALIDITY_VERDICT = {
    DisputeValidity.VALID: (AssessmentVerdict.LIKELY_VALID, BondRecommendation.RETURN_WITH_REWARD),
    DisputeValidity.UNCERTAIN: (AssessmentVerdict.UNCERTAIN, BondRecommendation.RETURN_ONLY),
    DisputeValidity.INVALID: (AssessmentVerdict.LIKELY_INVALID, BondRecommendation.SLASH),
}


def default_dispute_id(request: DisputeRequest, submitted_at: datetime) -> str:
    basis = f"{request.market_id}|{request.disputer}|{submitted_at.isoformat()}"
    return "dsp-" + hashlib.sha256(basis.encode("utf-8")).hexdigest()[:16]


class DisputeService:
    def __init__(
        self,
        *,
        markets: MarketStore,
        disputes: DisputeStore,
        ledger: BondLedger,
        evaluator: DisputeQualityEvaluator | None = None,
        reputation: ReputationSource | None = None,
        audit: AuditSink | None = None,
        config: DisputeConfig | None = None,
        custodian: str = "dispute-manager",
        id_factory: Callable[[DisputeRequest, datetime], str] = default_dispute_id,
    ):
        self.markets = markets
        self.disputes = disputes
        self.ledger = ledger
        self.config = config or DisputeConfig()
        self.evaluator = evaluator or DisputeQualityEvaluator(self.config)
        self.reputation = reputation
        self.audit = audit
        self.custodian = custodian
        self.id_factory = id_factory

    # -- validation -----------------------------------------------------------

    def _validate_request(self, raw: DisputeRequest | dict[str, Any]) -> DisputeRequest:
        request = DisputeRequest.parse(raw)
        cfg = self.config
        problems: list[str] = []
        if len((request.reason or "").strip()) < cfg.min_reason_chars:
            problems.append(f"reason: at least {cfg.min_reason_chars} characters required")
        if not (request.evidence_text or "").strip() and not request.cited_sources and not request.attachments:
            problems.append("evidence: text, sources or attachments required")
        if request.bond <= 0 or request.bond < cfg.min_bond:
            problems.append(f"bond: must be positive and at least {cfg.min_bond}")
        if not is_supported_language(request.language):
            problems.append(f"language: unsupported '{request.language}'")
        if problems:
            raise InputValidationError(
                "Invalid DisputeRequest: " + "; ".join(problems),
                details={"model": "DisputeRequest", "errors": problems},
            )
        return request

    def _gate(self, request: DisputeRequest, now: datetime) -> Market:
        now = ensure_utc(now)
        market = self.markets.get(request.market_id)
        if market is None:
            raise StateConflictError(
                market_id=request.market_id, expected=MarketStatus.DISPUTABLE.value, actual="missing",
                operation="file_dispute",
            )
        if market.status != MarketStatus.DISPUTABLE:
            raise StateConflictError(
                market_id=market.market_id, expected=MarketStatus.DISPUTABLE.value, actual=market.status.value,
                operation="file_dispute",
            )
        if market.dispute_period_end is not None and now >= market.dispute_period_end:
            raise StateConflictError(
                market_id=market.market_id,
                expected=f"before {market.dispute_period_end.isoformat()}",
                actual=f"window closed at {now.isoformat()}",
                operation="file_dispute",
            )

        bond = MoneyCAST(request.bond)
        balance = self.ledger.balance_of(request.disputer)
        if balance < bond:
            raise InsufficientStakeError(request.disputer, bond.to_str(), balance.to_str(), kind="balance")
        allowance = self.ledger.allowance_of(request.disputer, self.custodian)
        if allowance < bond:
            raise InsufficientStakeError(request.disputer, bond.to_str(), allowance.to_str(), kind="allowance")

        if self.disputes.find_active(request.market_id, request.disputer) is not None:
            raise DuplicateActiveDisputeError(request.market_id, request.disputer)
        return market

    def preflight(self, raw: DisputeRequest | dict[str, Any], *, now: datetime) -> DisputeRequest:
        request = self._validate_request(raw)
        self._gate(request, now)
        return request

    # -- filing ---------------------------------------------------------------

    def file_dispute(
        self,
        raw: DisputeRequest | dict[str, Any],
        *,
        now: datetime,
        evaluate: bool = True,
    ) -> Dispute:
        now = ensure_utc(now)
        request = self._validate_request(raw)
        # Re-checked here, immediately before the bond moves.
        self._gate(request, now)

        dispute_id = self.id_factory(request, now)
        dispute = Dispute(
            dispute_id=dispute_id,
            market_id=request.market_id,
            disputer=request.disputer,
            reason=request.reason,
            evidence_text=request.evidence_text,
            evidence_hash=request.evidence_hash or compute_evidence_hash(request.reason, request.evidence_text),
            bond=request.bond,
            proposed_outcome=request.proposed_outcome,
            cited_sources=list(request.cited_sources),
            evidence_timestamp=request.evidence_timestamp,
            attachments=list(request.attachments),
            language=request.language,
            status=DisputeStatus.ACTIVE,
            submitted_at=now,
        )

        lock_key = bond_lock_key(dispute_id)
        self.ledger.lock_bond(
            idempotency_key=lock_key,
            market_id=dispute.market_id,
            dispute_id=dispute_id,
            disputer=dispute.disputer,
            amount=MoneyCAST(dispute.bond),
            custodian=self.custodian,
        )
        try:
            dispute = self.disputes.create_active(dispute)
        except DuplicateActiveDisputeError:
            self.ledger.release_bond(idempotency_key=bond_release_key(dispute_id), lock_key=lock_key)
            logger.info("Dispute %s lost the active-dispute race; bond released", dispute_id)
            raise

        if self.audit is not None:
            self.audit.record(
                "dispute_filed",
                {"dispute_id": dispute_id, "market_id": dispute.market_id, "disputer": dispute.disputer,
                 "bond": str(dispute.bond), "proposed_outcome": dispute.proposed_outcome.value},
            )
        Trace.event("dispute.filed", {"dispute_id": dispute_id, "market_id": dispute.market_id})
        logger.info("Dispute %s filed on market %s by %s", dispute_id, dispute.market_id, dispute.disputer)

        if evaluate:
            updated = self.evaluate(dispute_id, now=now)
            if updated is not None:
                dispute = updated
        return dispute

    # -- assessment -----------------------------------------------------------

    def assess(self, dispute: Dispute, market: Market, *, now: datetime) -> DisputeAssessment:
        decision = market.preliminary
        history = self.reputation.history_for(dispute.disputer) if self.reputation else None
        return self.evaluator.evaluate(dispute, decision, market.end_time, history, now=now)

    def evaluate(self, dispute_id: str, *, now: datetime) -> Dispute | None:
        dispute = self.disputes.get(dispute_id)
        if dispute is None:
            return None
        market = self.markets.get(dispute.market_id)
        if market is None:
            return None
        assessment = self.assess(dispute, market, now=now)
        return self.apply_assessment(assessment)

    def evaluate_pending(self, market_id: str, *, now: datetime) -> list[Dispute]:
        out: list[Dispute] = []
        for d in self.disputes.list_for_market(market_id):
            if d.status == DisputeStatus.ACTIVE and d.assessment is None:
                updated = self.evaluate(d.dispute_id, now=now)
                if updated is not None:
                    out.append(updated)
        return out

    def apply_assessment(self, assessment: DisputeAssessment) -> Dispute | None:
        """Attach an assessment, unless the market has left DISPUTABLE or the dispute is closed."""
        dispute = self.disputes.get(assessment.dispute_id)
        if dispute is None:
            return None
        market = self.markets.get(dispute.market_id)
        if market is None or market.status != MarketStatus.DISPUTABLE or dispute.status != DisputeStatus.ACTIVE:
            logger.info(
                "Discarding assessment for dispute %s (market %s, dispute %s)",
                dispute.dispute_id,
                market.status.value if market else "missing",
                dispute.status.value,
            )
            Trace.event("dispute.assessment.discarded", {"dispute_id": dispute.dispute_id})
            return None

        updated = self.disputes.update(dispute.advance(assessment=assessment), expected_revision=dispute.revision)
        if self.audit is not None:
            self.audit.record("dispute_assessed", {"dispute_id": dispute.dispute_id, "assessment": assessment})
        return updated

    def adjudicate(
        self,
        dispute_id: str,
        validity: DisputeValidity,
        *,
        admin: str,
        now: datetime,
        note: str = "",
    ) -> Dispute:
        """Admin override of a dispute's validity while the market is still disputable."""
        dispute = self.disputes.get(dispute_id)
        if dispute is None:
            raise InputValidationError(f"Unknown dispute '{dispute_id}'", details={"dispute_id": dispute_id})
        market = self.markets.get(dispute.market_id)
        if market is None or market.status != MarketStatus.DISPUTABLE or dispute.status != DisputeStatus.ACTIVE:
            raise StateConflictError(
                market_id=dispute.market_id,
                expected="DISPUTABLE market with ACTIVE dispute",
                actual=f"{market.status.value if market else 'missing'}/{dispute.status.value}",
                operation="adjudicate",
            )

        base = dispute.assessment or self.assess(dispute, market, now=now)
        verdict, bond_rec = _VALIDITY_VERDICT[validity]
        reasoning = f"Adjudicated {validity.value} by {admin}"
        if note:
            reasoning += f": {note}"
        assessment = base.model_copy(
            update={
                "validity": validity,
                "verdict": verdict,
                "bond_recommendation": bond_rec,
                "admin_priority": AdminPriority.LOW,
                "auto_resolve": False,
                "adjudicated_by": admin,
                "assessed_at": now,
                "reasoning": f"{reasoning}. {base.reasoning}".strip(),
            }
        )
        updated = self.disputes.update(dispute.advance(assessment=assessment), expected_revision=dispute.revision)
        if self.audit is not None:
            self.audit.record(
                "dispute_adjudicated",
                {"dispute_id": dispute_id, "validity": validity.value, "admin": admin, "note": note},
            )
        logger.info("Dispute %s adjudicated %s by %s", dispute_id, validity.value, admin)
        return updated
