# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Reward / slashing calculator.

Turns a market's final outcome and its assessed disputes into an ordered
SettlementPlan:

    1. SLASH_BOND for every invalid dispute
    2. RETURN_BOND_ONLY / REWARD_WITH_BONUSES per remaining dispute
    3. TREASURY_DEPOSIT for the treasury cut of slashed bonds

Slashed bonds split into treasury (fee x slashed) and a redistribution pool
shared by valid disputers pro-rata by quality. Shares are floored to token
precision and the residual goes to the highest-quality valid dispute, so
slashing shares plus treasury always equal the slashed total exactly.

Bonuses are paid in full. Gas refunds are bounded so that rewards, bond
returns and the treasury cut together stay within bonds x (1 + reward
multiplier).
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from decimal import Decimal

from blockcast_core import SETTLEMENT_VERSION
from blockcast_core.runtime_config import SettlementConfig
from blockcast_core.schema.decision import Outcome
from blockcast_core.schema.dispute import Dispute, DisputeStatus, DisputeValidity
from blockcast_core.schema.market import Market
from blockcast_core.settlement.ledger import settlement_key
from blockcast_core.settlement.types import (
    GasEstimate,
    MoneyCAST,
    RewardBreakdown,
    SettlementAction,
    SettlementPlan,
    SettlementTotals,
    SettlementTransaction,
)
from blockcast_core.utils.runtime import hours_between
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)

TREASURY_SUBJECT = "treasury"


def settlement_class(dispute: Dispute) -> DisputeValidity | None:
    """VALID / UNCERTAIN / INVALID, or None for disputes that expired unassessed."""
    if dispute.status == DisputeStatus.EXPIRED or dispute.assessment is None:
        return None
    return dispute.assessment.validity


def _quality(dispute: Dispute) -> float:
    return dispute.assessment.quality_score if dispute.assessment else 0.0


class SettlementCalculator:
    def __init__(self, config: SettlementConfig | None = None, *, treasury_address: str = "treasury"):
        self.config = config or SettlementConfig()
        self.treasury_address = treasury_address

    def build_plan(
        self,
        market: Market,
        final_outcome: Outcome,
        disputes: list[Dispute],
        *,
        now: datetime,
    ) -> SettlementPlan:
        ordered = sorted(disputes, key=lambda d: d.dispute_id)
        valid = [d for d in ordered if settlement_class(d) == DisputeValidity.VALID]
        invalid = [d for d in ordered if settlement_class(d) == DisputeValidity.INVALID]
        returned = [d for d in ordered if settlement_class(d) in (DisputeValidity.UNCERTAIN, None)]

        slashed = MoneyCAST.sum(MoneyCAST(d.bond) for d in invalid)
        if valid:
            treasury = (slashed * self.config.treasury_fee).min(slashed)
            pool = slashed - treasury
        else:
            # Nobody to redistribute to.
            treasury = slashed
            pool = MoneyCAST.zero()

        shares = self._pool_shares(valid, pool)
        gas_refunds = self._gas_refunds(market, ordered, valid, returned, slashed)

        txs: list[SettlementTransaction] = []
        for d in invalid:
            txs.append(
                SettlementTransaction(
                    idempotency_key=settlement_key(market.market_id, d.dispute_id, SettlementAction.SLASH_BOND),
                    action=SettlementAction.SLASH_BOND,
                    account=d.disputer,
                    amount=MoneyCAST(d.bond),
                    market_id=market.market_id,
                    dispute_id=d.dispute_id,
                    original_bond=MoneyCAST(d.bond),
                    quality_score=_quality(d),
                    reasons=("dispute assessed invalid",),
                )
            )

        total_rewards = MoneyCAST.zero()
        total_bonuses = MoneyCAST.zero()
        total_returned = MoneyCAST.zero()
        for d in ordered:
            cls = settlement_class(d)
            if cls == DisputeValidity.VALID:
                breakdown, reasons = self._reward(
                    market, d, shares.get(d.dispute_id, MoneyCAST.zero()), gas_refunds[d.dispute_id]
                )
                total_rewards = total_rewards + breakdown.total
                total_bonuses = total_bonuses + breakdown.bonuses
                txs.append(
                    SettlementTransaction(
                        idempotency_key=settlement_key(
                            market.market_id, d.dispute_id, SettlementAction.REWARD_WITH_BONUSES
                        ),
                        action=SettlementAction.REWARD_WITH_BONUSES,
                        account=d.disputer,
                        amount=breakdown.total,
                        market_id=market.market_id,
                        dispute_id=d.dispute_id,
                        original_bond=MoneyCAST(d.bond),
                        quality_score=_quality(d),
                        breakdown=breakdown,
                        reasons=tuple(reasons),
                    )
                )
            elif cls != DisputeValidity.INVALID:
                amount = MoneyCAST(d.bond)
                total_returned = total_returned + amount
                txs.append(
                    SettlementTransaction(
                        idempotency_key=settlement_key(
                            market.market_id, d.dispute_id, SettlementAction.RETURN_BOND_ONLY
                        ),
                        action=SettlementAction.RETURN_BOND_ONLY,
                        account=d.disputer,
                        amount=amount,
                        market_id=market.market_id,
                        dispute_id=d.dispute_id,
                        original_bond=amount,
                        quality_score=_quality(d) if d.assessment else None,
                        reasons=("dispute uncertain",) if cls is not None else ("dispute expired unassessed",),
                    )
                )

        if not treasury.is_zero():
            txs.append(
                SettlementTransaction(
                    idempotency_key=settlement_key(market.market_id, TREASURY_SUBJECT, SettlementAction.TREASURY_DEPOSIT),
                    action=SettlementAction.TREASURY_DEPOSIT,
                    account=self.treasury_address,
                    amount=treasury,
                    market_id=market.market_id,
                    reasons=(f"treasury fee on {slashed.to_str()} slashed",),
                )
            )

        totals = SettlementTotals(
            total_bonds=MoneyCAST.sum(MoneyCAST(d.bond) for d in ordered),
            total_slashed=slashed,
            treasury_allocation=treasury,
            redistribution_pool=pool,
            total_rewards=total_rewards,
            total_bonuses=total_bonuses,
            total_returned=total_returned,
            valid_count=len(valid),
            uncertain_count=len(returned),
            invalid_count=len(invalid),
        )
        gas = GasEstimate(
            transfers=sum(t.gas_units for t in txs if t.action in (
                SettlementAction.RETURN_BOND_ONLY, SettlementAction.REWARD_WITH_BONUSES,
            )),
            slashing=sum(t.gas_units for t in txs if t.action == SettlementAction.SLASH_BOND),
            treasury=sum(t.gas_units for t in txs if t.action == SettlementAction.TREASURY_DEPOSIT),
        )

        plan = SettlementPlan(
            plan_id=self._plan_id(market.market_id, final_outcome, ordered),
            market_id=market.market_id,
            final_outcome=final_outcome.value,
            transactions=tuple(txs),
            totals=totals,
            gas=gas,
            created_at=now,
            settlement_version=SETTLEMENT_VERSION,
        )

        Trace.event(
            "settlement.plan",
            {
                "plan_id": plan.plan_id,
                "market_id": market.market_id,
                "outcome": final_outcome.value,
                "transactions": len(txs),
                "totals": totals.to_dict(),
            },
        )
        logger.info(
            "Settlement plan %s: %d valid, %d returned, %d slashed (%s CAST), treasury %s CAST",
            plan.plan_id,
            len(valid),
            len(returned),
            len(invalid),
            slashed.to_str(),
            treasury.to_str(),
        )
        return plan

    def _pool_shares(self, valid: list[Dispute], pool: MoneyCAST) -> dict[str, MoneyCAST]:
        if not valid:
            return {}
        weights = {d.dispute_id: Decimal(str(_quality(d))) for d in valid}
        total_w = sum(weights.values(), Decimal("0"))
        if total_w <= 0:
            weights = {k: Decimal("1") for k in weights}
            total_w = Decimal(len(weights))

        shares = {k: pool.floor_share(w, total_w) for k, w in weights.items()}
        residual = pool - MoneyCAST.sum(shares.values())
        if not residual.is_zero():
            top = min(valid, key=lambda d: (-_quality(d), d.dispute_id))
            shares[top.dispute_id] = shares[top.dispute_id] + residual
        return shares

    def _window_open(self, market: Market) -> datetime:
        return market.preliminary_resolved_at or market.end_time

    def _bonuses(self, market: Market, dispute: Dispute) -> tuple[MoneyCAST, MoneyCAST, MoneyCAST]:
        """(quality, evidence strength, early submission) bonuses, each bond x multiplier when earned."""
        cfg = self.config
        bond = MoneyCAST(dispute.bond)
        assessment = dispute.assessment
        quality = assessment.quality_score if assessment else 0.0
        strength = assessment.breakdown.evidence_strength if assessment else 0.0
        hours_in = hours_between(self._window_open(market), dispute.submitted_at)

        def _bonus(eligible: bool, multiplier: Decimal) -> MoneyCAST:
            return bond * multiplier if eligible else MoneyCAST.zero()

        return (
            _bonus(quality >= cfg.quality_bonus_threshold, cfg.quality_bonus_multiplier),
            _bonus(strength >= cfg.evidence_strength_threshold, cfg.evidence_strength_multiplier),
            _bonus(0 <= hours_in <= cfg.early_submission_hours, cfg.early_submission_multiplier),
        )

    def _gas_refunds(
        self,
        market: Market,
        ordered: list[Dispute],
        valid: list[Dispute],
        returned: list[Dispute],
        slashed: MoneyCAST,
    ) -> dict[str, MoneyCAST]:
        """
        Gas refund per valid dispute, in dispute id order.

        Refunds only use what is left under bonds x (1 + reward multiplier)
        after base rewards, bonuses, bond returns and slashed bonds.
        """
        cfg = self.config
        total_bonds = MoneyCAST.sum(MoneyCAST(d.bond) for d in ordered)
        committed = slashed + MoneyCAST.sum(MoneyCAST(d.bond) for d in returned)
        for d in valid:
            committed = committed + MoneyCAST(d.bond) * cfg.reward_multiplier + MoneyCAST.sum(self._bonuses(market, d))
        headroom = (total_bonds * (Decimal("1") + cfg.reward_multiplier) - committed).max0()

        refunds: dict[str, MoneyCAST] = {}
        for d in valid:
            refund = MoneyCAST(cfg.gas_refund).min(headroom)
            headroom = headroom - refund
            refunds[d.dispute_id] = refund
        return refunds

    def _reward(
        self, market: Market, dispute: Dispute, share: MoneyCAST, gas: MoneyCAST
    ) -> tuple[RewardBreakdown, list[str]]:
        cfg = self.config
        base = MoneyCAST(dispute.bond) * cfg.reward_multiplier
        reasons = [f"base reward {base.to_str()} ({cfg.reward_multiplier}x bond)"]

        quality_bonus, evidence_bonus, early_bonus = self._bonuses(market, dispute)
        for amount, label in (
            (quality_bonus, "quality bonus"),
            (evidence_bonus, "evidence strength bonus"),
            (early_bonus, "early submission bonus"),
        ):
            if not amount.is_zero():
                reasons.append(f"{label} +{amount.to_str()}")
        if not share.is_zero():
            reasons.append(f"slashing share +{share.to_str()}")
        if not gas.is_zero():
            reasons.append(f"gas refund +{gas.to_str()}")

        breakdown = RewardBreakdown(
            base_reward=base,
            quality_bonus=quality_bonus,
            evidence_bonus=evidence_bonus,
            early_bonus=early_bonus,
            gas_refund=gas,
            slashing_share=share,
        )
        return breakdown, reasons

    @staticmethod
    def _plan_id(market_id: str, outcome: Outcome, disputes: list[Dispute]) -> str:
        basis = {
            "market_id": market_id,
            "outcome": outcome.value,
            "version": SETTLEMENT_VERSION,
            "disputes": [
                [d.dispute_id, str(d.bond), settlement_class(d).value if settlement_class(d) else None, _quality(d)]
                for d in disputes
            ],
        }
        digest = hashlib.sha256(json.dumps(basis, sort_keys=True).encode("utf-8")).hexdigest()
        return f"plan:{market_id}:{digest[:16]}"
