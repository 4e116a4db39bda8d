# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Unit tests for SettlementCalculator (slashing, pool shares, bonuses)."""

from datetime import timedelta
from decimal import Decimal

import pytest

from blockcast_core.runtime_config import SettlementConfig
from blockcast_core.schema.decision import Outcome
from blockcast_core.schema.dispute import DisputeStatus, DisputeValidity
from blockcast_core.settlement.calculator import SettlementCalculator
from blockcast_core.settlement.types import MoneyCAST, SettlementAction
from tests.fixtures.market_fixtures import END_TIME, make_disputable_market, make_dispute

NOW = END_TIME + timedelta(hours=170)


def _m(value: str) -> MoneyCAST:
    return MoneyCAST.from_str(value)


def _mixed_disputes():
    valid = [
        make_dispute("d-v1", bond="10", validity=DisputeValidity.VALID, quality=0.9),
        make_dispute("d-v2", bond="20", validity=DisputeValidity.VALID, quality=0.8),
        make_dispute("d-v3", bond="30", validity=DisputeValidity.VALID, quality=0.7),
    ]
    invalid = [
        make_dispute(f"d-x{i}", bond="10", validity=DisputeValidity.INVALID, quality=0.2)
        for i in range(7)
    ]
    return valid + invalid


@pytest.fixture
def calculator():
    return SettlementCalculator()


class TestSlashingAndPool:
    def test_treasury_and_pool_split(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, _mixed_disputes(), now=NOW)
        totals = plan.totals
        assert totals.total_slashed == _m("70")
        assert totals.treasury_allocation == _m("7")
        assert totals.redistribution_pool == _m("63")
        assert (totals.valid_count, totals.uncertain_count, totals.invalid_count) == (3, 0, 7)

    def test_pool_is_shared_by_quality(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, _mixed_disputes(), now=NOW)
        shares = {
            t.dispute_id: t.breakdown.slashing_share
            for t in plan.transactions
            if t.action == SettlementAction.REWARD_WITH_BONUSES
        }
        assert shares == {"d-v1": _m("23.625"), "d-v2": _m("21"), "d-v3": _m("18.375")}
        assert MoneyCAST.sum(shares.values()) + plan.totals.treasury_allocation == plan.totals.total_slashed

    def test_floor_residual_goes_to_top_quality(self, calculator):
        disputes = [
            make_dispute("d-a", validity=DisputeValidity.VALID, quality=0.7),
            make_dispute("d-b", validity=DisputeValidity.VALID, quality=0.7),
            make_dispute("d-c", validity=DisputeValidity.VALID, quality=0.7),
            make_dispute("d-x", bond="1", validity=DisputeValidity.INVALID, quality=0.1),
        ]
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, disputes, now=NOW)
        shares = [t.breakdown.slashing_share for t in plan.transactions if t.breakdown is not None]
        # pool 0.9 / 3 splits evenly; ties go to the lowest id
        assert shares == [_m("0.3"), _m("0.3"), _m("0.3")]

        odd = disputes[:3] + [make_dispute("d-x", bond="1.000001", validity=DisputeValidity.INVALID, quality=0.1)]
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, odd, now=NOW)
        shares = {t.dispute_id: t.breakdown.slashing_share for t in plan.transactions if t.breakdown is not None}
        assert MoneyCAST.sum(shares.values()) == plan.totals.redistribution_pool
        assert shares["d-a"] > shares["d-b"] == shares["d-c"]

    def test_without_valid_disputes_treasury_takes_everything(self, calculator):
        disputes = [
            make_dispute("d-x1", validity=DisputeValidity.INVALID, quality=0.2),
            make_dispute("d-x2", validity=DisputeValidity.INVALID, quality=0.3),
        ]
        plan = calculator.build_plan(make_disputable_market(), Outcome.YES, disputes, now=NOW)
        assert plan.totals.treasury_allocation == _m("20")
        assert plan.totals.redistribution_pool == MoneyCAST.zero()
        assert plan.transactions[-1].action == SettlementAction.TREASURY_DEPOSIT
        assert plan.transactions[-1].amount == _m("20")

    def test_no_slashing_means_no_treasury_transaction(self, calculator):
        disputes = [make_dispute("d-v1", validity=DisputeValidity.VALID, quality=0.9)]
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, disputes, now=NOW)
        assert all(t.action != SettlementAction.TREASURY_DEPOSIT for t in plan.transactions)

    def test_empty_dispute_list(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.YES, [], now=NOW)
        assert plan.transactions == ()
        assert plan.totals.total_bonds == MoneyCAST.zero()


class TestOrdering:
    def test_slashes_first_treasury_last(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, _mixed_disputes(), now=NOW)
        actions = [t.action for t in plan.transactions]
        assert actions[:7] == [SettlementAction.SLASH_BOND] * 7
        assert actions[7:10] == [SettlementAction.REWARD_WITH_BONUSES] * 3
        assert actions[-1] == SettlementAction.TREASURY_DEPOSIT
        assert [t.dispute_id for t in plan.transactions[7:10]] == ["d-v1", "d-v2", "d-v3"]

    def test_plan_is_deterministic_for_shuffled_input(self, calculator):
        disputes = _mixed_disputes()
        first = calculator.build_plan(make_disputable_market(), Outcome.NO, disputes, now=NOW)
        second = calculator.build_plan(make_disputable_market(), Outcome.NO, list(reversed(disputes)), now=NOW)
        assert first.plan_id == second.plan_id
        assert first.plan_id.startswith("plan:mkt-1:")
        assert first.to_dict() == second.to_dict()

    def test_idempotency_keys(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, _mixed_disputes(), now=NOW)
        keys = [t.idempotency_key for t in plan.transactions]
        assert len(keys) == len(set(keys))
        assert "settlement:mkt-1:d-x0:slash_bond" in keys
        assert "settlement:mkt-1:d-v1:reward_with_bonuses" in keys
        assert keys[-1] == "settlement:mkt-1:treasury:treasury_deposit"


class TestRewards:
    def test_quality_and_early_bonus(self, calculator):
        dispute = make_dispute(
            "d-v1", bond="10", validity=DisputeValidity.VALID, quality=0.82,
            submitted_at=END_TIME + timedelta(hours=6),
        )
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, [dispute], now=NOW)
        breakdown = plan.transactions[0].breakdown
        assert breakdown.base_reward == _m("20")
        assert breakdown.quality_bonus == _m("5")
        assert breakdown.evidence_bonus == MoneyCAST.zero()
        assert breakdown.early_bonus == _m("2")
        assert breakdown.gas_refund == _m("0.5")
        assert breakdown.total == _m("27.5")
        assert plan.transactions[0].amount == _m("27.5")

    def test_late_submission_gets_no_early_bonus(self, calculator):
        dispute = make_dispute(
            "d-v1", validity=DisputeValidity.VALID, quality=0.7, submitted_at=END_TIME + timedelta(hours=30)
        )
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, [dispute], now=NOW)
        breakdown = plan.transactions[0].breakdown
        assert breakdown.early_bonus == MoneyCAST.zero()
        assert breakdown.quality_bonus == MoneyCAST.zero()
        assert breakdown.total == _m("20.5")

    def test_bonuses_are_paid_in_full(self, calculator):
        dispute = make_dispute(
            "d-v1", bond="10", validity=DisputeValidity.VALID, quality=0.9, evidence_strength=0.95,
        )
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, [dispute], now=NOW)
        breakdown = plan.transactions[0].breakdown
        assert breakdown.quality_bonus == _m("5")
        assert breakdown.evidence_bonus == _m("3")
        assert breakdown.early_bonus == _m("2")
        # base 20 + bonuses 10 already reach bonds x 3
        assert breakdown.gas_refund == MoneyCAST.zero()
        assert breakdown.total == _m("30")

    def test_gas_refund_uses_slashed_headroom(self, calculator):
        disputes = [
            make_dispute("d-v1", bond="1", validity=DisputeValidity.VALID, quality=0.95, evidence_strength=0.95),
            make_dispute("d-x1", bond="1", validity=DisputeValidity.INVALID, quality=0.1),
        ]
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, disputes, now=NOW)
        breakdown = next(t.breakdown for t in plan.transactions if t.breakdown is not None)
        assert breakdown.bonuses == _m("1")
        assert breakdown.gas_refund == _m("0.5")
        assert breakdown.slashing_share == _m("0.9")
        assert breakdown.total == _m("4.4")

    def test_uncertain_and_expired_get_bond_back(self, calculator):
        disputes = [
            make_dispute("d-u", bond="15", validity=DisputeValidity.UNCERTAIN, quality=0.5),
            make_dispute("d-e", bond="5", status=DisputeStatus.EXPIRED),
        ]
        plan = calculator.build_plan(make_disputable_market(), Outcome.YES, disputes, now=NOW)
        by_id = {t.dispute_id: t for t in plan.transactions}
        assert by_id["d-u"].action == SettlementAction.RETURN_BOND_ONLY
        assert by_id["d-u"].amount == _m("15")
        assert by_id["d-u"].reasons == ("dispute uncertain",)
        assert by_id["d-e"].action == SettlementAction.RETURN_BOND_ONLY
        assert by_id["d-e"].reasons == ("dispute expired unassessed",)
        assert plan.totals.total_returned == _m("20")

    def test_custom_config(self):
        calculator = SettlementCalculator(SettlementConfig(reward_multiplier=Decimal("1"), gas_refund=Decimal("0")))
        dispute = make_dispute(
            "d-v1", validity=DisputeValidity.VALID, quality=0.7, submitted_at=END_TIME + timedelta(hours=30)
        )
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, [dispute], now=NOW)
        assert plan.transactions[0].amount == _m("10")

    def test_gas_estimate(self, calculator):
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, _mixed_disputes(), now=NOW)
        assert plan.gas.slashing == 7 * 30_000
        assert plan.gas.transfers == 3 * 50_000
        assert plan.gas.treasury == 40_000


def _dispute_set(valid, uncertain, invalid, expired=()):
    disputes = []
    for i, bond in enumerate(valid):
        disputes.append(make_dispute(
            f"d-v{i}", bond=bond, validity=DisputeValidity.VALID, quality=0.95 - 0.05 * i, evidence_strength=0.95,
        ))
    for i, bond in enumerate(uncertain):
        disputes.append(make_dispute(f"d-u{i}", bond=bond, validity=DisputeValidity.UNCERTAIN, quality=0.5))
    for i, bond in enumerate(invalid):
        disputes.append(make_dispute(f"d-x{i}", bond=bond, validity=DisputeValidity.INVALID, quality=0.2))
    for i, bond in enumerate(expired):
        disputes.append(make_dispute(f"d-e{i}", bond=bond, status=DisputeStatus.EXPIRED))
    return disputes


class TestConservation:
    @pytest.mark.parametrize(
        "valid, uncertain, invalid, expired",
        [
            (["10"], [], [], []),
            (["1", "1", "1"], [], [], []),
            (["10", "20", "30"], [], ["10"] * 7, []),
            (["5"], ["15", "2.5"], ["7.123457"], []),
            (["1"], [], ["1000"], ["3"]),
            ([], ["10"], ["10", "20"], ["1"]),
            (["250", "0.5"], ["1"], [], []),
        ],
    )
    def test_plan_stays_within_bonds_times_multiplier(self, calculator, valid, uncertain, invalid, expired):
        disputes = _dispute_set(valid, uncertain, invalid, expired)
        plan = calculator.build_plan(make_disputable_market(), Outcome.NO, disputes, now=NOW)

        paid = MoneyCAST.sum(
            t.amount for t in plan.transactions
            if t.action in (
                SettlementAction.REWARD_WITH_BONUSES,
                SettlementAction.RETURN_BOND_ONLY,
                SettlementAction.TREASURY_DEPOSIT,
            )
        )
        bonds = MoneyCAST.sum(MoneyCAST(d.bond) for d in disputes)
        assert paid <= MoneyCAST(bonds.value * (1 + SettlementConfig().reward_multiplier))

        shares = MoneyCAST.sum(
            t.breakdown.slashing_share for t in plan.transactions if t.breakdown is not None
        )
        slashed = MoneyCAST.sum(MoneyCAST(d.bond) for d in disputes if d.dispute_id.startswith("d-x"))
        assert shares + plan.totals.treasury_allocation == slashed
        assert plan.totals.total_slashed == slashed
