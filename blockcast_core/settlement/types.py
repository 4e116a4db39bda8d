# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

CAST_PLACES = 6
CAST_QUANT = Decimal("0.000001")

# Gas units per transaction type (settlement summary estimate).
GAS_UNITS_TRANSFER = 50_000
GAS_UNITS_SLASH = 30_000
GAS_UNITS_TREASURY = 40_000
GAS_PRICE_PER_UNIT = Decimal("0.00000001")


# -----------------------------------------------------------------------------
# Money Helpers (Decimal-based, no floats)
# -----------------------------------------------------------------------------

def quantize_cast(value: Decimal, rounding=ROUND_HALF_UP) -> Decimal:
    """Quantize a Decimal to CAST token precision."""
    return value.quantize(CAST_QUANT, rounding=rounding)


def cast_to_str(value: Decimal) -> str:
    """Convert Decimal to string, stripping unnecessary zeros."""
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, "f")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Convert any numeric to Decimal (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# -----------------------------------------------------------------------------
# MoneyCAST Dataclass (frozen, safe arithmetic)
# -----------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MoneyCAST:
    """Immutable CAST amount with automatic quantization."""
    value: Decimal

    def __post_init__(self):
        object.__setattr__(self, "value", quantize_cast(to_decimal(self.value)))

    def __add__(self, other: "MoneyCAST") -> "MoneyCAST":
        return MoneyCAST(self.value + other.value)

    def __sub__(self, other: "MoneyCAST") -> "MoneyCAST":
        return MoneyCAST(self.value - other.value)

    def __mul__(self, factor: Decimal | int | float) -> "MoneyCAST":
        return MoneyCAST(self.value * to_decimal(factor))

    def __lt__(self, other: "MoneyCAST") -> bool:
        return self.value < other.value

    def __le__(self, other: "MoneyCAST") -> bool:
        return self.value <= other.value

    def __gt__(self, other: "MoneyCAST") -> bool:
        return self.value > other.value

    def __ge__(self, other: "MoneyCAST") -> bool:
        return self.value >= other.value

    def floor_share(self, weight: Decimal, total: Decimal) -> "MoneyCAST":
        """Pro-rata share self * weight / total, rounded toward zero."""
        return MoneyCAST(quantize_cast(self.value * weight / total, rounding=ROUND_DOWN))

    def min(self, other: "MoneyCAST") -> "MoneyCAST":
        return MoneyCAST(min(self.value, other.value))

    def max0(self) -> "MoneyCAST":
        """Return max(0, self)."""
        return MoneyCAST(max(Decimal("0"), self.value))

    def is_zero(self) -> bool:
        return self.value == 0

    def to_str(self) -> str:
        return cast_to_str(self.value)

    @classmethod
    def zero(cls) -> "MoneyCAST":
        return cls(Decimal("0"))

    @classmethod
    def from_str(cls, s: str) -> "MoneyCAST":
        return cls(Decimal(s))

    @classmethod
    def sum(cls, items) -> "MoneyCAST":
        total = Decimal("0")
        for m in items:
            total += m.value
        return cls(total)


# -----------------------------------------------------------------------------
# Settlement Transactions & Plan
# -----------------------------------------------------------------------------

class SettlementAction(str, Enum):
    SLASH_BOND = "SLASH_BOND"
    RETURN_BOND_ONLY = "RETURN_BOND_ONLY"
    REWARD_WITH_BONUSES = "REWARD_WITH_BONUSES"
    TREASURY_DEPOSIT = "TREASURY_DEPOSIT"


GAS_UNITS = {
    SettlementAction.SLASH_BOND: GAS_UNITS_SLASH,
    SettlementAction.RETURN_BOND_ONLY: GAS_UNITS_TRANSFER,
    SettlementAction.REWARD_WITH_BONUSES: GAS_UNITS_TRANSFER,
    SettlementAction.TREASURY_DEPOSIT: GAS_UNITS_TREASURY,
}


@dataclass(frozen=True, slots=True)
class RewardBreakdown:
    """Components of a valid disputer's payout."""
    base_reward: MoneyCAST
    quality_bonus: MoneyCAST = field(default_factory=MoneyCAST.zero)
    evidence_bonus: MoneyCAST = field(default_factory=MoneyCAST.zero)
    early_bonus: MoneyCAST = field(default_factory=MoneyCAST.zero)
    gas_refund: MoneyCAST = field(default_factory=MoneyCAST.zero)
    slashing_share: MoneyCAST = field(default_factory=MoneyCAST.zero)

    @property
    def bonuses(self) -> MoneyCAST:
        return self.quality_bonus + self.evidence_bonus + self.early_bonus

    @property
    def total(self) -> MoneyCAST:
        return self.base_reward + self.bonuses + self.gas_refund + self.slashing_share

    def to_dict(self) -> dict[str, str]:
        return {
            "base_reward": self.base_reward.to_str(),
            "quality_bonus": self.quality_bonus.to_str(),
            "evidence_bonus": self.evidence_bonus.to_str(),
            "early_bonus": self.early_bonus.to_str(),
            "gas_refund": self.gas_refund.to_str(),
            "slashing_share": self.slashing_share.to_str(),
            "total": self.total.to_str(),
        }


@dataclass(frozen=True, slots=True)
class SettlementTransaction:
    """One ledger operation emitted by the calculator."""
    idempotency_key: str
    action: SettlementAction
    account: str
    amount: MoneyCAST
    market_id: str
    dispute_id: Optional[str] = None
    original_bond: MoneyCAST = field(default_factory=MoneyCAST.zero)
    quality_score: Optional[float] = None
    breakdown: Optional[RewardBreakdown] = None
    reasons: tuple[str, ...] = ()

    @property
    def gas_units(self) -> int:
        return GAS_UNITS[self.action]

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "idempotency_key": self.idempotency_key,
            "action": self.action.value,
            "account": self.account,
            "amount": self.amount.to_str(),
            "market_id": self.market_id,
            "original_bond": self.original_bond.to_str(),
            "reasons": list(self.reasons),
        }
        if self.dispute_id:
            d["dispute_id"] = self.dispute_id
        if self.quality_score is not None:
            d["quality_score"] = round(self.quality_score, 4)
        if self.breakdown is not None:
            d["breakdown"] = self.breakdown.to_dict()
        return d


@dataclass(frozen=True, slots=True)
class SettlementTotals:
    total_bonds: MoneyCAST
    total_slashed: MoneyCAST
    treasury_allocation: MoneyCAST
    redistribution_pool: MoneyCAST
    total_rewards: MoneyCAST
    total_bonuses: MoneyCAST
    total_returned: MoneyCAST
    valid_count: int = 0
    uncertain_count: int = 0
    invalid_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_bonds": self.total_bonds.to_str(),
            "total_slashed": self.total_slashed.to_str(),
            "treasury_allocation": self.treasury_allocation.to_str(),
            "redistribution_pool": self.redistribution_pool.to_str(),
            "total_rewards": self.total_rewards.to_str(),
            "total_bonuses": self.total_bonuses.to_str(),
            "total_returned": self.total_returned.to_str(),
            "valid_count": self.valid_count,
            "uncertain_count": self.uncertain_count,
            "invalid_count": self.invalid_count,
        }


@dataclass(frozen=True, slots=True)
class GasEstimate:
    transfers: int = 0
    slashing: int = 0
    treasury: int = 0

    @property
    def total_units(self) -> int:
        return self.transfers + self.slashing + self.treasury

    @property
    def total_cost(self) -> Decimal:
        return self.total_units * GAS_PRICE_PER_UNIT

    def to_dict(self) -> dict[str, Any]:
        return {
            "transfers": self.transfers,
            "slashing": self.slashing,
            "treasury": self.treasury,
            "total_units": self.total_units,
            "total_cost": cast_to_str(self.total_cost),
        }


@dataclass(frozen=True, slots=True)
class SettlementPlan:
    """Ordered, deterministic settlement of one market's disputes."""
    plan_id: str
    market_id: str
    final_outcome: str
    transactions: tuple[SettlementTransaction, ...]
    totals: SettlementTotals
    gas: GasEstimate
    created_at: datetime
    settlement_version: str = ""

    def by_dispute(self, dispute_id: str) -> list[SettlementTransaction]:
        return [t for t in self.transactions if t.dispute_id == dispute_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "market_id": self.market_id,
            "final_outcome": self.final_outcome,
            "transactions": [t.to_dict() for t in self.transactions],
            "totals": self.totals.to_dict(),
            "gas": self.gas.to_dict(),
            "created_at": self.created_at.isoformat(),
            "settlement_version": self.settlement_version,
        }
