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
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from blockcast_core.settlement.types import MoneyCAST, SettlementAction


class LedgerEntryType(str, Enum):
    BOND_LOCK = "bond_lock"
    BOND_RELEASE = "bond_release"
    SLASH = "slash"
    RETURN = "return"
    REWARD = "reward"
    TREASURY_DEPOSIT = "treasury_deposit"


class LedgerEntryStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"
    REVERSED = "reversed"
    FAILED = "failed"


ACTION_ENTRY_TYPES = {
    SettlementAction.SLASH_BOND: LedgerEntryType.SLASH,
    SettlementAction.RETURN_BOND_ONLY: LedgerEntryType.RETURN,
    SettlementAction.REWARD_WITH_BONUSES: LedgerEntryType.REWARD,
    SettlementAction.TREASURY_DEPOSIT: LedgerEntryType.TREASURY_DEPOSIT,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    # Core fields
    idempotency_key: str
    entry_type: LedgerEntryType
    amount: MoneyCAST
    status: LedgerEntryStatus
    account: str
    created_at: datetime = field(default_factory=_utcnow, compare=False)

    # Optional context
    market_id: str | None = None
    dispute_id: str | None = None
    reason: str | None = None

    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence."""
        return {
            "idempotency_key": self.idempotency_key,
            "entry_type": self.entry_type.value,
            "amount": self.amount.to_str(),
            "status": self.status.value,
            "account": self.account,
            "created_at": self.created_at.isoformat(),
            "market_id": self.market_id,
            "dispute_id": self.dispute_id,
            "reason": self.reason,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        """Load from dictionary."""
        created = data.get("created_at")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)

        return cls(
            idempotency_key=data.get("idempotency_key", ""),
            entry_type=LedgerEntryType(data.get("entry_type", LedgerEntryType.BOND_LOCK.value)),
            amount=MoneyCAST.from_str(str(data.get("amount", "0"))),
            status=LedgerEntryStatus(data.get("status", LedgerEntryStatus.PENDING.value)),
            account=data.get("account", ""),
            created_at=created or _utcnow(),
            market_id=data.get("market_id"),
            dispute_id=data.get("dispute_id"),
            reason=data.get("reason"),
            meta=data.get("meta") or {},
        )


def build_idempotency_key(*parts: str) -> str:
    cleaned = [p.strip() for p in parts if p and p.strip()]
    return ":".join(cleaned)


def bond_lock_key(dispute_id: str) -> str:
    return build_idempotency_key("dispute", dispute_id, "bond")


def bond_release_key(dispute_id: str) -> str:
    return build_idempotency_key("dispute", dispute_id, "release")


def settlement_key(market_id: str, subject: str, action: SettlementAction) -> str:
    """Format: settlement:{market}:{dispute or treasury}:{action}"""
    return build_idempotency_key("settlement", market_id, subject, action.value.lower())
