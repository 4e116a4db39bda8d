# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
External interfaces consumed by the engine.

Persistent storage, the token ledger and the verification provider live
outside the engine; in-memory adapters are in `blockcast_core.adapters`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol, runtime_checkable

from blockcast_core.schema.dispute import Dispute, DisputerHistory
from blockcast_core.schema.evidence import EvidenceSubmission
from blockcast_core.schema.external import ExternalSignal
from blockcast_core.schema.market import BettingVolume, Market, MarketStatus
from blockcast_core.settlement.ledger import LedgerEntry
from blockcast_core.settlement.types import MoneyCAST, SettlementTransaction


@runtime_checkable
class MarketStore(Protocol):
    def get(self, market_id: str) -> Market | None:
        ...

    def create(self, market: Market) -> Market:
        ...

    def list_markets(self, statuses: Iterable[MarketStatus] | None = None) -> list[Market]:
        ...

    def compare_and_set(
        self,
        new: Market,
        *,
        expected_status: MarketStatus,
        expected_revision: int,
    ) -> Market:
        """Write `new` only if the stored record still has the expected status and revision.

        Raises StateConflictError otherwise.
        """
        ...


@runtime_checkable
class EvidenceStore(Protocol):
    def add(self, submission: EvidenceSubmission) -> EvidenceSubmission:
        ...

    def list_for_market(
        self, market_id: str, *, since: datetime | None = None, until: datetime | None = None
    ) -> list[EvidenceSubmission]:
        """Submissions with since <= submitted_at <= until; either bound may be open."""
        ...


@runtime_checkable
class DisputeStore(Protocol):
    def get(self, dispute_id: str) -> Dispute | None:
        ...

    def list_for_market(self, market_id: str) -> list[Dispute]:
        ...

    def find_active(self, market_id: str, disputer: str) -> Dispute | None:
        ...

    def create_active(self, dispute: Dispute) -> Dispute:
        """Atomically insert an ACTIVE dispute.

        Raises DuplicateActiveDisputeError when the disputer already holds one.
        """
        ...

    def update(self, dispute: Dispute, *, expected_revision: int) -> Dispute:
        ...


@runtime_checkable
class BondLedger(Protocol):
    def balance_of(self, account: str) -> MoneyCAST:
        ...

    def allowance_of(self, owner: str, spender: str) -> MoneyCAST:
        ...

    def get_entry(self, idempotency_key: str) -> LedgerEntry | None:
        ...

    def lock_bond(
        self,
        *,
        idempotency_key: str,
        market_id: str,
        dispute_id: str,
        disputer: str,
        amount: MoneyCAST,
        custodian: str,
    ) -> LedgerEntry:
        ...

    def release_bond(self, *, idempotency_key: str, lock_key: str) -> LedgerEntry:
        ...

    def apply_transaction(self, tx: SettlementTransaction) -> LedgerEntry:
        ...

    def is_settled(self, market_id: str) -> bool:
        ...

    def mark_settled(self, market_id: str, plan_id: str) -> None:
        ...


@runtime_checkable
class ExternalVerificationFeed(Protocol):
    async def fetch(self, market: Market) -> ExternalSignal:
        """Raises ExternalSignalUnavailableError when no signal can be produced."""
        ...


@runtime_checkable
class AuditSink(Protocol):
    def record(self, kind: str, payload: dict[str, Any]) -> None:
        ...


@runtime_checkable
class ReputationSource(Protocol):
    def history_for(self, disputer: str) -> DisputerHistory | None:
        ...


@runtime_checkable
class VolumeSource(Protocol):
    def volume_for(self, market_id: str) -> BettingVolume | None:
        ...
