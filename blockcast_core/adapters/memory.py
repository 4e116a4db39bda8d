# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable

from blockcast_core.errors import (
    DuplicateActiveDisputeError,
    IdempotencyError,
    InsufficientStakeError,
    StateConflictError,
)
from blockcast_core.schema.dispute import Dispute, DisputerHistory, DisputeStatus
from blockcast_core.schema.evidence import EvidenceSubmission
from blockcast_core.schema.market import BettingVolume, Market, MarketStatus
from blockcast_core.settlement.ledger import (
    ACTION_ENTRY_TYPES,
    LedgerEntry,
    LedgerEntryStatus,
    LedgerEntryType,
)
from blockcast_core.settlement.types import MoneyCAST, SettlementAction, SettlementTransaction


class InMemoryMarketStore:
    def __init__(self, markets: Iterable[Market] = ()) -> None:
        self._lock = threading.Lock()
        self._markets: Dict[str, Market] = {m.market_id: m for m in markets}

    def get(self, market_id: str) -> Market | None:
        return self._markets.get(market_id)

    def create(self, market: Market) -> Market:
        with self._lock:
            existing = self._markets.get(market.market_id)
            if existing is not None:
                raise StateConflictError(
                    market_id=market.market_id,
                    expected="absent",
                    actual=existing.status.value,
                    operation="create",
                )
            self._markets[market.market_id] = market
            return market

    def list_markets(self, statuses: Iterable[MarketStatus] | None = None) -> list[Market]:
        wanted = set(statuses) if statuses is not None else None
        out = [m for m in self._markets.values() if wanted is None or m.status in wanted]
        return sorted(out, key=lambda m: m.market_id)

    def compare_and_set(
        self,
        new: Market,
        *,
        expected_status: MarketStatus,
        expected_revision: int,
    ) -> Market:
        with self._lock:
            stored = self._markets.get(new.market_id)
            if stored is None or stored.status != expected_status or stored.revision != expected_revision:
                actual = f"{stored.status.value}@{stored.revision}" if stored else "missing"
                raise StateConflictError(
                    market_id=new.market_id,
                    expected=f"{expected_status.value}@{expected_revision}",
                    actual=actual,
                    operation="compare_and_set",
                )
            self._markets[new.market_id] = new
            return new


class InMemoryEvidenceStore:
    def __init__(self) -> None:
        self._items: Dict[str, list[EvidenceSubmission]] = {}

    def add(self, submission: EvidenceSubmission) -> EvidenceSubmission:
        self._items.setdefault(submission.market_id, []).append(submission)
        return submission

    def list_for_market(
        self, market_id: str, *, since: datetime | None = None, until: datetime | None = None
    ) -> list[EvidenceSubmission]:
        return [
            s for s in self._items.get(market_id, [])
            if (since is None or s.submitted_at >= since) and (until is None or s.submitted_at <= until)
        ]


class InMemoryDisputeStore:
    def __init__(self, disputes: Iterable[Dispute] = ()) -> None:
        self._lock = threading.Lock()
        self._disputes: Dict[str, Dispute] = {d.dispute_id: d for d in disputes}

    def get(self, dispute_id: str) -> Dispute | None:
        return self._disputes.get(dispute_id)

    def list_for_market(self, market_id: str) -> list[Dispute]:
        out = [d for d in self._disputes.values() if d.market_id == market_id]
        return sorted(out, key=lambda d: d.dispute_id)

    def find_active(self, market_id: str, disputer: str) -> Dispute | None:
        for d in self._disputes.values():
            if d.market_id == market_id and d.disputer == disputer and d.status == DisputeStatus.ACTIVE:
                return d
        return None

    def create_active(self, dispute: Dispute) -> Dispute:
        with self._lock:
            if self.find_active(dispute.market_id, dispute.disputer) is not None:
                raise DuplicateActiveDisputeError(dispute.market_id, dispute.disputer)
            if dispute.dispute_id in self._disputes:
                raise DuplicateActiveDisputeError(dispute.market_id, dispute.disputer)
            self._disputes[dispute.dispute_id] = dispute
            return dispute

    def update(self, dispute: Dispute, *, expected_revision: int) -> Dispute:
        with self._lock:
            stored = self._disputes.get(dispute.dispute_id)
            if stored is None or stored.revision != expected_revision:
                raise StateConflictError(
                    market_id=dispute.market_id,
                    expected=f"{dispute.dispute_id}@{expected_revision}",
                    actual=f"{dispute.dispute_id}@{stored.revision}" if stored else "missing",
                    operation="dispute_update",
                )
            self._disputes[dispute.dispute_id] = dispute
            return dispute


class InMemoryBondLedger:
    """
    Token balances, allowances and idempotent ledger entries.

    Locked bonds are held by the custodian account; settlement payouts are
    drawn from it. The custodian is a protocol account and may run below
    zero here, since reward funding happens outside this ledger.
    """

    def __init__(self, *, custodian: str = "dispute-manager") -> None:
        self.custodian = custodian
        self._lock = threading.RLock()
        self._balances: Dict[str, Decimal] = {}
        self._allowances: Dict[tuple[str, str], Decimal] = {}
        self._entries: Dict[str, LedgerEntry] = {}
        self._settled: Dict[str, str] = {}

    # -- funding helpers ------------------------------------------------------

    def set_balance(self, account: str, amount: MoneyCAST) -> None:
        self._balances[account] = amount.value

    def approve(self, owner: str, spender: str, amount: MoneyCAST) -> None:
        self._allowances[(owner, spender)] = amount.value

    # -- queries --------------------------------------------------------------

    def balance_of(self, account: str) -> MoneyCAST:
        return MoneyCAST(self._balances.get(account, Decimal("0")))

    def allowance_of(self, owner: str, spender: str) -> MoneyCAST:
        return MoneyCAST(self._allowances.get((owner, spender), Decimal("0")))

    def get_entry(self, idempotency_key: str) -> LedgerEntry | None:
        return self._entries.get(idempotency_key)

    def entries(self) -> list[LedgerEntry]:
        return list(self._entries.values())

    def is_settled(self, market_id: str) -> bool:
        return market_id in self._settled

    def settled_plan(self, market_id: str) -> str | None:
        return self._settled.get(market_id)

    # -- writes ---------------------------------------------------------------

    def write_entry(self, entry: LedgerEntry) -> LedgerEntry:
        existing = self._entries.get(entry.idempotency_key)
        if existing is not None:
            if existing == entry:
                return existing
            raise IdempotencyError(entry.idempotency_key)
        self._entries[entry.idempotency_key] = entry
        return entry

    def _move(self, source: str, target: str, amount: Decimal) -> None:
        self._balances[source] = self._balances.get(source, Decimal("0")) - amount
        self._balances[target] = self._balances.get(target, Decimal("0")) + amount

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
        with self._lock:
            existing = self._entries.get(idempotency_key)
            if existing is not None:
                return existing

            balance = self.balance_of(disputer)
            if balance < amount:
                raise InsufficientStakeError(disputer, amount.to_str(), balance.to_str(), kind="balance")
            allowance = self.allowance_of(disputer, custodian)
            if allowance < amount:
                raise InsufficientStakeError(disputer, amount.to_str(), allowance.to_str(), kind="allowance")

            self._move(disputer, custodian, amount.value)
            self._allowances[(disputer, custodian)] = (allowance - amount).value
            return self.write_entry(
                LedgerEntry(
                    idempotency_key=idempotency_key,
                    entry_type=LedgerEntryType.BOND_LOCK,
                    amount=amount,
                    status=LedgerEntryStatus.SETTLED,
                    account=disputer,
                    market_id=market_id,
                    dispute_id=dispute_id,
                    reason="dispute_bond",
                    meta={"custodian": custodian},
                )
            )

    def release_bond(self, *, idempotency_key: str, lock_key: str) -> LedgerEntry:
        with self._lock:
            existing = self._entries.get(idempotency_key)
            if existing is not None:
                return existing
            lock = self._entries.get(lock_key)
            if lock is None or lock.entry_type != LedgerEntryType.BOND_LOCK:
                raise IdempotencyError(lock_key)

            custodian = str(lock.meta.get("custodian", self.custodian))
            self._move(custodian, lock.account, lock.amount.value)
            return self.write_entry(
                LedgerEntry(
                    idempotency_key=idempotency_key,
                    entry_type=LedgerEntryType.BOND_RELEASE,
                    amount=lock.amount,
                    status=LedgerEntryStatus.SETTLED,
                    account=lock.account,
                    market_id=lock.market_id,
                    dispute_id=lock.dispute_id,
                    reason="bond_release",
                    meta={"lock_key": lock_key},
                )
            )

    def apply_transaction(self, tx: SettlementTransaction) -> LedgerEntry:
        entry = LedgerEntry(
            idempotency_key=tx.idempotency_key,
            entry_type=ACTION_ENTRY_TYPES[tx.action],
            amount=tx.amount,
            status=LedgerEntryStatus.SETTLED,
            account=tx.account,
            market_id=tx.market_id,
            dispute_id=tx.dispute_id,
            reason=tx.action.value,
            meta={"reasons": list(tx.reasons)},
        )
        with self._lock:
            existing = self._entries.get(tx.idempotency_key)
            if existing is not None:
                if existing == entry:
                    return existing
                raise IdempotencyError(tx.idempotency_key)
            # Slashed bonds already sit with the custodian; only payouts move funds.
            if tx.action != SettlementAction.SLASH_BOND:
                self._move(self.custodian, tx.account, tx.amount.value)
            return self.write_entry(entry)

    def mark_settled(self, market_id: str, plan_id: str) -> None:
        with self._lock:
            self._settled.setdefault(market_id, plan_id)


class InMemoryReputationSource:
    def __init__(self, histories: Iterable[DisputerHistory] = ()) -> None:
        self._histories: Dict[str, DisputerHistory] = {h.disputer: h for h in histories}

    def put(self, history: DisputerHistory) -> None:
        self._histories[history.disputer] = history

    def history_for(self, disputer: str) -> DisputerHistory | None:
        return self._histories.get(disputer)


class InMemoryVolumeSource:
    def __init__(self, volumes: Iterable[BettingVolume] = ()) -> None:
        self._volumes: Dict[str, BettingVolume] = {v.market_id: v for v in volumes}

    def put(self, volume: BettingVolume) -> None:
        self._volumes[volume.market_id] = volume

    def volume_for(self, market_id: str) -> BettingVolume | None:
        return self._volumes.get(market_id)


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.records: list[tuple[str, dict[str, Any]]] = []

    def record(self, kind: str, payload: dict[str, Any]) -> None:
        self.records.append((kind, dict(payload)))

    def kinds(self) -> list[str]:
        return [k for k, _ in self.records]
