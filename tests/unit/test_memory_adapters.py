# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Unit tests for the in-memory stores, bond ledger and JSONL audit sink."""

from datetime import timedelta

import pytest

from blockcast_core.adapters.audit import JsonlAuditSink
from blockcast_core.adapters.memory import (
    InMemoryBondLedger,
    InMemoryDisputeStore,
    InMemoryEvidenceStore,
    InMemoryMarketStore,
)
from blockcast_core.errors import (
    DuplicateActiveDisputeError,
    IdempotencyError,
    InsufficientStakeError,
    StateConflictError,
)
from blockcast_core.schema.dispute import DisputeStatus
from blockcast_core.schema.market import MarketStatus
from blockcast_core.settlement.ledger import LedgerEntry, LedgerEntryStatus, LedgerEntryType
from blockcast_core.settlement.types import MoneyCAST, SettlementAction, SettlementTransaction
from tests.fixtures.market_fixtures import END_TIME, make_dispute, make_market, make_submission


def _m(value):
    return MoneyCAST.from_str(value)


class TestMarketStore:
    def test_compare_and_set_requires_expected_revision(self):
        store = InMemoryMarketStore([make_market()])
        market = store.get("mkt-1")
        store.compare_and_set(
            market.advance(status=MarketStatus.PENDING_RESOLUTION),
            expected_status=MarketStatus.OPEN,
            expected_revision=0,
        )
        # A second writer holding the stale record loses.
        with pytest.raises(StateConflictError) as exc:
            store.compare_and_set(
                market.advance(status=MarketStatus.INVALID),
                expected_status=MarketStatus.OPEN,
                expected_revision=0,
            )
        assert exc.value.actual == "PENDING_RESOLUTION@1"
        assert store.get("mkt-1").status == MarketStatus.PENDING_RESOLUTION

    def test_list_markets_by_status(self):
        store = InMemoryMarketStore(
            [make_market("b"), make_market("a"), make_market("c", status=MarketStatus.RESOLVED)]
        )
        assert [m.market_id for m in store.list_markets([MarketStatus.OPEN])] == ["a", "b"]
        assert len(store.list_markets()) == 3

    def test_create_rejects_existing(self):
        store = InMemoryMarketStore([make_market()])
        with pytest.raises(StateConflictError):
            store.create(make_market())


class TestEvidenceStore:
    def test_window_bounds_are_inclusive(self):
        store = InMemoryEvidenceStore()
        for i in range(3):
            store.add(make_submission(i))
        store.add(make_submission(9, market_id="mkt-other"))

        # submitted at END_TIME - 1h, -2h, -3h
        assert len(store.list_for_market("mkt-1")) == 3
        assert [s.submission_id for s in store.list_for_market("mkt-1", until=END_TIME - timedelta(hours=2))] == [
            "sub-001",
            "sub-002",
        ]
        assert [s.submission_id for s in store.list_for_market("mkt-1", since=END_TIME - timedelta(hours=1))] == [
            "sub-000"
        ]
        assert store.list_for_market("mkt-1", since=END_TIME, until=END_TIME) == []


class TestDisputeStore:
    def test_one_active_dispute_per_disputer(self):
        store = InMemoryDisputeStore()
        store.create_active(make_dispute("d-1", disputer="0xa"))
        with pytest.raises(DuplicateActiveDisputeError):
            store.create_active(make_dispute("d-2", disputer="0xa"))

    def test_closed_dispute_frees_the_slot(self):
        store = InMemoryDisputeStore()
        first = store.create_active(make_dispute("d-1", disputer="0xa"))
        store.update(first.advance(status=DisputeStatus.REJECTED), expected_revision=first.revision)
        store.create_active(make_dispute("d-2", disputer="0xa"))
        assert store.find_active("mkt-1", "0xa").dispute_id == "d-2"

    def test_update_checks_revision(self):
        store = InMemoryDisputeStore()
        dispute = store.create_active(make_dispute("d-1"))
        store.update(dispute.advance(status=DisputeStatus.RESOLVED), expected_revision=dispute.revision)
        with pytest.raises(StateConflictError):
            store.update(dispute.advance(status=DisputeStatus.REJECTED), expected_revision=dispute.revision)


class TestBondLedger:
    @pytest.fixture
    def ledger(self):
        ledger = InMemoryBondLedger()
        ledger.set_balance("0xa", _m("50"))
        ledger.approve("0xa", ledger.custodian, _m("30"))
        return ledger

    def _lock(self, ledger, amount="10", key="dispute:d-1:bond"):
        return ledger.lock_bond(
            idempotency_key=key, market_id="mkt-1", dispute_id="d-1", disputer="0xa",
            amount=_m(amount), custodian=ledger.custodian,
        )

    def test_lock_moves_funds_and_spends_allowance(self, ledger):
        entry = self._lock(ledger)
        assert entry.entry_type == LedgerEntryType.BOND_LOCK
        assert ledger.balance_of("0xa") == _m("40")
        assert ledger.balance_of(ledger.custodian) == _m("10")
        assert ledger.allowance_of("0xa", ledger.custodian) == _m("20")

    def test_lock_is_idempotent(self, ledger):
        first = self._lock(ledger)
        second = self._lock(ledger)
        assert first is second
        assert ledger.balance_of("0xa") == _m("40")

    def test_lock_beyond_allowance(self, ledger):
        with pytest.raises(InsufficientStakeError) as exc:
            self._lock(ledger, amount="35")
        assert exc.value.kind == "allowance"
        assert ledger.entries() == []

    def test_release_returns_bond(self, ledger):
        self._lock(ledger)
        entry = ledger.release_bond(idempotency_key="dispute:d-1:release", lock_key="dispute:d-1:bond")
        assert entry.entry_type == LedgerEntryType.BOND_RELEASE
        assert ledger.balance_of("0xa") == _m("50")

    def test_release_without_lock(self, ledger):
        with pytest.raises(IdempotencyError):
            ledger.release_bond(idempotency_key="dispute:d-9:release", lock_key="dispute:d-9:bond")

    def test_write_entry_rejects_conflicting_reuse(self, ledger):
        entry = LedgerEntry(
            idempotency_key="k1", entry_type=LedgerEntryType.RETURN, amount=_m("1"),
            status=LedgerEntryStatus.SETTLED, account="0xa",
        )
        ledger.write_entry(entry)
        assert ledger.write_entry(entry) == entry
        with pytest.raises(IdempotencyError):
            ledger.write_entry(
                LedgerEntry(
                    idempotency_key="k1", entry_type=LedgerEntryType.RETURN, amount=_m("2"),
                    status=LedgerEntryStatus.SETTLED, account="0xa",
                )
            )

    def test_slash_does_not_move_funds(self, ledger):
        self._lock(ledger)
        tx = SettlementTransaction(
            idempotency_key="settlement:mkt-1:d-1:slash_bond", action=SettlementAction.SLASH_BOND,
            account="0xa", amount=_m("10"), market_id="mkt-1", dispute_id="d-1",
        )
        ledger.apply_transaction(tx)
        ledger.apply_transaction(tx)
        assert ledger.balance_of(ledger.custodian) == _m("10")
        assert len([e for e in ledger.entries() if e.entry_type == LedgerEntryType.SLASH]) == 1

    def test_mark_settled_keeps_first_plan(self, ledger):
        ledger.mark_settled("mkt-1", "plan:a")
        ledger.mark_settled("mkt-1", "plan:b")
        assert ledger.settled_plan("mkt-1") == "plan:a"

    def test_entry_round_trip(self, ledger):
        entry = self._lock(ledger)
        restored = LedgerEntry.from_dict(entry.to_dict())
        assert restored == entry


class TestJsonlAuditSink:
    def test_appends_json_lines(self, tmp_path):
        sink = JsonlAuditSink(tmp_path / "audit" / "events.jsonl")
        sink.record("market_transition", {"market_id": "mkt-1", "at": END_TIME})
        sink.record("settlement_executed", {"amount": _m("1.5"), "status": LedgerEntryStatus.SETTLED})

        records = sink.read_all()
        assert [r["kind"] for r in records] == ["market_transition", "settlement_executed"]
        assert records[0]["payload"]["market_id"] == "mkt-1"
        assert records[0]["payload"]["at"].startswith("2025-03-01T12:00:00")
        assert records[1]["payload"] == {"amount": {"value": "1.500000"}, "status": "settled"}

    def test_missing_file_reads_empty(self, tmp_path):
        assert JsonlAuditSink(tmp_path / "none.jsonl").read_all() == []
