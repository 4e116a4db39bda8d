# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any

from blockcast_core.errors import ResolutionError, SettlementError, SettlementReplayWarning
from blockcast_core.ports import AuditSink, BondLedger
from blockcast_core.settlement.types import SettlementPlan
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionReport:
    plan_id: str
    market_id: str
    applied: tuple[str, ...] = field(default_factory=tuple)
    skipped: tuple[str, ...] = field(default_factory=tuple)
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "market_id": self.market_id,
            "applied": list(self.applied),
            "skipped": list(self.skipped),
            "replayed": self.replayed,
        }


class SettlementExecutor:
    """
    Applies a SettlementPlan to the bond ledger.

    The ledger is the source of truth for what already ran: transactions whose
    idempotency key is present are skipped, so a failed execution can simply
    be retried with the same (deterministic) plan.
    """

    def __init__(self, ledger: BondLedger, *, audit: AuditSink | None = None):
        self.ledger = ledger
        self.audit = audit

    def execute(self, plan: SettlementPlan) -> ExecutionReport:
        if self.ledger.is_settled(plan.market_id):
            warnings.warn(
                f"Market {plan.market_id} is already settled; plan {plan.plan_id} not applied",
                SettlementReplayWarning,
                stacklevel=2,
            )
            logger.info("Settlement replay ignored for market %s (plan %s)", plan.market_id, plan.plan_id)
            return ExecutionReport(plan_id=plan.plan_id, market_id=plan.market_id, replayed=True)

        applied: list[str] = []
        skipped: list[str] = []
        for tx in plan.transactions:
            if self.ledger.get_entry(tx.idempotency_key) is not None:
                skipped.append(tx.idempotency_key)
                continue
            try:
                self.ledger.apply_transaction(tx)
            except ResolutionError as e:
                Trace.event(
                    "settlement.tx.failed",
                    {"plan_id": plan.plan_id, "key": tx.idempotency_key, **e.to_trace_dict()},
                )
                raise SettlementError(plan.market_id, f"transaction {tx.idempotency_key} rejected", cause=e) from e
            except (OSError, ValueError) as e:
                Trace.event(
                    "settlement.tx.failed",
                    {"plan_id": plan.plan_id, "key": tx.idempotency_key, "error": str(e)},
                )
                raise SettlementError(plan.market_id, f"transaction {tx.idempotency_key} failed", cause=e) from e
            applied.append(tx.idempotency_key)

        self.ledger.mark_settled(plan.market_id, plan.plan_id)
        report = ExecutionReport(
            plan_id=plan.plan_id,
            market_id=plan.market_id,
            applied=tuple(applied),
            skipped=tuple(skipped),
        )
        if self.audit is not None:
            self.audit.record("settlement_executed", report.to_dict())
        Trace.event("settlement.executed", report.to_dict())
        logger.info(
            "Settled market %s with plan %s: applied=%d skipped=%d",
            plan.market_id,
            plan.plan_id,
            len(applied),
            len(skipped),
        )
        return report
