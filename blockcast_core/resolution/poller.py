# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from blockcast_core.disputes.service import DisputeService
from blockcast_core.errors import ResolutionError, StateConflictError
from blockcast_core.ports import MarketStore
from blockcast_core.resolution.state_machine import MarketStateMachine, TransitionResult
from blockcast_core.schema.market import MarketStatus
from blockcast_core.utils.runtime import ensure_utc, utc_now
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (MarketStatus.OPEN, MarketStatus.PENDING_RESOLUTION, MarketStatus.DISPUTABLE)
_TERMINAL_STATUSES = (MarketStatus.RESOLVED, MarketStatus.INVALID)


@dataclass
class PassReport:
    started_at: datetime
    scanned: int = 0
    transitions: list[TransitionResult] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    closed_disputes: dict[str, list[str]] = field(default_factory=dict)

    @property
    def changed(self) -> list[TransitionResult]:
        return [t for t in self.transitions if t.changed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "scanned": self.scanned,
            "changed": [t.to_dict() for t in self.changed],
            "unchanged": len(self.transitions) - len(self.changed),
            "conflicts": list(self.conflicts),
            "errors": dict(self.errors),
            "closed_disputes": {k: list(v) for k, v in self.closed_disputes.items()},
        }


class ResolutionPoller:
    """
    Stateless periodic driver.

    Each pass re-reads every non-terminal market from the store and asks the
    state machine to advance it. A lost compare-and-set means another worker
    got there first; other engine errors are reported and the pass moves on.
    Terminal markets are only visited to close disputes left ACTIVE.
    """

    def __init__(
        self,
        *,
        markets: MarketStore,
        machine: MarketStateMachine,
        disputes: DisputeService | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.markets = markets
        self.machine = machine
        self.disputes = disputes
        self.clock = clock

    async def run_pass(self, now: datetime | None = None) -> PassReport:
        now = ensure_utc(now or self.clock())
        report = PassReport(started_at=now)

        for market in self.markets.list_markets(_ACTIVE_STATUSES):
            report.scanned += 1
            try:
                if self.disputes is not None and market.status == MarketStatus.DISPUTABLE:
                    self.disputes.evaluate_pending(market.market_id, now=now)
                report.transitions.append(await self.machine.advance(market.market_id, now=now))
            except StateConflictError as e:
                logger.info("[Poller] %s", e)
                report.conflicts.append(market.market_id)
            except ResolutionError as e:
                logger.error("[Poller] Market %s failed: %s", market.market_id, e)
                Trace.event("poller.market.failed", {"market_id": market.market_id, **e.to_trace_dict()})
                report.errors[market.market_id] = e.reason

        for market in self.markets.list_markets(_TERMINAL_STATUSES):
            try:
                closed = self.machine.close_disputes(market.market_id)
            except ResolutionError as e:
                logger.error("[Poller] Dispute sweep for %s failed: %s", market.market_id, e)
                report.errors[market.market_id] = e.reason
                continue
            if closed:
                report.closed_disputes[market.market_id] = closed

        logger.info(
            "[Poller] Pass at %s: scanned=%d changed=%d conflicts=%d errors=%d swept=%d",
            now.isoformat(),
            report.scanned,
            len(report.changed),
            len(report.conflicts),
            len(report.errors),
            sum(len(v) for v in report.closed_disputes.values()),
        )
        return report

    async def run_forever(self, interval_sec: float, *, max_passes: int | None = None) -> None:
        passes = 0
        while max_passes is None or passes < max_passes:
            await self.run_pass()
            passes += 1
            if max_passes is not None and passes >= max_passes:
                break
            await asyncio.sleep(interval_sec)
