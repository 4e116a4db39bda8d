# BlockCast Engine - main entry point

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from blockcast_core.config import BlockcastConfig
from blockcast_core.disputes.quality import DisputeQualityEvaluator
from blockcast_core.disputes.service import DisputeService
from blockcast_core.errors import StateConflictError
from blockcast_core.evidence.normalizer import EvidenceNormalizer
from blockcast_core.ports import (
    AuditSink,
    BondLedger,
    DisputeStore,
    EvidenceStore,
    ExternalVerificationFeed,
    MarketStore,
    ReputationSource,
    VolumeSource,
)
from blockcast_core.resolution.aggregator import MultiSignalAggregator
from blockcast_core.resolution.poller import PassReport, ResolutionPoller
from blockcast_core.resolution.state_machine import MarketStateMachine, TransitionResult
from blockcast_core.schema.decision import Outcome
from blockcast_core.schema.dispute import Dispute, DisputeRequest, DisputeStatus, DisputeValidity
from blockcast_core.schema.market import MarketStatus
from blockcast_core.settlement.calculator import SettlementCalculator
from blockcast_core.settlement.executor import SettlementExecutor
from blockcast_core.settlement.types import SettlementPlan
from blockcast_core.utils.runtime import ensure_utc
from blockcast_core.utils.trace import Trace
from blockcast_core.verification.feed import HttpVerificationFeed

logger = logging.getLogger(__name__)


class BlockcastEngine:
    """Wires the resolution, dispute and settlement components over the given stores."""

    def __init__(
        self,
        config: BlockcastConfig,
        *,
        markets: MarketStore,
        evidence: EvidenceStore,
        disputes: DisputeStore,
        ledger: BondLedger,
        volumes: Optional[VolumeSource] = None,
        reputation: Optional[ReputationSource] = None,
        audit: Optional[AuditSink] = None,
        feed: Optional[ExternalVerificationFeed] = None,
    ):
        self.config = config
        runtime = config.runtime
        self.markets = markets
        self.dispute_store = disputes
        self.ledger = ledger

        if feed is None and config.verification_url:
            feed = HttpVerificationFeed(
                url=config.verification_url,
                api_key=config.verification_api_key,
                config=runtime.verification,
            )
        self.feed = feed

        self.aggregator = MultiSignalAggregator(runtime.resolution, feed=feed, verification=runtime.verification)
        self.calculator = SettlementCalculator(runtime.settlement, treasury_address=config.treasury_address)
        self.executor = SettlementExecutor(ledger, audit=audit)
        self.machine = MarketStateMachine(
            markets=markets,
            evidence=evidence,
            disputes=disputes,
            aggregator=self.aggregator,
            executor=self.executor,
            normalizer=EvidenceNormalizer(runtime.evidence),
            calculator=self.calculator,
            volumes=volumes,
            audit=audit,
            runtime=runtime,
        )
        self.disputes = DisputeService(
            markets=markets,
            disputes=disputes,
            ledger=ledger,
            evaluator=DisputeQualityEvaluator(runtime.disputes),
            reputation=reputation,
            audit=audit,
            config=runtime.disputes,
            custodian=config.bond_custodian_address,
        )
        self.poller = ResolutionPoller(markets=markets, machine=self.machine, disputes=self.disputes)

        try:
            logger.debug("Effective config: %s", json.dumps(runtime.to_safe_log_dict(), ensure_ascii=False))
        except (TypeError, ValueError):
            logger.debug("Effective config could not be serialized")

    async def close(self) -> None:
        if isinstance(self.feed, HttpVerificationFeed):
            await self.feed.close()

    async def run_pass(self, now: Optional[datetime] = None, *, trace_id: Optional[str] = None) -> PassReport:
        ctx = Trace.start(trace_id or "resolution-pass", runtime=self.config.runtime) if trace_id else None
        try:
            return await self.poller.run_pass(now)
        finally:
            if ctx is not None:
                Trace.stop()

    async def advance(self, market_id: str, *, now: datetime) -> TransitionResult:
        return await self.machine.advance(market_id, now=now)

    async def invalidate(self, market_id: str, *, reason: str, admin: str, now: datetime) -> TransitionResult:
        return await self.machine.invalidate(market_id, reason=reason, admin=admin, now=now)

    def file_dispute(self, request: DisputeRequest | Dict[str, Any], *, now: datetime) -> Dispute:
        return self.disputes.file_dispute(request, now=now)

    def preview_settlement(self, market_id: str, *, now: datetime) -> SettlementPlan:
        """Plan a DISPUTABLE market's settlement as if it finalized now, without touching the ledger."""
        now = ensure_utc(now)
        market = self.markets.get(market_id)
        if market is None or market.status != MarketStatus.DISPUTABLE or market.preliminary is None:
            raise StateConflictError(
                market_id=market_id,
                expected=MarketStatus.DISPUTABLE.value,
                actual=market.status.value if market else "missing",
                operation="preview_settlement",
            )
        active = [d for d in self.dispute_store.list_for_market(market_id) if d.status == DisputeStatus.ACTIVE]
        if any(d.validity == DisputeValidity.VALID and d.proposed_outcome is Outcome.INVALID for d in active):
            outcome = Outcome.INVALID
        else:
            outcome = market.preliminary.outcome
        return self.calculator.build_plan(market, outcome, active, now=now)
