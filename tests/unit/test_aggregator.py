# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Unit tests for the resolution signals and MultiSignalAggregator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from blockcast_core.errors import ExternalSignalUnavailableError
from blockcast_core.evidence.normalizer import EvidenceNormalizer
from blockcast_core.resolution.aggregator import MultiSignalAggregator
from blockcast_core.resolution.signals import (
    CounterEvidence,
    betting_signal,
    evidence_signal,
    external_signal,
)
from blockcast_core.runtime_config import VerificationConfig
from blockcast_core.schema.decision import DecisionStage, Outcome, RecommendedAction, RiskFlag
from blockcast_core.schema.evidence import Stance
from blockcast_core.schema.external import ExternalSignal, ExternalSource
from tests.fixtures.market_fixtures import (
    END_TIME,
    EN_NO_TEXT,
    FR_NO_TEXT,
    SOCIAL_LINK,
    make_external,
    make_market,
    make_submission,
    make_volume,
)


def _batch(submissions):
    return EvidenceNormalizer().normalize(submissions)


def _confident_yes_inputs():
    market = make_market()
    batch = _batch([make_submission(i) for i in range(5)])
    return market, batch, make_volume("900", "100"), make_external()


class TestSignals:
    def test_betting_full_skew_earns_cap(self):
        comp = betting_signal(make_volume("900", "100"))
        assert comp.direction is Outcome.YES
        assert comp.points == 25.0

    def test_betting_partial_skew(self):
        comp = betting_signal(make_volume("35", "65"))
        assert comp.direction is Outcome.NO
        assert comp.points == pytest.approx(12.5)

    def test_betting_even_split_has_no_direction(self):
        comp = betting_signal(make_volume("50", "50"))
        assert comp.direction is None
        assert comp.points == 0.0

    def test_betting_without_volume_is_unavailable(self):
        assert betting_signal(None).available is False
        assert betting_signal(make_volume("0", "0")).available is False

    def test_evidence_signal_is_capped(self):
        batch = _batch([make_submission(i) for i in range(8)])
        comp = evidence_signal(batch.valid)
        assert comp.points == 45.0
        assert comp.detail["count_yes"] == 8

    def test_counter_evidence_adds_weight(self):
        batch = _batch([make_submission(1)])
        comp = evidence_signal(batch.valid, [CounterEvidence("d1", Outcome.NO, 0.95)])
        assert comp.direction is Outcome.NO
        assert comp.points == pytest.approx(1.5)
        assert comp.detail["counter_no"] == pytest.approx(0.95)

    def test_external_counts_one_vote_per_host(self):
        signal = ExternalSignal(
            market_id="mkt-1",
            sources=[
                ExternalSource(url="https://a.example.org/1", relevance=0.9, supports=True),
                ExternalSource(url="https://a.example.org/2", relevance=0.9, supports=True),
                ExternalSource(url="https://b.example.org/1", relevance=0.5, supports=False),
            ],
        )
        comp = external_signal(signal)
        assert comp.detail["unique_sources"] == 2
        assert comp.points == pytest.approx(4.0)
        assert comp.direction is Outcome.YES

    def test_external_is_capped(self):
        comp = external_signal(make_external(count=5, relevance=1.0))
        assert comp.points == 30.0


class TestDecide:
    def test_confident_yes_market(self):
        market, batch, volume, external = _confident_yes_inputs()
        decision = MultiSignalAggregator().decide(
            market, batch, volume, external, DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert decision.outcome is Outcome.YES
        assert decision.betting.contribution == pytest.approx(25.0)
        assert decision.evidence.contribution == pytest.approx(40.0)
        assert decision.external.contribution == pytest.approx(27.0)
        assert decision.confidence == pytest.approx(92.0)
        assert decision.recommended_action is RecommendedAction.AUTO_RESOLVE
        assert decision.risk_flags == []

    def test_confidence_is_sum_of_bounded_contributions(self):
        market, batch, volume, external = _confident_yes_inputs()
        decision = MultiSignalAggregator().decide(
            market, batch, volume, external, DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert 0.0 <= decision.confidence <= 100.0
        assert decision.confidence == pytest.approx(sum(c.contribution for c in decision.components))
        for comp in decision.components:
            assert 0.0 <= comp.contribution <= comp.cap

    def test_balanced_low_credibility_market_is_invalid(self):
        market = make_market()
        batch = _batch(
            [
                make_submission(1, sources=[SOCIAL_LINK]),
                make_submission(2, content=EN_NO_TEXT, position=Stance.NO, sources=[SOCIAL_LINK]),
            ]
        )
        inconclusive = make_external(supports=None)
        decision = MultiSignalAggregator().decide(
            market, batch, make_volume("50", "50"), inconclusive, DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert decision.outcome is Outcome.INVALID
        assert decision.confidence < 60
        assert RiskFlag.LOW_EVIDENCE_COUNT in decision.risk_flags

    def test_disagreeing_signal_contributes_nothing(self):
        market = make_market()
        batch = _batch([make_submission(i) for i in range(5)])
        decision = MultiSignalAggregator().decide(
            market, batch, make_volume("100", "900"), make_external(), DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert decision.outcome is Outcome.YES
        assert decision.betting.contribution == 0.0
        assert decision.betting.points == 25.0
        assert decision.confidence == pytest.approx(67.0)
        assert RiskFlag.SIGNALS_CONFLICT in decision.risk_flags
        assert decision.recommended_action is RecommendedAction.EXTENDED_REVIEW

    def test_sensitive_category_is_never_auto_resolved(self):
        _, batch, volume, external = _confident_yes_inputs()
        market = make_market(category="Politics")
        decision = MultiSignalAggregator().decide(
            market, batch, volume, external, DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert RiskFlag.CATEGORY_SENSITIVE in decision.risk_flags
        assert decision.recommended_action is RecommendedAction.ADMIN_REVIEW

    def test_cross_language_contradiction_flag(self):
        market = make_market()
        subs = [make_submission(i) for i in range(5)]
        subs.append(make_submission(9, content=FR_NO_TEXT, language="fr", position=Stance.NO))
        decision = MultiSignalAggregator().decide(
            market, _batch(subs), make_volume("900", "100"), make_external(), DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert RiskFlag.CROSS_LANGUAGE_CONTRADICTION in decision.risk_flags
        assert RiskFlag.LANGUAGE_IMBALANCE in decision.risk_flags

    def test_missing_external_is_flagged(self):
        market, batch, volume, _ = _confident_yes_inputs()
        decision = MultiSignalAggregator().decide(
            market, batch, volume, None, DecisionStage.PRELIMINARY, now=END_TIME
        )
        assert RiskFlag.EXTERNAL_SIGNAL_UNAVAILABLE in decision.risk_flags
        assert decision.external.available is False
        assert decision.confidence == pytest.approx(65.0)

    def test_same_inputs_give_identical_decisions(self):
        market, batch, volume, external = _confident_yes_inputs()
        aggregator = MultiSignalAggregator()
        first = aggregator.decide(market, batch, volume, external, DecisionStage.PRELIMINARY, now=END_TIME)
        second = aggregator.decide(market, batch, volume, external, DecisionStage.PRELIMINARY, now=END_TIME)
        assert first == second
        assert first.to_dict() == second.to_dict()


class TestGatherExternal:
    @pytest.mark.asyncio
    async def test_without_feed_returns_none(self):
        assert await MultiSignalAggregator().gather_external(make_market()) is None

    @pytest.mark.asyncio
    async def test_returns_feed_signal(self):
        feed = AsyncMock()
        feed.fetch.return_value = make_external()
        aggregator = MultiSignalAggregator(feed=feed)
        signal = await aggregator.gather_external(make_market())
        assert signal == make_external()
        feed.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unavailable_feed_degrades(self):
        feed = AsyncMock()
        feed.fetch.side_effect = ExternalSignalUnavailableError("down")
        aggregator = MultiSignalAggregator(feed=feed)
        assert await aggregator.gather_external(make_market()) is None

    @pytest.mark.asyncio
    async def test_slow_feed_times_out(self):
        class SlowFeed:
            async def fetch(self, market):
                await asyncio.sleep(5)
                return make_external()

        aggregator = MultiSignalAggregator(feed=SlowFeed(), verification=VerificationConfig(timeout_sec=0.01))
        assert await aggregator.gather_external(make_market()) is None
