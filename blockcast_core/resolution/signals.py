# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
The three resolution signals.

Each signal returns a SignalComponent holding its strength (points, capped)
and the side it points to. Combining them into a confidence happens in the
aggregator.

    betting   25 * min(1, |p_yes - 0.5| / full_skew)
    evidence  min(45, scale * |W_yes - W_no|)   W = sum of credibility per side
    external  min(30, scale * |A_yes - A_no|)   A = sum of relevance per side
"""

from __future__ import annotations

from dataclasses import dataclass

from blockcast_core.constants import BETTING_SIGNAL_CAP, EVIDENCE_SIGNAL_CAP, EXTERNAL_SIGNAL_CAP
from blockcast_core.evidence.sources import TIER_SCORES
from blockcast_core.schema.decision import Outcome, SignalComponent
from blockcast_core.schema.evidence import AnnotatedEvidence, SourceTier, Stance
from blockcast_core.schema.external import ExternalSignal
from blockcast_core.schema.market import BettingVolume
from blockcast_core.utils.url_utils import extract_host

_STANCE_OUTCOME = {Stance.YES: Outcome.YES, Stance.NO: Outcome.NO}


@dataclass(frozen=True)
class CounterEvidence:
    """Weight a valid dispute adds to the evidence signal at final resolution."""

    dispute_id: str
    outcome: Outcome
    credibility: float


def _direction(yes: float, no: float) -> Outcome | None:
    if yes > no:
        return Outcome.YES
    if no > yes:
        return Outcome.NO
    return None


def betting_signal(
    volume: BettingVolume | None,
    *,
    full_skew: float = 0.30,
    cap: float = BETTING_SIGNAL_CAP,
) -> SignalComponent:
    p_yes = volume.p_yes if volume is not None else None
    if p_yes is None:
        return SignalComponent(name="betting", cap=cap, available=False, detail={"reason": "no_volume"})

    skew = abs(p_yes - 0.5)
    points = cap * min(1.0, skew / full_skew) if full_skew > 0 else cap
    direction = Outcome.YES if p_yes > 0.5 else Outcome.NO if p_yes < 0.5 else None
    return SignalComponent(
        name="betting",
        cap=cap,
        points=round(points if direction else 0.0, 6),
        direction=direction,
        detail={
            "yes_volume": str(volume.yes_volume),
            "no_volume": str(volume.no_volume),
            "p_yes": round(p_yes, 6),
        },
    )


def evidence_signal(
    valid: list[AnnotatedEvidence],
    counter: list[CounterEvidence] | tuple[CounterEvidence, ...] = (),
    *,
    scale: float = 10.0,
    cap: float = EVIDENCE_SIGNAL_CAP,
) -> SignalComponent:
    unknown = TIER_SCORES[SourceTier.UNKNOWN]
    w = {Outcome.YES: 0.0, Outcome.NO: 0.0}
    counts = {Outcome.YES: 0, Outcome.NO: 0}
    for item in valid:
        side = _STANCE_OUTCOME.get(item.stance)
        if side is None:
            continue
        cred = item.avg_credibility if item.avg_credibility is not None else unknown
        w[side] += cred
        counts[side] += 1

    counter_w = {Outcome.YES: 0.0, Outcome.NO: 0.0}
    for c in counter:
        if c.outcome in counter_w:
            counter_w[c.outcome] += c.credibility
            w[c.outcome] += c.credibility

    diff = abs(w[Outcome.YES] - w[Outcome.NO])
    direction = _direction(w[Outcome.YES], w[Outcome.NO])
    points = min(cap, scale * diff) if direction else 0.0
    return SignalComponent(
        name="evidence",
        cap=cap,
        points=round(points, 6),
        direction=direction,
        detail={
            "weight_yes": round(w[Outcome.YES], 6),
            "weight_no": round(w[Outcome.NO], 6),
            "count_yes": counts[Outcome.YES],
            "count_no": counts[Outcome.NO],
            "counter_yes": round(counter_w[Outcome.YES], 6),
            "counter_no": round(counter_w[Outcome.NO], 6),
        },
    )


def external_signal(
    signal: ExternalSignal | None,
    *,
    scale: float = 10.0,
    cap: float = EXTERNAL_SIGNAL_CAP,
) -> SignalComponent:
    if signal is None:
        return SignalComponent(name="external", cap=cap, available=False, detail={"reason": "unavailable"})

    # One vote per independent host.
    seen: set[str] = set()
    a = {Outcome.YES: 0.0, Outcome.NO: 0.0}
    used = 0
    for src in sorted(signal.sources, key=lambda s: s.url):
        key = extract_host(src.url) or src.url
        if key in seen:
            continue
        seen.add(key)
        used += 1
        if src.supports is True:
            a[Outcome.YES] += src.relevance
        elif src.supports is False:
            a[Outcome.NO] += src.relevance

    diff = abs(a[Outcome.YES] - a[Outcome.NO])
    direction = _direction(a[Outcome.YES], a[Outcome.NO])
    points = min(cap, scale * diff) if direction else 0.0
    return SignalComponent(
        name="external",
        cap=cap,
        points=round(points, 6),
        direction=direction,
        detail={
            "alignment_yes": round(a[Outcome.YES], 6),
            "alignment_no": round(a[Outcome.NO], 6),
            "unique_sources": used,
            "reliability": signal.reliability,
            "provider": signal.provider,
        },
    )
