# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Keyword stance detection for evidence that does not declare a position."""

from __future__ import annotations

from blockcast_core.evidence.language import tokenize
from blockcast_core.schema.evidence import Stance

YES_TERMS: frozenset[str] = frozenset({
    # en
    "confirmed", "confirm", "yes", "true", "happened", "occurred", "completed", "achieved",
    "successful", "success", "won", "passed", "approved", "correct", "verified", "official",
    # sw
    "ndio", "kweli", "imethibitishwa",
    # fr
    "oui", "vrai", "confirmé", "confirme",
    # ar
    "نعم", "صحيح", "مؤكد",
})

NO_TERMS: frozenset[str] = frozenset({
    # en
    "denied", "deny", "no", "false", "incomplete", "failed", "unsuccessful", "lost",
    "rejected", "incorrect", "unverified", "fake", "unofficial",
    # sw
    "hapana", "uwongo",
    # fr
    "non", "faux", "démenti",
    # ar
    "لا", "خطأ", "كاذب",
})

NO_PHRASES: tuple[str, ...] = ("did not happen", "not occurred", "never happened")


def stance_hits(text: str) -> tuple[int, int]:
    """Number of distinct YES and NO terms present in text."""
    tokens = set(tokenize(text))
    lowered = (text or "").lower()
    yes = len(tokens & YES_TERMS)
    no = len(tokens & NO_TERMS) + sum(1 for p in NO_PHRASES if p in lowered)
    return yes, no


def detect_stance(text: str, *, min_hits: int = 2) -> Stance:
    yes, no = stance_hits(text)
    if yes > no and yes >= min_hits:
        return Stance.YES
    if no > yes and no >= min_hits:
        return Stance.NO
    return Stance.NEUTRAL
