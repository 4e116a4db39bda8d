# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Language validation for evidence submissions.

Detection is a deterministic function-word heuristic: the share of tokens
that are common function words of each supported language. A submission
is valid only when the detected language is the declared one and the
share clears a minimum ratio.
"""

from __future__ import annotations

import logging
import re

from blockcast_core.constants import SUPPORTED_LANGUAGES
from blockcast_core.schema.evidence import LanguageValidation
from blockcast_core.utils.trace import Trace

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

FUNCTION_WORDS: dict[str, frozenset[str]] = {
    "en": frozenset({
        "the", "and", "or", "but", "with", "for", "at", "by", "from", "to", "of", "in", "on",
        "is", "are", "was", "were", "have", "has", "had", "will", "would", "could", "should",
    }),
    "fr": frozenset({
        "le", "la", "les", "de", "du", "des", "et", "à", "que", "qui", "pour", "avec", "dans",
        "sur", "par", "ce", "cette", "ces", "un", "une", "je", "tu", "il", "elle", "nous",
        "vous", "ils", "elles",
    }),
    "sw": frozenset({
        "na", "ni", "ya", "wa", "kwa", "kutoka", "hadi", "lakini", "pia", "au", "kama", "hivyo",
        "sana", "kabisa", "mimi", "wewe", "yeye", "sisi", "nyinyi", "wao",
    }),
    "ar": frozenset({
        "في", "من", "إلى", "على", "هذا", "ذلك", "التي", "الذي", "وقد", "كان", "كانت", "يكون",
        "تكون", "أن", "أو", "لكن", "مع", "عن", "بعد", "قبل",
    }),
}

# Order in which equal scores are resolved.
TIE_BREAK_ORDER: tuple[str, ...] = ("en", "fr", "sw", "ar")


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall((text or "").lower())


def language_scores(text: str) -> dict[str, float]:
    """Function-word ratio per supported language."""
    tokens = tokenize(text)
    if not tokens:
        return {lang: 0.0 for lang in TIE_BREAK_ORDER}
    total = len(tokens)
    scores: dict[str, float] = {}
    for lang in TIE_BREAK_ORDER:
        words = FUNCTION_WORDS[lang]
        hits = sum(1 for t in tokens if t in words)
        scores[lang] = hits / total
    return scores


def detect_language(text: str) -> tuple[str | None, float]:
    """
    Best-scoring supported language and its ratio.

    Returns (None, 0.0) when no function word of any language is present.
    """
    scores = language_scores(text)
    best_lang: str | None = None
    best = 0.0
    for lang in TIE_BREAK_ORDER:
        if scores[lang] > best:
            best_lang = lang
            best = scores[lang]
    return best_lang, best


def validate_language(
    text: str,
    declared: str,
    *,
    min_ratio: float = 0.05,
    submission_id: str | None = None,
) -> LanguageValidation:
    declared_norm = (declared or "").strip().lower()
    scores = language_scores(text)
    detected, ratio = detect_language(text)

    is_valid = (
        declared_norm in SUPPORTED_LANGUAGES
        and detected == declared_norm
        and ratio > min_ratio
    )

    if not is_valid:
        Trace.event(
            "evidence.language_mismatch",
            {
                "submission_id": submission_id,
                "declared": declared_norm,
                "detected": detected,
                "ratio": round(ratio, 4),
            },
        )
        logger.debug(
            "Language check failed for %s: declared=%s detected=%s ratio=%.3f",
            submission_id,
            declared_norm,
            detected,
            ratio,
        )

    return LanguageValidation(
        declared=declared_norm,
        detected=detected,
        ratio=round(ratio, 6),
        scores={k: round(v, 6) for k, v in scores.items()},
        is_valid=is_valid,
    )
