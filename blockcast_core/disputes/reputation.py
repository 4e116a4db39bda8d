# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

from datetime import datetime

from blockcast_core.schema.dispute import DisputerHistory
from blockcast_core.utils.runtime import hours_between

NEUTRAL_REPUTATION = 0.5

SUCCESS_RATE_WEIGHT = 0.4
EXPERIENCE_WEIGHT = 0.3
EXPERIENCE_SATURATION = 20
ACCOUNT_AGE_WEIGHT = 0.2
ACCOUNT_AGE_SATURATION_DAYS = 365
RECENT_ACTIVITY_BONUS = 0.1
RECENT_ACTIVITY_DAYS = 30
STALE_ACTIVITY_BONUS = 0.05
STALE_ACTIVITY_DAYS = 90


def reputation_score(history: DisputerHistory | None, *, at: datetime) -> float:
    """
    Disputer reputation in [0, 1].

    0.5 baseline, shifted by success rate (relative to 0.5), experience
    (dispute count, saturating at 20), account age (saturating at a year)
    and how recently the disputer was last active.
    """
    if history is None:
        return NEUTRAL_REPUTATION

    score = NEUTRAL_REPUTATION
    score += (history.success_rate - 0.5) * SUCCESS_RATE_WEIGHT
    score += min(history.total_disputes / EXPERIENCE_SATURATION, 1.0) * EXPERIENCE_WEIGHT

    if history.account_created_at is not None:
        age_days = max(0.0, hours_between(history.account_created_at, at) / 24.0)
        score += min(age_days / ACCOUNT_AGE_SATURATION_DAYS, 1.0) * ACCOUNT_AGE_WEIGHT

    if history.last_dispute_at is not None:
        idle_days = hours_between(history.last_dispute_at, at) / 24.0
        if idle_days < RECENT_ACTIVITY_DAYS:
            score += RECENT_ACTIVITY_BONUS
        elif idle_days < STALE_ACTIVITY_DAYS:
            score += STALE_ACTIVITY_BONUS

    return round(max(0.0, min(1.0, score)), 6)
