# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Market record.

The market store is the only source of truth for status. Every status
write goes through a conditional update on (status, revision), so records
are immutable values and writers produce a successor with `advance()`.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from blockcast_core.schema.decision import ResolutionDecision
from blockcast_core.schema.serialization import SchemaModel
from blockcast_core.utils.runtime import ensure_utc


class MarketStatus(str, Enum):
    OPEN = "OPEN"
    PENDING_RESOLUTION = "PENDING_RESOLUTION"
    DISPUTABLE = "DISPUTABLE"
    RESOLVED = "RESOLVED"
    INVALID = "INVALID"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({MarketStatus.RESOLVED, MarketStatus.INVALID})


def compute_dispute_period_end(end_time: datetime, window_hours: int) -> datetime:
    """Dispute window is anchored on the market's end time, never on "now"."""
    return ensure_utc(end_time) + timedelta(hours=window_hours)


class Market(SchemaModel):
    model_config = {"extra": "ignore", "frozen": True}

    market_id: str
    claim: str
    category: str = "general"
    creator: str = ""
    region: str | None = None
    target_languages: list[str] = Field(default_factory=list)
    end_time: datetime
    status: MarketStatus = MarketStatus.OPEN
    preliminary_resolved_at: datetime | None = None
    dispute_period_end: datetime | None = None
    preliminary: ResolutionDecision | None = None
    final: ResolutionDecision | None = None
    status_reason: str | None = None
    settlement_plan_id: str | None = None
    revision: int = 0

    @field_validator("end_time", "preliminary_resolved_at", "dispute_period_end")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None

    @field_validator("category")
    @classmethod
    def _category(cls, v: str) -> str:
        return (v or "general").strip().lower()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def advance(self, **changes: Any) -> "Market":
        """Successor record with `changes` applied and the revision bumped."""
        changes["revision"] = self.revision + 1
        return self.model_copy(update=changes)


class BettingVolume(SchemaModel):
    """Stake placed on each side of a market."""

    market_id: str
    yes_volume: Decimal = Decimal("0")
    no_volume: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.yes_volume + self.no_volume

    @property
    def p_yes(self) -> float | None:
        total = self.total
        if total <= 0:
            return None
        return float(self.yes_volume / total)
