# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
from __future__ import annotations

from datetime import datetime

from pydantic import Field

from blockcast_core.schema.serialization import SchemaModel


class ExternalSource(SchemaModel):
    """A source returned by the external verification feed."""

    url: str
    title: str | None = None
    # Alignment of the source with the market claim, 0..1.
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    # True supports YES, False supports NO, None is neutral.
    supports: bool | None = None


class ExternalSignal(SchemaModel):
    market_id: str
    sources: list[ExternalSource] = Field(default_factory=list)
    reliability: float | None = Field(default=None, ge=0.0, le=1.0)
    summary: str | None = None
    provider: str | None = None
    fetched_at: datetime | None = None
