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
from typing import Any, Mapping

import httpx
from pydantic import ValidationError

from blockcast_core.errors import ExternalSignalUnavailableError
from blockcast_core.runtime_config import VerificationConfig
from blockcast_core.schema.external import ExternalSignal, ExternalSource
from blockcast_core.schema.market import Market
from blockcast_core.utils.trace import Trace
from blockcast_core.utils.url_utils import extract_host, host_matches

logger = logging.getLogger(__name__)


class HttpVerificationFeed:
    """
    Fetches an external verification signal for a market claim.

    The endpoint receives the claim and returns scored sources:

        {"sources": [{"url", "title", "relevance", "supports"}], "reliability", "summary"}

    Any transport error or malformed payload surfaces as
    ExternalSignalUnavailableError; the aggregator degrades on it.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str | None = None,
        config: VerificationConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.config = config or VerificationConfig()
        self._sem = asyncio.Semaphore(max(1, min(int(self.config.concurrency or 4), 16)))
        self._exclude = sorted({d.lower().lstrip(".") for d in self.config.exclude_domains if d})

        self._client = httpx.AsyncClient(
            timeout=float(self.config.timeout_sec),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key}" if api_key else "",
                "X-Client-Source": "blockcast",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _payload(self, market: Market) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "market_id": market.market_id,
            "claim": market.claim,
            "category": market.category,
            "max_results": self.config.max_sources,
        }
        if market.region:
            payload["region"] = market.region
        if market.target_languages:
            payload["languages"] = list(market.target_languages)
        if self._exclude:
            payload["exclude_domains"] = self._exclude[:32]
        return payload

    def _excluded(self, url: str) -> bool:
        host = extract_host(url)
        return any(host_matches(host, d) for d in self._exclude)

    def _parse(self, market: Market, data: Any) -> ExternalSignal:
        if not isinstance(data, Mapping):
            raise ExternalSignalUnavailableError(f"Unexpected verification payload type {type(data).__name__}")
        try:
            sources = [ExternalSource.model_validate(s) for s in (data.get("sources") or [])]
            sources = [s for s in sources if not self._excluded(s.url)][: self.config.max_sources]
            return ExternalSignal(
                market_id=market.market_id,
                sources=sources,
                reliability=data.get("reliability"),
                summary=data.get("summary"),
                provider=data.get("provider") or extract_host(self.url),
            )
        except ValidationError as e:
            raise ExternalSignalUnavailableError("Malformed verification payload", cause=e) from e

    async def fetch(self, market: Market) -> ExternalSignal:
        payload = self._payload(market)
        async with self._sem:
            Trace.event("verification.request", {"url": self.url, "payload": payload})
            try:
                r = await self._client.post(self.url, json=payload)
                r.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.debug(
                    "[Verification] HTTP error %s. Response: %s",
                    e.response.status_code,
                    (e.response.text or "")[:500],
                )
                raise ExternalSignalUnavailableError(
                    f"Verification feed returned HTTP {e.response.status_code}", cause=e
                ) from e
            except httpx.HTTPError as e:
                raise ExternalSignalUnavailableError("Verification feed request failed", cause=e) from e

            Trace.event("verification.response", {"status_code": r.status_code, "text": r.text})
            try:
                data = r.json()
            except ValueError as e:
                raise ExternalSignalUnavailableError("Verification feed returned invalid JSON", cause=e) from e
        return self._parse(market, data)


class FixtureVerificationFeed:
    """Serves pre-recorded signals by market id (tests, offline replays)."""

    def __init__(self, signals: Mapping[str, ExternalSignal] | None = None):
        self._signals = dict(signals or {})

    def put(self, signal: ExternalSignal) -> None:
        self._signals[signal.market_id] = signal

    async def fetch(self, market: Market) -> ExternalSignal:
        signal = self._signals.get(market.market_id)
        if signal is None:
            raise ExternalSignalUnavailableError(f"No recorded signal for market {market.market_id}")
        return signal
