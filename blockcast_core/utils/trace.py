# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""
Per-pass JSONL trace of engine events (decisions, assessments, settlement).

Only active for local runs with tracing enabled. Event payloads are made
JSON-safe: amounts become strings, operator keys and bearer tokens are
masked, and long texts such as evidence bodies are cut to a digest.
"""

from __future__ import annotations

import contextvars
import hashlib
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from blockcast_core.runtime_config import EngineRuntimeConfig
from blockcast_core.utils.runtime import is_local_run

TRACE_DIR = Path("data/trace")

_pass_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("blockcast_pass_id", default=None)
_head_chars: contextvars.ContextVar[int | None] = contextvars.ContextVar("blockcast_trace_head", default=None)

_MASKED_FIELDS = frozenset({"api_key", "verification_api_key", "operator_key", "private_key", "authorization"})
_OPERATOR_KEY_RE = re.compile(r"0x[0-9a-fA-F]{64}")
_BEARER_RE = re.compile(r"(Bearer\s+)\S+")
_QUERY_KEY_RE = re.compile(r"([?&](?:api_key|key|token)=)[^&\s]+", re.IGNORECASE)


def _mask(text: str) -> str:
    text = _OPERATOR_KEY_RE.sub("0x***", text)
    text = _BEARER_RE.sub(r"\1***", text)
    return _QUERY_KEY_RE.sub(r"\1***", text)


def _json_safe(value: Any, head: int) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, datetime)):
        return str(value) if isinstance(value, Decimal) else value.isoformat()
    if isinstance(value, dict):
        return {
            str(k): "***" if str(k).lower() in _MASKED_FIELDS else _json_safe(v, head)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v, head) for v in value]

    text = _mask(str(value))
    if len(text) <= head * 2:
        return text
    return {
        "chars": len(text),
        "sha256": hashlib.sha256(text.encode("utf-8")).hexdigest(),
        "head": text[:head],
    }


def trace_enabled() -> bool:
    return _head_chars.get() is not None


def current_trace_id() -> str | None:
    return _pass_id.get()


@dataclass(frozen=True)
class TraceContext:
    trace_id: str
    enabled: bool


class Trace:
    """Trace sink for one resolution pass; events are dropped when disabled."""

    @staticmethod
    def start(trace_id: str, *, runtime: EngineRuntimeConfig | None = None) -> TraceContext:
        runtime = runtime or EngineRuntimeConfig.load_from_env()
        enabled = is_local_run() and runtime.debug.trace_enabled
        _pass_id.set(trace_id)
        _head_chars.set(runtime.debug.trace_max_head_chars if enabled else None)
        Trace.event("trace.start", {"trace_id": trace_id})
        return TraceContext(trace_id=trace_id, enabled=enabled)

    @staticmethod
    def stop() -> None:
        Trace.event("trace.stop", {"trace_id": current_trace_id()})
        _pass_id.set(None)
        _head_chars.set(None)

    @staticmethod
    def event(name: str, data: Any | None = None) -> None:
        head = _head_chars.get()
        trace_id = current_trace_id()
        if head is None or not trace_id:
            return
        record = {
            "ts_ms": int(time.time() * 1000),
            "trace_id": trace_id,
            "event": name,
            "data": _json_safe(data, head),
        }
        filename = re.sub(r"[^A-Za-z0-9._-]", "_", trace_id) + ".jsonl"
        try:
            TRACE_DIR.mkdir(parents=True, exist_ok=True)
            with (TRACE_DIR / filename).open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError:
            return
