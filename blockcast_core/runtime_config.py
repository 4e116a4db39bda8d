from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from blockcast_core.constants import (
    DEFAULT_DISPUTE_WINDOW_HOURS,
    DEFAULT_MIN_CONFIDENCE,
    SENSITIVE_CATEGORIES,
)


def _parse_bool(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if not s:
        return default
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_int(raw: Any, *, default: int, min_v: int, max_v: int) -> int:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, int):
            v = raw
        else:
            v = int(str(raw).strip())
    except ValueError:
        v = default
    return max(min_v, min(max_v, v))


def _parse_float(raw: Any, *, default: float, min_v: float, max_v: float) -> float:
    try:
        if raw is None:
            v = default
        elif isinstance(raw, (int, float)):
            v = float(raw)
        else:
            v = float(str(raw).strip())
    except ValueError:
        v = default
    return max(min_v, min(max_v, v))


def _parse_decimal(raw: Any, *, default: str, min_v: str, max_v: str) -> Decimal:
    try:
        v = Decimal(default) if raw is None else Decimal(str(raw).strip())
    except InvalidOperation:
        v = Decimal(default)
    if not v.is_finite():
        v = Decimal(default)
    return max(Decimal(min_v), min(Decimal(max_v), v))


def _parse_csv(raw: str | None) -> list[str]:
    s = (raw or "").strip()
    if not s:
        return []
    out: list[str] = []
    for part in re.split(r"[,\n]", s):
        p = part.strip().lower()
        if p and p not in out:
            out.append(p)
        if len(out) >= 100:
            break
    return out


@dataclass(frozen=True)
class ResolutionConfig:
    dispute_window_hours: int = DEFAULT_DISPUTE_WINDOW_HOURS
    # Markets below this confidence are refunded (INVALID), never forced YES/NO.
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    auto_resolve_above: float = 90.0
    admin_review_above: float = 70.0
    # Betting skew (|p_yes - 0.5|) that earns the full betting signal.
    betting_full_skew: float = 0.30
    evidence_scale: float = 10.0
    external_scale: float = 10.0
    low_evidence_count: int = 3
    low_credibility: float = 0.5
    language_imbalance_share: float = 0.75
    low_external_reliability: float = 0.5
    sensitive_categories: frozenset[str] = SENSITIVE_CATEGORIES


@dataclass(frozen=True)
class EvidenceConfig:
    min_language_ratio: float = 0.05
    min_quality: float = 0.4
    cluster_similarity: float = 0.3
    significant_word_min_len: int = 4
    detail_words: int = 100
    brief_words: int = 20


@dataclass(frozen=True)
class DisputeConfig:
    min_reason_chars: int = 20
    temporal_decay_hours: int = 168
    valid_above: float = 0.6
    uncertain_above: float = 0.4
    auto_resolve_above: float = 0.85
    auto_resolve_below: float = 0.2
    min_bond: Decimal = Decimal("1")


@dataclass(frozen=True)
class SettlementConfig:
    reward_multiplier: Decimal = Decimal("2")
    quality_bonus_threshold: float = 0.8
    quality_bonus_multiplier: Decimal = Decimal("0.5")
    evidence_strength_threshold: float = 0.9
    evidence_strength_multiplier: Decimal = Decimal("0.3")
    early_submission_hours: int = 12
    early_submission_multiplier: Decimal = Decimal("0.2")
    treasury_fee: Decimal = Decimal("0.10")
    gas_refund: Decimal = Decimal("0.5")


@dataclass(frozen=True)
class VerificationConfig:
    timeout_sec: float = 10.0
    concurrency: int = 4
    max_sources: int = 20
    exclude_domains: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EngineDebugFlags:
    engine_debug: bool = False
    trace_enabled: bool = True
    trace_max_head_chars: int = 120


@dataclass(frozen=True)
class EngineRuntimeConfig:
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    evidence: EvidenceConfig = field(default_factory=EvidenceConfig)
    disputes: DisputeConfig = field(default_factory=DisputeConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    debug: EngineDebugFlags = field(default_factory=EngineDebugFlags)

    @staticmethod
    def load_from_env() -> "EngineRuntimeConfig":
        resolution = ResolutionConfig(
            dispute_window_hours=_parse_int(
                os.getenv("BLOCKCAST_DISPUTE_WINDOW_HOURS"), default=DEFAULT_DISPUTE_WINDOW_HOURS, min_v=1, max_v=24 * 60
            ),
            min_confidence=_parse_float(
                os.getenv("BLOCKCAST_MIN_CONFIDENCE"), default=DEFAULT_MIN_CONFIDENCE, min_v=0.0, max_v=100.0
            ),
            auto_resolve_above=_parse_float(
                os.getenv("BLOCKCAST_AUTO_RESOLVE_ABOVE"), default=90.0, min_v=0.0, max_v=100.0
            ),
            admin_review_above=_parse_float(
                os.getenv("BLOCKCAST_ADMIN_REVIEW_ABOVE"), default=70.0, min_v=0.0, max_v=100.0
            ),
            evidence_scale=_parse_float(os.getenv("BLOCKCAST_EVIDENCE_SCALE"), default=10.0, min_v=1.0, max_v=45.0),
            external_scale=_parse_float(os.getenv("BLOCKCAST_EXTERNAL_SCALE"), default=10.0, min_v=1.0, max_v=30.0),
            low_evidence_count=_parse_int(os.getenv("BLOCKCAST_LOW_EVIDENCE_COUNT"), default=3, min_v=0, max_v=100),
        )

        evidence = EvidenceConfig(
            min_language_ratio=_parse_float(
                os.getenv("BLOCKCAST_MIN_LANGUAGE_RATIO"), default=0.05, min_v=0.0, max_v=1.0
            ),
            min_quality=_parse_float(os.getenv("BLOCKCAST_MIN_EVIDENCE_QUALITY"), default=0.4, min_v=0.0, max_v=1.0),
            cluster_similarity=_parse_float(
                os.getenv("BLOCKCAST_CLUSTER_SIMILARITY"), default=0.3, min_v=0.0, max_v=1.0
            ),
        )

        disputes = DisputeConfig(
            min_reason_chars=_parse_int(os.getenv("BLOCKCAST_MIN_REASON_CHARS"), default=20, min_v=1, max_v=2000),
            temporal_decay_hours=_parse_int(
                os.getenv("BLOCKCAST_TEMPORAL_DECAY_HOURS"), default=168, min_v=1, max_v=24 * 60
            ),
            min_bond=_parse_decimal(os.getenv("BLOCKCAST_MIN_BOND"), default="1", min_v="0", max_v="1000000"),
        )

        settlement = SettlementConfig(
            reward_multiplier=_parse_decimal(
                os.getenv("BLOCKCAST_REWARD_MULTIPLIER"), default="2", min_v="0", max_v="10"
            ),
            quality_bonus_threshold=_parse_float(
                os.getenv("BLOCKCAST_QUALITY_BONUS_THRESHOLD"), default=0.8, min_v=0.0, max_v=1.0
            ),
            quality_bonus_multiplier=_parse_decimal(
                os.getenv("BLOCKCAST_QUALITY_BONUS_MULTIPLIER"), default="0.5", min_v="0", max_v="5"
            ),
            treasury_fee=_parse_decimal(os.getenv("BLOCKCAST_TREASURY_FEE"), default="0.10", min_v="0", max_v="1"),
            gas_refund=_parse_decimal(os.getenv("BLOCKCAST_GAS_REFUND"), default="0.5", min_v="0", max_v="1000"),
        )

        verification = VerificationConfig(
            timeout_sec=_parse_float(os.getenv("BLOCKCAST_VERIFY_TIMEOUT"), default=10.0, min_v=1.0, max_v=120.0),
            concurrency=_parse_int(os.getenv("BLOCKCAST_VERIFY_CONCURRENCY"), default=4, min_v=1, max_v=16),
            max_sources=_parse_int(os.getenv("BLOCKCAST_VERIFY_MAX_SOURCES"), default=20, min_v=1, max_v=100),
            exclude_domains=_parse_csv(os.getenv("BLOCKCAST_VERIFY_EXCLUDE_DOMAINS")),
        )

        debug = EngineDebugFlags(
            engine_debug=_parse_bool(os.getenv("BLOCKCAST_ENGINE_DEBUG"), default=False),
            trace_enabled=not _parse_bool(os.getenv("BLOCKCAST_TRACE_DISABLE"), default=False),
            trace_max_head_chars=_parse_int(os.getenv("TRACE_MAX_HEAD_CHARS"), default=120, min_v=50, max_v=1000),
        )

        return EngineRuntimeConfig(
            resolution=resolution,
            evidence=evidence,
            disputes=disputes,
            settlement=settlement,
            verification=verification,
            debug=debug,
        )

    def to_safe_log_dict(self) -> dict[str, Any]:
        ex = list(self.verification.exclude_domains or [])
        exclude_preview = ex[:3]
        more = max(0, len(ex) - len(exclude_preview))
        return {
            "resolution": {
                "dispute_window_hours": int(self.resolution.dispute_window_hours),
                "min_confidence": float(self.resolution.min_confidence),
                "auto_resolve_above": float(self.resolution.auto_resolve_above),
                "admin_review_above": float(self.resolution.admin_review_above),
                "evidence_scale": float(self.resolution.evidence_scale),
                "external_scale": float(self.resolution.external_scale),
            },
            "evidence": {
                "min_language_ratio": float(self.evidence.min_language_ratio),
                "min_quality": float(self.evidence.min_quality),
                "cluster_similarity": float(self.evidence.cluster_similarity),
            },
            "disputes": {
                "min_reason_chars": int(self.disputes.min_reason_chars),
                "temporal_decay_hours": int(self.disputes.temporal_decay_hours),
                "min_bond": str(self.disputes.min_bond),
            },
            "settlement": {
                "reward_multiplier": str(self.settlement.reward_multiplier),
                "quality_bonus_threshold": float(self.settlement.quality_bonus_threshold),
                "quality_bonus_multiplier": str(self.settlement.quality_bonus_multiplier),
                "treasury_fee": str(self.settlement.treasury_fee),
                "gas_refund": str(self.settlement.gas_refund),
            },
            "verification": {
                "timeout_sec": float(self.verification.timeout_sec),
                "concurrency": int(self.verification.concurrency),
                "exclude_domains_count": len(ex),
                "exclude_domains_preview": exclude_preview + ([f"...(+{more} more)"] if more else []),
            },
            "debug": {
                "engine_debug": bool(self.debug.engine_debug),
                "trace_enabled": bool(self.debug.trace_enabled),
            },
        }
