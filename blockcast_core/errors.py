# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
"""
Resolution Errors

Exceptions raised by the resolution, dispute and settlement layers.
Validation and state errors propagate to the caller with a reason string;
external-signal failures are turned into risk flags by the aggregator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError


class ResolutionError(Exception):
    """Base class for engine errors."""

    code = "resolution_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.reason = message
        self.details = dict(details or {})
        super().__init__(message)

    def to_trace_dict(self) -> dict[str, Any]:
        """Convert to dictionary for trace logging."""
        return {
            "error": self.code,
            "reason": self.reason,
            "details": self.details,
        }


class InputValidationError(ResolutionError):
    """Raised when a submission or dispute request is malformed."""

    code = "input_validation"

    @classmethod
    def from_pydantic(cls, exc: ValidationError, *, model: str) -> "InputValidationError":
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            problems.append(f"{loc}: {err.get('msg', 'invalid')}")
        return cls(
            f"Invalid {model}: " + "; ".join(problems),
            details={"model": model, "errors": problems},
        )


class InsufficientStakeError(ResolutionError):
    """Raised when a disputer's balance or allowance cannot cover the bond."""

    code = "insufficient_stake"

    def __init__(self, account: str, required: Any, available: Any, *, kind: str = "balance"):
        self.account = account
        self.required = required
        self.available = available
        self.kind = kind
        super().__init__(
            f"Insufficient {kind} for {account}: required {required}, available {available}",
            details={"account": account, "kind": kind, "required": str(required), "available": str(available)},
        )


class DuplicateActiveDisputeError(ResolutionError):
    """Raised when the disputer already holds an ACTIVE dispute on the market."""

    code = "duplicate_active_dispute"

    def __init__(self, market_id: str, disputer: str):
        self.market_id = market_id
        self.disputer = disputer
        super().__init__(
            f"Disputer {disputer} already has an active dispute on market {market_id}",
            details={"market_id": market_id, "disputer": disputer},
        )


class ExternalSignalUnavailableError(ResolutionError):
    """Raised by verification feeds when no usable external signal can be produced."""

    code = "external_signal_unavailable"

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        full_msg = message
        if cause:
            full_msg += f" (caused by: {cause})"
        super().__init__(full_msg)


@dataclass
class StateConflictError(ResolutionError):
    """
    Raised when a market is not in the state an operation requires,
    or when a conditional status write loses a race.

    Attributes:
        market_id: Market the operation targeted
        expected: Status (or status + revision) the caller expected
        actual: Status (or status + revision) actually found
        operation: Name of the operation that detected the conflict
    """

    market_id: str
    expected: Any
    actual: Any
    operation: str = "transition"
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.reason = (
            f"State conflict on market '{self.market_id}' during {self.operation}: "
            f"expected {self.expected}, actual {self.actual}"
        )
        Exception.__init__(self, self.reason)

    def __str__(self) -> str:
        return self.reason

    def to_trace_dict(self) -> dict[str, Any]:
        return {
            "error": "state_conflict",
            "market_id": self.market_id,
            "operation": self.operation,
            "expected": str(self.expected),
            "actual": str(self.actual),
            "details": self.details,
        }


class SettlementError(ResolutionError):
    """Raised when the ledger rejects a settlement transaction."""

    code = "settlement_error"

    def __init__(self, market_id: str, message: str, cause: Exception | None = None):
        self.market_id = market_id
        self.cause = cause
        full_msg = f"Settlement failed for market '{market_id}': {message}"
        if cause:
            full_msg += f" (caused by: {cause})"
        super().__init__(full_msg, details={"market_id": market_id})


class IdempotencyError(ResolutionError):
    """Raised when an idempotency key is reused for a different ledger entry."""

    code = "idempotency_conflict"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Ledger entry already exists for idempotency key '{idempotency_key}'",
            details={"idempotency_key": idempotency_key},
        )


class SettlementReplayWarning(UserWarning):
    """Emitted when a settlement plan is executed for an already-settled market."""
