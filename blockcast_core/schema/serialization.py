# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (c) 2024-2025 BlockCast Contributors
from __future__ import annotations

import dataclasses
import datetime
import enum
import inspect
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from blockcast_core.errors import InputValidationError

T = TypeVar("T", bound="SchemaModel")


class SchemaModel(BaseModel):
    """
    Canonical base for schema models (Pydantic v2).

    - Ignores extra fields for stored records (forward compatibility).
    - Provides `to_dict()` / `from_dict()` for consistent serialization.
    """

    model_config = {"extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        return dump_schema(self)

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        return load_schema(cls, data)


class IngestModel(SchemaModel):
    """
    Base for externally submitted payloads.

    Unknown fields are rejected and schema mismatches surface as
    `InputValidationError` instead of pydantic's `ValidationError`.
    """

    model_config = {"extra": "forbid"}

    @classmethod
    def parse(cls: type[T], data: Any) -> T:
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise InputValidationError(
                f"Invalid {cls.__name__}: expected an object, got {type(data).__name__}",
                details={"model": cls.__name__},
            )
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InputValidationError.from_pydantic(exc, model=cls.__name__) from exc


def dump_schema(model: Any) -> dict[str, Any]:
    """
    Dump a schema model to a JSON-safe dict.

    For Pydantic v2 models, uses `model_dump(mode="json")`.
    """
    if isinstance(model, BaseModel):
        return model.model_dump(mode="json", exclude_none=True)
    if dataclasses.is_dataclass(model) and not isinstance(model, type):
        if hasattr(model, "to_dict") and callable(getattr(model, "to_dict")):
            return _json_safe(model.to_dict())
        return _json_safe(dataclasses.asdict(model))
    if hasattr(model, "to_dict") and callable(getattr(model, "to_dict")):
        out = model.to_dict()
        return _json_safe(out if isinstance(out, dict) else {"value": out})
    raise TypeError(f"Unsupported schema type for dump: {type(model)!r}")


def load_schema(model_cls: type[T], data: dict[str, Any]) -> T:
    """
    Load a schema model from a dict.

    For Pydantic v2 models, uses `model_validate`.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Schema input must be a dict, got: {type(data)!r}")
    if inspect.isclass(model_cls) and issubclass(model_cls, BaseModel):
        return model_cls.model_validate(data)
    if hasattr(model_cls, "from_dict") and callable(getattr(model_cls, "from_dict")):
        return model_cls.from_dict(data)  # type: ignore[no-any-return]
    raise TypeError(f"Unsupported schema type for load: {model_cls!r}")


def json_safe(value: Any) -> Any:
    """Public alias used by audit sinks and the CLI."""
    return _json_safe(value)


def _json_safe(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        if hasattr(value, "to_dict") and callable(getattr(value, "to_dict")):
            return _json_safe(value.to_dict())
        return _json_safe(dataclasses.asdict(value))
    return value
