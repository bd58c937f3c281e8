from __future__ import annotations

import math
from typing import Any, Mapping

INTRINSICS_SCHEMA_VERSION = "camkit.intrinsics.v0"


class ArchiveError(ValueError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ArchiveError(msg)


def require_field(data: Mapping[str, Any], name: str) -> Any:
    _require(isinstance(data, Mapping), f"expected an object holding '{name}'")
    _require(name in data and data[name] is not None, f"{name} is required")
    return data[name]


def require_uint(data: Mapping[str, Any], name: str) -> int:
    raw = require_field(data, name)
    _require(not isinstance(raw, bool), f"{name} must be an unsigned integer")
    try:
        value = int(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ArchiveError(f"{name} must be an unsigned integer") from exc
    _require(value == raw, f"{name} must be an unsigned integer")
    _require(value >= 0, f"{name} must be >= 0")
    return value


def require_float(data: Mapping[str, Any], name: str) -> float:
    raw = require_field(data, name)
    _require(not isinstance(raw, (bool, str)), f"{name} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ArchiveError(f"{name} must be a number") from exc
    _require(math.isfinite(value), f"{name} must be finite")
    return value


def require_float_seq(data: Mapping[str, Any], name: str, size: int) -> tuple[float, ...]:
    raw = require_field(data, name)
    _require(isinstance(raw, (list, tuple)) and len(raw) == size, f"{name} must be a list of {size} numbers")
    return tuple(require_float({name: v}, name) for v in raw)
