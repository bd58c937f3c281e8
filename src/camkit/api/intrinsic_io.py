from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

from camkit.core.intrinsic_base import IntrinsicBase, IntrinsicType
from camkit.core.pinhole import PinholeIntrinsic
from camkit.schema import INTRINSICS_SCHEMA_VERSION, ArchiveError, require_field, require_uint

logger = logging.getLogger(__name__)

_T = TypeVar("_T", bound=type)

_REGISTRY: dict[str, type[IntrinsicBase]] = {}


def register_intrinsic(name: str) -> Callable[[_T], _T]:
    """Class decorator: make a camera model loadable under the archive tag `name`."""

    def deco(cls: _T) -> _T:
        if name in _REGISTRY and _REGISTRY[name] is not cls:
            raise ValueError(f"intrinsic tag already registered: {name}")
        _REGISTRY[name] = cls  # type: ignore[assignment]
        return cls

    return deco


def registered_intrinsics() -> dict[str, type[IntrinsicBase]]:
    return dict(_REGISTRY)


register_intrinsic(IntrinsicType.PINHOLE.value)(PinholeIntrinsic)


def save_intrinsic(intrinsic: IntrinsicBase) -> dict[str, Any]:
    """Tagged record: {"polymorphic_name": <tag>, "data": {...}}."""
    name = intrinsic.type().value
    if name not in _REGISTRY:
        raise ValueError(f"intrinsic type is not registered: {name}")
    return {"polymorphic_name": name, "data": intrinsic.save()}


def load_intrinsic(record: Mapping[str, Any]) -> IntrinsicBase:
    name = require_field(record, "polymorphic_name")
    cls = _REGISTRY.get(str(name))
    if cls is None:
        raise ArchiveError(f"unknown intrinsic type: {name}")
    obj = cls()
    obj.load(require_field(record, "data"))
    return obj


def save_intrinsics_json(path: Path, intrinsics: Mapping[int, IntrinsicBase]) -> Path:
    """
    Write a collection of intrinsics keyed by id.

    Several views may share one intrinsic id when they come from one physical camera.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    doc: dict[str, Any] = {
        "schema_version": INTRINSICS_SCHEMA_VERSION,
        "intrinsics": [{"key": int(k), "value": save_intrinsic(v)} for k, v in sorted(intrinsics.items())],
    }
    path.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
    logger.info("wrote %d intrinsic(s) to %s", len(doc["intrinsics"]), path)
    return path


def parse_intrinsics(doc: Mapping[str, Any], *, strict: bool = False) -> dict[int, IntrinsicBase]:
    if str(require_field(doc, "schema_version")) != INTRINSICS_SCHEMA_VERSION:
        raise ArchiveError("unsupported intrinsics schema")
    entries = require_field(doc, "intrinsics")
    if not isinstance(entries, list):
        raise ArchiveError("intrinsics must be a list")

    out: dict[int, IntrinsicBase] = {}
    errors: list[str] = []
    for i, entry in enumerate(entries):
        try:
            key = require_uint(entry, "key")
            if key in out:
                raise ArchiveError(f"duplicate intrinsic key {key}")
            out[key] = load_intrinsic(require_field(entry, "value"))
        except ArchiveError as exc:
            errors.append(f"entry {i}: {exc}")
            logger.warning("skipping intrinsic entry %d: %s", i, exc)

    if errors and strict:
        raise ArchiveError("; ".join(errors))
    return out


def load_intrinsics_json(path: Path, *, strict: bool = False) -> dict[int, IntrinsicBase]:
    path = Path(path)
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ArchiveError(f"{path}: invalid JSON ({exc})") from exc
    return parse_intrinsics(doc, strict=strict)
