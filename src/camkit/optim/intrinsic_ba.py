from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping

import numpy as np

from camkit.core.geometry import Pose3
from camkit.core.intrinsic_base import IntrinsicBase
from camkit.schema import ArchiveError, require_field, require_float_seq

logger = logging.getLogger(__name__)

OBSERVATIONS_SCHEMA_VERSION = "camkit.observations.v0"


@dataclass(frozen=True)
class IntrinsicObservations:
    """
    Observations of known world points by views sharing one intrinsic.

    - `poses`: one pose per observation (views may repeat the same Pose3)
    - `X_world`: world points
    - `uv_px`: observed pixels
    """

    poses: tuple[Pose3, ...]
    X_world: np.ndarray  # (N,3)
    uv_px: np.ndarray  # (N,2)

    def __post_init__(self) -> None:
        X = np.asarray(self.X_world, dtype=np.float64).reshape(-1, 3)
        uv = np.asarray(self.uv_px, dtype=np.float64).reshape(-1, 2)
        poses = tuple(self.poses)
        if not (X.shape[0] == uv.shape[0] == len(poses)):
            raise ValueError("poses, X_world and uv_px must have the same length")
        object.__setattr__(self, "X_world", X)
        object.__setattr__(self, "uv_px", uv)
        object.__setattr__(self, "poses", poses)

    def __len__(self) -> int:
        return int(self.uv_px.shape[0])


def reprojection_residuals(intrinsic: IntrinsicBase, obs: IntrinsicObservations) -> np.ndarray:
    """Stacked (N,2) residuals, grouped by pose object to keep calls vectorized."""
    res = np.empty_like(obs.uv_px)
    groups: dict[int, list[int]] = {}
    for i, pose in enumerate(obs.poses):
        groups.setdefault(id(pose), []).append(i)
    for idx in groups.values():
        sel = np.asarray(idx, dtype=np.int64)
        res[sel] = intrinsic.residual(obs.poses[idx[0]], obs.X_world[sel], obs.uv_px[sel])
    return res


def _rms(res: np.ndarray) -> float:
    return float(np.sqrt(np.mean(np.sum(res * res, axis=-1)))) if res.size else 0.0


def refine_intrinsic(
    intrinsic: IntrinsicBase,
    obs: IntrinsicObservations,
    *,
    loss: Literal["linear", "huber", "soft_l1", "cauchy", "arctan"] = "huber",
    f_scale_px: float = 2.0,
    max_nfev: int = 200,
) -> tuple[IntrinsicBase, dict[str, float]]:
    """
    Refine the free parameters of `intrinsic` against fixed poses and points.

    The solver only sees `get_parameters()`; each evaluation pushes a candidate
    vector through `update_from_parameters()` on a working copy. The input model
    is left untouched.
    """
    from scipy.optimize import least_squares  # type: ignore

    if len(obs) == 0:
        raise ValueError("no observations")

    work = copy.deepcopy(intrinsic)
    p0 = np.asarray(work.get_parameters(), dtype=np.float64)
    rms0 = _rms(reprojection_residuals(work, obs))

    def fun(p: np.ndarray) -> np.ndarray:
        if not work.update_from_parameters(p.tolist()):
            raise ValueError("parameter vector malformed")
        return reprojection_residuals(work, obs).reshape(-1)

    sol = least_squares(fun, p0, method="trf", loss=loss, f_scale=float(f_scale_px), max_nfev=int(max_nfev))

    refined = copy.deepcopy(intrinsic)
    if not refined.update_from_parameters(sol.x.tolist()):
        raise ValueError("parameter vector malformed")
    rms1 = _rms(reprojection_residuals(refined, obs))
    logger.info("intrinsic refinement: rms %.4f px -> %.4f px (%d evaluations)", rms0, rms1, sol.nfev)

    diag = {
        "rms_px_before": rms0,
        "rms_px_after": rms1,
        "cost": float(sol.cost),
        "nfev": float(sol.nfev),
        "success": float(bool(sol.success)),
    }
    return refined, diag


def parse_observations(doc: Mapping[str, Any]) -> IntrinsicObservations:
    """
    Build observations from a JSON document:

      {"schema_version": "camkit.observations.v0",
       "views": {"<id>": {"rotation": [[...]x3], "center": [cx, cy, cz]}},
       "observations": [{"view": "<id>", "X": [x, y, z], "uv": [u, v]}, ...]}
    """
    if str(require_field(doc, "schema_version")) != OBSERVATIONS_SCHEMA_VERSION:
        raise ArchiveError("unsupported observations schema")
    views_raw = require_field(doc, "views")
    if not isinstance(views_raw, Mapping):
        raise ArchiveError("views must be an object")

    views: dict[str, Pose3] = {}
    for vid, v in views_raw.items():
        rows = require_field(v, "rotation")
        if not isinstance(rows, list) or len(rows) != 3:
            raise ArchiveError(f"views.{vid}.rotation must be a 3x3 list")
        R = np.array([require_float_seq({"row": r}, "row", 3) for r in rows], dtype=np.float64)
        C = np.array(require_float_seq(v, "center", 3), dtype=np.float64)
        views[str(vid)] = Pose3(rotation=R, center=C)

    entries = require_field(doc, "observations")
    if not isinstance(entries, list):
        raise ArchiveError("observations must be a list")
    poses: list[Pose3] = []
    X: list[tuple[float, ...]] = []
    uv: list[tuple[float, ...]] = []
    for e in entries:
        vid = str(require_field(e, "view"))
        if vid not in views:
            raise ArchiveError(f"observation references unknown view {vid}")
        poses.append(views[vid])
        X.append(require_float_seq(e, "X", 3))
        uv.append(require_float_seq(e, "uv", 2))
    return IntrinsicObservations(poses=tuple(poses), X_world=np.asarray(X), uv_px=np.asarray(uv))


def load_observations_json(path: Path) -> IntrinsicObservations:
    path = Path(path)
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ArchiveError(f"{path}: invalid JSON ({exc})") from exc
    return parse_observations(doc)
