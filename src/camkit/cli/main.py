from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import numpy as np

from camkit.api.intrinsic_io import load_intrinsics_json, save_intrinsic, save_intrinsics_json
from camkit.core.intrinsic_base import IntrinsicBase
from camkit.optim.intrinsic_ba import load_observations_json, refine_intrinsic
from camkit.schema import ArchiveError

logger = logging.getLogger(__name__)


def _pick(intrinsics: dict[int, IntrinsicBase], key: int) -> IntrinsicBase:
    if key not in intrinsics:
        raise ArchiveError(f"no intrinsic with key {key}")
    return intrinsics[key]


def _describe(key: int, intr: IntrinsicBase) -> dict[str, Any]:
    return {
        "key": key,
        "type": intr.type().value,
        "width": intr.w,
        "height": intr.h,
        "parameters": intr.get_parameters(),
        "has_distortion": intr.have_distortion(),
        "valid": intr.is_valid(),
        "hash": intr.hash_value(),
    }


def _emit(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="camkit")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="cmd", required=True)

    info = sub.add_parser("info", help="List the intrinsics stored in a file.")
    info.add_argument("intrinsics", type=Path)
    info.add_argument("--strict", action="store_true", help="Fail on any malformed record instead of skipping it.")

    proj = sub.add_parser("project", help="Project a camera-frame 3D point to a pixel.")
    proj.add_argument("intrinsics", type=Path)
    proj.add_argument("--key", type=int, default=0)
    proj.add_argument("xyz", type=float, nargs=3, metavar=("X", "Y", "Z"))

    unproj = sub.add_parser("unproject", help="Unit bearing vector of a pixel.")
    unproj.add_argument("intrinsics", type=Path)
    unproj.add_argument("--key", type=int, default=0)
    unproj.add_argument("uv", type=float, nargs=2, metavar=("U", "V"))

    refine = sub.add_parser("refine", help="Refine one intrinsic against known poses and 3D points.")
    refine.add_argument("intrinsics", type=Path)
    refine.add_argument("--key", type=int, default=0)
    refine.add_argument("--observations", type=Path, required=True)
    refine.add_argument("--loss", default="huber", choices=["linear", "huber", "soft_l1", "cauchy", "arctan"])
    refine.add_argument("--f-scale-px", type=float, default=2.0)
    refine.add_argument("--max-nfev", type=int, default=200)
    refine.add_argument("--out", type=Path, default=None, help="Write the updated intrinsics file here.")

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.cmd == "info":
            intrinsics = load_intrinsics_json(args.intrinsics, strict=args.strict)
            _emit([_describe(k, v) for k, v in sorted(intrinsics.items())])
            return 0

        if args.cmd == "project":
            intr = _pick(load_intrinsics_json(args.intrinsics), args.key)
            _emit({"uv": intr.project(np.asarray(args.xyz)).tolist()})
            return 0

        if args.cmd == "unproject":
            intr = _pick(load_intrinsics_json(args.intrinsics), args.key)
            _emit({"bearing": intr.unproject(np.asarray(args.uv)).tolist()})
            return 0

        if args.cmd == "refine":
            intrinsics = load_intrinsics_json(args.intrinsics)
            intr = _pick(intrinsics, args.key)
            obs = load_observations_json(args.observations)
            refined, diag = refine_intrinsic(
                intr, obs, loss=args.loss, f_scale_px=args.f_scale_px, max_nfev=args.max_nfev
            )
            if args.out is not None:
                intrinsics[args.key] = refined
                save_intrinsics_json(args.out, intrinsics)
            _emit({"intrinsic": save_intrinsic(refined), "diagnostics": diag})
            return 0
    except (ArchiveError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
