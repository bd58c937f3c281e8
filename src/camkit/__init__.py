from camkit.api import load_intrinsic, load_intrinsics_json, register_intrinsic, save_intrinsic, save_intrinsics_json
from camkit.core.geometry import Pose3
from camkit.core.intrinsic_base import IntrinsicBase, IntrinsicType
from camkit.core.pinhole import PinholeIntrinsic
from camkit.schema import ArchiveError

__all__ = [
    "ArchiveError",
    "IntrinsicBase",
    "IntrinsicType",
    "PinholeIntrinsic",
    "Pose3",
    "load_intrinsic",
    "load_intrinsics_json",
    "register_intrinsic",
    "save_intrinsic",
    "save_intrinsics_json",
]
