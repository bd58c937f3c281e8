from camkit.api.intrinsic_io import (
    load_intrinsic,
    load_intrinsics_json,
    register_intrinsic,
    save_intrinsic,
    save_intrinsics_json,
)

__all__ = [
    "load_intrinsic",
    "load_intrinsics_json",
    "register_intrinsic",
    "save_intrinsic",
    "save_intrinsics_json",
]
