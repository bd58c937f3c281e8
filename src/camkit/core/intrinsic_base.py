from __future__ import annotations

import abc
import enum
import hashlib
import json
from typing import Any, Mapping, Sequence

import numpy as np

from camkit.core.geometry import Pose3
from camkit.schema import require_uint


class IntrinsicType(str, enum.Enum):
    """Camera model discriminant. The value is the archive tag."""

    PINHOLE = "pinhole"


PINHOLE_FAMILY = frozenset({IntrinsicType.PINHOLE})


def as_points(p: np.ndarray, dim: int) -> tuple[np.ndarray, bool]:
    """Return points as (N,dim) float64 plus a flag telling if a single point was given."""
    p = np.asarray(p, dtype=np.float64)
    single = p.ndim == 1
    return p.reshape(-1, dim), single


def restore_shape(p: np.ndarray, single: bool) -> np.ndarray:
    return p[0] if single else p


def _image_size(value: Any, name: str) -> int:
    msg = f"image {name} must be a non-negative integer, got {value!r}"
    if isinstance(value, bool):
        raise ValueError(msg)
    try:
        size = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(msg) from exc
    if size != value or size < 0:
        raise ValueError(msg)
    return size


class IntrinsicBase(abc.ABC):
    """
    Capability set shared by every camera model.

    Holds the size of the image grid the model projects onto. The size does not
    take part in the projection math. Point arguments are either one point
    ((2,) or (3,)) or a batch ((N,2) or (N,3)); results keep that shape.

    Instances are plain values: reads are safe from several threads, but
    `update_from_parameters` and `load` replace the whole state and must not
    run concurrently with readers.
    """

    def __init__(self, w: int = 0, h: int = 0) -> None:
        self._w = _image_size(w, "width")
        self._h = _image_size(h, "height")

    @property
    def w(self) -> int:
        return self._w

    @property
    def h(self) -> int:
        return self._h

    # --- model specific hooks -------------------------------------------------

    @abc.abstractmethod
    def type(self) -> IntrinsicType:
        ...

    @abc.abstractmethod
    def bearing(self, p: np.ndarray) -> np.ndarray:
        """Unit ray direction(s) in camera space for pixel(s) `p`."""

    def unproject(self, p: np.ndarray) -> np.ndarray:
        return self.bearing(p)

    @abc.abstractmethod
    def cam2ima(self, p: np.ndarray) -> np.ndarray:
        """Camera plane -> image plane."""

    @abc.abstractmethod
    def ima2cam(self, p: np.ndarray) -> np.ndarray:
        """Image plane -> camera plane."""

    @abc.abstractmethod
    def have_distortion(self) -> bool:
        ...

    @abc.abstractmethod
    def add_distortion(self, p: np.ndarray) -> np.ndarray:
        """Apply distortion to normalized camera plane point(s)."""

    @abc.abstractmethod
    def remove_distortion(self, p: np.ndarray) -> np.ndarray:
        """Remove distortion from normalized camera plane point(s)."""

    @abc.abstractmethod
    def get_undistorted_pixel(self, p: np.ndarray) -> np.ndarray:
        ...

    @abc.abstractmethod
    def get_distorted_pixel(self, p: np.ndarray) -> np.ndarray:
        ...

    @abc.abstractmethod
    def image_plane_error_to_camera_plane(self, value: float) -> float:
        ...

    @abc.abstractmethod
    def build_projection_matrix(self, pose: Pose3) -> np.ndarray:
        """3x4 matrix mapping homogeneous world points to homogeneous pixels."""

    @abc.abstractmethod
    def get_parameters(self) -> list[float]:
        ...

    @abc.abstractmethod
    def update_from_parameters(self, params: Sequence[float]) -> bool:
        ...

    # --- persistence ----------------------------------------------------------

    def save(self) -> dict[str, Any]:
        return {"width": int(self._w), "height": int(self._h)}

    @staticmethod
    def _load_size(data: Mapping[str, Any]) -> tuple[int, int]:
        return require_uint(data, "width"), require_uint(data, "height")

    @abc.abstractmethod
    def load(self, data: Mapping[str, Any]) -> None:
        """Replace the state from a record produced by `save`; keep it on failure."""

    # --- generic operations ---------------------------------------------------

    def project(self, X_cam: np.ndarray) -> np.ndarray:
        """Camera frame point(s) -> pixel(s): depth division, distortion, then K."""
        X, single = as_points(X_cam, 3)
        x = X[:, :2] / X[:, 2:3]
        uv = self.cam2ima(self.add_distortion(x))
        return restore_shape(uv, single)

    def project_with_pose(self, pose: Pose3, X_world: np.ndarray) -> np.ndarray:
        return self.project(pose.apply(X_world))

    def residual(self, pose: Pose3, X_world: np.ndarray, x_px: np.ndarray) -> np.ndarray:
        """Reprojection error: observed pixel(s) minus projected pixel(s)."""
        x_px = np.asarray(x_px, dtype=np.float64)
        return x_px - self.project_with_pose(pose, X_world).reshape(x_px.shape)

    def is_valid(self) -> bool:
        return self._w > 0 and self._h > 0

    def is_pinhole(self) -> bool:
        return self.type() in PINHOLE_FAMILY

    def hash_value(self) -> str:
        """Stable digest of type, image size and parameters."""
        payload = json.dumps(
            [self.type().value, self._w, self._h, [float(v) for v in self.get_parameters()]],
            separators=(",", ":"),
        )
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()
