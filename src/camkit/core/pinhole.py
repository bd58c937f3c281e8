from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import numpy as np

from camkit.core.geometry import P_from_KRt, Pose3
from camkit.core.intrinsic_base import IntrinsicBase, IntrinsicType, as_points, restore_shape
from camkit.schema import require_float, require_float_seq

logger = logging.getLogger(__name__)


class PinholeIntrinsic(IntrinsicBase):
    """
    Ideal pinhole camera: no skew, no distortion, a single focal length.

        K = [[f, 0, ppx],
             [0, f, ppy],
             [0, 0,   1]]

    Only K and its inverse are stored; focal and principal point are read back
    from K. Updates rebuild the whole model so K and Kinv always agree.
    A zero focal length is a configuration error; the math then yields inf/NaN.
    """

    n_params = 3

    def __init__(
        self,
        w: int = 0,
        h: int = 0,
        focal_length_pix: float = 0.0,
        ppx: float = 0.0,
        ppy: float = 0.0,
    ) -> None:
        super().__init__(w, h)
        f = np.float64(focal_length_pix)
        px = np.float64(ppx)
        py = np.float64(ppy)
        self._K = np.array([[f, 0.0, px], [0.0, f, py], [0.0, 0.0, 1.0]], dtype=np.float64)
        # Closed-form inverse of the upper triangular K.
        with np.errstate(divide="ignore", invalid="ignore"):
            self._Kinv = np.array([[1.0 / f, 0.0, -px / f], [0.0, 1.0 / f, -py / f], [0.0, 0.0, 1.0]], dtype=np.float64)

    def _assign(self, other: "PinholeIntrinsic") -> None:
        self._w = other._w
        self._h = other._h
        self._K = other._K
        self._Kinv = other._Kinv

    def type(self) -> IntrinsicType:
        return IntrinsicType.PINHOLE

    @property
    def K(self) -> np.ndarray:
        return self._K.copy()

    @property
    def Kinv(self) -> np.ndarray:
        return self._Kinv.copy()

    @property
    def focal(self) -> float:
        return float(self._K[0, 0])

    @property
    def principal_point(self) -> np.ndarray:
        return np.array([self._K[0, 2], self._K[1, 2]], dtype=np.float64)

    def bearing(self, p: np.ndarray) -> np.ndarray:
        pts, single = as_points(p, 2)
        p3 = np.concatenate([pts, np.ones((pts.shape[0], 1), dtype=np.float64)], axis=1)
        d = (self._Kinv @ p3.T).T
        d /= np.linalg.norm(d, axis=-1, keepdims=True)
        return restore_shape(d, single)

    def cam2ima(self, p: np.ndarray) -> np.ndarray:
        p = np.asarray(p, dtype=np.float64)
        return self.focal * p + self.principal_point

    def ima2cam(self, p: np.ndarray) -> np.ndarray:
        p = np.asarray(p, dtype=np.float64)
        with np.errstate(divide="ignore", invalid="ignore"):
            return (p - self.principal_point) / self.focal

    def have_distortion(self) -> bool:
        return False

    def add_distortion(self, p: np.ndarray) -> np.ndarray:
        return np.array(p, dtype=np.float64)

    def remove_distortion(self, p: np.ndarray) -> np.ndarray:
        return np.array(p, dtype=np.float64)

    def get_undistorted_pixel(self, p: np.ndarray) -> np.ndarray:
        return np.array(p, dtype=np.float64)

    def get_distorted_pixel(self, p: np.ndarray) -> np.ndarray:
        return np.array(p, dtype=np.float64)

    def image_plane_error_to_camera_plane(self, value: float) -> float:
        with np.errstate(divide="ignore", invalid="ignore"):
            return float(np.float64(value) / np.float64(self.focal))

    def build_projection_matrix(self, pose: Pose3) -> np.ndarray:
        return P_from_KRt(self._K, pose.rotation, pose.translation)

    # Parameter vector order: [focal, ppx, ppy].
    def get_parameters(self) -> list[float]:
        return [float(self._K[0, 0]), float(self._K[0, 2]), float(self._K[1, 2])]

    def update_from_parameters(self, params: Sequence[float]) -> bool:
        try:
            params = np.asarray(params, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            logger.debug("pinhole update rejected: %s", exc)
            return False
        if params.ndim != 1 or params.size != self.n_params:
            logger.debug("pinhole update rejected: expected %d parameters, got shape %s", self.n_params, params.shape)
            return False
        self._assign(PinholeIntrinsic(self._w, self._h, params[0], params[1], params[2]))
        return True

    def save(self) -> dict[str, Any]:
        data = super().save()
        data["focal_length"] = self.focal
        data["principal_point"] = [float(v) for v in self.principal_point]
        return data

    def load(self, data: Mapping[str, Any]) -> None:
        w, h = self._load_size(data)
        focal_length = require_float(data, "focal_length")
        ppx, ppy = require_float_seq(data, "principal_point", 2)
        self._assign(PinholeIntrinsic(w, h, focal_length, ppx, ppy))

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "PinholeIntrinsic":
        obj = cls()
        obj.load(data)
        return obj

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntrinsicBase):
            return NotImplemented
        if not isinstance(other, PinholeIntrinsic) or other.type() != self.type():
            return False
        return (other.w, other.h) == (self._w, self._h) and np.array_equal(other._K, self._K)

    __hash__ = None  # mutable through update_from_parameters/load

    def __repr__(self) -> str:
        ppx, ppy = self.principal_point
        return f"PinholeIntrinsic(w={self._w}, h={self._h}, focal={self.focal!r}, ppx={float(ppx)!r}, ppy={float(ppy)!r})"
