from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


def _as_points(X: np.ndarray, dim: int) -> tuple[np.ndarray, bool]:
    X = np.asarray(X, dtype=np.float64)
    single = X.ndim == 1
    X = X.reshape(-1, dim)
    return X, single


@dataclass(frozen=True)
class Pose3:
    """
    Rigid camera pose.

    Convention: a world point X maps to camera coordinates as X_cam = R (X - C),
    i.e. C is the camera center in the world frame and t = -R C.
    """

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3, dtype=np.float64))  # (3,3)
    center: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))  # (3,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotation", np.asarray(self.rotation, dtype=np.float64).reshape(3, 3))
        object.__setattr__(self, "center", np.asarray(self.center, dtype=np.float64).reshape(3))

    @property
    def translation(self) -> np.ndarray:
        return -self.rotation @ self.center

    @classmethod
    def from_rt(cls, R: np.ndarray, t: np.ndarray) -> "Pose3":
        R = np.asarray(R, dtype=np.float64).reshape(3, 3)
        t = np.asarray(t, dtype=np.float64).reshape(3)
        return cls(rotation=R, center=-R.T @ t)

    @classmethod
    def from_rvec(cls, rvec: np.ndarray, t: np.ndarray) -> "Pose3":
        from scipy.spatial.transform import Rotation as Rot  # type: ignore

        R = Rot.from_rotvec(np.asarray(rvec, dtype=np.float64).reshape(3)).as_matrix()
        return cls.from_rt(R, t)

    def apply(self, X: np.ndarray) -> np.ndarray:
        """World -> camera frame for a point (3,) or points (N,3)."""
        pts, single = _as_points(X, 3)
        out = (self.rotation @ (pts - self.center).T).T
        return out[0] if single else out

    def inverse(self) -> "Pose3":
        return Pose3(rotation=self.rotation.T, center=-self.rotation @ self.center)

    def __mul__(self, other: "Pose3") -> "Pose3":
        # (self * other).apply(X) == self.apply(other.apply(X))
        R = self.rotation @ other.rotation
        t = self.rotation @ other.translation + self.translation
        return Pose3.from_rt(R, t)


def P_from_KRt(K: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Projection matrix P = K [R | t] (3,4)."""
    K = np.asarray(K, dtype=np.float64).reshape(3, 3)
    Rt = np.hstack([np.asarray(R, dtype=np.float64).reshape(3, 3), np.asarray(t, dtype=np.float64).reshape(3, 1)])
    return K @ Rt


def triangulate_midpoint(
    pose1: Pose3, bearing1: np.ndarray, pose2: Pose3, bearing2: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Two-view mid-point triangulation from camera-frame bearings, e.g. the output
    of `IntrinsicBase.unproject`. Bearings are (3,) or (N,3).

    Returns (X_world, gap) where gap is the distance between the two rays at
    their closest approach. Parallel rays give NaN.
    """
    b1, single = _as_points(bearing1, 3)
    b2, _ = _as_points(bearing2, 3)
    if b1.shape[0] != b2.shape[0]:
        raise ValueError("bearing1 and bearing2 must have the same length")

    # Row vectors: b @ R == (R^T b^T)^T, camera -> world direction.
    d1 = b1 @ pose1.rotation
    d2 = b2 @ pose2.rotation
    base = pose2.center - pose1.center

    # Normal equations of min |C1 + s d1 - C2 - u d2|, solved by Cramer's rule.
    a = np.einsum("ij,ij->i", d1, d1)
    b = np.einsum("ij,ij->i", d1, d2)
    c = np.einsum("ij,ij->i", d2, d2)
    r1 = d1 @ base
    r2 = d2 @ base
    det = b * b - a * c
    det = np.where(np.abs(det) < 1e-12 * a * c, np.nan, det)
    s = (b * r2 - c * r1) / det
    u = (a * r2 - b * r1) / det

    q1 = pose1.center + s[:, None] * d1
    q2 = pose2.center + u[:, None] * d2
    X = 0.5 * (q1 + q2)
    gap = np.linalg.norm(q1 - q2, axis=-1)
    if single:
        return X[0], gap[0]
    return X, gap


def triangulate_dlt(P1: np.ndarray, x1: np.ndarray, P2: np.ndarray, x2: np.ndarray) -> np.ndarray:
    """
    Linear (DLT) two-view triangulation from 3x4 projection matrices and pixel
    correspondences (2,) or (N,2). Returns Euclidean points (3,) or (N,3).
    """
    P1 = np.asarray(P1, dtype=np.float64).reshape(3, 4)
    P2 = np.asarray(P2, dtype=np.float64).reshape(3, 4)
    x1, single = _as_points(x1, 2)
    x2, _ = _as_points(x2, 2)
    if x1.shape[0] != x2.shape[0]:
        raise ValueError("x1 and x2 must have the same length")

    out = np.empty((x1.shape[0], 3), dtype=np.float64)
    for i in range(x1.shape[0]):
        A = np.stack(
            [
                x1[i, 0] * P1[2] - P1[0],
                x1[i, 1] * P1[2] - P1[1],
                x2[i, 0] * P2[2] - P2[0],
                x2[i, 1] * P2[2] - P2[1],
            ],
            axis=0,
        )
        _, _, vt = np.linalg.svd(A)
        X = vt[-1]
        out[i] = X[:3] / X[3]
    return out[0] if single else out
