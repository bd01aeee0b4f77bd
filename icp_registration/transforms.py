"""Rigid 4x4 transforms for moving the live point cloud.

Convention: points are column vectors ``[x y z 1]^T`` and a transform is
applied as ``p' = T @ p``. Composition ``B @ A`` means "A first, then B".
"""
from __future__ import annotations

import numpy as np


def assert_T_valid(T: np.ndarray, *, rigid: bool = True, atol: float = 1e-6) -> np.ndarray:
    T = np.asarray(T, dtype=float)
    if T.shape != (4, 4):
        raise ValueError(f"Expected (4,4) transform, got {T.shape}")
    if not np.all(np.isfinite(T)):
        raise ValueError("Transform contains non-finite values")
    if not np.allclose(T[3, :], np.array([0.0, 0.0, 0.0, 1.0]), atol=atol):
        raise ValueError("Transform last row must be [0,0,0,1] within tolerance")
    if rigid:
        R = T[:3, :3]
        if not np.allclose(R.T @ R, np.eye(3), atol=atol):
            raise ValueError("Transform rotation is not orthonormal")
        det = np.linalg.det(R)
        if not np.allclose(det, 1.0, atol=atol):
            raise ValueError(f"Transform rotation determinant must be 1, got {det}")
    return T


def apply_transform_in_place(points: np.ndarray, T: np.ndarray) -> np.ndarray:
    """
    Overwrite every row of ``points`` with ``R @ p + t``.

    Parameters
    ----------
    points : (N, 3) float ndarray
        Live point cloud. Must be writeable; it is modified in place.
    T : (4, 4) array-like
        Homogeneous transform. Only the affine part is used, the last row
        is checked but not applied.

    Returns
    -------
    points : (N, 3) ndarray
        The same array object that was passed in.
    """
    T = assert_T_valid(T, rigid=False)
    if not isinstance(points, np.ndarray) or points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"points must be an (N,3) ndarray, got {getattr(points, 'shape', type(points))}")
    if points.shape[0] == 0:
        return points

    R = T[:3, :3]
    t = T[:3, 3]
    # points @ R.T builds a temporary, so the right-hand side never aliases the output
    points[...] = points @ R.T + t
    return points


def make_rigid(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    rotation = np.asarray(rotation, dtype=float)
    translation = np.asarray(translation, dtype=float).reshape(-1)
    if rotation.shape != (3, 3) or translation.shape != (3,):
        raise ValueError(
            f"Expected (3,3) rotation and (3,) translation, got {rotation.shape} and {translation.shape}"
        )
    T = np.eye(4, dtype=float)
    T[:3, :3] = rotation
    T[:3, 3] = translation
    return T
