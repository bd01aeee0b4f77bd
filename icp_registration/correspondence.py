"""Per-point point-to-plane residuals.

For a source point ``p`` paired with a reference point ``q`` whose surface
normal is ``n``, the signed plane distance after a small rotation ``w`` and
translation ``t`` is, to first order,

    ((p + w x p + t) - q) . n = w . (p x n) + t . n - (q - p) . n

so each valid pair contributes the row ``[p x n, n]`` and the right-hand
side ``(q - p) . n`` to a linear least-squares problem in ``(w, t)``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .errors import CorrespondenceError
from .scene import CorrespondenceQuery

logger = logging.getLogger(__name__)


@dataclass
class CorrespondenceBuffers:
    """Per-point slots, index-aligned with the point cloud."""

    coefficients: np.ndarray  # (N, 6)
    residuals: np.ndarray  # (N,)
    valid: np.ndarray  # (N,) bool

    @classmethod
    def allocate(cls, n_points: int) -> "CorrespondenceBuffers":
        return cls(
            coefficients=np.zeros((n_points, 6), dtype=float),
            residuals=np.zeros(n_points, dtype=float),
            valid=np.zeros(n_points, dtype=bool),
        )

    def __len__(self) -> int:
        return len(self.residuals)

    def reset(self) -> None:
        self.coefficients.fill(0.0)
        self.residuals.fill(0.0)
        self.valid.fill(False)


def build_correspondences(
    points: np.ndarray,
    scene: CorrespondenceQuery,
    buffers: CorrespondenceBuffers,
    *,
    iteration: int | None = None,
) -> int:
    """
    Fill ``buffers`` with the linearised point-to-plane system for ``points``.

    Slots whose correspondence is invalid are not written, so ``buffers``
    must be zeroed beforehand (``CorrespondenceBuffers.reset``).

    Returns
    -------
    int
        Number of valid correspondences.
    """
    n = len(points)
    if len(buffers) != n:
        raise ValueError(f"buffers hold {len(buffers)} slots but the cloud has {n} points")

    targets, normals, valid = scene.query(points)
    targets = np.asarray(targets, dtype=float)
    normals = np.asarray(normals, dtype=float)
    valid = np.asarray(valid, dtype=bool).reshape(-1)
    if targets.shape != (n, 3) or normals.shape != (n, 3) or valid.shape != (n,):
        raise CorrespondenceError(
            f"scene returned shapes {targets.shape}, {normals.shape}, {valid.shape} for {n} points",
            iteration=iteration,
        )

    p = points[valid]
    q = targets[valid]
    nrm = normals[valid]
    if not (np.all(np.isfinite(q)) and np.all(np.isfinite(nrm))):
        raise CorrespondenceError("scene flagged non-finite targets or normals as valid", iteration=iteration)

    buffers.residuals[valid] = np.einsum("ij,ij->i", q - p, nrm)
    buffers.coefficients[valid, :3] = np.cross(p, nrm)
    buffers.coefficients[valid, 3:] = nrm
    buffers.valid[valid] = True

    n_valid = int(np.count_nonzero(valid))
    logger.debug("%d of %d points have a correspondence", n_valid, n)
    return n_valid
