"""Reference surface used to answer closest-point queries."""
from __future__ import annotations

import logging
from typing import Protocol, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .point_cloud import PointCloud, as_points, estimate_normals

logger = logging.getLogger(__name__)


class CorrespondenceQuery(Protocol):
    """Anything that can pair source points with a reference surface.

    ``query`` takes an (N, 3) array and returns ``(targets, normals, valid)``
    with shapes (N, 3), (N, 3) and (N,). It must not mutate its input and
    must be safe to call from several threads.
    """

    def query(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        ...


class Scene:
    """
    KD-tree over a fixed set of reference points with unit normals.

    Parameters
    ----------
    reference_points : (M, 3)
        Reference surface samples.
    reference_normals : (M, 3)
        Surface normal at each reference point. Rescaled to unit length.
    max_correspondence_distance : float
        Nearest neighbours farther away than this are reported invalid.
    workers : int
        Threads used by ``cKDTree.query``; -1 uses every core.
    """

    def __init__(
        self,
        reference_points: np.ndarray,
        reference_normals: np.ndarray,
        *,
        max_correspondence_distance: float = np.inf,
        workers: int = 1,
    ):
        points = as_points(reference_points, name="reference_points")
        normals = as_points(reference_normals, name="reference_normals")
        if normals.shape != points.shape:
            raise ValueError(
                f"reference_normals shape {normals.shape} does not match reference_points shape {points.shape}"
            )
        if len(points) == 0:
            raise ValueError("Scene requires at least one reference point.")

        lengths = np.linalg.norm(normals, axis=1)
        if not np.all(np.isfinite(lengths)) or np.any(lengths < 1e-12):
            raise ValueError("reference_normals must be finite and non-zero.")

        max_correspondence_distance = float(max_correspondence_distance)
        if not max_correspondence_distance > 0:
            raise ValueError("max_correspondence_distance must be positive.")

        self.points = points
        self.normals = normals / lengths[:, None]
        self.max_correspondence_distance = max_correspondence_distance
        self.workers = int(workers)
        self._tree = cKDTree(points)

    @classmethod
    def from_point_cloud(
        cls,
        cloud: PointCloud,
        *,
        max_correspondence_distance: float = np.inf,
        normal_neighbors: int = 30,
        workers: int = 1,
    ) -> "Scene":
        """Build a scene from a cloud, estimating normals when it has none."""
        if cloud.normals is None:
            logger.info("Reference cloud has no normals, estimating with k=%d", normal_neighbors)
            cloud = estimate_normals(cloud, k_neighbors=normal_neighbors, workers=workers)
        return cls(
            cloud.points,
            cloud.normals,
            max_correspondence_distance=max_correspondence_distance,
            workers=workers,
        )

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self) -> str:
        return f"Scene(n_points={len(self)}, max_correspondence_distance={self.max_correspondence_distance})"

    def query(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        points = as_points(points)
        n = len(points)
        targets = np.zeros((n, 3), dtype=float)
        normals = np.zeros((n, 3), dtype=float)
        if n == 0:
            return targets, normals, np.zeros(0, dtype=bool)

        upper_bound = self.max_correspondence_distance
        # cKDTree returns index == len(tree) for misses beyond distance_upper_bound
        distances, indices = self._tree.query(
            points,
            k=1,
            distance_upper_bound=upper_bound,
            workers=self.workers,
        )
        valid = np.isfinite(distances) & (indices < len(self.points))
        if np.isfinite(upper_bound):
            valid &= distances <= upper_bound

        hit = indices[valid]
        targets[valid] = self.points[hit]
        normals[valid] = self.normals[hit]
        return targets, normals, valid
