import numpy as np
import pytest

from icp_registration.point_cloud import PointCloud
from icp_registration.scene import Scene


def corner_surface(spacing: float = 0.25, low: float = 0.5, high: float = 1.5) -> PointCloud:
    """Three perpendicular, non-touching square grids with exact normals.

    The patches sit on the planes x=0, y=0 and z=0 and are kept away from
    the shared edges so every grid point has a unique nearest neighbour
    under small shifts.
    """
    ticks = np.arange(low, high + 1e-9, spacing)
    a, b = np.meshgrid(ticks, ticks, indexing="ij")
    a, b = a.ravel(), b.ravel()
    zeros = np.zeros_like(a)

    points = np.vstack([
        np.column_stack([zeros, a, b]),
        np.column_stack([a, zeros, b]),
        np.column_stack([a, b, zeros]),
    ])
    normals = np.vstack([
        np.tile([1.0, 0.0, 0.0], (len(a), 1)),
        np.tile([0.0, 1.0, 0.0], (len(a), 1)),
        np.tile([0.0, 0.0, 1.0], (len(a), 1)),
    ])
    return PointCloud(points=points, normals=normals)


class MaskedScene:
    """Wraps a scene and forces some slots invalid, poisoning their answers."""

    def __init__(self, inner, keep):
        self.inner = inner
        self.keep = np.asarray(keep, dtype=bool)

    def query(self, points):
        targets, normals, valid = self.inner.query(points)
        targets = targets.copy()
        normals = normals.copy()
        targets[~self.keep] = 1e6
        normals[~self.keep] = 7.0
        return targets, normals, valid & self.keep


class CountingScene:
    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def query(self, points):
        self.calls += 1
        return self.inner.query(points)


@pytest.fixture
def corner():
    return corner_surface()


@pytest.fixture
def shifted_corner_scene(corner):
    """Reference surface equal to ``corner`` moved by +0.1 along x."""
    return Scene(corner.points + np.array([0.1, 0.0, 0.0]), corner.normals)


@pytest.fixture
def four_points():
    return np.array(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]],
        dtype=float,
    )
