# open3d_utils.py

from typing import Optional

import numpy as np
import open3d as o3d

from .point_cloud import PointCloud


def to_o3d_cloud(cloud: PointCloud) -> o3d.geometry.PointCloud:
    """
    Convert a PointCloud (points and optional normals) to an Open3D PointCloud.
    """
    o3d_cloud = o3d.geometry.PointCloud()
    o3d_cloud.points = o3d.utility.Vector3dVector(cloud.points.astype(float))
    if cloud.normals is not None:
        o3d_cloud.normals = o3d.utility.Vector3dVector(cloud.normals.astype(float))
    return o3d_cloud


def default_normal_radius(cloud: PointCloud, fraction: float = 0.1) -> float:
    """Neighbourhood radius as a fraction of the bounding-box diagonal."""
    bounds = cloud.points.max(axis=0) - cloud.points.min(axis=0)
    return float(np.linalg.norm(bounds) * fraction)


def estimate_normals_o3d(
    cloud: PointCloud,
    radius: Optional[float] = None,
    max_nn: int = 30,
) -> PointCloud:
    """
    Estimate unit normals with Open3D's hybrid radius/kNN search.

    Parameters
    ----------
    cloud : PointCloud
        Input cloud; existing normals are replaced.
    radius : float or None
        Search radius. If None, 10% of the bounding-box diagonal.
    max_nn : int
        Maximum neighbours per point.

    Returns
    -------
    PointCloud
        Same points with the estimated normals, oriented towards +Z where
        the local surface allows it.
    """
    if len(cloud) < 3:
        raise ValueError("At least three points are required to estimate normals.")
    if radius is None:
        radius = default_normal_radius(cloud)

    o3d_cloud = to_o3d_cloud(PointCloud(points=cloud.points))
    o3d_cloud.estimate_normals(
        search_param=o3d.geometry.KDTreeSearchParamHybrid(
            radius=radius,
            max_nn=max_nn,
        )
    )
    o3d_cloud.orient_normals_to_align_with_direction(np.array([0.0, 0.0, 1.0]))
    o3d_cloud.normalize_normals()
    return cloud.with_normals(np.asarray(o3d_cloud.normals, dtype=float))
