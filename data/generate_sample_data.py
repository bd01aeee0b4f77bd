"""Generate a synthetic source/target pair with a known rigid misalignment.

The target samples three perpendicular rectangular patches (a box corner)
plus one tilted patch, so every rotation and translation direction is
constrained for point-to-plane ICP. The source is the target moved by a
small rotation and translation; ``sample_truth.json`` records the transform
that maps the source back onto the target.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from icp_registration.point_cloud import PointCloud, save_point_cloud
from icp_registration.transforms import make_rigid

ROOT = Path(__file__).resolve().parent


def sample_rectangle(rng: np.random.Generator, center: Sequence[float], normal: Sequence[float],
                     u_axis: Sequence[float], half_lengths: Tuple[float, float], count: int,
                     noise: float) -> Tuple[np.ndarray, np.ndarray]:
    normal_v = np.asarray(normal, dtype=float)
    normal_v /= np.linalg.norm(normal_v)
    u = np.asarray(u_axis, dtype=float)
    u -= normal_v * np.dot(u, normal_v)
    u /= np.linalg.norm(u)
    v = np.cross(normal_v, u)

    coords = rng.uniform(-1.0, 1.0, size=(count, 2)) * np.asarray(half_lengths)
    points = np.asarray(center, dtype=float) + coords[:, :1] * u + coords[:, 1:] * v
    points += normal_v * rng.normal(0.0, noise, size=(count, 1))
    normals = np.tile(normal_v, (count, 1))
    return points, normals


def build_cloud(seed: int = 12345) -> PointCloud:
    rng = np.random.default_rng(seed)
    rectangles = [
        # box corner: floor and two walls
        ((0.1, 0.1, 0.0), (0, 0, 1), (1, 0, 0), (0.1, 0.1)),
        ((0.0, 0.1, 0.1), (1, 0, 0), (0, 1, 0), (0.1, 0.1)),
        ((0.1, 0.0, 0.1), (0, 1, 0), (1, 0, 0), (0.1, 0.1)),
        # tilted lid
        ((0.12, 0.12, 0.2), (0.3, 0.3, 1.0), (1, -1, 0), (0.06, 0.04)),
    ]

    parts = [sample_rectangle(rng, c, n, u, hl, count=800, noise=0.0005) for c, n, u, hl in rectangles]
    points = np.vstack([p for p, _ in parts])
    normals = np.vstack([n for _, n in parts])
    return PointCloud(points=points, normals=normals)


def main() -> None:
    target = build_cloud()

    rotation = Rotation.from_rotvec(np.deg2rad(4.0) * np.array([0.2, 0.6, 0.1]) / np.linalg.norm([0.2, 0.6, 0.1]))
    misalignment = make_rigid(rotation.as_matrix(), np.array([0.008, -0.005, 0.006]))
    source = target.transform(misalignment)

    ROOT.mkdir(exist_ok=True)
    save_point_cloud(ROOT / "sample_target.ply", target)
    save_point_cloud(ROOT / "sample_source.ply", PointCloud(points=source.points))
    save_point_cloud(ROOT / "sample_target.npy", target)
    save_point_cloud(ROOT / "sample_source.npy", PointCloud(points=source.points))
    R, t = misalignment[:3, :3], misalignment[:3, 3]
    truth = {"source_to_target": make_rigid(R.T, -R.T @ t).tolist()}
    (ROOT / "sample_truth.json").write_text(json.dumps(truth, indent=2))

    print("Wrote sample point clouds to:")
    for name in ["sample_target.ply", "sample_source.ply", "sample_target.npy", "sample_source.npy", "sample_truth.json"]:
        print(f"  {ROOT / name}")


if __name__ == "__main__":
    main()
