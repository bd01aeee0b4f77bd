import json

import numpy as np
import pytest

from conftest import corner_surface
from icp_registration.config import ConvergenceCriteria, RegistrationConfig, load_config
from icp_registration.point_cloud import PointCloud, estimate_normals, load_point_cloud, save_point_cloud


@pytest.mark.parametrize("suffix", [".npy", ".ply", ".obj"])
def test_saved_cloud_loads_with_normals(tmp_path, suffix):
    cloud = corner_surface()
    path = tmp_path / f"cloud{suffix}"

    save_point_cloud(path, cloud)
    loaded = load_point_cloud(path)

    np.testing.assert_allclose(loaded.points, cloud.points)
    np.testing.assert_allclose(loaded.normals, cloud.normals)


def test_ply_with_extra_properties(tmp_path):
    path = tmp_path / "colored.ply"
    path.write_text(
        "ply\nformat ascii 1.0\nelement vertex 2\n"
        "property float x\nproperty float y\nproperty float z\n"
        "property uchar red\nproperty uchar green\nproperty uchar blue\n"
        "element face 0\nproperty list uchar int vertex_indices\n"
        "end_header\n"
        "0 1 2 255 0 0\n3 4 5 0 255 0\n"
    )

    cloud = load_point_cloud(path)

    np.testing.assert_allclose(cloud.points, [[0, 1, 2], [3, 4, 5]])
    assert cloud.normals is None


def test_unsupported_extension(tmp_path):
    with pytest.raises(ValueError):
        load_point_cloud(tmp_path / "cloud.xyz")


def test_mismatched_normals_are_rejected():
    with pytest.raises(ValueError):
        PointCloud(points=np.zeros((3, 3)), normals=np.zeros((2, 3)))


def test_estimated_normals_are_perpendicular_to_planes():
    cloud = corner_surface(spacing=0.125)

    with_normals = estimate_normals(PointCloud(points=cloud.points), k_neighbors=10)

    np.testing.assert_allclose(np.abs(with_normals.normals), cloud.normals, atol=1e-8)
    np.testing.assert_allclose(np.linalg.norm(with_normals.normals, axis=1), 1.0)


def test_transform_moves_points_and_rotates_normals():
    cloud = PointCloud(points=np.array([[1.0, 0.0, 0.0]]), normals=np.array([[1.0, 0.0, 0.0]]))
    T = np.eye(4)
    T[:3, :3] = [[0, -1, 0], [1, 0, 0], [0, 0, 1]]
    T[:3, 3] = [0.0, 0.0, 2.0]

    moved = cloud.transform(T)

    np.testing.assert_allclose(moved.points, [[0.0, 1.0, 2.0]])
    np.testing.assert_allclose(moved.normals, [[0.0, 1.0, 0.0]])


def test_criteria_validation():
    with pytest.raises(ValueError):
        ConvergenceCriteria(max_iteration=-1)
    with pytest.raises(ValueError):
        ConvergenceCriteria(relative_rmse=-1e-3)
    with pytest.raises(ValueError):
        ConvergenceCriteria(max_iteration=2.5)


def test_config_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "criteria": {"max_iteration": 7, "relative_fitness": 1e-4, "relative_rmse": 1e-5},
        "max_correspondence_distance": 0.2,
        "accumulate_across_iterations": True,
    }))

    config = load_config(path)

    assert config.criteria == ConvergenceCriteria(7, 1e-4, 1e-5)
    assert config.max_correspondence_distance == 0.2
    assert config.accumulate_across_iterations is True
    assert RegistrationConfig.from_dict(config.to_dict()) == config


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError):
        RegistrationConfig.from_dict({"max_iterations": 3})
