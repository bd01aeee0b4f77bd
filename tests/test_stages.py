"""Tests for the per-pass stages: residual builder, statistics and normal equations."""

import numpy as np
import pytest

from conftest import MaskedScene
from icp_registration.correspondence import CorrespondenceBuffers, build_correspondences
from icp_registration.errors import CorrespondenceError, NoCorrespondencesError
from icp_registration.normal_equations import NormalEquationsAccumulator
from icp_registration.scene import Scene
from icp_registration.statistics import reduce_statistics


class FixedScene:
    def __init__(self, targets, normals, valid):
        self.answer = (np.asarray(targets, float), np.asarray(normals, float), np.asarray(valid, bool))

    def query(self, points):
        return self.answer


def test_residual_row_is_cross_product_and_normal():
    points = np.array([[1.0, 2.0, 3.0], [0.5, -1.0, 0.0]])
    targets = np.array([[1.0, 2.0, 3.5], [9.0, 9.0, 9.0]])
    normals = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0]])
    scene = FixedScene(targets, normals, [True, False])
    buffers = CorrespondenceBuffers.allocate(2)

    n_valid = build_correspondences(points, scene, buffers)

    assert n_valid == 1
    assert buffers.residuals[0] == pytest.approx(0.5)
    np.testing.assert_allclose(buffers.coefficients[0], [2.0, -1.0, 0.0, 0.0, 0.0, 1.0])
    # the invalid slot keeps its zeros
    assert buffers.residuals[1] == 0.0
    np.testing.assert_array_equal(buffers.coefficients[1], np.zeros(6))
    np.testing.assert_array_equal(buffers.valid, [True, False])


def test_reset_clears_previous_pass():
    buffers = CorrespondenceBuffers.allocate(3)
    buffers.coefficients[:] = 1.0
    buffers.residuals[:] = 2.0
    buffers.valid[:] = True

    buffers.reset()

    assert not buffers.coefficients.any()
    assert not buffers.residuals.any()
    assert not buffers.valid.any()


def test_malformed_scene_answer_is_rejected():
    scene = FixedScene(np.zeros((2, 3)), np.zeros((2, 3)), [True, True])
    with pytest.raises(CorrespondenceError):
        build_correspondences(np.zeros((3, 3)), scene, CorrespondenceBuffers.allocate(3))


def test_non_finite_valid_answer_is_rejected():
    scene = FixedScene([[np.nan, 0.0, 0.0]], [[0.0, 0.0, 1.0]], [True])
    with pytest.raises(CorrespondenceError):
        build_correspondences(np.zeros((1, 3)), scene, CorrespondenceBuffers.allocate(1))


def test_statistics_over_valid_slots():
    buffers = CorrespondenceBuffers.allocate(4)
    buffers.valid[:] = [True, True, False, True]
    buffers.residuals[:] = [3.0, -4.0, 0.0, 0.0]

    stats = reduce_statistics(buffers, iteration=7)

    assert stats.iteration == 7
    assert stats.valid_count == 3
    assert stats.fitness == pytest.approx(0.75)
    assert stats.sum_squared == pytest.approx(25.0)
    assert stats.inlier_rmse == pytest.approx(np.sqrt(25.0 / 3.0))


@pytest.mark.parametrize("n_points", [0, 5])
def test_statistics_without_valid_slots_raise(n_points):
    with pytest.raises(NoCorrespondencesError):
        reduce_statistics(CorrespondenceBuffers.allocate(n_points))


def test_normal_equations_match_dense_product(corner, shifted_corner_scene):
    buffers = CorrespondenceBuffers.allocate(len(corner))
    build_correspondences(corner.points, shifted_corner_scene, buffers)

    accumulator = NormalEquationsAccumulator()
    accumulator.begin_pass()
    ata, atb = accumulator.accumulate(buffers)

    A = buffers.coefficients
    np.testing.assert_allclose(ata, A.T @ A)
    np.testing.assert_allclose(atb, A.T @ buffers.residuals)
    np.testing.assert_array_equal(ata, ata.T)


@pytest.mark.parametrize("persistent, factor", [(False, 1.0), (True, 2.0)])
def test_accumulator_reset_policy(corner, shifted_corner_scene, persistent, factor):
    buffers = CorrespondenceBuffers.allocate(len(corner))
    build_correspondences(corner.points, shifted_corner_scene, buffers)
    accumulator = NormalEquationsAccumulator(persistent=persistent)

    accumulator.begin_pass()
    first_ata, first_atb = accumulator.accumulate(buffers)
    accumulator.begin_pass()
    second_ata, second_atb = accumulator.accumulate(buffers)

    np.testing.assert_allclose(second_ata, factor * first_ata)
    np.testing.assert_allclose(second_atb, factor * first_atb)


def test_invalid_slots_leave_normal_equations_unchanged(corner, shifted_corner_scene):
    keep = np.zeros(len(corner), dtype=bool)
    keep[::2] = True

    masked = CorrespondenceBuffers.allocate(len(corner))
    build_correspondences(corner.points, MaskedScene(shifted_corner_scene, keep), masked)
    subset = CorrespondenceBuffers.allocate(int(keep.sum()))
    build_correspondences(corner.points[keep], shifted_corner_scene, subset)

    masked_ata, masked_atb = NormalEquationsAccumulator().accumulate(masked)
    subset_ata, subset_atb = NormalEquationsAccumulator().accumulate(subset)

    np.testing.assert_allclose(masked_ata, subset_ata, atol=1e-12)
    np.testing.assert_allclose(masked_atb, subset_atb, atol=1e-12)


def test_scene_rejects_distant_points():
    reference = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    normals = np.array([[0.0, 0.0, 2.0], [0.0, 0.0, 1.0]])
    scene = Scene(reference, normals, max_correspondence_distance=0.5)

    targets, found_normals, valid = scene.query(np.array([[0.1, 0.0, 0.0], [5.0, 5.0, 5.0]]))

    np.testing.assert_array_equal(valid, [True, False])
    np.testing.assert_allclose(targets[0], [0.0, 0.0, 0.0])
    # normals are rescaled to unit length
    np.testing.assert_allclose(found_normals[0], [0.0, 0.0, 1.0])
    np.testing.assert_array_equal(targets[1], np.zeros(3))


def test_scene_rejects_zero_normals():
    with pytest.raises(ValueError):
        Scene(np.zeros((1, 3)), np.zeros((1, 3)))
