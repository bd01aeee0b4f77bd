"""Point-to-plane ICP implementation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from .config import ConvergenceCriteria, RegistrationConfig
from .correspondence import CorrespondenceBuffers, build_correspondences
from .errors import RegistrationAborted, SolverError
from .normal_equations import NormalEquationsAccumulator
from .point_cloud import PointCloud
from .scene import CorrespondenceQuery, Scene
from .solver import Solver, solve_normal_equations
from .statistics import IterationStats, reduce_statistics
from .transforms import apply_transform_in_place, assert_T_valid

logger = logging.getLogger(__name__)


class RegistrationState(Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass
class RegistrationResult:
    fitness: float
    inlier_rmse: float
    transformation: np.ndarray
    iterations: int = 0  # pose updates applied
    state: RegistrationState = RegistrationState.RUNNING
    history: List[IterationStats] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.state is RegistrationState.CONVERGED

    @property
    def rotation(self) -> np.ndarray:
        return self.transformation[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        return self.transformation[:3, 3]

    def as_dict(self) -> dict:
        return {
            "fitness": self.fitness,
            "inlier_rmse": self.inlier_rmse,
            "transformation": self.transformation.tolist(),
            "iterations": self.iterations,
            "state": self.state.value,
            "history": [stats.as_dict() for stats in self.history],
        }

    def __repr__(self) -> str:
        return (f"RegistrationResult(state={self.state.value}, "
                f"fitness={self.fitness:.4f}, "
                f"inlier_rmse={self.inlier_rmse:.6g}, "
                f"iterations={self.iterations})")


def _has_converged(result: RegistrationResult, backup: RegistrationResult, criteria: ConvergenceCriteria) -> bool:
    return (abs(result.fitness - backup.fitness) < criteria.relative_fitness
            and abs(result.inlier_rmse - backup.inlier_rmse) < criteria.relative_rmse)


def register(
    points: np.ndarray,
    scene: CorrespondenceQuery,
    criteria: ConvergenceCriteria,
    *,
    solver: Solver = solve_normal_equations,
    accumulate_across_iterations: bool = False,
    should_abort: Optional[Callable[[], bool]] = None,
) -> RegistrationResult:
    """
    Align ``points`` to ``scene`` with point-to-plane ICP.

    Parameters
    ----------
    points : (N, 3) float ndarray
        Movable cloud. Overwritten in place with the aligned positions.
    scene : CorrespondenceQuery
        Reference surface, e.g. :class:`Scene`.
    criteria : ConvergenceCriteria
        Iteration budget and convergence thresholds.
    solver : callable
        ``(ata, atb) -> (4, 4)`` increment. Defaults to
        :func:`solve_normal_equations`.
    accumulate_across_iterations : bool
        Keep summing every pass into the same normal equations instead of
        rebuilding them for the current pose only.
    should_abort : callable, optional
        Polled between passes; returning True raises
        :class:`RegistrationAborted`.

    Returns
    -------
    RegistrationResult
        Fitness and inlier RMSE of the last pass, and the cumulative
        transform mapping the input positions onto the aligned ones.

    Raises
    ------
    NoCorrespondencesError
        A pass found no valid correspondence.
    SolverError
        The dense solve failed or returned an invalid transform.
    RegistrationAborted
        ``should_abort`` requested a stop.
    """
    if not isinstance(points, np.ndarray) or points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"points must be an (N,3) ndarray, got {getattr(points, 'shape', type(points))}")
    if points.dtype != np.float64:
        raise ValueError(f"points must be float64 to be updated in place, got {points.dtype}")
    if not points.flags.writeable:
        raise ValueError("points must be writeable")

    buffers = CorrespondenceBuffers.allocate(len(points))
    accumulator = NormalEquationsAccumulator(persistent=accumulate_across_iterations)
    cumulative = np.eye(4, dtype=float)
    history: List[IterationStats] = []

    # sentinels so the first pass can never look converged
    result = RegistrationResult(fitness=-np.inf, inlier_rmse=np.inf, transformation=cumulative.copy())
    applied = 0

    for iteration in range(criteria.max_iteration + 1):
        if should_abort is not None and should_abort():
            raise RegistrationAborted("registration aborted by caller", iteration=iteration)

        buffers.reset()
        build_correspondences(points, scene, buffers, iteration=iteration)
        stats = reduce_statistics(buffers, iteration=iteration)
        history.append(stats)

        backup = result
        result = RegistrationResult(
            fitness=stats.fitness,
            inlier_rmse=stats.inlier_rmse,
            transformation=cumulative.copy(),
            iterations=applied,
            history=history,
        )
        logger.debug("ICP pass %d: fitness=%.6f inlier_rmse=%.6g", iteration, stats.fitness, stats.inlier_rmse)

        if iteration == criteria.max_iteration:
            result.state = RegistrationState.EXHAUSTED
            break

        if _has_converged(result, backup, criteria):
            result.state = RegistrationState.CONVERGED
            break

        accumulator.begin_pass()
        ata, atb = accumulator.accumulate(buffers)
        try:
            increment = assert_T_valid(solver(ata, atb), rigid=False)
        except SolverError as exc:
            if exc.iteration is None:
                exc.iteration = iteration
            raise
        except Exception as exc:
            raise SolverError(f"solver failed: {exc}", iteration=iteration) from exc

        apply_transform_in_place(points, increment)
        cumulative = increment @ cumulative
        applied += 1

    logger.info(
        "ICP %s after %d update(s): fitness=%.6f inlier_rmse=%.6g",
        result.state.value, result.iterations, result.fitness, result.inlier_rmse,
    )
    return result


class PointToPlaneICP:
    def __init__(
        self,
        max_iterations: int = 30,
        relative_fitness: float = 1e-6,
        relative_rmse: float = 1e-6,
        correspondence_threshold: float = 0.05,
        normal_neighbors: int = 30,
        accumulate_across_iterations: bool = False,
        workers: int = 1,
    ):
        self.criteria = ConvergenceCriteria(
            max_iteration=max_iterations,
            relative_fitness=relative_fitness,
            relative_rmse=relative_rmse,
        )
        self.correspondence_threshold = correspondence_threshold
        self.normal_neighbors = normal_neighbors
        self.accumulate_across_iterations = accumulate_across_iterations
        self.workers = workers

    @classmethod
    def from_config(cls, config: RegistrationConfig) -> "PointToPlaneICP":
        return cls(
            max_iterations=config.criteria.max_iteration,
            relative_fitness=config.criteria.relative_fitness,
            relative_rmse=config.criteria.relative_rmse,
            correspondence_threshold=config.max_correspondence_distance,
            normal_neighbors=config.normal_neighbors,
            accumulate_across_iterations=config.accumulate_across_iterations,
            workers=config.workers,
        )

    def register(self, source: PointCloud, target: PointCloud) -> Tuple[RegistrationResult, PointCloud]:
        """Align a copy of ``source`` to ``target``; ``source`` is left untouched."""
        scene = Scene.from_point_cloud(
            target,
            max_correspondence_distance=self.correspondence_threshold,
            normal_neighbors=self.normal_neighbors,
            workers=self.workers,
        )

        moving = source.points.copy()
        result = register(
            moving,
            scene,
            self.criteria,
            accumulate_across_iterations=self.accumulate_across_iterations,
        )

        normals = None if source.normals is None else source.normals @ result.rotation.T
        return result, PointCloud(points=moving, normals=normals)
