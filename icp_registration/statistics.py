"""Fitness and inlier RMSE of a correspondence pass."""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .correspondence import CorrespondenceBuffers
from .errors import NoCorrespondencesError


@dataclass(frozen=True)
class IterationStats:
    iteration: int
    valid_count: int
    n_points: int
    sum_squared: float
    fitness: float
    inlier_rmse: float

    def as_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "valid_count": self.valid_count,
            "n_points": self.n_points,
            "sum_squared": self.sum_squared,
            "fitness": self.fitness,
            "inlier_rmse": self.inlier_rmse,
        }


def reduce_statistics(buffers: CorrespondenceBuffers, *, iteration: int = 0) -> IterationStats:
    """
    Count valid slots and sum squared residuals.

    The sum runs over every slot; invalid slots hold zero residuals so they
    drop out without masking.

    Raises
    ------
    NoCorrespondencesError
        If no slot is valid, which leaves the RMSE undefined.
    """
    n_points = len(buffers)
    valid_count = int(np.count_nonzero(buffers.valid))
    if valid_count == 0:
        raise NoCorrespondencesError(
            f"no valid correspondences among {n_points} points", iteration=iteration
        )

    sum_squared = float(np.dot(buffers.residuals, buffers.residuals))
    return IterationStats(
        iteration=iteration,
        valid_count=valid_count,
        n_points=n_points,
        sum_squared=sum_squared,
        fitness=valid_count / n_points,
        inlier_rmse=math.sqrt(sum_squared / valid_count),
    )
