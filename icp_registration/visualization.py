"""Lightweight matplotlib plots of a registration run."""
from __future__ import annotations

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path
from typing import Sequence

import numpy as np

from .point_cloud import PointCloud
from .statistics import IterationStats


_DEF_FIGSIZE = (8, 6)


def _new_axes():
    fig = plt.figure(figsize=_DEF_FIGSIZE)
    ax = fig.add_subplot(111, projection="3d")
    return fig, ax


def _set_equal_aspect(ax, points: np.ndarray) -> None:
    if points.size == 0:
        return
    max_range = (points.max(axis=0) - points.min(axis=0)).max()
    mid = points.mean(axis=0)
    for axis, coordinate in zip("xyz", mid):
        getattr(ax, f"set_{axis}lim")(coordinate - max_range / 2, coordinate + max_range / 2)


def _save(fig, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)


def plot_alignment(target: PointCloud, aligned_source: PointCloud, output_path: Path,
                   title: str = "Aligned point clouds", initial_source: PointCloud | None = None) -> None:
    fig, ax = _new_axes()
    ax.scatter(target.points[:, 0], target.points[:, 1], target.points[:, 2], s=1, c="tab:gray", alpha=0.5, label="target")
    stacked = [target.points, aligned_source.points]
    if initial_source is not None:
        ax.scatter(initial_source.points[:, 0], initial_source.points[:, 1], initial_source.points[:, 2],
                   s=1, c="tab:blue", alpha=0.3, label="initial source")
        stacked.append(initial_source.points)
    ax.scatter(aligned_source.points[:, 0], aligned_source.points[:, 1], aligned_source.points[:, 2], s=1, c="tab:red", alpha=0.6, label="aligned source")
    _set_equal_aspect(ax, np.vstack(stacked))
    ax.legend(loc="upper right")
    ax.set_title(title)
    ax.set_xlabel("X")
    ax.set_ylabel("Y")
    ax.set_zlabel("Z")
    _save(fig, Path(output_path))


def plot_convergence(history: Sequence[IterationStats], output_path: Path, title: str = "ICP convergence") -> None:
    """Fitness and inlier RMSE per correspondence pass."""
    passes = [stats.iteration for stats in history]
    fig, (ax_fit, ax_rmse) = plt.subplots(2, 1, figsize=_DEF_FIGSIZE, sharex=True)
    ax_fit.plot(passes, [stats.fitness for stats in history], marker="o", c="tab:green")
    ax_fit.set_ylabel("fitness")
    ax_fit.set_ylim(0.0, 1.05)
    ax_rmse.plot(passes, [stats.inlier_rmse for stats in history], marker="o", c="tab:red")
    ax_rmse.set_ylabel("inlier RMSE")
    ax_rmse.set_xlabel("pass")
    ax_fit.set_title(title)
    _save(fig, Path(output_path))
