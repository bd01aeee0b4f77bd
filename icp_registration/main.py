from __future__ import annotations

import json
import logging
from pathlib import Path

from .config import RegistrationConfig, load_config
from .icp import PointToPlaneICP, RegistrationResult
from .point_cloud import PointCloud, estimate_normals, load_point_cloud, save_point_cloud
from .visualization import plot_alignment, plot_convergence

logger = logging.getLogger(__name__)


def prepare_target(target: PointCloud, config: RegistrationConfig) -> PointCloud:
    if target.normals is not None:
        return target
    if config.normal_radius is not None:
        from .open3d_utils import estimate_normals_o3d

        logger.info("Estimating target normals with Open3D (radius=%g)", config.normal_radius)
        return estimate_normals_o3d(target, radius=config.normal_radius, max_nn=config.normal_neighbors)
    logger.info("Estimating target normals with PCA (k=%d)", config.normal_neighbors)
    return estimate_normals(target, k_neighbors=config.normal_neighbors, workers=config.workers)


def run_pipeline(
    target_path: Path,
    source_path: Path,
    config: RegistrationConfig,
    output_dir: Path,
    *,
    plots: bool = True,
) -> RegistrationResult:
    target_cloud = load_point_cloud(target_path)
    source_cloud = load_point_cloud(source_path)
    logger.info("Registering %s (%d points) to %s (%d points)",
                source_path, len(source_cloud), target_path, len(target_cloud))

    target_with_normals = prepare_target(target_cloud, config)

    icp = PointToPlaneICP.from_config(config)
    result, aligned = icp.register(source_cloud, target_with_normals)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    save_point_cloud(output_dir / "aligned_source.npy", aligned)
    save_point_cloud(output_dir / "aligned_source.ply", aligned)

    report = {"config": config.to_dict(), "result": result.as_dict()}
    (output_dir / "registration.json").write_text(json.dumps(report, indent=2))

    if plots:
        plot_alignment(target_with_normals, aligned, output_dir / "aligned_overlay.png", initial_source=source_cloud)
        plot_convergence(result.history, output_dir / "convergence.png")

    print("ICP state:", result.state.value)
    print("Updates applied:", result.iterations)
    print(f"Fitness: {result.fitness:.6f}  inlier RMSE: {result.inlier_rmse:.6g}")
    print("Transformation:\n", result.transformation)
    return result


def main(
    target_path: Path,
    source_path: Path,
    *,
    config_path: Path | None = None,
    max_iterations: int = 30,
    relative_fitness: float = 1e-6,
    relative_rmse: float = 1e-6,
    correspondence_threshold: float = 0.05,
    normal_neighbors: int = 30,
    accumulate_across_iterations: bool = False,
    output_dir: Path = Path("data/outputs"),
    log_level: int = logging.INFO,
) -> RegistrationResult:
    """Run the registration pipeline with explicit parameters.

    A JSON file passed as ``config_path`` replaces all keyword parameters
    except the paths. This keeps the module script-friendly while still
    allowing programmatic use.
    """
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if config_path is not None:
        config = load_config(config_path)
    else:
        config = RegistrationConfig(
            criteria={
                "max_iteration": max_iterations,
                "relative_fitness": relative_fitness,
                "relative_rmse": relative_rmse,
            },
            max_correspondence_distance=correspondence_threshold,
            normal_neighbors=normal_neighbors,
            accumulate_across_iterations=accumulate_across_iterations,
        )

    return run_pipeline(
        target_path=Path(target_path),
        source_path=Path(source_path),
        config=config,
        output_dir=Path(output_dir),
    )


if __name__ == "__main__":
    main(
        target_path=Path("data/sample_target.ply"),
        source_path=Path("data/sample_source.ply"),
    )
