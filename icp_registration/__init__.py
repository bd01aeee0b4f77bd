from icp_registration.config import ConvergenceCriteria, RegistrationConfig, load_config
from icp_registration.correspondence import CorrespondenceBuffers, build_correspondences
from icp_registration.errors import (
    CorrespondenceError,
    NoCorrespondencesError,
    RegistrationAborted,
    RegistrationError,
    SolverError,
)
from icp_registration.icp import PointToPlaneICP, RegistrationResult, RegistrationState, register
from icp_registration.normal_equations import NormalEquationsAccumulator
from icp_registration.point_cloud import PointCloud, estimate_normals, load_point_cloud, save_point_cloud
from icp_registration.scene import CorrespondenceQuery, Scene
from icp_registration.solver import solve_normal_equations, solve_twist, twist_to_transform
from icp_registration.statistics import IterationStats, reduce_statistics
from icp_registration.transforms import apply_transform_in_place

__all__ = [
    "ConvergenceCriteria",
    "RegistrationConfig",
    "load_config",
    "CorrespondenceBuffers",
    "build_correspondences",
    "CorrespondenceError",
    "NoCorrespondencesError",
    "RegistrationAborted",
    "RegistrationError",
    "SolverError",
    "PointToPlaneICP",
    "RegistrationResult",
    "RegistrationState",
    "register",
    "NormalEquationsAccumulator",
    "PointCloud",
    "estimate_normals",
    "load_point_cloud",
    "save_point_cloud",
    "CorrespondenceQuery",
    "Scene",
    "solve_normal_equations",
    "solve_twist",
    "twist_to_transform",
    "IterationStats",
    "reduce_statistics",
    "apply_transform_in_place",
]
