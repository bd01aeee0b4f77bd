"""Point cloud container, file I/O and normal estimation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from scipy.spatial import cKDTree

from .transforms import assert_T_valid

logger = logging.getLogger(__name__)


def as_points(points, *, name: str = "points") -> np.ndarray:
    """Validate and convert ``points`` to a contiguous (N, 3) float64 array."""
    array = np.ascontiguousarray(points, dtype=float)
    if array.ndim != 2 or array.shape[1] != 3:
        raise ValueError(f"{name} must be an (N, 3) array. Got {array.shape} instead.")
    return array


@dataclass
class PointCloud:
    """Point cloud container with optional per-point unit normals."""

    points: np.ndarray  # (N, 3)
    normals: np.ndarray | None = None  # (N, 3)

    def __post_init__(self) -> None:
        self.points = as_points(self.points)
        if self.normals is not None:
            self.normals = as_points(self.normals, name="normals")
            if self.normals.shape != self.points.shape:
                raise ValueError(
                    f"normals shape {self.normals.shape} does not match points shape {self.points.shape}"
                )

    def __len__(self) -> int:
        return len(self.points)

    @property
    def has_normals(self) -> bool:
        return self.normals is not None

    def copy(self) -> "PointCloud":
        return PointCloud(points=self.points.copy(), normals=None if self.normals is None else self.normals.copy())

    def with_normals(self, normals: np.ndarray) -> "PointCloud":
        return PointCloud(points=self.points, normals=normals)

    def transform(self, T: np.ndarray) -> "PointCloud":
        """Return a new cloud moved by the rigid 4x4 transform ``T``."""
        T = assert_T_valid(T, rigid=False)
        rotation, translation = T[:3, :3], T[:3, 3]
        moved = self.points @ rotation.T + translation
        normals = None if self.normals is None else self.normals @ rotation.T
        return PointCloud(points=moved, normals=normals)


SUPPORTED_EXTENSIONS = {".npy", ".ply", ".obj"}


def _load_ply(path: Path) -> tuple[np.ndarray, np.ndarray | None]:
    """Load an ASCII PLY file containing vertex positions and optional normals.

    Only ASCII PLY files are supported. Vertex properties are located by
    name so that extra properties (colors, intensities) are skipped; faces
    and other elements are ignored.
    """

    with path.open("r", encoding="utf-8") as fh:
        header_lines = []
        for line in fh:
            header_lines.append(line.strip())
            if line.strip() == "end_header":
                break

        if not header_lines or header_lines[0] != "ply":
            raise ValueError(f"{path} is not a PLY file.")
        if not any(line.startswith("format ascii") for line in header_lines):
            raise ValueError(f"{path}: only ASCII PLY files are supported.")

        vertex_count = None
        vertex_properties: list[str] = []
        in_vertex = False
        for line in header_lines:
            parts = line.split()
            if len(parts) >= 3 and parts[0] == "element":
                in_vertex = parts[1] == "vertex"
                if in_vertex:
                    try:
                        vertex_count = int(parts[2])
                    except ValueError as exc:
                        raise ValueError(f"Invalid vertex count in PLY header: {line}") from exc
            elif in_vertex and len(parts) >= 3 and parts[0] == "property":
                vertex_properties.append(parts[-1])
        if vertex_count is None:
            raise ValueError("PLY file missing vertex count in header.")

        try:
            xyz_columns = [vertex_properties.index(axis) for axis in ("x", "y", "z")]
        except ValueError as exc:
            raise ValueError("PLY vertex element must define x, y and z properties.") from exc
        normal_columns = None
        if all(name in vertex_properties for name in ("nx", "ny", "nz")):
            normal_columns = [vertex_properties.index(name) for name in ("nx", "ny", "nz")]

        rows = []
        for _ in range(vertex_count):
            line = fh.readline()
            if not line:
                raise ValueError("Unexpected end of PLY file while reading vertices.")
            parts = line.split()
            if len(parts) < len(vertex_properties):
                raise ValueError(f"Vertex line has insufficient components: {line.strip()}")
            rows.append([float(value) for value in parts[: len(vertex_properties)]])

    table = np.asarray(rows, dtype=float).reshape(vertex_count, len(vertex_properties))
    points = table[:, xyz_columns]
    normals = None if normal_columns is None else table[:, normal_columns]
    return points, normals


def _load_obj(path: Path) -> tuple[np.ndarray, np.ndarray | None]:
    """Load vertex positions (``v``) and vertex normals (``vn``) from an OBJ file.

    Normals are only kept when there is exactly one per vertex.
    """

    vertices = []
    normals = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            parts = line.split()
            if not parts or parts[0] not in ("v", "vn"):
                continue
            if len(parts) < 4:
                raise ValueError(f"OBJ {parts[0]} line has insufficient components: {line.strip()}")
            target = vertices if parts[0] == "v" else normals
            target.append([float(parts[1]), float(parts[2]), float(parts[3])])

    if not vertices:
        raise ValueError("OBJ file contained no vertex records.")
    if normals and len(normals) != len(vertices):
        logger.warning("%s: %d normals for %d vertices, ignoring normals", path, len(normals), len(vertices))
        normals = []
    return np.asarray(vertices, dtype=float), (np.asarray(normals, dtype=float) if normals else None)


def load_point_cloud(path: str | Path) -> PointCloud:
    """Load a point cloud from ``.npy``, ASCII ``.ply``, or ``.obj`` files.

    ``.npy`` files hold either an (N, 3) array of points or an (N, 6) array
    of points followed by normals.
    """

    file_path = Path(path)
    if file_path.suffix not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported point cloud extension: {file_path.suffix}. Expected one of {SUPPORTED_EXTENSIONS}")

    normals = None
    if file_path.suffix == ".npy":
        data = np.load(file_path)
        if data.ndim == 2 and data.shape[1] == 6:
            points, normals = data[:, :3], data[:, 3:]
        else:
            points = data
    elif file_path.suffix == ".ply":
        points, normals = _load_ply(file_path)
    else:
        points, normals = _load_obj(file_path)

    cloud = PointCloud(points=points, normals=normals)
    logger.debug("Loaded %d points from %s (normals: %s)", len(cloud), file_path, cloud.has_normals)
    return cloud


def save_point_cloud(path: str | Path, cloud: PointCloud) -> None:
    """Persist a point cloud as ``.npy``, ASCII ``.ply``, or ``.obj``.

    Normals are written when present: as extra columns for ``.npy``, as
    ``nx ny nz`` properties for ``.ply`` and as ``vn`` records for ``.obj``.
    """

    file_path = Path(path)
    suffix = file_path.suffix
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported point cloud extension: {suffix}. Expected one of {SUPPORTED_EXTENSIONS}")

    normals = cloud.normals
    if suffix == ".npy":
        data = cloud.points if normals is None else np.hstack([cloud.points, normals])
        np.save(file_path, data)
    elif suffix == ".ply":
        with file_path.open("w", encoding="utf-8") as fh:
            fh.write("ply\nformat ascii 1.0\n")
            fh.write(f"element vertex {len(cloud.points)}\n")
            fh.write("property double x\nproperty double y\nproperty double z\n")
            if normals is not None:
                fh.write("property double nx\nproperty double ny\nproperty double nz\n")
            fh.write("end_header\n")
            table = cloud.points if normals is None else np.hstack([cloud.points, normals])
            for row in table:
                fh.write(" ".join(repr(float(value)) for value in row) + "\n")
    else:  # .obj
        with file_path.open("w", encoding="utf-8") as fh:
            for point in cloud.points:
                fh.write("v " + " ".join(repr(float(value)) for value in point) + "\n")
            if normals is not None:
                for normal in normals:
                    fh.write("vn " + " ".join(repr(float(value)) for value in normal) + "\n")
    logger.debug("Wrote %d points to %s", len(cloud), file_path)


def estimate_normals(cloud: PointCloud, k_neighbors: int = 30, *, workers: int = 1) -> PointCloud:
    """Estimate per-point normals using PCA on nearest neighbors.

    Every neighbourhood is gathered with one batched KD-tree query and the
    covariance eigen-decompositions run as a single stacked ``eigh`` call.
    Normals are oriented away from the local neighbourhood centroid and,
    where that is ambiguous, away from the cloud centroid.
    """

    points = cloud.points
    if len(points) < 3:
        raise ValueError("At least three points are required to estimate normals.")

    k = min(int(k_neighbors), len(points))
    if k < 3:
        raise ValueError("k_neighbors must be at least 3.")

    tree = cKDTree(points)
    _, indices = tree.query(points, k=k, workers=workers)
    neighborhoods = points[indices]  # (N, k, 3)
    local_centroids = neighborhoods.mean(axis=1)
    centered = neighborhoods - local_centroids[:, None, :]
    covariances = np.einsum("nki,nkj->nij", centered, centered) / (k - 1)
    eigenvalues, eigenvectors = np.linalg.eigh(covariances)
    normals = eigenvectors[:, :, 0]  # eigh sorts eigenvalues ascending

    direction = points - local_centroids
    ambiguous = np.abs(np.einsum("ij,ij->i", normals, direction)) < 1e-12
    direction[ambiguous] = points[ambiguous] - points.mean(axis=0)
    flip = np.einsum("ij,ij->i", normals, direction) < 0
    normals[flip] *= -1.0
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)

    return cloud.with_normals(normals)
