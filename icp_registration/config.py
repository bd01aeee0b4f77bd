"""Registration parameters."""
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ConvergenceCriteria:
    """Stopping rule for the ICP loop.

    The loop runs at most ``max_iteration + 1`` correspondence passes and
    stops early once both fitness and inlier RMSE change by less than the
    relative thresholds between consecutive passes.
    """

    max_iteration: int = 30
    relative_fitness: float = 1e-6
    relative_rmse: float = 1e-6

    def __post_init__(self) -> None:
        if isinstance(self.max_iteration, bool) or int(self.max_iteration) != self.max_iteration:
            raise ValueError(f"max_iteration must be an integer, got {self.max_iteration!r}")
        if self.max_iteration < 0:
            raise ValueError(f"max_iteration must be non-negative, got {self.max_iteration}")
        for name in ("relative_fitness", "relative_rmse"):
            value = float(getattr(self, name))
            if math.isnan(value) or value < 0:
                raise ValueError(f"{name} must be a non-negative float, got {value}")
        object.__setattr__(self, "max_iteration", int(self.max_iteration))
        object.__setattr__(self, "relative_fitness", float(self.relative_fitness))
        object.__setattr__(self, "relative_rmse", float(self.relative_rmse))


@dataclass
class RegistrationConfig:
    """Configuration for a full registration run."""

    criteria: ConvergenceCriteria = field(default_factory=ConvergenceCriteria)

    # Correspondence search
    max_correspondence_distance: float = 0.05
    normal_neighbors: int = 30
    normal_radius: Optional[float] = None  # set to estimate normals with Open3D instead
    workers: int = 1  # -1 for every core

    # Keep adding every pass into the normal equations instead of starting fresh
    accumulate_across_iterations: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.criteria, dict):
            self.criteria = ConvergenceCriteria(**self.criteria)
        if not float(self.max_correspondence_distance) > 0:
            raise ValueError("max_correspondence_distance must be positive")
        if int(self.normal_neighbors) < 3:
            raise ValueError("normal_neighbors must be at least 3")
        if self.normal_radius is not None and not float(self.normal_radius) > 0:
            raise ValueError("normal_radius must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrationConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)


def load_config(path: str | Path) -> RegistrationConfig:
    """Read a :class:`RegistrationConfig` from a JSON file."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")
    return RegistrationConfig.from_dict(data)
