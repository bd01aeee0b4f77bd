"""Dense 6x6 solve turning normal equations into a rigid increment."""
from __future__ import annotations

import logging
from typing import Callable

import numpy as np
from scipy import linalg
from scipy.spatial.transform import Rotation

from .errors import SolverError
from .transforms import make_rigid

logger = logging.getLogger(__name__)

# (ata, atb) -> 4x4 increment
Solver = Callable[[np.ndarray, np.ndarray], np.ndarray]

RANK_RTOL = 1e-12


def twist_to_transform(twist: np.ndarray) -> np.ndarray:
    """
    Convert ``(rx, ry, rz, tx, ty, tz)`` into a 4x4 rigid transform.

    The rotation is ``Rz(rz) @ Ry(ry) @ Rx(rx)``, which agrees with the
    small-angle rotation ``I + [w]x`` used to linearise the residuals.
    """
    twist = np.asarray(twist, dtype=float).reshape(-1)
    if twist.shape != (6,):
        raise ValueError(f"twist must have 6 components, got {twist.shape}")
    return make_rigid(Rotation.from_euler("xyz", twist[:3]).as_matrix(), twist[3:])


def solve_twist(ata: np.ndarray, atb: np.ndarray) -> np.ndarray:
    """
    Solve ``ata @ x = atb`` for the 6-vector ``x``.

    Well-conditioned systems go through a Cholesky factorisation. When
    ``ata`` is rank deficient (too few or degenerate correspondences) the
    minimum-norm least-squares solution is returned instead, which leaves
    unconstrained directions of the pose untouched.
    """
    ata = np.asarray(ata, dtype=float)
    atb = np.asarray(atb, dtype=float).reshape(-1)
    if ata.shape != (6, 6) or atb.shape != (6,):
        raise ValueError(f"Expected (6,6) and (6,) system, got {ata.shape} and {atb.shape}")
    if not (np.all(np.isfinite(ata)) and np.all(np.isfinite(atb))):
        raise SolverError("normal equations contain non-finite values")

    try:
        eigenvalues = linalg.eigvalsh(ata)
        if eigenvalues[-1] > 0 and eigenvalues[0] > RANK_RTOL * eigenvalues[-1]:
            factor = linalg.cho_factor(ata)
            x = linalg.cho_solve(factor, atb)
        else:
            logger.warning(
                "Normal equations are rank deficient (eigenvalues %s), using minimum-norm solution",
                np.array2string(eigenvalues, precision=3),
            )
            x, *_ = np.linalg.lstsq(ata, atb, rcond=None)
    except (linalg.LinAlgError, np.linalg.LinAlgError) as exc:
        raise SolverError(f"dense solve failed: {exc}") from exc

    if not np.all(np.isfinite(x)):
        raise SolverError("dense solve produced non-finite values")
    return x


def solve_normal_equations(ata: np.ndarray, atb: np.ndarray) -> np.ndarray:
    """Default solver: 6x6 normal equations in, 4x4 rigid increment out."""
    return twist_to_transform(solve_twist(ata, atb))
