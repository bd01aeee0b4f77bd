"""Normal equations ``A^T A x = A^T b`` for the 6-DOF pose increment."""
from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .correspondence import CorrespondenceBuffers

logger = logging.getLogger(__name__)


class NormalEquationsAccumulator:
    """
    Running sum of ``A^T A`` and ``A^T b`` over correspondence passes.

    With ``persistent=False`` the sum is cleared at the start of every pass,
    so the system only describes the current pose. With ``persistent=True``
    the sum is cleared once per registration call and every pass adds to
    the contributions of all earlier poses.
    """

    def __init__(self, persistent: bool = False):
        self.persistent = bool(persistent)
        self.ata = np.zeros((6, 6), dtype=float)
        self.atb = np.zeros(6, dtype=float)
        self.passes = 0

    def reset(self) -> None:
        self.ata.fill(0.0)
        self.atb.fill(0.0)
        self.passes = 0

    def begin_pass(self) -> None:
        if not self.persistent:
            self.reset()

    def accumulate(self, buffers: CorrespondenceBuffers) -> Tuple[np.ndarray, np.ndarray]:
        """Add this pass's system and return copies of the accumulated one."""
        A = buffers.coefficients
        b = buffers.residuals
        ata = A.T @ A
        # exact symmetry for the Cholesky factorisation downstream
        self.ata += 0.5 * (ata + ata.T)
        self.atb += A.T @ b
        self.passes += 1
        logger.debug("Normal equations hold %d pass(es), trace(AtA)=%.6g", self.passes, np.trace(self.ata))
        return self.ata.copy(), self.atb.copy()
