"""Exceptions raised by the registration loop."""
from __future__ import annotations


class RegistrationError(RuntimeError):
    """Base class for a failed registration attempt.

    ``kind`` is a short machine-readable tag so callers can branch on the
    failure without matching on messages.
    """

    kind = "registration"

    def __init__(self, message: str, *, iteration: int | None = None):
        super().__init__(message)
        self.iteration = iteration

    def __str__(self) -> str:
        message = super().__str__()
        if self.iteration is None:
            return f"[{self.kind}] {message}"
        return f"[{self.kind}] iteration {self.iteration}: {message}"


class SolverError(RegistrationError):
    kind = "solver"


class NoCorrespondencesError(RegistrationError):
    kind = "no_correspondences"


class CorrespondenceError(RegistrationError):
    kind = "correspondence"


class RegistrationAborted(RegistrationError):
    kind = "aborted"
