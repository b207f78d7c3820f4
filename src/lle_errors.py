"""
Exceptions raised while fitting a locally linear embedding.

Every error is fatal to the fit call; no partial model is returned.
"""
from __future__ import annotations

from typing import Optional


class LLEError(Exception):
    """Base class for all LLE fitting errors."""


class InvalidConfiguration(LLEError, ValueError):
    """Bad k / maxoutdim / algorithm name, or malformed input data."""


class InputTooSmall(InvalidConfiguration):
    """Dataset has too few points for any neighbor graph."""


class NumericalFailure(LLEError, ArithmeticError):
    """A linear-algebra step could not produce a usable result."""


class SingularLocalSystem(NumericalFailure):
    def __init__(self, point: int, reason: str, tol: float):
        self.point = int(point)
        self.tol = float(tol)
        hint = "" if tol > 0 else " (no regularization: k <= maxoutdim)"
        super().__init__(
            f"local Gram matrix of point {self.point} is singular{hint}: {reason}"
        )


class InsufficientEigenpairs(NumericalFailure, InvalidConfiguration):
    """
    Fewer eigenpairs available than requested.

    Raised when the retained graph has n' <= maxoutdim points, so the cost
    matrix cannot supply maxoutdim non-trivial eigenvectors.
    """

    def __init__(self, requested: int, available: int, detail: Optional[str] = None):
        self.requested = int(requested)
        self.available = int(available)
        msg = f"requested {self.requested} eigenpairs but only {self.available} are available"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
