# -*- coding: utf-8 -*-
"""
errors.py
---------

Exceptions and warning category raised by hydrokrige.
"""


class HydrokrigeWarning(UserWarning):
    """Recoverable problem: a location, fold or node was skipped."""


class HydrokrigeError(Exception):
    pass


class MalformedDataset(HydrokrigeError, ValueError):
    """Missing coordinates/attributes or mismatched frames. Always fatal."""


class PredictionError(HydrokrigeError):
    """Prediction failed at a single query location."""

    status = "failed"


class InsufficientNeighbors(PredictionError):
    status = "insufficient_neighbors"

    def __init__(self, found: int, nmin: int):
        super().__init__(f"{found} neighbours found, at least {nmin} required")
        self.found = found
        self.nmin = nmin


class SingularSystem(PredictionError):
    status = "singular_system"

    def __init__(self, message: str, condition: float = float("inf")):
        super().__init__(message)
        self.condition = condition


class FitError(HydrokrigeError):
    """Variogram fitting failed."""


class InfeasibleFitParameters(FitError, ValueError):
    """Parameters violate nugget >= 0, psill >= 0, range > 0 or 0 < ratio <= 1."""


class FitDidNotConverge(FitError):
    """Evaluation budget exhausted; ``result`` holds the best parameters found."""

    def __init__(self, result):
        super().__init__(
            f"{result.model.shape} fit did not converge after {result.nfev} "
            f"evaluations: {result.message}"
        )
        self.result = result
