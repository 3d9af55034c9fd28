# -*- coding: utf-8 -*-
"""
idw.py
------

Inverse-distance weighting baseline and the derivative-free optimiser used to
tune its (nmax, power) pair against a held-out split.
"""

import warnings
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import numpy as np
from scipy.optimize import minimize
from scipy.spatial import cKDTree

from .config import IDW_MIN_NMAX, IDW_MIN_POWER, IDW_START, OPTIMIZER_MAX_ITER
from .cross_validation import rmse
from .data import STATUS_OK, PredictionGrid, PredictionResult, SpatialDataset, check_same_frame
from .errors import HydrokrigeWarning, InsufficientNeighbors, MalformedDataset
from .kriging import report_status


class InverseDistanceWeighter:
    """
    z(x0) = sum(z_i / d_i^p) / sum(1 / d_i^p) over the ``nmax`` nearest samples
    within ``maxdist``. A query on top of a sample returns that sample's value
    (the mean of the coincident values when samples are duplicated).
    """

    def __init__(self, dataset: SpatialDataset, attribute: str, power: float = 2.0,
                 nmax: Optional[int] = None, maxdist: Optional[float] = None):
        if power < 0:
            raise ValueError("power must be non-negative")
        if nmax is not None and nmax < 1:
            raise ValueError("nmax must be at least 1")
        self.dataset = dataset
        self.attribute = attribute
        self.power = float(power)
        self.nmax = nmax
        self.maxdist = maxdist
        self._values = dataset.values(attribute)
        self._tree = cKDTree(dataset.coords)

    def __repr__(self) -> str:
        return f"InverseDistanceWeighter(power={self.power:g}, nmax={self.nmax}, maxdist={self.maxdist})"

    def predict(self, grid: Union[PredictionGrid, np.ndarray]) -> PredictionResult:
        if isinstance(grid, PredictionGrid):
            check_same_frame(self.dataset, grid)
            coords, shape = grid.coords, grid.shape
        else:
            coords, shape = np.atleast_2d(np.asarray(grid, dtype=float)), None
            if coords.shape[1] != self.dataset.ndim:
                raise MalformedDataset(f"query locations are {coords.shape[1]}D, dataset is {self.dataset.ndim}D")

        m, n = len(coords), self.dataset.n
        k = n if self.nmax is None else min(self.nmax, n)
        bound = np.inf if self.maxdist is None else self.maxdist * (1 + 1e-12)
        dist, idx = self._tree.query(coords, k=k, distance_upper_bound=bound)
        dist, idx = dist.reshape(m, k), idx.reshape(m, k)

        valid = np.isfinite(dist)
        values = np.append(self._values, 0.0)[idx]  # missing neighbours index n
        exact = valid & (dist == 0)
        with np.errstate(divide="ignore", invalid="ignore"):
            weights = np.where(valid, dist ** -self.power, 0.0)
            weights = np.where(exact.any(axis=1, keepdims=True), exact.astype(float), weights)
            total = weights.sum(axis=1)
            prediction = np.where(total > 0, (weights * values).sum(axis=1) / total, np.nan)

        status = np.where(valid.any(axis=1), STATUS_OK, InsufficientNeighbors.status).astype(object)
        report_status(status, self.attribute)
        return PredictionResult(coords=coords, prediction=prediction, variance=np.full(m, np.nan),
                                status=status, shape=shape)


def idw_factory(attribute: str, power: float = 2.0, nmax: Optional[int] = None,
                maxdist: Optional[float] = None) -> Callable[[SpatialDataset], InverseDistanceWeighter]:
    def make_predictor(train: SpatialDataset) -> InverseDistanceWeighter:
        return InverseDistanceWeighter(train, attribute, power=power, nmax=nmax, maxdist=maxdist)
    return make_predictor


# ----- Parameter optimisation -----

@dataclass(frozen=True)
class OptimizationResult:
    x: np.ndarray
    fun: float
    converged: bool
    n_iter: int
    n_eval: int
    message: str


class ParameterOptimizer:
    """
    Thin wrapper over ``scipy.optimize.minimize``. The objective signals an
    infeasible proposal by returning ``inf``; Nelder-Mead then simply never
    accepts it.
    """

    def __init__(self, objective: Callable[[np.ndarray], float], x0: Sequence[float],
                 method: str = "Nelder-Mead", max_iter: int = OPTIMIZER_MAX_ITER,
                 xatol: float = 1e-4, fatol: float = 1e-8):
        self.objective = objective
        self.x0 = np.asarray(x0, dtype=float)
        self.method = method
        self.max_iter = max_iter
        self.xatol = xatol
        self.fatol = fatol

    def run(self) -> OptimizationResult:
        if not np.isfinite(self.objective(self.x0)):
            raise ValueError(f"objective is not finite at the starting point {self.x0}")
        options = {"maxiter": self.max_iter}
        if self.method == "Nelder-Mead":
            options.update(xatol=self.xatol, fatol=self.fatol)
        res = minimize(self.objective, self.x0, method=self.method, options=options)
        result = OptimizationResult(x=np.asarray(res.x), fun=float(res.fun), converged=bool(res.success),
                                    n_iter=int(res.get("nit", 0)), n_eval=int(res.nfev),
                                    message=str(res.message))
        if not result.converged:
            warnings.warn(f"{self.method} stopped without converging: {result.message}", HydrokrigeWarning)
        return result


def idw_objective(train: SpatialDataset, test: SpatialDataset, attribute: str) -> Callable[[np.ndarray], float]:
    """RMSE on ``test`` of IDW fitted to ``train``, as a function of x = (nmax, power)."""
    grid = PredictionGrid.from_dataset(test)
    observed = test.values(attribute)

    def objective(x) -> float:
        nmax, power = int(round(x[0])), float(x[1])
        if nmax < IDW_MIN_NMAX or power < IDW_MIN_POWER:
            return np.inf
        predictor = InverseDistanceWeighter(train, attribute, power=power, nmax=min(nmax, train.n))
        return rmse(observed, predictor.predict(grid).prediction)

    return objective


def optimize_idw(train: SpatialDataset, test: SpatialDataset, attribute: str,
                 x0: Sequence[float] = IDW_START, **kwargs) -> OptimizationResult:
    """Tune (nmax, power) of IDW; ``x[0]`` of the result is rounded to an integer nmax."""
    result = ParameterOptimizer(idw_objective(train, test, attribute), x0, **kwargs).run()
    x = result.x.copy()
    x[0] = round(x[0])
    return OptimizationResult(x=x, fun=result.fun, converged=result.converged,
                              n_iter=result.n_iter, n_eval=result.n_eval, message=result.message)
