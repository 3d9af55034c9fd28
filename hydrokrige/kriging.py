# -*- coding: utf-8 -*-
"""
kriging.py
----------

Simple, ordinary and universal kriging as modes of one linear estimator, with
local neighbourhoods (nmax / maxdist / nmin) and block support.
"""

import warnings
from collections import Counter
from itertools import combinations_with_replacement
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np
import scipy.linalg
from joblib import Parallel, delayed
from scipy.spatial import cKDTree
from tqdm import tqdm

from .config import DEFAULT_BLOCK_DISCRETIZATION, DEFAULT_CHUNK_SIZE, VARIANCE_TOLERANCE
from .data import (STATUS_ILL_CONDITIONED, STATUS_OK, PredictionGrid,
                   PredictionResult, SpatialDataset, block_offsets,
                   check_same_frame, indicator_name)
from .errors import (HydrokrigeWarning, InsufficientNeighbors, MalformedDataset,
                     PredictionError, SingularSystem)
from .variograms import VariogramModel

MODES = ("simple", "ordinary", "universal")


class KrigingSolution(NamedTuple):
    indices: np.ndarray
    weights: np.ndarray
    multipliers: np.ndarray
    prediction: float
    variance: float


class TrendBasis:
    """
    Polynomial trend in coordinates, centred and scaled on the data extent so
    the augmented kriging matrix stays well conditioned.
    """

    def __init__(self, degree: int, center: np.ndarray, scale: np.ndarray):
        if degree not in (0, 1, 2):
            raise ValueError(f"trend degree must be 0, 1 or 2, got {degree}")
        self.degree = degree
        self.center = np.asarray(center, dtype=float)
        self.scale = np.asarray(scale, dtype=float)

    @classmethod
    def for_coords(cls, coords: np.ndarray, degree: int) -> "TrendBasis":
        extent = np.ptp(coords, axis=0)
        return cls(degree, coords.mean(axis=0), np.where(extent > 0, extent, 1.0))

    def __call__(self, coords: np.ndarray) -> np.ndarray:
        u = (np.atleast_2d(coords) - self.center) / self.scale
        columns = [np.ones(len(u))]
        if self.degree >= 1:
            columns.extend(u[:, k] for k in range(u.shape[1]))
        if self.degree >= 2:
            columns.extend(u[:, a] * u[:, b]
                           for a, b in combinations_with_replacement(range(u.shape[1]), 2))
        return np.column_stack(columns)


def select_neighbors(distances: np.ndarray, nmax: Optional[int] = None,
                     maxdist: Optional[float] = None) -> np.ndarray:
    """Indices of the neighbourhood, closest first."""
    order = np.argsort(distances, kind="stable")
    if maxdist is not None:
        order = order[distances[order] <= maxdist]
    if nmax is not None:
        order = order[:nmax]
    return order


def solve_kriging_system(
    model: VariogramModel,
    coords: np.ndarray,
    values: np.ndarray,
    target: np.ndarray,
    mode: str = "ordinary",
    mean: Optional[float] = None,
    basis: Optional[TrendBasis] = None,
    block: Optional[np.ndarray] = None,
) -> KrigingSolution:
    """
    Solve the kriging system for one location (or one block).

    Covariances are C(h) = sill - gamma(h) with C(0) = sill. Ordinary kriging
    adds one Lagrange row (weights sum to 1), universal kriging one per trend
    basis function. The estimation variance is C00 - w'c0 - mu'f0 and is
    returned as computed: a negative value means the system is ill conditioned.

    A large condition number alone is not an error: smooth models (gaussian
    without nugget) routinely exceed 1e13 on distinct samples. Numerical
    trouble shows up as a negative variance instead.

    Raises:
        SingularSystem: degenerate system (coincident locations, trend not
            identifiable from the neighbours, zero sill).
    """
    m = len(coords)
    if m == 0:
        raise InsufficientNeighbors(0, 1)
    sill = model.sill
    if sill <= 0:
        raise SingularSystem("variogram sill is zero")

    lags = model.lag_distance(coords, coords)
    if m > 1 and np.any(lags[np.triu_indices(m, 1)] == 0):
        raise SingularSystem("kriging matrix is singular (coincident sample locations)")

    # work on unit-sill covariances; rescale the variance at the end
    C = model.covariance(lags) / sill
    if block is None:
        target_pts = np.atleast_2d(target)
        c0 = model.covariance(model.lag_distance(coords, target_pts))[:, 0] / sill
        c00 = 1.0
    else:
        target_pts = np.atleast_2d(block)
        c0 = model.covariance(model.lag_distance(coords, target_pts)).mean(axis=1) / sill
        c00 = float(model.covariance(model.lag_distance(target_pts, target_pts)).mean()) / sill

    if mode == "simple":
        A, b, f0 = C, c0, np.empty(0)
    else:
        if mode == "ordinary":
            F = np.ones((m, 1))
            f0 = np.ones(1)
        else:
            F = basis(coords)
            f0 = basis(target_pts).mean(axis=0)
        p = F.shape[1]
        if np.linalg.matrix_rank(F) < p:
            raise SingularSystem(f"kriging matrix is singular ({m} neighbours cannot "
                                 f"identify {p} trend coefficients)")
        A = np.zeros((m + p, m + p))
        A[:m, :m] = C
        A[:m, m:] = F
        A[m:, :m] = F.T
        b = np.concatenate([c0, f0])

    try:
        with warnings.catch_warnings():
            # near-singular but solvable; a negative variance flags it downstream
            warnings.simplefilter("ignore", scipy.linalg.LinAlgWarning)
            solution = scipy.linalg.solve(A, b, assume_a="sym")
    except np.linalg.LinAlgError as err:
        raise SingularSystem(str(err), np.inf) from err
    if not np.all(np.isfinite(solution)):
        raise SingularSystem("kriging system has no finite solution", np.inf)

    weights = solution[:m]
    multipliers = solution[m:]
    if mode == "simple":
        prediction = mean + weights @ (values - mean)
    else:
        prediction = weights @ values
    variance = sill * (c00 - weights @ c0 - multipliers @ f0)
    return KrigingSolution(np.arange(m), weights, multipliers * sill, float(prediction), float(variance))


class KrigingPredictor:
    """
    Kriging estimator parameterised by mode, neighbourhood and block support.

    Parameters:
        dataset (SpatialDataset): Conditioning samples.
        attribute (str): Attribute to predict.
        model (VariogramModel): Fitted variogram.
        mode (str): "simple" (known ``mean``), "ordinary" or "universal".
        mean (float): Known mean for simple kriging.
        trend_degree (int): Polynomial degree of the universal kriging trend.
        nmax (int): Use at most the ``nmax`` closest samples (in the model's
            anisotropic metric when it has one).
        maxdist (float): Use only samples within ``maxdist``.
        nmin (int): Report a missing value when fewer neighbours are found.
        block (float | tuple): Block size (dx, dy) for block kriging.
        discretization (tuple): Sub-points per block along x and y.

    Indicator kriging is this estimator applied to a 0/1 attribute; its
    predictions are exceedance probabilities but, being linear, may fall
    slightly outside [0, 1]. They are reported as computed.
    """

    def __init__(
        self,
        dataset: SpatialDataset,
        attribute: str,
        model: VariogramModel,
        mode: str = "ordinary",
        mean: Optional[float] = None,
        trend_degree: int = 1,
        nmax: Optional[int] = None,
        maxdist: Optional[float] = None,
        nmin: int = 1,
        block: Optional[Union[float, Tuple[float, float]]] = None,
        discretization: Tuple[int, int] = DEFAULT_BLOCK_DISCRETIZATION,
    ):
        if mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
        if mode == "simple":
            if mean is None:
                raise ValueError("simple kriging needs a known mean")
            if not model.bounded:
                raise ValueError(f"simple kriging needs a bounded variogram, not {model.shape}")
        if nmax is not None and nmax < 1:
            raise ValueError("nmax must be at least 1")
        if maxdist is not None and maxdist <= 0:
            raise ValueError("maxdist must be positive")
        if nmin < 0:
            raise ValueError("nmin must be non-negative")

        self.dataset = dataset
        self.attribute = attribute
        self.model = model
        self.mode = mode
        self.mean = None if mean is None else float(mean)
        self.nmax = nmax
        self.maxdist = maxdist
        self.nmin = nmin
        self._coords = dataset.coords
        self._values = dataset.values(attribute)
        self._tree = cKDTree(self._coords)
        self.basis = TrendBasis.for_coords(self._coords, trend_degree) if mode == "universal" else None
        self._block_offsets = None if block is None else block_offsets(block, discretization, dataset.ndim)

    def __repr__(self) -> str:
        return (f"KrigingPredictor(mode={self.mode!r}, model={self.model}, n={self.dataset.n}, "
                f"nmax={self.nmax}, maxdist={self.maxdist}, nmin={self.nmin})")

    def _neighbors(self, center: np.ndarray) -> np.ndarray:
        if self.model.is_anisotropic:
            # rank in the rotated, rescaled metric the covariances use
            lags = self.model.lag_distance(self._coords, np.atleast_2d(center))[:, 0]
            return select_neighbors(lags, self.nmax, self.maxdist)
        n = len(self._coords)
        k = n if self.nmax is None else min(self.nmax, n)
        bound = np.inf if self.maxdist is None else self.maxdist * (1 + 1e-12)
        dist, idx = self._tree.query(center, k=k, distance_upper_bound=bound)
        dist, idx = np.atleast_1d(dist), np.atleast_1d(idx)
        return idx[np.isfinite(dist)]

    def solve(self, location, block: Optional[np.ndarray] = None) -> KrigingSolution:
        """
        Kriging weights, multipliers, prediction and variance at one location.

        Raises:
            InsufficientNeighbors: fewer than ``nmin`` samples in the neighbourhood.
            SingularSystem: the kriging matrix is degenerate.
        """
        location = np.asarray(location, dtype=float)
        if block is None and self._block_offsets is not None:
            block = location + self._block_offsets
        idx = self._neighbors(location)
        if len(idx) < max(self.nmin, 1):
            raise InsufficientNeighbors(len(idx), max(self.nmin, 1))
        solution = solve_kriging_system(
            self.model, self._coords[idx], self._values[idx], location,
            mode=self.mode, mean=self.mean, basis=self.basis, block=block,
        )
        return solution._replace(indices=idx)

    def _predict_chunk(self, coords: np.ndarray, blocks, progress: bool = False):
        m = len(coords)
        prediction = np.full(m, np.nan)
        variance = np.full(m, np.nan)
        status = np.empty(m, dtype=object)
        tolerance = -VARIANCE_TOLERANCE * self.model.sill
        for k in tqdm(range(m), desc="Kriging", disable=not progress):
            try:
                sol = self.solve(coords[k], None if blocks is None else blocks[k])
            except PredictionError as err:
                status[k] = err.status
                continue
            prediction[k] = sol.prediction
            variance[k] = sol.variance
            status[k] = STATUS_ILL_CONDITIONED if sol.variance < tolerance else STATUS_OK
        return prediction, variance, status

    def predict(self, grid: Union[PredictionGrid, np.ndarray], progress: bool = False,
                n_jobs: int = 1) -> PredictionResult:
        """
        Predict at every grid location. Locations that cannot be kriged are
        NaN with their reason in ``status``; they never abort the batch.

        Locations are independent, so ``n_jobs != 1`` farms chunks out to joblib.
        """
        if isinstance(grid, PredictionGrid):
            check_same_frame(self.dataset, grid)
            coords, blocks, shape = grid.coords, grid.blocks, grid.shape
        else:
            coords, blocks, shape = np.atleast_2d(np.asarray(grid, dtype=float)), None, None
            if coords.shape[1] != self.dataset.ndim:
                raise MalformedDataset(f"query locations are {coords.shape[1]}D, dataset is {self.dataset.ndim}D")

        if n_jobs == 1 or len(coords) <= DEFAULT_CHUNK_SIZE:
            prediction, variance, status = self._predict_chunk(coords, blocks, progress)
        else:
            chunks = np.array_split(np.arange(len(coords)), int(np.ceil(len(coords) / DEFAULT_CHUNK_SIZE)))
            parts = Parallel(n_jobs=n_jobs)(
                delayed(self._predict_chunk)(coords[c], None if blocks is None else [blocks[i] for i in c])
                for c in tqdm(chunks, desc="Kriging chunks", disable=not progress)
            )
            prediction, variance, status = (np.concatenate(p) for p in zip(*parts))

        report_status(status, self.attribute)
        return PredictionResult(coords=coords, prediction=prediction, variance=variance,
                                status=status, shape=shape)


def report_status(status: np.ndarray, attribute: str) -> None:
    counts = Counter(status)
    failed = {k: v for k, v in counts.items() if k not in (STATUS_OK, STATUS_ILL_CONDITIONED)}
    if failed:
        detail = ", ".join(f"{k}: {v}" for k, v in sorted(failed.items()))
        warnings.warn(f"{attribute}: {sum(failed.values())} of {len(status)} locations "
                      f"not predicted ({detail}).", HydrokrigeWarning)
    if counts.get(STATUS_ILL_CONDITIONED):
        warnings.warn(f"{attribute}: {counts[STATUS_ILL_CONDITIONED]} locations returned a negative "
                      f"kriging variance (ill-conditioned system).", HydrokrigeWarning)


def krige(dataset: SpatialDataset, attribute: str, model: VariogramModel,
          grid: Union[PredictionGrid, np.ndarray], progress: bool = False,
          n_jobs: int = 1, **options) -> PredictionResult:
    """One-call kriging; ``options`` go to KrigingPredictor."""
    predictor = KrigingPredictor(dataset, attribute, model, **options)
    return predictor.predict(grid, progress=progress, n_jobs=n_jobs)


def indicator_kriging(dataset: SpatialDataset, attribute: str, threshold: float,
                      model: VariogramModel, grid: Union[PredictionGrid, np.ndarray],
                      **options) -> PredictionResult:
    """
    Kriged probability that ``attribute`` exceeds ``threshold``. ``model``
    should be fitted to the indicator variogram. Values outside [0, 1] are a
    known limitation of linear indicator kriging and are not clipped.
    """
    name = indicator_name(attribute, threshold)
    return krige(dataset.indicator(attribute, threshold, name=name), name, model, grid, **options)
