# -*- coding: utf-8 -*-
"""
cross_validation.py
-------------------

k-fold and leave-one-out cross validation for any predictor built from a
training SpatialDataset, plus the error metrics used to score them.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .config import DEFAULT_FOLDS, DEFAULT_TEST_FRACTION
from .data import PredictionGrid, SpatialDataset
from .kriging import KrigingPredictor
from .rng import RandomLike, as_generator
from .variograms import VariogramModel


# ----- Metrics -----

def _paired(observed, predicted) -> Tuple[np.ndarray, np.ndarray]:
    observed = np.asarray(observed, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    keep = np.isfinite(observed) & np.isfinite(predicted)
    return observed[keep], predicted[keep]


def rmse(observed, predicted) -> float:
    observed, predicted = _paired(observed, predicted)
    if len(observed) == 0:
        return np.nan
    return float(np.sqrt(np.mean((observed - predicted) ** 2)))


def mae(observed, predicted) -> float:
    observed, predicted = _paired(observed, predicted)
    if len(observed) == 0:
        return np.nan
    return float(np.mean(np.abs(observed - predicted)))


def r_squared(observed, predicted) -> float:
    """
    1 - SSE / SST with SST taken about the mean of ``observed``.

    Not symmetric in its arguments, and negative for predictions worse than
    the observed mean. NaN when the observations have no spread.
    """
    observed, predicted = _paired(observed, predicted)
    if len(observed) == 0:
        return np.nan
    sst = np.sum((observed - observed.mean()) ** 2)
    if sst == 0:
        return np.nan
    return float(1.0 - np.sum((observed - predicted) ** 2) / sst)


def _mean(values: pd.Series) -> float:
    values = values.dropna()
    return float(values.mean()) if len(values) else np.nan


# ----- Folds -----

def assign_folds(n: int, k: int, rng: RandomLike = None) -> np.ndarray:
    """Fold id in [0, k) per sample: a seeded permutation taken modulo k."""
    if k < 2:
        raise ValueError("cross validation needs at least 2 folds")
    if k > n:
        raise ValueError(f"cannot split {n} samples into {k} folds")
    return as_generator(rng).permutation(n) % k


def split_train_test(dataset: SpatialDataset, test_fraction: float = DEFAULT_TEST_FRACTION,
                     rng: RandomLike = None) -> Tuple[SpatialDataset, SpatialDataset]:
    """Random train/test split holding out ``test_fraction`` of the samples."""
    if not 0 < test_fraction < 1:
        raise ValueError("test_fraction must be in (0, 1)")
    n_test = int(round(dataset.n * test_fraction))
    if n_test < 1 or n_test >= dataset.n:
        raise ValueError(f"test_fraction {test_fraction} leaves an empty split of {dataset.n} samples")
    order = as_generator(rng).permutation(dataset.n)
    return dataset.take(np.sort(order[n_test:])), dataset.take(np.sort(order[:n_test]))


# ----- Predictor factories -----

def kriging_factory(attribute: str, model: Optional[VariogramModel] = None,
                    refit: Optional[Callable[[SpatialDataset], VariogramModel]] = None,
                    **options) -> Callable[[SpatialDataset], KrigingPredictor]:
    """
    Build ``make_predictor`` for cross validation. With ``refit`` the
    variogram is re-fitted on every training fold; otherwise ``model`` is reused.
    """
    if model is None and refit is None:
        raise ValueError("give either a variogram model or a refit callback")

    def make_predictor(train: SpatialDataset) -> KrigingPredictor:
        fold_model = refit(train) if refit is not None else model
        return KrigingPredictor(train, attribute, fold_model, **options)

    return make_predictor


# ----- Cross validation -----

@dataclass
class CrossValidationResult:
    folds: pd.DataFrame
    predictions: pd.DataFrame

    @property
    def rmse(self) -> float:
        return _mean(self.folds["rmse"])

    @property
    def r2(self) -> float:
        return _mean(self.folds["r2"])

    @property
    def mae(self) -> float:
        return _mean(self.folds["mae"])

    @property
    def pooled_rmse(self) -> float:
        return rmse(self.predictions["observed"], self.predictions["predicted"])

    @property
    def pooled_r2(self) -> float:
        return r_squared(self.predictions["observed"], self.predictions["predicted"])

    def __repr__(self) -> str:
        return (f"CrossValidationResult(k={len(self.folds)}, rmse={self.rmse:.4g}, "
                f"r2={self.r2:.4g}, mae={self.mae:.4g})")


def _run_fold(dataset, attribute, make_predictor, fold_ids, fold):
    test_idx = np.flatnonzero(fold_ids == fold)
    train, test = dataset.drop(test_idx), dataset.take(test_idx)
    predictor = make_predictor(train)
    result = predictor.predict(PredictionGrid.from_dataset(test))
    observed = test.values(attribute)
    return test_idx, observed, result.prediction, result.variance


def cross_validate(
    dataset: SpatialDataset,
    attribute: str,
    make_predictor: Callable[[SpatialDataset], object],
    k: int = DEFAULT_FOLDS,
    rng: RandomLike = None,
    n_jobs: int = 1,
    progress: bool = False,
    fold_ids: Optional[np.ndarray] = None,
) -> CrossValidationResult:
    """
    k-fold cross validation.

    Parameters:
        dataset (SpatialDataset): All samples.
        attribute (str): Attribute to predict.
        make_predictor (callable): ``make_predictor(train)`` returns an object with
            ``predict(grid) -> PredictionResult`` (see ``kriging_factory``).
        k (int): Number of folds.
        rng: Seed or Generator for the fold assignment.
        n_jobs (int): Folds are independent and may run in parallel.
        fold_ids (array): Explicit fold assignment, overriding ``k`` and ``rng``.

    Returns:
        CrossValidationResult: per-fold metrics and per-sample predictions.
        Samples a fold could not predict stay NaN and are left out of its metrics.
    """
    if fold_ids is None:
        fold_ids = assign_folds(dataset.n, k, rng)
    fold_ids = np.asarray(fold_ids, dtype=int)
    if len(fold_ids) != dataset.n:
        raise ValueError(f"{len(fold_ids)} fold ids for {dataset.n} samples")
    folds = np.unique(fold_ids)

    if n_jobs == 1:
        parts = [_run_fold(dataset, attribute, make_predictor, fold_ids, f)
                 for f in tqdm(folds, desc="Cross validation", disable=not progress)]
    else:
        parts = Parallel(n_jobs=n_jobs)(
            delayed(_run_fold)(dataset, attribute, make_predictor, fold_ids, f) for f in folds
        )

    observed = np.full(dataset.n, np.nan)
    predicted = np.full(dataset.n, np.nan)
    variance = np.full(dataset.n, np.nan)
    rows = []
    for fold, (idx, obs, pred, var) in zip(folds, parts):
        observed[idx], predicted[idx], variance[idx] = obs, pred, var
        rows.append({"fold": int(fold), "n": len(idx), "rmse": rmse(obs, pred),
                     "r2": r_squared(obs, pred), "mae": mae(obs, pred)})

    predictions = pd.DataFrame({
        "observed": observed,
        "predicted": predicted,
        "variance": variance,
        "residual": observed - predicted,
        "fold": fold_ids,
    })
    return CrossValidationResult(folds=pd.DataFrame(rows), predictions=predictions)


def leave_one_out(dataset: SpatialDataset, attribute: str,
                  make_predictor: Callable[[SpatialDataset], object],
                  n_jobs: int = 1, progress: bool = False) -> CrossValidationResult:
    """
    Leave-one-out cross validation (k = n). Single-sample folds have no
    spread, so use ``pooled_rmse`` / ``pooled_r2`` rather than the fold means
    for R².
    """
    return cross_validate(dataset, attribute, make_predictor, n_jobs=n_jobs,
                          progress=progress, fold_ids=np.arange(dataset.n))
