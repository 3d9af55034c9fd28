# -*- coding: utf-8 -*-
"""
fitting.py
----------

Weighted least-squares fitting of theoretical variogram models to an
experimental variogram, and AIC-based model selection.
"""

import warnings
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import least_squares

from .config import FIT_MAX_EVAL, FIT_TOLERANCE, MIN_ANISOTROPY_RATIO, MIN_RANGE
from .errors import FitDidNotConverge, FitError, HydrokrigeWarning, InfeasibleFitParameters
from .variograms import (MODEL_FUNCTIONS, EmpiricalVariogram, VariogramModel,
                         anisotropic_lag, normalise_shape)

WEIGHTINGS = ("npairs", "npairs_h2", "ols")

BOUNDS = {
    "nugget": (0.0, np.inf),
    "psill": (0.0, np.inf),
    "range": (MIN_RANGE, np.inf),
    "angle": (0.0, 180.0),
    "ratio": (MIN_ANISOTROPY_RATIO, 1.0),
}


@dataclass(frozen=True)
class FitResult:
    model: VariogramModel
    converged: bool
    sse: float
    initial_sse: float
    nfev: int
    message: str

    @property
    def improved(self) -> bool:
        return self.sse < self.initial_sse


def weighted_aic(residuals: np.ndarray, weights: np.ndarray, k: int) -> float:
    """Pair-count weighted Akaike Information Criterion."""
    rss = np.sum(weights * residuals ** 2)
    n_eff = weights.sum()
    if rss <= 0:
        return -np.inf
    return n_eff * np.log(rss / n_eff) + 2 * k


def bin_weights(empirical: EmpiricalVariogram, weighting: str = "npairs") -> np.ndarray:
    if weighting == "npairs":
        w = empirical.npairs.astype(float)
    elif weighting == "npairs_h2":
        w = empirical.npairs / np.maximum(empirical.distance, MIN_RANGE) ** 2
    elif weighting == "ols":
        w = np.ones(len(empirical))
    else:
        raise ValueError(f"weighting must be one of {WEIGHTINGS}, got {weighting!r}")
    return w / w.mean()


def initial_guess(empirical: EmpiricalVariogram, shape: str) -> VariogramModel:
    """Data-driven starting point: nugget = min(gamma), psill = spread, range = half the largest lag."""
    gamma = empirical.gamma
    nugget0 = float(np.min(gamma))
    psill0 = float(np.max(gamma) - nugget0)
    range0 = float(empirical.distance.max() / 2) if len(empirical) else 1.0
    if shape == "nugget":
        return VariogramModel(shape, nugget=float(np.average(gamma, weights=empirical.npairs)), psill=0.0, range=1.0)
    return VariogramModel(shape, nugget=nugget0, psill=psill0, range=max(range0, MIN_RANGE))


def _starting_model(empirical, model, guess) -> VariogramModel:
    if isinstance(model, VariogramModel):
        start = model
    else:
        start = initial_guess(empirical, normalise_shape(model))
    if guess:
        try:
            start = start.replace(**dict(guess))
        except InfeasibleFitParameters as err:
            warnings.warn(f"Initial guess rejected ({err}); starting from {start}.", HydrokrigeWarning)
    return start


def model_semivariance(model: VariogramModel, empirical: EmpiricalVariogram) -> np.ndarray:
    """Model semivariance at the bins, direction-adjusted for anisotropic models."""
    h = empirical.distance
    if model.is_anisotropic and empirical.directional:
        h = anisotropic_lag(h, empirical.direction, model.angle, model.ratio)
    return np.asarray(model.semivariance(h))


def fit_variogram(
    empirical: EmpiricalVariogram,
    model: Union[str, VariogramModel] = "exponential",
    guess: Optional[Mapping[str, float]] = None,
    weighting: str = "npairs",
    fit_nugget: bool = True,
    fit_anisotropy: bool = False,
    max_nfev: int = FIT_MAX_EVAL,
    strict: bool = False,
) -> FitResult:
    """
    Fit a variogram model to binned semivariances.

    Minimises sum_j w_j * (gamma_model(h_j) - gamma_j)^2 with w_j the pair count
    (``weighting="npairs"``), N_j / h_j^2 (``"npairs_h2"``) or 1 (``"ols"``).
    The search is box constrained (nugget >= 0, psill >= 0, range > 0 and, for
    anisotropic fits, 0 <= angle <= 180, 0 < ratio <= 1), so every proposal is
    feasible.

    Parameters:
        empirical (EmpiricalVariogram): Bins to fit; directional for anisotropic fits.
        model (str | VariogramModel): Shape name (data-driven start) or a starting model.
        guess (dict): Overrides for the starting parameters. An infeasible guess is
            rejected with a warning and the feasible start is kept.
        weighting (str): Bin weighting scheme.
        fit_nugget (bool): Keep the nugget fixed at its start value when False.
        fit_anisotropy (bool): Jointly fit angle and ratio over all direction sectors.
        max_nfev (int): Evaluation budget.
        strict (bool): Raise FitDidNotConverge instead of returning an unconverged fit.

    Returns:
        FitResult: fitted model, convergence flag and weighted SSE.
    """
    if len(empirical) == 0:
        raise FitError("cannot fit an empty experimental variogram")
    if fit_anisotropy and not empirical.directional:
        raise ValueError("anisotropic fitting needs a directional experimental variogram")

    start = _starting_model(empirical, model, guess)
    shape = start.shape
    weights = np.sqrt(bin_weights(empirical, weighting))
    func = MODEL_FUNCTIONS[shape]

    if shape == "nugget":
        names = ["nugget"]
    else:
        names = (["nugget"] if fit_nugget else []) + ["psill", "range"]
        if fit_anisotropy:
            names += ["angle", "ratio"]
    lower = np.array([BOUNDS[n][0] for n in names])
    upper = np.array([BOUNDS[n][1] for n in names])

    def params_of(x) -> Dict[str, float]:
        params = {"nugget": start.nugget, "psill": start.psill, "range": start.range,
                  "angle": start.angle, "ratio": start.ratio}
        params.update(zip(names, x))
        return params

    def residuals(x):
        p = params_of(x)
        h = empirical.distance
        if fit_anisotropy:
            h = anisotropic_lag(h, empirical.direction, p["angle"], p["ratio"])
        if shape == "matern":
            pred = func(h, p["nugget"], p["psill"], p["range"], start.kappa)
        else:
            pred = func(h, p["nugget"], p["psill"], p["range"])
        return weights * (pred - empirical.gamma)

    starts = [np.array([getattr(start, n) for n in names], dtype=float)]
    if fit_anisotropy:
        # ratio = 1 makes the angle unidentifiable; start anisotropic from every sector
        starts = []
        for direction in np.unique(empirical.direction):
            x0 = np.array([getattr(start, n) for n in names], dtype=float)
            x0[names.index("angle")] = direction
            x0[names.index("ratio")] = min(start.ratio, 0.5)
            starts.append(x0)

    best = None
    initial_sse = np.inf
    for x0 in starts:
        x0 = np.clip(x0, lower, upper)
        sse0 = float(np.sum(residuals(x0) ** 2))
        if not np.isfinite(sse0):
            continue
        initial_sse = min(initial_sse, sse0)
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            res = least_squares(residuals, x0, bounds=(lower, upper), method="trf",
                                x_scale="jac", ftol=FIT_TOLERANCE, xtol=FIT_TOLERANCE,
                                gtol=FIT_TOLERANCE, max_nfev=max_nfev)
        sse = float(np.sum(res.fun ** 2))
        if not np.isfinite(sse):
            continue
        if best is None or sse < best[1]:
            best = (res, sse)
    if best is None:
        raise FitError(f"{shape} fit produced non-finite residuals")

    res, sse = best
    p = params_of(res.x)
    fitted = start.replace(nugget=p["nugget"], psill=p["psill"], range=p["range"],
                           angle=p["angle"], ratio=p["ratio"])
    result = FitResult(model=fitted, converged=bool(res.status > 0), sse=sse,
                       initial_sse=float(initial_sse), nfev=int(res.nfev), message=str(res.message))

    if not result.converged:
        if not result.improved or strict:
            raise FitDidNotConverge(result)
        warnings.warn(f"{shape} fit did not converge within {max_nfev} evaluations; "
                      f"returning best parameters found.", HydrokrigeWarning)
    return result


def select_best_model(
    empirical: EmpiricalVariogram,
    shapes: Sequence[str] = ("exponential", "spherical", "gaussian"),
    weighting: str = "npairs",
    **fit_kwargs,
) -> Tuple[FitResult, pd.DataFrame]:
    """
    Fit every candidate shape and select the best one based on weighted AIC.
    Returns the best FitResult and a comparison table.
    """
    rows: List[dict] = []
    fits: Dict[str, FitResult] = {}
    w = bin_weights(empirical, weighting) * empirical.npairs.sum() / len(empirical)
    for shape in shapes:
        try:
            fit = fit_variogram(empirical, shape, weighting=weighting, **fit_kwargs)
        except FitError as err:
            warnings.warn(f"{shape} fit failed ({err}); skipping.", HydrokrigeWarning)
            continue
        pred = model_semivariance(fit.model, empirical)
        k = 1 if fit.model.shape == "nugget" else 3 + 2 * fit_kwargs.get("fit_anisotropy", False)
        aic = weighted_aic(empirical.gamma - pred, w, k)
        fits[fit.model.shape] = fit
        rows.append({**fit.model.to_dict(), "aic": aic, "sse": fit.sse, "converged": fit.converged})
    if not rows:
        raise FitError("No variogram model converged.")
    table = pd.DataFrame(rows).sort_values("aic").reset_index(drop=True)
    return fits[table.loc[0, "shape"]], table
