# -*- coding: utf-8 -*-
"""
variograms.py
-------------

Theoretical variogram models and the experimental (binned) variogram.
"""

import dataclasses
import warnings
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist
from scipy.special import gamma as sp_gamma
from scipy.special import kv

from .config import (DEFAULT_ANGLE_TOLERANCE, DEFAULT_KAPPA, DEFAULT_N_LAGS,
                     MAX_PAIRWISE_SAMPLES)
from .data import SpatialDataset, indicator_name
from .errors import HydrokrigeWarning, InfeasibleFitParameters, MalformedDataset

# ----- Candidate Variogram Models -----
# All models share the signature (h, nugget, psill, a) and return nugget at h = 0.

def nugget_model(h, nugget, psill, a):
    return np.full(np.shape(h), nugget, dtype=float)

def exponential_model(h, nugget, psill, a):
    return nugget + psill * (1 - np.exp(-h / a))

def spherical_model(h, nugget, psill, a):
    h = np.asarray(h, dtype=float)
    gamma = np.full(h.shape, nugget + psill, dtype=float)
    inside = h < a
    r = h[inside] / a
    gamma[inside] = nugget + psill * (1.5 * r - 0.5 * r ** 3)
    return gamma

def gaussian_model(h, nugget, psill, a):
    return nugget + psill * (1 - np.exp(-((h / a) ** 2)))

def linear_model(h, nugget, psill, a):
    """Unbounded: slope psill / a, no sill."""
    return nugget + psill * h / a

def matern_model(h, nugget, psill, a, kappa=DEFAULT_KAPPA):
    """
    Matérn model with smoothness kappa (kappa = 0.5 is the exponential model).
    """
    h = np.asarray(h, dtype=float)
    gamma = np.full(h.shape, nugget, dtype=float)
    r = h / a
    pos = r > 0
    with np.errstate(over="ignore", invalid="ignore"):
        corr = (2 ** (1 - kappa)) / sp_gamma(kappa) * r[pos] ** kappa * kv(kappa, r[pos])
    gamma[pos] = nugget + psill * (1 - np.nan_to_num(corr, nan=0.0))
    return gamma

def wave_model(h, nugget, psill, a):
    """
    Wave (hole) effect model.
    """
    h = np.asarray(h, dtype=float)
    gamma = np.full(h.shape, nugget, dtype=float)
    pos = h > 0
    r = h[pos] / a
    gamma[pos] = nugget + psill * (1 - np.sin(r) / r)
    return gamma


MODEL_FUNCTIONS = {
    "nugget": nugget_model,
    "exponential": exponential_model,
    "spherical": spherical_model,
    "gaussian": gaussian_model,
    "linear": linear_model,
    "matern": matern_model,
    "wave": wave_model,
}

# gstat three-letter codes
SHAPE_ALIASES = {
    "nug": "nugget",
    "exp": "exponential",
    "sph": "spherical",
    "gau": "gaussian",
    "lin": "linear",
    "mat": "matern",
    "wav": "wave",
}

UNBOUNDED_SHAPES = {"linear"}


def normalise_shape(shape: str) -> str:
    key = str(shape).strip().lower()
    key = SHAPE_ALIASES.get(key, key)
    if key not in MODEL_FUNCTIONS:
        raise ValueError(f"Unsupported variogram shape: {shape!r}")
    return key


def check_parameters(nugget: float, psill: float, range_: float, ratio: float = 1.0) -> None:
    """Raise InfeasibleFitParameters unless nugget >= 0, psill >= 0, range > 0, 0 < ratio <= 1."""
    values = np.array([nugget, psill, range_, ratio], dtype=float)
    if not np.all(np.isfinite(values)):
        raise InfeasibleFitParameters(f"non-finite variogram parameters: {values.tolist()}")
    if nugget < 0:
        raise InfeasibleFitParameters(f"nugget must be >= 0, got {nugget}")
    if psill < 0:
        raise InfeasibleFitParameters(f"partial sill must be >= 0, got {psill}")
    if range_ <= 0:
        raise InfeasibleFitParameters(f"range must be > 0, got {range_}")
    if not 0 < ratio <= 1:
        raise InfeasibleFitParameters(f"anisotropy ratio must be in (0, 1], got {ratio}")


def anisotropic_lag(h, azimuth, angle: float, ratio: float):
    """
    Effective distance of lag ``h`` taken along ``azimuth`` (degrees clockwise
    from north) for a major axis at ``angle`` and minor/major range ``ratio``.
    """
    delta = np.radians(np.asarray(azimuth, dtype=float) - angle)
    return np.asarray(h, dtype=float) * np.sqrt(np.cos(delta) ** 2 + (np.sin(delta) / ratio) ** 2)


@dataclass(frozen=True)
class VariogramModel:
    """
    Fitted (or assumed) theoretical variogram.

    ``psill`` is the partial sill, so the total sill is ``nugget + psill``.
    Anisotropy follows gstat: ``angle`` is the major-axis azimuth and the
    range along the minor axis is ``ratio * range``.
    """

    shape: str
    nugget: float = 0.0
    psill: float = 1.0
    range: float = 1.0
    angle: float = 0.0
    ratio: float = 1.0
    kappa: float = DEFAULT_KAPPA

    def __post_init__(self):
        object.__setattr__(self, "shape", normalise_shape(self.shape))
        for name in ("nugget", "psill", "range", "angle", "ratio", "kappa"):
            object.__setattr__(self, name, float(getattr(self, name)))
        check_parameters(self.nugget, self.psill, self.range, self.ratio)
        if self.kappa <= 0:
            raise InfeasibleFitParameters(f"kappa must be > 0, got {self.kappa}")
        object.__setattr__(self, "angle", self.angle % 180.0)

    @property
    def sill(self) -> float:
        return self.nugget + self.psill

    @property
    def bounded(self) -> bool:
        return self.shape not in UNBOUNDED_SHAPES

    @property
    def is_anisotropic(self) -> bool:
        return self.ratio < 1.0

    def replace(self, **changes) -> "VariogramModel":
        return dataclasses.replace(self, **changes)

    def semivariance(self, h):
        """Closed-form semivariance; ``semivariance(0) == nugget``."""
        h_arr = np.asarray(h, dtype=float)
        if np.any(h_arr < 0):
            raise ValueError("lag distances must be non-negative")
        func = MODEL_FUNCTIONS[self.shape]
        if self.shape == "matern":
            gamma = func(h_arr, self.nugget, self.psill, self.range, self.kappa)
        else:
            gamma = func(h_arr, self.nugget, self.psill, self.range)
        gamma = np.asarray(gamma, dtype=float)
        return float(gamma) if gamma.ndim == 0 else gamma

    def covariance(self, h):
        """
        ``sill - semivariance(h)`` for h > 0 and the full sill at h == 0, so the
        nugget acts as a discontinuity at the origin.
        """
        h_arr = np.asarray(h, dtype=float)
        cov = np.where(h_arr == 0, self.sill, self.sill - np.asarray(self.semivariance(h_arr)))
        return float(cov) if cov.ndim == 0 else cov

    def lag_distance(self, a, b) -> np.ndarray:
        """Pairwise effective distances between point sets ``a`` (n, d) and ``b`` (m, d)."""
        a = np.atleast_2d(np.asarray(a, dtype=float))
        b = np.atleast_2d(np.asarray(b, dtype=float))
        if not self.is_anisotropic:
            return cdist(a, b)
        diff = a[:, None, :] - b[None, :, :]
        theta = np.radians(self.angle)
        along = diff[..., 0] * np.sin(theta) + diff[..., 1] * np.cos(theta)
        across = diff[..., 0] * np.cos(theta) - diff[..., 1] * np.sin(theta)
        h2 = along ** 2 + (across / self.ratio) ** 2
        if diff.shape[-1] == 3:
            h2 = h2 + diff[..., 2] ** 2
        return np.sqrt(h2)

    def to_dict(self) -> Dict[str, object]:
        return {
            "shape": self.shape,
            "nugget": self.nugget,
            "sill": self.sill,
            "range": self.range,
            "anisotropy_angle": self.angle,
            "anisotropy_ratio": self.ratio,
            "kappa": self.kappa,
        }

    @classmethod
    def from_dict(cls, row) -> "VariogramModel":
        nugget = float(row["nugget"])
        optional = {}
        for key, field_name in (("anisotropy_angle", "angle"), ("anisotropy_ratio", "ratio"), ("kappa", "kappa")):
            value = row.get(key) if hasattr(row, "get") else None
            if value is not None and not pd.isna(value):
                optional[field_name] = float(value)
        return cls(str(row["shape"]), nugget=nugget, psill=float(row["sill"]) - nugget,
                   range=float(row["range"]), **optional)


# ----- Experimental Variogram Computation -----

class LagBin(NamedTuple):
    index: int
    distance: float
    gamma: float
    npairs: int
    direction: Optional[float] = None


@dataclass(frozen=True)
class EmpiricalVariogram:
    """
    Binned semivariance, ordered by direction sector then lag index.
    Empty bins are never present.
    """

    distance: np.ndarray
    gamma: np.ndarray
    npairs: np.ndarray
    direction: Optional[np.ndarray] = None
    index: Optional[np.ndarray] = None
    width: float = float("nan")
    cutoff: float = float("nan")
    attribute: str = ""

    def __post_init__(self):
        for name in ("distance", "gamma", "npairs"):
            object.__setattr__(self, name, np.asarray(getattr(self, name), dtype=float))
        if self.direction is not None:
            object.__setattr__(self, "direction", np.asarray(self.direction, dtype=float))
        if self.index is None:
            object.__setattr__(self, "index", np.arange(len(self.distance)))
        if not (len(self.distance) == len(self.gamma) == len(self.npairs)):
            raise ValueError("distance, gamma and npairs must have the same length")

    def __len__(self) -> int:
        return len(self.distance)

    @property
    def directional(self) -> bool:
        return self.direction is not None

    @property
    def bins(self) -> List[LagBin]:
        directions = self.direction if self.directional else [None] * len(self)
        return [
            LagBin(int(i), float(d), float(g), int(n), None if a is None else float(a))
            for i, d, g, n, a in zip(self.index, self.distance, self.gamma, self.npairs, directions)
        ]

    def sector(self, direction: float) -> "EmpiricalVariogram":
        if not self.directional:
            raise ValueError("variogram is omnidirectional")
        keep = np.isclose(self.direction, direction % 180.0)
        return dataclasses.replace(
            self, distance=self.distance[keep], gamma=self.gamma[keep], npairs=self.npairs[keep],
            direction=self.direction[keep], index=np.asarray(self.index)[keep],
        )

    def to_frame(self) -> pd.DataFrame:
        out = pd.DataFrame({
            "bin": self.index,
            "distance": self.distance,
            "gamma": self.gamma,
            "npairs": self.npairs.astype(int),
        })
        if self.directional:
            out["direction"] = self.direction
        return out


def _pairs(coords: np.ndarray):
    """All unordered pairs i < j with their distance and axial azimuth in [0, 180)."""
    n = len(coords)
    if n > MAX_PAIRWISE_SAMPLES:
        warnings.warn(
            f"{n} samples give {n * (n - 1) // 2} pairs; pairwise variogram estimation is O(n^2).",
            HydrokrigeWarning,
        )
    i, j = np.triu_indices(n, k=1)
    diff = coords[j] - coords[i]
    dist = np.sqrt((diff ** 2).sum(axis=1))
    azimuth = np.degrees(np.arctan2(diff[:, 0], diff[:, 1])) % 180.0
    return i, j, dist, azimuth


def _prepare(dataset: SpatialDataset, attribute: str, indicator_threshold: Optional[float]):
    if indicator_threshold is not None:
        name = indicator_name(attribute, indicator_threshold)
        dataset = dataset.indicator(attribute, indicator_threshold, name=name)
        attribute = name
    if dataset.n < 2:
        raise MalformedDataset("at least two samples are needed for a variogram")
    return dataset, attribute, dataset.values(attribute)


def empirical_variogram(
    dataset: SpatialDataset,
    attribute: str,
    width: Optional[float] = None,
    cutoff: Optional[float] = None,
    directions: Optional[Sequence[float]] = None,
    tolerance: float = DEFAULT_ANGLE_TOLERANCE,
    indicator_threshold: Optional[float] = None,
) -> EmpiricalVariogram:
    """
    Compute the experimental (Matheron) variogram.

    Every unordered sample pair contributes 0.5 * (z_i - z_j)^2 to bin
    floor(d / width). Cost and memory are O(n^2) in the number of samples,
    which is fine for station networks of a few thousand points.

    Parameters:
        dataset (SpatialDataset): Samples.
        attribute (str): Attribute to analyse.
        width (float): Bin width; defaults to cutoff / DEFAULT_N_LAGS.
        cutoff (float): Largest pair distance kept; defaults to the dataset diameter.
        directions (list): Azimuths (degrees clockwise from north) for directional
            variograms; each pair goes to the nearest sector within ``tolerance``.
        tolerance (float): Angular half-width of a direction sector.
        indicator_threshold (float): Analyse I(attribute > threshold) instead.

    Returns:
        EmpiricalVariogram: non-empty bins only.
    """
    dataset, attribute, values = _prepare(dataset, attribute, indicator_threshold)
    cutoff = dataset.diameter() if cutoff is None else float(cutoff)
    if cutoff <= 0:
        raise ValueError("cutoff must be positive (are all samples coincident?)")
    width = cutoff / DEFAULT_N_LAGS if width is None else float(width)
    if width <= 0:
        raise ValueError("bin width must be positive")

    i, j, dist, azimuth = _pairs(dataset.coords)
    semivar = 0.5 * (values[i] - values[j]) ** 2

    keep = dist <= cutoff
    n_bins = max(int(np.ceil(cutoff / width - 1e-9)), 1)
    bin_idx = np.minimum(np.floor(dist / width).astype(int), n_bins - 1)

    if directions is not None:
        dirs = np.asarray(directions, dtype=float) % 180.0
        delta = np.abs(azimuth[:, None] - dirs[None, :]) % 180.0
        delta = np.minimum(delta, 180.0 - delta)
        sector = np.argmin(delta, axis=1)
        keep &= delta[np.arange(len(sector)), sector] <= tolerance
    else:
        dirs = None
        sector = np.zeros(len(dist), dtype=int)

    n_sectors = 1 if dirs is None else len(dirs)
    key = sector[keep] * n_bins + bin_idx[keep]
    size = n_sectors * n_bins
    counts = np.bincount(key, minlength=size)
    sum_gamma = np.bincount(key, weights=semivar[keep], minlength=size)
    sum_dist = np.bincount(key, weights=dist[keep], minlength=size)

    valid = np.flatnonzero(counts > 0)
    if len(valid) == 0:
        warnings.warn(f"{attribute}: no sample pairs within cutoff {cutoff:g}.", HydrokrigeWarning)

    return EmpiricalVariogram(
        distance=sum_dist[valid] / counts[valid],
        gamma=sum_gamma[valid] / counts[valid],
        npairs=counts[valid],
        direction=None if dirs is None else dirs[valid // n_bins],
        index=valid % n_bins,
        width=width,
        cutoff=cutoff,
        attribute=attribute,
    )


def variogram_cloud(
    dataset: SpatialDataset,
    attribute: str,
    cutoff: Optional[float] = None,
    indicator_threshold: Optional[float] = None,
) -> pd.DataFrame:
    """One row per sample pair, for diagnostic plots only."""
    dataset, attribute, values = _prepare(dataset, attribute, indicator_threshold)
    i, j, dist, azimuth = _pairs(dataset.coords)
    cloud = pd.DataFrame({
        "i": i,
        "j": j,
        "distance": dist,
        "gamma": 0.5 * (values[i] - values[j]) ** 2,
        "azimuth": azimuth,
    })
    if cutoff is not None:
        cloud = cloud[cloud["distance"] <= cutoff].reset_index(drop=True)
    return cloud
