# -*- coding: utf-8 -*-
"""
config.py
---------

Constants and configuration shared by the variogram, kriging and validation
modules, plus the settings bundle of one tutorial run.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# -----------------------------------------------------------------------------
# Coordinate frames
# -----------------------------------------------------------------------------
GEOGRAPHIC_CRS = "EPSG:4326"
DEFAULT_CRS = "EPSG:32632"  # UTM zone 32N, the ozone tutorial frame
DEFAULT_UNITS = "km"
METERS_PER_UNIT = {"m": 1.0, "km": 1000.0}

# -----------------------------------------------------------------------------
# Empirical variogram
# -----------------------------------------------------------------------------
DEFAULT_N_LAGS = 15
DEFAULT_ANGLE_TOLERANCE = 22.5  # degrees either side of a direction sector
MAX_PAIRWISE_SAMPLES = 5_000  # n(n-1)/2 pairs above this gets expensive

# -----------------------------------------------------------------------------
# Model fitting
# -----------------------------------------------------------------------------
FIT_MAX_EVAL = 2_000
FIT_TOLERANCE = 1e-8
MIN_RANGE = 1e-9
MIN_ANISOTROPY_RATIO = 1e-3
DEFAULT_KAPPA = 0.5

# -----------------------------------------------------------------------------
# Kriging
# -----------------------------------------------------------------------------
VARIANCE_TOLERANCE = 1e-6
DEFAULT_BLOCK_DISCRETIZATION = (4, 4)
DEFAULT_CHUNK_SIZE = 500  # locations per joblib task

# -----------------------------------------------------------------------------
# Validation / optimisation
# -----------------------------------------------------------------------------
DEFAULT_SEED = 13331
DEFAULT_FOLDS = 5
DEFAULT_TEST_FRACTION = 0.2
IDW_START = (8.0, 0.5)  # (nmax, power)
IDW_MIN_NMAX = 1
IDW_MIN_POWER = 0.001
OPTIMIZER_MAX_ITER = 500


@dataclass
class TutorialConfig:
    """Settings of one end-to-end tutorial run."""

    csv_path: Optional[str] = None
    attribute: str = "o3"
    x_col: str = "x"
    y_col: str = "y"
    lonlat: bool = False
    crs: str = DEFAULT_CRS
    units: str = DEFAULT_UNITS
    n_lags: int = DEFAULT_N_LAGS
    cutoff: Optional[float] = None
    shapes: Tuple[str, ...] = ("exponential", "spherical", "gaussian")
    grid_step: Optional[float] = None
    nmax: Optional[int] = None
    maxdist: Optional[float] = None
    nmin: int = 1
    folds: int = DEFAULT_FOLDS
    seed: int = DEFAULT_SEED
    output_dir: Optional[str] = None
    progress: bool = False
