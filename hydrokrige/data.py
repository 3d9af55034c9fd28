# -*- coding: utf-8 -*-
"""
data.py
-------

Sample points, query locations and prediction results, plus the loading and
reprojection helpers that turn a station table into a SpatialDataset.
"""

import warnings
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pyproj import Transformer
from scipy.spatial.distance import pdist

from .config import (DEFAULT_BLOCK_DISCRETIZATION, DEFAULT_CRS, DEFAULT_UNITS,
                     GEOGRAPHIC_CRS, METERS_PER_UNIT)
from .errors import HydrokrigeWarning, MalformedDataset

STATUS_OK = "ok"
STATUS_ILL_CONDITIONED = "ill_conditioned"


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


def _as_coords(coords, what: str) -> np.ndarray:
    coords = np.array(coords, dtype=float)
    if coords.ndim == 1:
        coords = coords.reshape(1, -1)
    if coords.ndim != 2 or coords.shape[1] not in (2, 3):
        raise MalformedDataset(f"{what} coordinates must have shape (n, 2) or (n, 3), got {coords.shape}")
    if len(coords) == 0:
        raise MalformedDataset(f"{what} has no locations")
    if not np.all(np.isfinite(coords)):
        raise MalformedDataset(f"{what} has missing or non-finite coordinates")
    return coords


def check_same_frame(a, b) -> None:
    """Raise MalformedDataset unless ``a`` and ``b`` share CRS, units and dimension."""
    if a.crs != b.crs or a.units != b.units:
        raise MalformedDataset(
            f"coordinate frames differ: {a.crs} [{a.units}] vs {b.crs} [{b.units}]"
        )
    if a.ndim != b.ndim:
        raise MalformedDataset(f"dimension mismatch: {a.ndim}D vs {b.ndim}D")


class Sample(NamedTuple):
    coords: Tuple[float, ...]
    values: Dict[str, float]


class SpatialDataset:
    """
    Immutable set of sample points with one or more measured attributes.

    All samples share one linear coordinate frame (``crs``, ``units``);
    distances are measured in those units.
    """

    def __init__(self, coords, attributes, crs: str = DEFAULT_CRS, units: str = DEFAULT_UNITS):
        coords = _as_coords(coords, "dataset")
        attributes = pd.DataFrame(attributes).reset_index(drop=True)
        if attributes.shape[1] == 0:
            raise MalformedDataset("dataset has no attributes")
        if len(attributes) != len(coords):
            raise MalformedDataset(
                f"{len(attributes)} attribute rows for {len(coords)} coordinates"
            )
        for name in attributes.columns:
            column = attributes[name]
            if not pd.api.types.is_numeric_dtype(column):
                raise MalformedDataset(f"attribute {name!r} is not numeric")
            if not np.all(np.isfinite(column.to_numpy(dtype=float))):
                raise MalformedDataset(f"attribute {name!r} has missing values")
        self._coords = _frozen(coords)
        self._attributes = attributes.astype(float)
        self.crs = crs
        self.units = units

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        x: str = "x",
        y: str = "y",
        z: Optional[str] = None,
        attributes: Optional[Sequence[str]] = None,
        crs: str = DEFAULT_CRS,
        units: str = DEFAULT_UNITS,
        dropna: bool = False,
    ) -> "SpatialDataset":
        """
        Build a dataset from a station table.

        Parameters:
            df (pd.DataFrame): One row per sample.
            x, y, z (str): Coordinate columns (z optional).
            attributes (list): Attribute columns; defaults to every other numeric column.
            crs, units (str): Declared coordinate frame.
            dropna (bool): Drop incomplete rows (with a warning) instead of failing.

        Returns:
            SpatialDataset
        """
        coord_cols = [c for c in (x, y, z) if c is not None]
        if attributes is None:
            attributes = [c for c in df.columns
                          if c not in coord_cols and pd.api.types.is_numeric_dtype(df[c])]
        attributes = list(attributes)
        missing = [c for c in coord_cols + attributes if c not in df.columns]
        if missing:
            raise MalformedDataset(f"missing columns: {missing}")
        table = df[coord_cols + attributes]
        if dropna:
            complete = table.notna().all(axis=1)
            if not complete.all():
                warnings.warn(f"Dropping {(~complete).sum()} incomplete rows.", HydrokrigeWarning)
                table = table[complete]
        return cls(table[coord_cols].to_numpy(dtype=float), table[attributes], crs=crs, units=units)

    # -- accessors --------------------------------------------------------------

    @property
    def coords(self) -> np.ndarray:
        return self._coords

    @property
    def attributes(self) -> List[str]:
        return list(self._attributes.columns)

    @property
    def n(self) -> int:
        return len(self._coords)

    @property
    def ndim(self) -> int:
        return self._coords.shape[1]

    def __len__(self) -> int:
        return self.n

    def __repr__(self) -> str:
        return f"SpatialDataset(n={self.n}, attributes={self.attributes}, crs={self.crs!r}, units={self.units!r})"

    def values(self, attribute: str) -> np.ndarray:
        if attribute not in self._attributes.columns:
            raise MalformedDataset(f"unknown attribute {attribute!r}; have {self.attributes}")
        return _frozen(self._attributes[attribute].to_numpy(dtype=float, copy=True))

    def samples(self) -> Iterator[Sample]:
        for point, (_, row) in zip(self._coords, self._attributes.iterrows()):
            yield Sample(tuple(point), row.to_dict())

    def diameter(self) -> float:
        """Largest distance between two samples (O(n^2))."""
        if self.n < 2:
            return 0.0
        return float(pdist(self._coords).max())

    def to_frame(self) -> pd.DataFrame:
        names = ["x", "y", "z"][: self.ndim]
        out = pd.DataFrame(self._coords, columns=names)
        return pd.concat([out, self._attributes], axis=1)

    # -- derived datasets -------------------------------------------------------

    def take(self, indices) -> "SpatialDataset":
        indices = np.asarray(indices, dtype=int)
        return SpatialDataset(self._coords[indices], self._attributes.iloc[indices],
                              crs=self.crs, units=self.units)

    def drop(self, indices) -> "SpatialDataset":
        keep = np.ones(self.n, dtype=bool)
        keep[np.asarray(indices, dtype=int)] = False
        return self.take(np.flatnonzero(keep))

    def with_attribute(self, name: str, values) -> "SpatialDataset":
        table = self._attributes.copy()
        table[name] = np.asarray(values, dtype=float)
        return SpatialDataset(self._coords, table, crs=self.crs, units=self.units)

    def indicator(self, attribute: str, threshold: float, name: Optional[str] = None) -> "SpatialDataset":
        """Add a 0/1 column that is 1 where ``attribute`` exceeds ``threshold``."""
        name = name or indicator_name(attribute, threshold)
        return self.with_attribute(name, (self.values(attribute) > threshold).astype(float))

    def check_same_frame(self, other) -> None:
        check_same_frame(self, other)


def indicator_name(attribute: str, threshold: float) -> str:
    return f"I({attribute}>{threshold:g})"


# -----------------------------------------------------------------------------
# Query locations
# -----------------------------------------------------------------------------

def block_offsets(size, discretization=DEFAULT_BLOCK_DISCRETIZATION, ndim: int = 2) -> np.ndarray:
    """Regular lattice of sub-point offsets covering a block centred on the origin."""
    size = np.broadcast_to(np.asarray(size, dtype=float), (2,))
    nx, ny = np.broadcast_to(np.asarray(discretization, dtype=int), (2,))
    if np.any(size <= 0) or nx < 1 or ny < 1:
        raise ValueError(f"invalid block {tuple(size)} / discretization {(nx, ny)}")
    ox = size[0] * ((np.arange(nx) + 0.5) / nx - 0.5)
    oy = size[1] * ((np.arange(ny) + 0.5) / ny - 0.5)
    gx, gy = np.meshgrid(ox, oy)
    offsets = np.column_stack([gx.ravel(), gy.ravel()])
    if ndim == 3:
        offsets = np.column_stack([offsets, np.zeros(len(offsets))])
    return offsets


class PredictionGrid:
    """Ordered query locations, optionally with one sub-point set per location (blocks)."""

    def __init__(
        self,
        coords,
        crs: str = DEFAULT_CRS,
        units: str = DEFAULT_UNITS,
        blocks: Optional[Sequence[np.ndarray]] = None,
        shape: Optional[Tuple[int, int]] = None,
    ):
        self._coords = _frozen(_as_coords(coords, "grid"))
        self.crs = crs
        self.units = units
        if blocks is not None:
            blocks = [_frozen(_as_coords(b, "block")) for b in blocks]
            if len(blocks) != len(self._coords):
                raise MalformedDataset(f"{len(blocks)} blocks for {len(self._coords)} locations")
            if any(b.shape[1] != self.ndim for b in blocks):
                raise MalformedDataset("block sub-points must match the grid dimension")
        self.blocks = blocks
        if shape is not None and int(np.prod(shape)) != len(self._coords):
            raise MalformedDataset(f"grid shape {shape} does not hold {len(self._coords)} locations")
        self.shape = shape

    @classmethod
    def regular(cls, xmin: float, xmax: float, ymin: float, ymax: float, step: float,
                crs: str = DEFAULT_CRS, units: str = DEFAULT_UNITS) -> "PredictionGrid":
        """Regular grid covering the bounds, x varying fastest."""
        if step <= 0:
            raise ValueError("grid step must be positive")
        xs = np.arange(xmin, xmax + step / 2, step)
        ys = np.arange(ymin, ymax + step / 2, step)
        gx, gy = np.meshgrid(xs, ys)
        return cls(np.column_stack([gx.ravel(), gy.ravel()]), crs=crs, units=units,
                   shape=(len(ys), len(xs)))

    @classmethod
    def from_dataset(cls, dataset: SpatialDataset) -> "PredictionGrid":
        return cls(dataset.coords, crs=dataset.crs, units=dataset.units)

    @property
    def coords(self) -> np.ndarray:
        return self._coords

    @property
    def ndim(self) -> int:
        return self._coords.shape[1]

    def __len__(self) -> int:
        return len(self._coords)

    def with_blocks(self, size, discretization=DEFAULT_BLOCK_DISCRETIZATION) -> "PredictionGrid":
        offsets = block_offsets(size, discretization, self.ndim)
        blocks = [point + offsets for point in self._coords]
        return PredictionGrid(self._coords, crs=self.crs, units=self.units,
                              blocks=blocks, shape=self.shape)


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class PredictionResult:
    """Predicted value, estimation variance and status per query location."""

    coords: np.ndarray
    prediction: np.ndarray
    variance: np.ndarray
    status: np.ndarray
    shape: Optional[Tuple[int, int]] = None

    def __len__(self) -> int:
        return len(self.prediction)

    @property
    def missing(self) -> np.ndarray:
        return np.isnan(self.prediction)

    def to_frame(self) -> pd.DataFrame:
        names = ["x", "y", "z"][: self.coords.shape[1]]
        out = pd.DataFrame(self.coords, columns=names)
        out.insert(0, "location_id", np.arange(len(self)))
        out["prediction"] = self.prediction
        out["variance"] = self.variance
        out["status"] = self.status
        return out

    def as_grid(self, column: str = "prediction") -> np.ndarray:
        if self.shape is None:
            raise ValueError("result does not come from a regular grid")
        return np.asarray(getattr(self, column)).reshape(self.shape)


# -----------------------------------------------------------------------------
# Loading / reprojection
# -----------------------------------------------------------------------------

def reproject_dataframe(
    df: pd.DataFrame,
    lon_col: str = "Longitude",
    lat_col: str = "Latitude",
    src_crs: str = GEOGRAPHIC_CRS,
    dst_crs: str = DEFAULT_CRS,
    units: str = DEFAULT_UNITS,
    x_col: str = "x",
    y_col: str = "y",
) -> pd.DataFrame:
    """Project lon/lat columns into a linear frame, written to ``x_col``/``y_col``."""
    if units not in METERS_PER_UNIT:
        raise ValueError(f"unsupported units {units!r}")
    transformer = Transformer.from_crs(src_crs, dst_crs, always_xy=True)
    x, y = transformer.transform(df[lon_col].to_numpy(), df[lat_col].to_numpy())
    out = df.copy()
    out[x_col] = np.asarray(x) / METERS_PER_UNIT[units]
    out[y_col] = np.asarray(y) / METERS_PER_UNIT[units]
    return out


def load_csv(path: str, x: str = "x", y: str = "y", z: Optional[str] = None,
             attributes: Optional[Sequence[str]] = None, crs: str = DEFAULT_CRS,
             units: str = DEFAULT_UNITS, dropna: bool = False, **read_kwargs) -> SpatialDataset:
    """Load a station CSV straight into a SpatialDataset."""
    df = pd.read_csv(path, **read_kwargs)
    return SpatialDataset.from_dataframe(df, x=x, y=y, z=z, attributes=attributes,
                                         crs=crs, units=units, dropna=dropna)
