# -*- coding: utf-8 -*-
"""
persistence.py
--------------

CSV round trips for predictions and fitted variogram models.
"""

from typing import Dict, Mapping, Optional, Tuple, Union

import pandas as pd

from .data import PredictionResult
from .fitting import FitResult
from .variograms import VariogramModel

PREDICTION_COLUMNS = ["location_id", "predicted_value", "variance"]
MODEL_COLUMNS = ["name", "shape", "nugget", "sill", "range", "anisotropy_angle", "anisotropy_ratio", "kappa"]


def save_predictions(result: PredictionResult, path: str) -> pd.DataFrame:
    frame = result.to_frame().rename(columns={"prediction": "predicted_value"})
    coords = [c for c in ("x", "y", "z") if c in frame.columns]
    frame = frame[PREDICTION_COLUMNS + coords + ["status"]]
    frame.to_csv(path, index=False)
    return frame


def load_predictions(path: str, shape: Optional[Tuple[int, int]] = None) -> PredictionResult:
    frame = pd.read_csv(path).sort_values("location_id")
    coords = [c for c in ("x", "y", "z") if c in frame.columns]
    return PredictionResult(
        coords=frame[coords].to_numpy(dtype=float),
        prediction=frame["predicted_value"].to_numpy(dtype=float),
        variance=frame["variance"].to_numpy(dtype=float),
        status=frame["status"].to_numpy(dtype=object),
        shape=shape,
    )


def save_models(models: Mapping[str, Union[VariogramModel, FitResult]], path: str) -> pd.DataFrame:
    """One row per named model; fit results are stored by their fitted model."""
    rows = []
    for name, model in models.items():
        if isinstance(model, FitResult):
            model = model.model
        rows.append({"name": name, **model.to_dict()})
    frame = pd.DataFrame(rows, columns=MODEL_COLUMNS)
    frame.to_csv(path, index=False)
    return frame


def load_models(path: str) -> Dict[str, VariogramModel]:
    frame = pd.read_csv(path, dtype={"name": str, "shape": str})
    return {row["name"]: VariogramModel.from_dict(row) for _, row in frame.iterrows()}
