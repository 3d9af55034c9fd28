# -*- coding: utf-8 -*-
"""Skill-weighted averaging of several predictors' outputs."""

import warnings
from typing import Mapping, Sequence, Union

import numpy as np
import pandas as pd

from .data import PredictionResult
from .errors import HydrokrigeWarning

NEGATIVE_POLICIES = ("raw", "clip", "exclude")


def ensemble_weights(scores: Union[Mapping[str, float], Sequence[float]],
                     negative: str = "clip") -> pd.Series:
    """
    Normalised ensemble weights from per-model skill scores (typically CV R²).

    ``negative`` decides what happens to models scoring below zero:
    ``"raw"`` keeps the score as a (negative) weight, ``"clip"`` gives them
    zero weight, ``"exclude"`` drops them from the ensemble altogether.
    Models with a NaN score are always dropped.
    """
    if negative not in NEGATIVE_POLICIES:
        raise ValueError(f"negative must be one of {NEGATIVE_POLICIES}, got {negative!r}")
    scores = pd.Series(scores, dtype=float)
    if scores.isna().any():
        warnings.warn(f"Dropping models without a score: {list(scores.index[scores.isna()])}",
                      HydrokrigeWarning)
        scores = scores.dropna()
    if negative == "clip":
        scores = scores.clip(lower=0.0)
    elif negative == "exclude":
        scores = scores[scores >= 0]
    total = scores.sum()
    if len(scores) == 0 or total <= 0:
        raise ValueError("no model has a positive score to weight the ensemble with")
    return scores / total


def weighted_prediction(predictions: Mapping[str, Union[PredictionResult, np.ndarray]],
                        weights: pd.Series) -> np.ndarray:
    """Sum of weight * prediction over the weighted models; all must share locations."""
    combined = None
    for name, weight in weights.items():
        pred = predictions[name]
        pred = np.asarray(pred.prediction if isinstance(pred, PredictionResult) else pred, dtype=float)
        if combined is None:
            combined = np.zeros_like(pred)
        elif pred.shape != combined.shape:
            raise ValueError(f"prediction {name!r} has shape {pred.shape}, expected {combined.shape}")
        combined = combined + weight * pred
    return combined
