#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
visualization.py
-----------------

Contains functions to plot experimental variograms with fitted models,
cross-validation scatter plots and prediction maps.
"""

from typing import Mapping, Optional, Union

import matplotlib.pyplot as plt
import numpy as np

from .cross_validation import CrossValidationResult
from .data import PredictionResult, SpatialDataset
from .fitting import FitResult
from .variograms import EmpiricalVariogram, VariogramModel, anisotropic_lag


def _axes(ax):
    if ax is None:
        _, ax = plt.subplots(figsize=(6, 5))
    return ax


def plot_variogram(empirical: EmpiricalVariogram,
                   models: Optional[Union[VariogramModel, FitResult, Mapping[str, object]]] = None,
                   ax=None, show: bool = False):
    """
    Plot the experimental variogram bins (one marker series per direction sector)
    and the fitted curves of the candidate models.
    """
    ax = _axes(ax)
    if models is None:
        models = {}
    elif not isinstance(models, Mapping):
        models = {"model": models}

    if len(empirical) == 0:
        ax.text(0.5, 0.5, 'No valid variogram', ha='center', va='center', transform=ax.transAxes)
        return ax

    sectors = np.unique(empirical.direction) if empirical.directional else [None]
    h_max = empirical.distance.max() * 1.05
    h_fit = np.linspace(0, h_max, 200)
    for direction in sectors:
        part = empirical if direction is None else empirical.sector(direction)
        label = 'Experimental Bins' if direction is None else f'{direction:g}°'
        ax.plot(part.distance, part.gamma, 'o', label=label, markersize=4, alpha=0.7)
        for name, model in models.items():
            if isinstance(model, FitResult):
                model = model.model
            h = h_fit if direction is None else anisotropic_lag(h_fit, direction, model.angle, model.ratio)
            curve_label = name if direction is None else f'{name} {direction:g}°'
            ax.plot(h_fit, model.semivariance(h), '-', label=curve_label, linewidth=1.5)

    ax.set_title(f'{empirical.attribute} Variogram' if empirical.attribute else 'Variogram')
    ax.set_xlabel('Lag distance')
    ax.set_ylabel('Semivariance')
    ax.set_xlim(0, h_max)
    ax.set_ylim(bottom=0)
    ax.grid(True)
    ax.legend()
    if show:
        plt.tight_layout()
        plt.show()
    return ax


def plot_cross_validation(cv: CrossValidationResult, ax=None, show: bool = False):
    """Observed vs predicted scatter with the 1:1 line and the pooled scores."""
    ax = _axes(ax)
    pred = cv.predictions
    ax.scatter(pred['observed'], pred['predicted'], c=pred['fold'], cmap='viridis',
               alpha=0.7, edgecolor='k', s=30)
    finite = pred[['observed', 'predicted']].to_numpy(dtype=float)
    finite = finite[np.isfinite(finite).all(axis=1)]
    if len(finite):
        lo, hi = finite.min(), finite.max()
        ax.plot([lo, hi], [lo, hi], 'k--', linewidth=1, label='1:1')
        ax.legend()
    ax.set_title(f'Cross validation (RMSE {cv.pooled_rmse:.3g}, R² {cv.pooled_r2:.3g})')
    ax.set_xlabel('Observed')
    ax.set_ylabel('Predicted')
    ax.grid(True)
    if show:
        plt.tight_layout()
        plt.show()
    return ax


def plot_prediction(result: PredictionResult, dataset: Optional[SpatialDataset] = None,
                    column: str = 'prediction', ax=None, show: bool = False, cmap: str = 'RdYlBu_r'):
    """
    Map of a regular-grid prediction (or its variance), with the samples
    overlaid when ``dataset`` is given. Scattered results are drawn as points.
    """
    ax = _axes(ax)
    x, y = result.coords[:, 0], result.coords[:, 1]
    values = np.asarray(getattr(result, column), dtype=float)
    if result.shape is not None:
        im = ax.imshow(result.as_grid(column), extent=(x.min(), x.max(), y.min(), y.max()),
                       origin='lower', cmap=cmap, aspect='auto')
    else:
        im = ax.scatter(x, y, c=values, cmap=cmap, s=20)
    ax.figure.colorbar(im, ax=ax, label=column.capitalize())
    if dataset is not None:
        ax.scatter(dataset.coords[:, 0], dataset.coords[:, 1], c='k', marker='+', s=30, label='Samples')
        ax.legend()
    ax.set_title(f'Kriging {column}')
    ax.set_xlabel('x')
    ax.set_ylabel('y')
    ax.grid(True)
    if show:
        plt.tight_layout()
        plt.show()
    return ax
