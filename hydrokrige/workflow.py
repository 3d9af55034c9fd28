#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
workflow.py
-----------

End-to-end tutorial run that ties together data loading, variogram modelling,
kriging, cross validation and the IDW baseline.
"""

import argparse
import os
from typing import Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .config import TutorialConfig
from .cross_validation import cross_validate, kriging_factory, split_train_test
from .data import PredictionGrid, SpatialDataset, reproject_dataframe
from .ensemble import ensemble_weights, weighted_prediction
from .fitting import select_best_model
from .idw import InverseDistanceWeighter, idw_factory, optimize_idw
from .kriging import krige
from .persistence import save_models, save_predictions
from .variograms import VariogramModel, empirical_variogram
from .visualization import plot_cross_validation, plot_prediction, plot_variogram


def run_tutorial(df: pd.DataFrame, config: TutorialConfig) -> Dict[str, object]:
    """
    Run every stage of the tutorial on one station table and return the
    intermediate results keyed by stage name.
    """
    attribute = config.attribute
    x_col, y_col = config.x_col, config.y_col

    # ====== Data Loading & Preprocessing ======
    if config.lonlat:
        df = reproject_dataframe(df, lon_col=x_col, lat_col=y_col, dst_crs=config.crs, units=config.units)
        x_col, y_col = "x", "y"
    dataset = SpatialDataset.from_dataframe(df, x=x_col, y=y_col, attributes=[attribute],
                                            crs=config.crs, units=config.units, dropna=True)
    print(dataset)

    # ====== Variogram Modelling ======
    cutoff = config.cutoff or dataset.diameter()
    empirical = empirical_variogram(dataset, attribute, width=cutoff / config.n_lags, cutoff=cutoff)
    best, comparison = select_best_model(empirical, config.shapes)
    print("\nVariogram model comparison (sorted by AIC):")
    print(comparison.to_string(index=False))
    print(f"Best model: {best.model}")

    # ====== Ordinary Kriging ======
    xmin, ymin = dataset.coords[:, :2].min(axis=0)
    xmax, ymax = dataset.coords[:, :2].max(axis=0)
    step = config.grid_step or np.hypot(xmax - xmin, ymax - ymin) / 50
    grid = PredictionGrid.regular(xmin, xmax, ymin, ymax, step, crs=config.crs, units=config.units)
    neighbourhood = {"nmax": config.nmax, "maxdist": config.maxdist, "nmin": config.nmin}
    prediction = krige(dataset, attribute, best.model, grid, progress=config.progress, **neighbourhood)
    print(f"\nKriged {len(grid)} locations ({int(prediction.missing.sum())} missing).")

    # ====== Cross Validation ======
    cv_kriging = cross_validate(dataset, attribute, kriging_factory(attribute, best.model, **neighbourhood),
                                k=config.folds, rng=config.seed, progress=config.progress)
    cv_idw = cross_validate(dataset, attribute, idw_factory(attribute),
                            k=config.folds, rng=config.seed, progress=config.progress)
    print(f"\nKriging {cv_kriging}")
    print(f"IDW     {cv_idw}")

    # ====== IDW Parameter Optimisation ======
    train, test = split_train_test(dataset, rng=config.seed)
    idw_opt = optimize_idw(train, test, attribute)
    nmax_opt, power_opt = int(idw_opt.x[0]), float(idw_opt.x[1])
    print(f"\nOptimised IDW: nmax={nmax_opt}, power={power_opt:.3f}, test RMSE={idw_opt.fun:.4g}")
    idw_prediction = InverseDistanceWeighter(dataset, attribute, power=power_opt,
                                             nmax=min(nmax_opt, dataset.n)).predict(grid)

    # ====== Ensemble ======
    scores = {"kriging": cv_kriging.pooled_r2, "idw": cv_idw.pooled_r2}
    try:
        weights = ensemble_weights(scores, negative="clip")
        ensemble = weighted_prediction({"kriging": prediction, "idw": idw_prediction}, weights)
        print(f"\nEnsemble weights: {weights.round(3).to_dict()}")
    except ValueError as err:
        print(f"\nNo ensemble: {err}")
        weights, ensemble = None, None

    results = {
        "dataset": dataset,
        "empirical": empirical,
        "fit": best,
        "comparison": comparison,
        "grid": grid,
        "prediction": prediction,
        "cv_kriging": cv_kriging,
        "cv_idw": cv_idw,
        "idw_optimization": idw_opt,
        "idw_prediction": idw_prediction,
        "ensemble_weights": weights,
        "ensemble": ensemble,
    }
    if config.output_dir:
        save_outputs(results, config.output_dir)
    return results


def save_outputs(results: Dict[str, object], output_dir: str) -> None:
    """Write predictions, fitted models and the diagnostic figures to ``output_dir``."""
    os.makedirs(output_dir, exist_ok=True)
    save_predictions(results["prediction"], os.path.join(output_dir, "predictions.csv"))
    models = {row["shape"]: VariogramModel.from_dict(row) for _, row in results["comparison"].iterrows()}
    save_models(models, os.path.join(output_dir, "models.csv"))

    figures = {
        "variogram.png": lambda ax: plot_variogram(results["empirical"], {"fitted": results["fit"]}, ax=ax),
        "cross_validation.png": lambda ax: plot_cross_validation(results["cv_kriging"], ax=ax),
        "prediction.png": lambda ax: plot_prediction(results["prediction"], results["dataset"], ax=ax),
    }
    for name, draw in figures.items():
        fig, ax = plt.subplots(figsize=(7, 6))
        draw(ax)
        fig.tight_layout()
        fig.savefig(os.path.join(output_dir, name), dpi=120)
        plt.close(fig)
    print(f"\nOutputs saved to {output_dir}")


def build_parser() -> argparse.ArgumentParser:
    defaults = TutorialConfig()
    parser = argparse.ArgumentParser(prog="hydrokrige",
                                     description="Variogram modelling, kriging and cross validation of a station CSV.")
    parser.add_argument("csv_path", help="Station table with coordinate and attribute columns.")
    parser.add_argument("--attribute", default=defaults.attribute)
    parser.add_argument("--x", dest="x_col", default=defaults.x_col)
    parser.add_argument("--y", dest="y_col", default=defaults.y_col)
    parser.add_argument("--lonlat", action="store_true",
                        help="Coordinates are longitude/latitude; project them to --crs first.")
    parser.add_argument("--crs", default=defaults.crs)
    parser.add_argument("--units", default=defaults.units, choices=["m", "km"])
    parser.add_argument("--n-lags", type=int, default=defaults.n_lags)
    parser.add_argument("--cutoff", type=float, default=defaults.cutoff)
    parser.add_argument("--shapes", nargs="+", default=list(defaults.shapes))
    parser.add_argument("--grid-step", type=float, default=defaults.grid_step)
    parser.add_argument("--nmax", type=int, default=defaults.nmax)
    parser.add_argument("--maxdist", type=float, default=defaults.maxdist)
    parser.add_argument("--nmin", type=int, default=defaults.nmin)
    parser.add_argument("--folds", type=int, default=defaults.folds)
    parser.add_argument("--seed", type=int, default=defaults.seed)
    parser.add_argument("--output-dir", default=defaults.output_dir)
    parser.add_argument("--progress", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = TutorialConfig(**{**vars(args), "shapes": tuple(args.shapes)})
    df = pd.read_csv(config.csv_path)
    run_tutorial(df, config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
