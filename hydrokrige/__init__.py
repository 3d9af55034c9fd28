"""Variogram modelling, kriging, simulation and cross validation for station data."""

from .config import TutorialConfig
from .cross_validation import (CrossValidationResult, assign_folds, cross_validate,
                               kriging_factory, leave_one_out, mae, r_squared, rmse,
                               split_train_test)
from .data import PredictionGrid, PredictionResult, SpatialDataset, load_csv, reproject_dataframe
from .ensemble import ensemble_weights, weighted_prediction
from .errors import (FitDidNotConverge, FitError, HydrokrigeError, HydrokrigeWarning,
                     InfeasibleFitParameters, InsufficientNeighbors, MalformedDataset,
                     PredictionError, SingularSystem)
from .fitting import FitResult, fit_variogram, select_best_model
from .idw import (InverseDistanceWeighter, OptimizationResult, ParameterOptimizer,
                  idw_factory, idw_objective, optimize_idw)
from .kriging import KrigingPredictor, indicator_kriging, krige
from .persistence import load_models, load_predictions, save_models, save_predictions
from .simulation import sequential_simulation
from .variograms import EmpiricalVariogram, VariogramModel, empirical_variogram, variogram_cloud

__version__ = "0.1.0"
