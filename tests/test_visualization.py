import matplotlib.pyplot as plt
import numpy as np
import pytest

from hydrokrige import (PredictionGrid, VariogramModel, cross_validate, empirical_variogram,
                        fit_variogram, krige, kriging_factory)
from hydrokrige.visualization import plot_cross_validation, plot_prediction, plot_variogram


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestPlots:
    def test_variogram_with_models(self, field_dataset):
        emp = empirical_variogram(field_dataset, "o3", width=5.0, cutoff=60.0)
        fit = fit_variogram(emp, "exponential")
        ax = plot_variogram(emp, {"exponential": fit, "guess": VariogramModel("spherical", psill=3.0, range=30.0)})
        assert len(ax.lines) == 3
        assert ax.get_ylabel() == "Semivariance"

    def test_directional_variogram(self, field_dataset):
        emp = empirical_variogram(field_dataset, "o3", width=10.0, cutoff=60.0, directions=[0, 90])
        ax = plot_variogram(emp, VariogramModel("exponential", psill=3.0, range=20.0, angle=0, ratio=0.5))
        assert len(ax.lines) == 4

    def test_cross_validation(self, field_dataset, exp_model):
        cv = cross_validate(field_dataset, "o3", kriging_factory("o3", exp_model), k=3, rng=0)
        ax = plot_cross_validation(cv)
        assert ax.get_xlabel() == "Observed"

    def test_prediction_map(self, field_dataset, exp_model):
        result = krige(field_dataset, "o3", exp_model, PredictionGrid.regular(0, 100, 0, 100, 20))
        ax = plot_prediction(result, field_dataset)
        assert len(ax.images) == 1
        ax = plot_prediction(result, column="variance")
        assert ax.get_title() == "Kriging variance"

    def test_scattered_prediction(self, field_dataset, exp_model):
        result = krige(field_dataset, "o3", exp_model, np.array([[10.0, 10.0], [50.0, 50.0]]))
        ax = plot_prediction(result)
        assert len(ax.collections) == 1
