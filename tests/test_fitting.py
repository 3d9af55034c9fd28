import numpy as np
import pytest

from hydrokrige import (EmpiricalVariogram, FitDidNotConverge, FitError, HydrokrigeWarning,
                        VariogramModel, fit_variogram, select_best_model)
from hydrokrige.fitting import bin_weights, initial_guess
from hydrokrige.variograms import anisotropic_lag


def synthetic(model, lags=np.arange(1.0, 41.0)):
    return EmpiricalVariogram(distance=lags, gamma=model.semivariance(lags),
                              npairs=np.arange(len(lags)) + 10)


class TestFitVariogram:
    def test_recovers_exponential(self):
        truth = VariogramModel("exponential", nugget=0.1, psill=2.0, range=15.0)
        result = fit_variogram(synthetic(truth), "exponential")
        assert result.converged
        assert result.model.nugget == pytest.approx(0.1, abs=1e-3)
        assert result.model.psill == pytest.approx(2.0, rel=1e-3)
        assert result.model.range == pytest.approx(15.0, rel=1e-3)
        assert result.sse < result.initial_sse

    def test_data_driven_guess(self):
        emp = synthetic(VariogramModel("spherical", nugget=0.2, psill=1.5, range=20.0))
        guess = initial_guess(emp, "spherical")
        assert guess.nugget == pytest.approx(emp.gamma.min())
        assert guess.range == pytest.approx(20.0)

    def test_infeasible_guess_is_rejected(self):
        emp = synthetic(VariogramModel("exponential", nugget=0.1, psill=2.0, range=15.0))
        with pytest.warns(HydrokrigeWarning):
            result = fit_variogram(emp, "exponential", guess={"nugget": -1.0})
        assert result.model.nugget >= 0
        assert result.model.range == pytest.approx(15.0, rel=1e-3)

    def test_fixed_nugget(self):
        emp = synthetic(VariogramModel("gaussian", nugget=0.3, psill=1.0, range=10.0))
        result = fit_variogram(emp, "gaussian", guess={"nugget": 0.0}, fit_nugget=False)
        assert result.model.nugget == 0.0
        assert result.model.psill > 0

    def test_budget_exhausted(self):
        emp = synthetic(VariogramModel("exponential", nugget=0.1, psill=2.0, range=15.0))
        with pytest.raises(FitDidNotConverge) as info:
            fit_variogram(emp, "exponential", max_nfev=1)
        assert not info.value.result.converged
        assert info.value.result.model.shape == "exponential"

    def test_small_budget_returns_best_so_far(self):
        emp = synthetic(VariogramModel("exponential", nugget=0.1, psill=2.0, range=15.0))
        with pytest.warns(HydrokrigeWarning, match="did not converge"):
            result = fit_variogram(emp, "exponential", guess={"range": 3.0}, max_nfev=4)
        assert result.converged is False
        assert result.sse < result.initial_sse

    def test_small_budget_strict(self):
        emp = synthetic(VariogramModel("exponential", nugget=0.1, psill=2.0, range=15.0))
        with pytest.raises(FitDidNotConverge) as info:
            fit_variogram(emp, "exponential", guess={"range": 3.0}, max_nfev=4, strict=True)
        assert info.value.result.converged is False

    def test_empty_variogram(self):
        with pytest.raises(FitError):
            fit_variogram(EmpiricalVariogram([], [], []), "exponential")

    def test_anisotropic_fit_needs_directions(self):
        emp = synthetic(VariogramModel("exponential", range=5.0))
        with pytest.raises(ValueError):
            fit_variogram(emp, "exponential", fit_anisotropy=True)

    def test_recovers_anisotropy(self):
        truth = VariogramModel("exponential", nugget=0.0, psill=1.0, range=10.0, angle=30.0, ratio=0.5)
        lags = np.arange(1.0, 31.0)
        directions = np.repeat([0.0, 45.0, 90.0, 135.0], len(lags))
        distance = np.tile(lags, 4)
        gamma = truth.semivariance(anisotropic_lag(distance, directions, 30.0, 0.5))
        emp = EmpiricalVariogram(distance, gamma, np.full(len(distance), 50), direction=directions)
        result = fit_variogram(emp, "exponential", fit_anisotropy=True)
        assert result.model.angle == pytest.approx(30.0, abs=0.5)
        assert result.model.ratio == pytest.approx(0.5, abs=0.01)
        assert result.model.range == pytest.approx(10.0, rel=0.01)


class TestWeights:
    def test_schemes(self):
        emp = EmpiricalVariogram([1.0, 2.0], [0.5, 1.0], [10, 30])
        np.testing.assert_allclose(bin_weights(emp, "npairs"), [0.5, 1.5])
        np.testing.assert_allclose(bin_weights(emp, "ols"), [1.0, 1.0])
        np.testing.assert_allclose(bin_weights(emp, "npairs_h2"), [10 / 8.75, 7.5 / 8.75])
        with pytest.raises(ValueError):
            bin_weights(emp, "cressie")


class TestSelectBestModel:
    def test_picks_generating_shape(self):
        emp = synthetic(VariogramModel("spherical", nugget=0.2, psill=1.5, range=20.0))
        best, table = select_best_model(emp, ["exponential", "spherical", "gaussian"])
        assert best.model.shape == "spherical"
        assert table.loc[0, "shape"] == "spherical"
        assert list(table["aic"]) == sorted(table["aic"])
        assert {"shape", "nugget", "sill", "range", "aic", "converged"} <= set(table.columns)
