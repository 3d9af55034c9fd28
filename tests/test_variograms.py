import numpy as np
import pytest

from hydrokrige import (EmpiricalVariogram, HydrokrigeWarning, InfeasibleFitParameters,
                        MalformedDataset, SpatialDataset, VariogramModel, empirical_variogram,
                        variogram_cloud)
from hydrokrige.variograms import MODEL_FUNCTIONS, anisotropic_lag

BOUNDED = ["exponential", "spherical", "gaussian", "matern"]


@pytest.fixture
def line_dataset():
    coords = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
    return SpatialDataset(coords, {"v": [0.0, 1.0, 2.0, 3.0]})


class TestVariogramModel:
    @pytest.mark.parametrize("shape", sorted(MODEL_FUNCTIONS))
    def test_semivariance_at_zero_is_nugget(self, shape):
        model = VariogramModel(shape, nugget=0.3, psill=1.2, range=10.0)
        assert model.semivariance(0.0) == pytest.approx(0.3)

    @pytest.mark.parametrize("shape", BOUNDED)
    def test_non_decreasing_up_to_range(self, shape):
        model = VariogramModel(shape, nugget=0.1, psill=2.0, range=10.0)
        gamma = model.semivariance(np.linspace(0, 10, 101))
        assert np.all(np.diff(gamma) >= -1e-12)

    def test_exponential_closed_form(self):
        model = VariogramModel("exponential", nugget=0.5, psill=2.0, range=4.0)
        h = np.array([1.0, 4.0, 12.0])
        np.testing.assert_allclose(model.semivariance(h), 0.5 + 2.0 * (1 - np.exp(-h / 4.0)))

    def test_spherical_reaches_sill_at_range(self):
        model = VariogramModel("spherical", nugget=0.5, psill=2.0, range=4.0)
        assert model.semivariance(2.0) == pytest.approx(0.5 + 2.0 * (0.75 - 0.0625))
        assert model.semivariance(4.0) == pytest.approx(2.5)
        assert model.semivariance(40.0) == pytest.approx(2.5)

    def test_matern_half_is_exponential(self):
        h = np.linspace(0, 30, 31)
        matern = VariogramModel("matern", nugget=0.2, psill=1.0, range=5.0, kappa=0.5)
        expo = VariogramModel("exponential", nugget=0.2, psill=1.0, range=5.0)
        np.testing.assert_allclose(matern.semivariance(h), expo.semivariance(h), rtol=1e-10)

    def test_covariance_keeps_full_sill_at_origin(self):
        model = VariogramModel("exponential", nugget=0.5, psill=2.0, range=4.0)
        assert model.covariance(0.0) == pytest.approx(2.5)
        assert model.covariance(4.0) == pytest.approx(2.5 - model.semivariance(4.0))

    @pytest.mark.parametrize("params", [
        {"nugget": -0.1},
        {"psill": -1.0},
        {"range": 0.0},
        {"ratio": 1.5},
        {"ratio": 0.0},
    ])
    def test_infeasible_parameters(self, params):
        with pytest.raises(InfeasibleFitParameters):
            VariogramModel("exponential", **params)

    def test_gstat_aliases(self):
        assert VariogramModel("Sph").shape == "spherical"
        assert VariogramModel("exp").shape == "exponential"
        with pytest.raises(ValueError):
            VariogramModel("cubic-ish")

    def test_linear_is_unbounded(self):
        assert not VariogramModel("linear").bounded
        assert VariogramModel("gaussian").bounded

    def test_anisotropic_distance(self):
        model = VariogramModel("exponential", range=10.0, angle=30.0, ratio=0.5)
        along_major = [4 * np.sin(np.radians(30)), 4 * np.cos(np.radians(30))]
        along_minor = [4 * np.sin(np.radians(120)), 4 * np.cos(np.radians(120))]
        distances = model.lag_distance([[0.0, 0.0]], [along_major, along_minor])
        np.testing.assert_allclose(distances[0], [4.0, 8.0])
        np.testing.assert_allclose(anisotropic_lag(4.0, [30.0, 120.0], 30.0, 0.5), [4.0, 8.0])

    def test_angle_is_axial(self):
        assert VariogramModel("exponential", angle=210.0, ratio=0.5).angle == pytest.approx(30.0)

    def test_dict_round_trip(self):
        model = VariogramModel("matern", nugget=0.25, psill=0.75, range=7.5, angle=45.0, ratio=0.5, kappa=1.5)
        row = model.to_dict()
        assert row["sill"] == pytest.approx(1.0)
        assert VariogramModel.from_dict(row) == model


class TestEmpiricalVariogram:
    def test_bins_on_a_line(self, line_dataset):
        emp = empirical_variogram(line_dataset, "v", width=1.0, cutoff=3.0)
        # bin 0 holds no pairs; the d == cutoff pair falls into the last bin
        np.testing.assert_array_equal(emp.index, [1, 2])
        np.testing.assert_allclose(emp.distance, [1.0, 7.0 / 3.0])
        np.testing.assert_allclose(emp.gamma, [0.5, 8.5 / 3.0])
        np.testing.assert_array_equal(emp.npairs, [3, 3])

    def test_cutoff_discards_pairs(self, line_dataset):
        emp = empirical_variogram(line_dataset, "v", width=1.0, cutoff=2.0)
        assert emp.npairs.sum() == 5

    def test_independent_of_sample_order(self, field_dataset):
        shuffled = field_dataset.take(np.random.default_rng(1).permutation(field_dataset.n))
        a = empirical_variogram(field_dataset, "o3", width=5.0, cutoff=60.0)
        b = empirical_variogram(shuffled, "o3", width=5.0, cutoff=60.0)
        np.testing.assert_array_equal(a.index, b.index)
        np.testing.assert_array_equal(a.npairs, b.npairs)
        np.testing.assert_allclose(a.gamma, b.gamma, rtol=1e-12)
        np.testing.assert_allclose(a.distance, b.distance, rtol=1e-12)

    def test_default_cutoff_is_diameter(self, field_dataset):
        emp = empirical_variogram(field_dataset, "o3")
        assert emp.cutoff == pytest.approx(field_dataset.diameter())
        assert emp.npairs.sum() == field_dataset.n * (field_dataset.n - 1) // 2

    def test_directional_sectors(self, line_dataset):
        emp = empirical_variogram(line_dataset, "v", width=1.0, cutoff=3.0, directions=[0.0, 90.0])
        assert emp.directional
        np.testing.assert_array_equal(emp.direction, [90.0, 90.0])
        assert len(emp.sector(0.0)) == 0
        assert len(emp.sector(90.0)) == 2
        assert list(emp.to_frame().columns) == ["bin", "distance", "gamma", "npairs", "direction"]

    def test_bins_records(self, line_dataset):
        first = empirical_variogram(line_dataset, "v", width=1.0, cutoff=3.0).bins[0]
        assert (first.index, first.npairs, first.direction) == (1, 3, None)

    def test_no_pairs_warns(self, line_dataset):
        with pytest.warns(HydrokrigeWarning):
            emp = empirical_variogram(line_dataset, "v", width=1.0, cutoff=3.0, directions=[0.0],
                                      tolerance=10.0)
        assert len(emp) == 0

    def test_indicator_variogram(self, line_dataset):
        emp = empirical_variogram(line_dataset, "v", width=1.0, cutoff=3.0, indicator_threshold=1.5)
        assert emp.attribute == "I(v>1.5)"
        assert np.all(emp.gamma <= 0.5)

    def test_needs_two_samples(self):
        single = SpatialDataset([[0.0, 0.0]], {"v": [1.0]})
        with pytest.raises(MalformedDataset):
            empirical_variogram(single, "v")

    def test_cloud_has_one_row_per_pair(self, line_dataset):
        cloud = variogram_cloud(line_dataset, "v")
        assert len(cloud) == 6
        assert list(cloud.columns) == ["i", "j", "distance", "gamma", "azimuth"]
        np.testing.assert_allclose(cloud["azimuth"], 90.0)
        assert len(variogram_cloud(line_dataset, "v", cutoff=1.5)) == 3

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            EmpiricalVariogram([1.0, 2.0], [0.1], [3, 4])
