import numpy as np
import pandas as pd
import pytest

from hydrokrige import (HydrokrigeWarning, MalformedDataset, PredictionGrid, PredictionResult,
                        SpatialDataset, load_csv, reproject_dataframe)
from hydrokrige.data import block_offsets, check_same_frame


class TestSpatialDataset:
    def test_from_dataframe_uses_numeric_columns(self, field_frame):
        frame = field_frame.assign(station=["s%d" % i for i in range(len(field_frame))])
        dataset = SpatialDataset.from_dataframe(frame)
        assert dataset.attributes == ["o3"]
        assert dataset.n == 60
        assert dataset.ndim == 2

    def test_missing_column(self, field_frame):
        with pytest.raises(MalformedDataset):
            SpatialDataset.from_dataframe(field_frame, attributes=["no2"])

    def test_missing_values_are_fatal(self, field_frame):
        field_frame.loc[3, "o3"] = np.nan
        with pytest.raises(MalformedDataset):
            SpatialDataset.from_dataframe(field_frame)

    def test_dropna_warns_and_drops(self, field_frame):
        field_frame.loc[[3, 7], "o3"] = np.nan
        with pytest.warns(HydrokrigeWarning):
            dataset = SpatialDataset.from_dataframe(field_frame, dropna=True)
        assert dataset.n == 58

    def test_non_finite_coordinates(self):
        with pytest.raises(MalformedDataset):
            SpatialDataset([[0.0, np.inf], [1.0, 1.0]], {"z": [1.0, 2.0]})

    def test_row_count_mismatch(self):
        with pytest.raises(MalformedDataset):
            SpatialDataset([[0.0, 0.0], [1.0, 1.0]], {"z": [1.0, 2.0, 3.0]})

    def test_coordinates_are_read_only(self, field_dataset):
        with pytest.raises(ValueError):
            field_dataset.coords[0, 0] = 1.0
        with pytest.raises(ValueError):
            field_dataset.values("o3")[0] = 1.0

    def test_unknown_attribute(self, field_dataset):
        with pytest.raises(MalformedDataset):
            field_dataset.values("no2")

    def test_indicator_marks_exceedance(self, trend_dataset):
        ind = trend_dataset.indicator("z", 20.0)
        name = "I(z>20)"
        assert name in ind.attributes
        np.testing.assert_array_equal(ind.values(name), (trend_dataset.values("z") > 20).astype(float))

    def test_take_and_drop_partition(self, trend_dataset):
        kept = trend_dataset.take([0, 2])
        rest = trend_dataset.drop([0, 2])
        assert kept.n + rest.n == trend_dataset.n
        np.testing.assert_array_equal(kept.coords, trend_dataset.coords[[0, 2]])

    def test_diameter(self, trend_dataset):
        assert trend_dataset.diameter() == pytest.approx(np.hypot(8, 6))

    def test_samples_and_frame(self, trend_dataset):
        first = next(trend_dataset.samples())
        assert first.coords == (1.0, 2.0)
        assert first.values["z"] == pytest.approx(9.0)
        assert list(trend_dataset.to_frame().columns) == ["x", "y", "z"]


class TestFrames:
    def test_mismatched_crs(self, trend_dataset):
        grid = PredictionGrid([[5.0, 5.0]], crs="EPSG:4326")
        with pytest.raises(MalformedDataset):
            check_same_frame(trend_dataset, grid)

    def test_mismatched_dimension(self, trend_dataset):
        grid = PredictionGrid([[5.0, 5.0, 1.0]])
        with pytest.raises(MalformedDataset):
            trend_dataset.check_same_frame(grid)

    def test_reproject_to_utm_km(self):
        df = pd.DataFrame({"Longitude": [9.0], "Latitude": [45.0], "o3": [40.0]})
        out = reproject_dataframe(df)
        # 9°E is the central meridian of UTM zone 32N
        assert out.loc[0, "x"] == pytest.approx(500.0, abs=1e-6)
        assert 4980 < out.loc[0, "y"] < 4990

    def test_load_csv(self, tmp_path, field_frame):
        path = tmp_path / "stations.csv"
        field_frame.to_csv(path, index=False)
        dataset = load_csv(str(path), attributes=["o3"])
        assert dataset.n == 60
        np.testing.assert_allclose(dataset.values("o3"), field_frame["o3"])


class TestPredictionGrid:
    def test_regular_grid_is_x_fastest(self):
        grid = PredictionGrid.regular(0, 10, 0, 10, 5)
        assert grid.shape == (3, 3)
        np.testing.assert_allclose(grid.coords[:3, 0], [0, 5, 10])
        assert np.all(grid.coords[:3, 1] == 0)

    def test_regular_grid_shape(self):
        grid = PredictionGrid.regular(0, 10, 0, 4, 2)
        assert grid.shape == (3, 6)
        assert len(grid) == 18

    def test_invalid_step(self):
        with pytest.raises(ValueError):
            PredictionGrid.regular(0, 10, 0, 10, 0)

    def test_block_offsets_are_centred(self):
        offsets = block_offsets((2.0, 4.0), (2, 2))
        assert offsets.shape == (4, 2)
        np.testing.assert_allclose(offsets.mean(axis=0), 0.0, atol=1e-12)
        assert np.all(np.abs(offsets[:, 0]) <= 1.0)
        assert np.all(np.abs(offsets[:, 1]) <= 2.0)

    def test_with_blocks(self):
        grid = PredictionGrid.regular(0, 10, 0, 10, 5).with_blocks(2.0)
        assert len(grid.blocks) == len(grid)
        np.testing.assert_allclose(grid.blocks[4].mean(axis=0), grid.coords[4])


class TestPredictionResult:
    def test_to_frame_and_grid(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0]])
        result = PredictionResult(coords, np.array([1.0, np.nan]), np.array([0.1, np.nan]),
                                  np.array(["ok", "insufficient_neighbors"], dtype=object), shape=(1, 2))
        frame = result.to_frame()
        assert list(frame.columns) == ["location_id", "x", "y", "prediction", "variance", "status"]
        np.testing.assert_array_equal(result.missing, [False, True])
        assert result.as_grid().shape == (1, 2)
