import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from hydrokrige import SpatialDataset, VariogramModel

# ten stations, point-symmetric about (5, 5)
TREND_COORDS = np.array([
    [1.0, 2.0], [9.0, 8.0],
    [2.0, 7.0], [8.0, 3.0],
    [3.0, 4.0], [7.0, 6.0],
    [4.0, 9.0], [6.0, 1.0],
    [0.0, 5.0], [10.0, 5.0],
])


def linear_trend(coords):
    coords = np.atleast_2d(coords)
    return 1.0 + 2.0 * coords[:, 0] + 3.0 * coords[:, 1]


@pytest.fixture
def trend_dataset():
    return SpatialDataset(TREND_COORDS, {"z": linear_trend(TREND_COORDS)})


@pytest.fixture
def field_frame():
    rng = np.random.default_rng(42)
    x = rng.uniform(0, 100, 60)
    y = rng.uniform(0, 100, 60)
    o3 = 10 + 3 * np.sin(x / 15) + 2 * np.cos(y / 20) + rng.normal(0, 0.1, 60)
    return pd.DataFrame({"x": x, "y": y, "o3": o3})


@pytest.fixture
def field_dataset(field_frame):
    return SpatialDataset.from_dataframe(field_frame, attributes=["o3"])


@pytest.fixture
def exp_model():
    return VariogramModel("exponential", nugget=0.0, psill=5.0, range=20.0)
