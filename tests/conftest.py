import numpy as np
import pandas as pd
import pytest

from preprocessing import Dataset


def make_separable(n=100, n_noise=0, seed=0):
    """feature_0 decides the label (good iff > 0), with a gap around 0; feature_1 and noise columns are irrelevant."""
    rng = np.random.RandomState(seed)
    sign = np.where(rng.rand(n) < 0.5, -1.0, 1.0)
    f0 = sign * rng.uniform(0.5, 2.0, size=n)
    cols = [f0, rng.normal(size=n)] + [rng.normal(size=n) for _ in range(n_noise)]
    X = np.column_stack(cols)
    y = (f0 > 0).astype(int)
    return Dataset.from_arrays(X, y)


def make_noisy(n=300, n_noise=8, flip=0.1, seed=0):
    """Oblique boundary on feature_0 + feature_1, label noise, and label-independent noise columns."""
    rng = np.random.RandomState(seed)
    X = rng.normal(size=(n, 2 + n_noise))
    y = (X[:, 0] + X[:, 1] > 0).astype(int)
    flips = rng.rand(n) < flip
    y[flips] = 1 - y[flips]
    return Dataset.from_arrays(X, y)


def make_wine_frame(n=240, seed=0):
    """Wine-like table: a few chemistry columns plus a 3-9 quality score driven by alcohol."""
    rng = np.random.RandomState(seed)
    alcohol = rng.normal(10.5, 1.2, size=n)
    acidity = rng.normal(7.0, 0.8, size=n)
    sugar = rng.gamma(2.0, 3.0, size=n)
    density = 1.0 - 0.001 * alcohol + rng.normal(0, 0.001, size=n)
    quality = np.clip(np.round(6 + 1.2 * (alcohol - 10.5) + rng.normal(0, 0.6, size=n)), 3, 9).astype(int)
    return pd.DataFrame({
        "fixed acidity": acidity,
        "residual sugar": sugar,
        "density": density,
        "alcohol": alcohol,
        "quality": quality,
    })


@pytest.fixture
def separable():
    return make_separable()


@pytest.fixture
def wine_frame():
    return make_wine_frame()
