"""
Preprocessing for the Wine Quality harness.
Binarize the quality score into good/bad, select predictors by name,
standardize features, and split into train/test.

Scaling statistics can come from the full table (what the original notebook
did) or from the training split only; see HarnessConfig.scale_on_full_data.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple

import numpy as np
from sklearn.model_selection import train_test_split
from sklearn.preprocessing import StandardScaler

from config import TARGET_COLUMN
from data_loading import get_target_and_features
from exceptions import DegenerateColumnError, InsufficientDataError, UnknownFeatureError

logger = logging.getLogger(__name__)

GOOD = "good"
BAD = "bad"
LABELS = (GOOD, BAD)


def decode_labels(y):
    """1/0 codes -> array of 'good'/'bad'."""
    return np.where(np.asarray(y) == 1, GOOD, BAD)


def encode_labels(labels):
    """'good'/'bad' (or already 1/0) -> int8 array, 1 = good."""
    arr = np.asarray(labels)
    if arr.dtype.kind in "iubf":
        unknown = np.setdiff1d(arr, [0, 1])
        if unknown.size:
            raise ValueError(f"label codes must be 0 or 1, got {unknown.tolist()}")
        return arr.astype(np.int8)
    unknown = np.setdiff1d(arr.astype(str), LABELS)
    if unknown.size:
        raise ValueError(f"labels must be one of {LABELS}, got {unknown.tolist()}")
    return (arr == GOOD).astype(np.int8)


@dataclass(frozen=True, eq=False)
class Dataset:
    """
    Ordered records sharing one feature schema.

    X: float64 (n, p) feature matrix
    y: int8 labels, 1 = good, 0 = bad (None before binarization)
    feature_names: column names, X[:, i] is feature_names[i]
    row_ids: position of each record in the source table (row identity)
    """
    X: np.ndarray
    y: Optional[np.ndarray]
    feature_names: Tuple[str, ...]
    row_ids: np.ndarray

    def __post_init__(self):
        if len(self.X) == 0:
            raise InsufficientDataError("Dataset must not be empty")
        if self.X.ndim != 2 or self.X.shape[1] != len(self.feature_names):
            raise ValueError(
                f"Feature matrix shape {self.X.shape} does not match schema of {len(self.feature_names)} features"
            )
        if self.y is not None and len(self.y) != len(self.X):
            raise ValueError(f"{len(self.y)} labels for {len(self.X)} records")
        if len(self.row_ids) != len(self.X):
            raise ValueError(f"{len(self.row_ids)} row ids for {len(self.X)} records")

    def __len__(self):
        return len(self.X)

    @property
    def n_features(self):
        return len(self.feature_names)

    @property
    def labels(self):
        """Labels as 'good'/'bad' strings."""
        return decode_labels(self.y)

    def feature_index(self, name):
        try:
            return self.feature_names.index(name)
        except ValueError:
            raise UnknownFeatureError("Unknown feature", feature=name, schema=list(self.feature_names)) from None

    def subset(self, indices):
        """New Dataset with the records at the given positions (row ids preserved)."""
        indices = np.asarray(indices, dtype=np.intp)
        return Dataset(
            X=self.X[indices],
            y=None if self.y is None else self.y[indices],
            feature_names=self.feature_names,
            row_ids=self.row_ids[indices],
        )

    @classmethod
    def from_arrays(cls, X, y=None, feature_names=None):
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if feature_names is None:
            feature_names = [f"feature_{i}" for i in range(X.shape[1])]
        return cls(
            X=X,
            y=None if y is None else encode_labels(y),
            feature_names=tuple(feature_names),
            row_ids=np.arange(len(X)),
        )


class Split(NamedTuple):
    train: Dataset
    test: Dataset


def binarize_label(df, threshold, score_column=TARGET_COLUMN):
    """
    Build a labeled Dataset from a numeric table.
    score_column > threshold -> good, else bad. The score column is dropped
    from the feature schema; every other numeric column becomes a feature.
    """
    if score_column not in df.columns:
        raise UnknownFeatureError("Score column not in table", feature=score_column, schema=list(df.columns))
    features, score = get_target_and_features(df, target_column=score_column)
    features = features.select_dtypes(include=[np.number])
    y = (score.to_numpy() > threshold).astype(np.int8)
    logger.debug("Binarized %s > %s: %d good / %d bad", score_column, threshold, int(y.sum()), int(len(y) - y.sum()))
    return Dataset(
        X=features.to_numpy(dtype=np.float64),
        y=y,
        feature_names=tuple(str(c) for c in features.columns),
        row_ids=np.arange(len(df)),
    )


def select_features(dataset, keep=None, drop=None):
    """
    Keep or drop predictors by name. Order of the remaining schema follows
    `keep` when given, otherwise the dataset's own order.
    """
    if keep is not None:
        names = list(keep)
    else:
        names = list(dataset.feature_names)
    drop = set(drop or ())
    for name in list(names) + sorted(drop):
        dataset.feature_index(name)
    names = [n for n in names if n not in drop]
    idx = [dataset.feature_index(n) for n in names]
    return Dataset(
        X=dataset.X[:, idx],
        y=dataset.y,
        feature_names=tuple(names),
        row_ids=dataset.row_ids,
    )


def fit_scaler(dataset):
    """
    Fit a StandardScaler (population std, ddof=0) on the dataset's features.
    Raises DegenerateColumnError for a zero-variance column.
    """
    scaler = StandardScaler()
    scaler.fit(dataset.X)
    degenerate = [name for name, var in zip(dataset.feature_names, scaler.var_) if var == 0]
    if degenerate:
        raise DegenerateColumnError("Zero standard deviation, cannot scale", columns=degenerate)
    return scaler


def scale_features(dataset, scaler=None):
    """
    Standardize every feature column. With no scaler, statistics come from
    this dataset itself; pass a scaler fitted on train to transform test.
    """
    if scaler is None:
        scaler = fit_scaler(dataset)
    return Dataset(
        X=scaler.transform(dataset.X),
        y=dataset.y,
        feature_names=dataset.feature_names,
        row_ids=dataset.row_ids,
    )


def _resolve_test_count(n, test_size):
    if isinstance(test_size, (float, np.floating)):
        if 0 < test_size < 1:
            return int(np.ceil(round(test_size * n, 9)))
        raise ValueError(f"test_size must be a count or a fraction in (0, 1), got {test_size!r}")
    return int(test_size)


def split(dataset, test_size, seed):
    """
    Draw test_size records uniformly without replacement; the rest is train.
    Same (dataset, test_size, seed) always gives the same assignment.
    """
    n = len(dataset)
    n_test = _resolve_test_count(n, test_size)
    if n_test >= n:
        raise InsufficientDataError("Test split must leave at least one training record",
                                    test_size=test_size, n_records=n, seed=seed)
    if n_test < 1:
        raise InsufficientDataError("Test split must hold at least one record",
                                    test_size=test_size, n_records=n, seed=seed)
    train_idx, test_idx = train_test_split(
        np.arange(n), test_size=n_test, random_state=seed, shuffle=True
    )
    train_idx = np.sort(train_idx)
    test_idx = np.sort(test_idx)
    logger.debug("Split %d records: %d train / %d test (seed=%s)", n, len(train_idx), len(test_idx), seed)
    return Split(train=dataset.subset(train_idx), test=dataset.subset(test_idx))


def prepare_split(df, config):
    """
    Single entry point used by the harness: binarize, drop named predictors,
    split, and scale. Returns (Split, scaler).
    """
    dataset = binarize_label(df, config.label_threshold, config.score_column)
    if config.drop_features:
        dataset = select_features(dataset, drop=config.drop_features)

    if config.scale_on_full_data:
        scaler = fit_scaler(dataset)
        dataset = scale_features(dataset, scaler)
        train, test = split(dataset, config.test_size, config.split_seed)
        return Split(train, test), scaler

    train, test = split(dataset, config.test_size, config.split_seed)
    scaler = fit_scaler(train)
    return Split(scale_features(train, scaler), scale_features(test, scaler)), scaler
