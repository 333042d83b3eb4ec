"""
k-Nearest Neighbors for Wine Quality (binary good/bad).
Lazy model: fitting only stores the training set; every query computes its
distance to all training records, O(|train| x n_features) per query. That
cost is the main thing k-NN trades for having no fit step.
Scaled features are required, otherwise the largest-range column dominates.
Ties: neighbours at equal distance keep training order; a split vote goes to good.
"""

import logging
from dataclasses import dataclass

import numpy as np
from sklearn.metrics import pairwise_distances

from config import KNN_K, KNN_METRIC
from exceptions import InvalidKError
from models_base import BaseClassifier, as_matrix
from preprocessing import Dataset

logger = logging.getLogger(__name__)

METRIC_OPTIONS = ["euclidean", "manhattan"]  # L2, L1
# Direct per-coordinate differences; sklearn's "euclidean" uses the dot-product
# expansion, which can split exact distance ties.
_DISTANCE_KWARGS = {
    "euclidean": {"metric": "minkowski", "p": 2},
    "manhattan": {"metric": "manhattan"},
}
BATCH_SIZE = 1024  # query rows per distance block


@dataclass(frozen=True, eq=False)
class FittedKNN:
    train: Dataset
    k: int


class KNNClassifier(BaseClassifier):
    """Uniform-weight majority vote among the k nearest training records."""

    name = "knn"

    def __init__(self, k=KNN_K, metric=KNN_METRIC):
        if metric not in METRIC_OPTIONS:
            raise ValueError(f"metric must be one of {METRIC_OPTIONS}, got {metric!r}")
        if k < 1:
            raise InvalidKError("k must be at least 1", k=k)
        self.k = k
        self.metric = metric

    def _check_k(self, n_train):
        if self.k < 1 or self.k > n_train:
            raise InvalidKError("k must be between 1 and the training size", k=self.k, n_train=n_train)

    def fit(self, train):
        self._check_k(len(train))
        return FittedKNN(train=train, k=self.k)

    def neighbors(self, fitted, X):
        """Training positions of the k nearest records per query row, nearest first."""
        X = as_matrix(X)
        train = fitted.train
        self._check_k(len(train))
        out = np.empty((len(X), fitted.k), dtype=np.intp)
        for start in range(0, len(X), BATCH_SIZE):
            block = X[start:start + BATCH_SIZE]
            dist = pairwise_distances(block, train.X, **_DISTANCE_KWARGS[self.metric])
            order = np.argsort(dist, axis=1, kind="stable")
            out[start:start + BATCH_SIZE] = order[:, :fitted.k]
        return out

    def predict_score(self, fitted, X):
        idx = self.neighbors(fitted, X)
        return fitted.train.y[idx].mean(axis=1)

    def predict_code(self, fitted, X):
        idx = self.neighbors(fitted, X)
        good_votes = fitted.train.y[idx].sum(axis=1)
        return (2 * good_votes >= fitted.k).astype(np.int8)
