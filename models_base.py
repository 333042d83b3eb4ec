"""
Common interface for the three classifier families.
A classifier holds hyperparameters only; fit() returns a separate fitted model,
and prediction takes that fitted model back. Adding a family means
implementing these three methods; evaluation.evaluate() handles the rest.
"""

from abc import ABC, abstractmethod

import numpy as np

from preprocessing import decode_labels


class BaseClassifier(ABC):
    """fit / predict_label / predict_score over a preprocessing.Dataset."""

    name = "classifier"

    @abstractmethod
    def fit(self, train):
        """Return a fitted model for the labeled training Dataset."""

    @abstractmethod
    def predict_score(self, fitted, X):
        """Return P(good) in [0, 1] for each row of X."""

    def predict_code(self, fitted, X):
        """1 = good / 0 = bad per row; ties at 0.5 go to good."""
        return (self.predict_score(fitted, X) >= 0.5).astype(np.int8)

    def predict_label(self, fitted, X):
        """Return 'good'/'bad' for each row of X."""
        return decode_labels(self.predict_code(fitted, X))

    def get_params(self):
        return dict(vars(self))

    def describe(self):
        params = ", ".join(f"{k}={v}" for k, v in self.get_params().items())
        return f"{self.name}({params})"

    def __repr__(self):
        return self.describe()


def as_matrix(X):
    """Accept a Dataset or a 2-D array; return a float64 matrix."""
    if hasattr(X, "feature_names"):
        X = X.X
    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    return X
