"""
Evaluation utilities for the Wine Quality harness (binary good/bad).
Metrics: accuracy, error rate, ROC AUC; confusion matrix indexed
(predicted, true). Results are collected in an append-only ResultsTable.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import auc, confusion_matrix, roc_curve

from exceptions import DegenerateLabelsError, DuplicateModelError
from preprocessing import LABELS, encode_labels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfusionMatrix:
    """2x2 counts; rows = predicted (good, bad), columns = true (good, bad)."""
    counts: tuple

    @classmethod
    def from_labels(cls, y_true, y_pred):
        # sklearn puts true labels on rows; transpose to (predicted, true)
        cm = confusion_matrix(encode_labels(y_true), encode_labels(y_pred), labels=[1, 0]).T
        return cls(counts=tuple(tuple(int(v) for v in row) for row in cm))

    @property
    def array(self):
        return np.array(self.counts)

    @property
    def total(self):
        return int(self.array.sum())

    @property
    def correct(self):
        return int(np.trace(self.array))

    @property
    def accuracy(self):
        return self.correct / self.total

    def to_frame(self):
        return pd.DataFrame(
            self.array,
            index=[f"pred_{label}" for label in LABELS],
            columns=[f"true_{label}" for label in LABELS],
        )

    def __str__(self):
        return self.to_frame().to_string()


@dataclass(frozen=True)
class EvaluationRecord:
    model_id: str
    accuracy: float
    error_rate: float
    auc: float
    confusion: Optional[ConfusionMatrix] = None

    def as_row(self):
        return {"accuracy": self.accuracy, "error_rate": self.error_rate, "auc": self.auc}


class ResultsTable:
    """One row per evaluated model; rows are appended, never overwritten."""

    COLUMNS = ["accuracy", "error_rate", "auc"]

    def __init__(self):
        self._records: List[EvaluationRecord] = []

    def append(self, record):
        if any(r.model_id == record.model_id for r in self._records):
            raise DuplicateModelError("Results already hold this model", model_id=record.model_id)
        self._records.append(record)
        return record

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, model_id):
        for record in self._records:
            if record.model_id == model_id:
                return record
        raise KeyError(model_id)

    def to_frame(self):
        rows = [r.as_row() for r in self._records]
        df = pd.DataFrame(rows, index=[r.model_id for r in self._records])
        if df.empty:
            df = pd.DataFrame(columns=self.COLUMNS)
        df.index.name = "model"
        return df[self.COLUMNS]

    def best(self, metric="auc"):
        df = self.to_frame()
        if metric == "error_rate":
            return df[metric].idxmin()
        return df[metric].idxmax()


def _check_two_classes(y_true):
    present = np.unique(y_true)
    if len(present) < 2:
        raise DegenerateLabelsError("ROC AUC is undefined for a single label class",
                                    classes=[LABELS[0] if c == 1 else LABELS[1] for c in present])


def roc_points(scores, true_labels):
    """
    ROC curve swept from the highest score down, one point per distinct score,
    with (0, 0) and (1, 1) as endpoints. Returns DataFrame (threshold, fpr, tpr).
    """
    y_true = encode_labels(true_labels)
    _check_two_classes(y_true)
    fpr, tpr, thresholds = roc_curve(y_true, np.asarray(scores, dtype=np.float64), pos_label=1,
                                     drop_intermediate=False)
    return pd.DataFrame({"threshold": thresholds, "fpr": fpr, "tpr": tpr})


def roc_auc(scores, true_labels):
    """
    Trapezoid-rule area under the ROC curve. Anti-correlated scores give
    values below 0.5, which are valid results rather than errors.
    """
    curve = roc_points(scores, true_labels)
    return float(auc(curve["fpr"], curve["tpr"]))


def evaluate(classifier, fitted, test_set, model_id=None):
    """Predict every test record, build the confusion matrix, and score it."""
    model_id = model_id or classifier.name
    y_pred = classifier.predict_code(fitted, test_set.X)
    scores = classifier.predict_score(fitted, test_set.X)
    cm = ConfusionMatrix.from_labels(test_set.y, y_pred)
    accuracy = cm.accuracy
    record = EvaluationRecord(
        model_id=model_id,
        accuracy=accuracy,
        error_rate=1.0 - accuracy,
        auc=roc_auc(scores, test_set.y),
        confusion=cm,
    )
    logger.info("%s: accuracy=%.4f error_rate=%.4f auc=%.4f", model_id, record.accuracy, record.error_rate, record.auc)
    return record
