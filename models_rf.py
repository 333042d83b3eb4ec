"""
Random Forest for Wine Quality (binary good/bad).
Bagged deviance trees: each tree sees a bootstrap resample of the training
set and considers mtry randomly drawn features at every split. Trees are
grown unpruned (mincut=1, minsize=2, mindev=0).
Trees are independent, so they are built through joblib; per-tree seeds are
drawn before dispatch, so the forest is the same for any n_jobs.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.utils import check_random_state

from config import FOREST_MTRY, FOREST_N_TREES, N_JOBS, RANDOM_SEED, default_mtry
from models_base import BaseClassifier, as_matrix
from models_dt import DecisionTreeClassifier, FittedTree, grow_tree, leaf_codes, leaf_proportions, tree_importance

logger = logging.getLogger(__name__)

# Growth parameters for forest members: grow until pure or single records.
MEMBER_MINCUT = 1
MEMBER_MINSIZE = 2
MEMBER_MINDEV = 0.0


@dataclass(frozen=True, eq=False)
class FittedForest:
    trees: List[FittedTree]
    in_bag: np.ndarray  # (n_trees, n_train) bootstrap draw counts
    feature_names: Tuple[str, ...]
    mtry: int
    oob_error: float


def _grow_member(X, y, mtry, seed):
    """Bootstrap resample, then grow one unpruned tree. Picklable for joblib."""
    rng = check_random_state(seed)
    n = len(y)
    sample = rng.randint(0, n, size=n)
    root = grow_tree(
        X[sample], y[sample],
        mincut=MEMBER_MINCUT, minsize=MEMBER_MINSIZE, mindev=MEMBER_MINDEV,
        mtry=mtry, random_state=rng,
    )
    return root, np.bincount(sample, minlength=n)


class RandomForestClassifier(BaseClassifier):
    """n_trees bagged trees with mtry features per split."""

    name = "forest"

    def __init__(self, n_trees=FOREST_N_TREES, mtry=FOREST_MTRY, random_state=RANDOM_SEED, n_jobs=N_JOBS):
        if n_trees < 1:
            raise ValueError(f"n_trees must be >= 1, got {n_trees}")
        if mtry is not None and mtry < 1:
            raise ValueError(f"mtry must be >= 1, got {mtry}")
        self.n_trees = n_trees
        self.mtry = mtry
        self.random_state = random_state
        self.n_jobs = n_jobs

    def fit(self, train):
        n_features = train.n_features
        mtry = default_mtry(n_features) if self.mtry is None else min(self.mtry, n_features)
        seeds = check_random_state(self.random_state).randint(np.iinfo(np.int32).max, size=self.n_trees)

        t0 = time.perf_counter()
        grown = Parallel(n_jobs=self.n_jobs)(
            delayed(_grow_member)(train.X, train.y, mtry, int(seed)) for seed in seeds
        )
        member = DecisionTreeClassifier(MEMBER_MINCUT, MEMBER_MINSIZE, MEMBER_MINDEV)
        trees = [FittedTree(root=root, feature_names=train.feature_names, classifier=member) for root, _ in grown]
        in_bag = np.vstack([counts for _, counts in grown])
        oob_error = _oob_error(trees, in_bag, train)
        logger.info("Grew %d trees (mtry=%d) in %.2fs, OOB error %.4f",
                    self.n_trees, mtry, time.perf_counter() - t0, oob_error)
        return FittedForest(trees=trees, in_bag=in_bag, feature_names=train.feature_names,
                            mtry=mtry, oob_error=oob_error)

    def predict_score(self, fitted, X):
        X = as_matrix(X)
        return np.mean([leaf_proportions(tree.root, X) for tree in fitted.trees], axis=0)

    def predict_code(self, fitted, X):
        X = as_matrix(X)
        good_votes = np.sum([leaf_codes(tree.root, X) for tree in fitted.trees], axis=0)
        return (2 * good_votes >= len(fitted.trees)).astype(np.int8)


def _oob_error(trees, in_bag, train):
    """Majority vote per record over the trees that did not draw it; NaN if no record is ever out of bag."""
    good_votes = np.zeros(len(train), dtype=np.int64)
    n_votes = np.zeros(len(train), dtype=np.int64)
    for tree, counts in zip(trees, in_bag):
        oob = np.flatnonzero(counts == 0)
        if len(oob) == 0:
            continue
        good_votes[oob] += leaf_codes(tree.root, train.X[oob])
        n_votes[oob] += 1
    voted = n_votes > 0
    if not voted.any():
        return float("nan")
    predicted = (2 * good_votes[voted] >= n_votes[voted]).astype(np.int8)
    return float(np.mean(predicted != train.y[voted]))


def feature_importance(fitted):
    """
    Total deviance reduction per feature across all splits of all trees,
    normalized to sum to 1. Returns a Series sorted from most to least important.
    """
    n_features = len(fitted.feature_names)
    total = np.zeros(n_features, dtype=np.float64)
    for tree in fitted.trees:
        total += tree_importance(tree.root, n_features)
    if total.sum() > 0:
        total = total / total.sum()
    importance = pd.Series(total, index=list(fitted.feature_names), name="importance")
    return importance.sort_values(ascending=False, kind="stable")
