"""
Decision Tree for Wine Quality (binary good/bad).
Split criterion: deviance, -2 * sum_k n_k log(n_k / n), used for growth,
the mindev stopping rule, and variable importance alike.
Growth is greedy and top-down; stopping is controlled by mincut (smallest
child), minsize (smallest node that may be split) and mindev (smallest
deviance reduction, relative to the root).
Pruning: weakest-link cost-complexity path for candidate sizes, exact-size
pruning by minimum training misclassification, and k-fold CV to choose the size.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import KFold
from sklearn.utils import check_random_state

from config import CV_FOLDS, RANDOM_SEED, TREE_MINCUT, TREE_MINDEV, TREE_MINSIZE
from exceptions import InsufficientDataError, InvalidTargetSizeError
from models_base import BaseClassifier, as_matrix
from preprocessing import Dataset

logger = logging.getLogger(__name__)


def node_deviance(n_good, n):
    """Binary deviance of node(s) holding n_good good records out of n. Vectorized."""
    n_good = np.asarray(n_good, dtype=np.float64)
    n = np.asarray(n, dtype=np.float64)
    n_bad = n - n_good
    with np.errstate(divide="ignore", invalid="ignore"):
        term_good = np.where(n_good > 0, n_good * np.log(n_good / n), 0.0)
        term_bad = np.where(n_bad > 0, n_bad * np.log(n_bad / n), 0.0)
    return -2.0 * (term_good + term_bad)


@dataclass(frozen=True, eq=False)
class TreeNode:
    """Leaf when left/right are None; otherwise x[feature] <= threshold goes left."""
    n: int
    n_good: int
    deviance: float
    feature: Optional[int] = None
    threshold: Optional[float] = None
    gain: float = 0.0
    left: Optional["TreeNode"] = None
    right: Optional["TreeNode"] = None

    @property
    def is_leaf(self):
        return self.left is None

    @property
    def proportion(self):
        """Share of good records; the leaf score."""
        return self.n_good / self.n

    @property
    def label_code(self):
        # Majority label, ties go to good.
        return 1 if 2 * self.n_good >= self.n else 0

    @property
    def errors(self):
        """Training records misclassified if this node were a leaf."""
        return self.n - self.n_good if self.label_code == 1 else self.n_good

    def as_leaf(self):
        return dataclasses.replace(self, feature=None, threshold=None, gain=0.0, left=None, right=None)


def iter_nodes(node):
    """Pre-order traversal."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if not current.is_leaf:
            stack.append(current.right)
            stack.append(current.left)


def iter_leaves(node):
    return (n for n in iter_nodes(node) if n.is_leaf)


def count_leaves(node):
    return sum(1 for _ in iter_leaves(node))


def leaf_errors(node):
    return sum(leaf.errors for leaf in iter_leaves(node))


def _best_split(X, y, features, mincut):
    """
    Best (gain, feature, threshold) over the given features, or None.
    Thresholds are midpoints between consecutive distinct sorted values; the
    first maximum in (feature index, threshold ascending) order wins.
    """
    n = len(y)
    total_good = int(y.sum())
    parent_dev = float(node_deviance(total_good, n))
    left_n = np.arange(1, n)
    right_n = n - left_n
    size_ok = (left_n >= mincut) & (right_n >= mincut)
    if not size_ok.any():
        return None

    best = None
    for j in sorted(features):
        order = np.argsort(X[:, j], kind="stable")
        xs = X[order, j]
        ys = y[order]
        valid = size_ok & (xs[:-1] < xs[1:])
        if not valid.any():
            continue
        left_good = np.cumsum(ys)[:-1]
        child_dev = node_deviance(left_good, left_n) + node_deviance(total_good - left_good, right_n)
        gains = np.where(valid, parent_dev - child_dev, -np.inf)
        i = int(np.argmax(gains))
        if best is None or gains[i] > best[0]:
            threshold = (xs[i] + xs[i + 1]) / 2.0
            if threshold >= xs[i + 1]:
                threshold = xs[i]
            best = (float(gains[i]), int(j), float(threshold))
    return best


def grow_tree(X, y, mincut=TREE_MINCUT, minsize=TREE_MINSIZE, mindev=TREE_MINDEV, mtry=None, random_state=None):
    """
    Grow a tree on feature matrix X and 1/0 labels y; return the root TreeNode.
    With mtry set, each split considers mtry features drawn without
    replacement (random forest); otherwise every feature is considered.
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.int64)
    n_features = X.shape[1]
    rng = check_random_state(random_state) if mtry is not None else None
    root_dev = float(node_deviance(int(y.sum()), len(y)))
    min_gain = mindev * root_dev

    def grow(idx):
        ys = y[idx]
        n = len(idx)
        n_good = int(ys.sum())
        node = TreeNode(n=n, n_good=n_good, deviance=float(node_deviance(n_good, n)))
        if n < minsize or n_good == 0 or n_good == n:
            return node
        if mtry is None or mtry >= n_features:
            features = range(n_features)
        else:
            features = rng.choice(n_features, size=mtry, replace=False)
        best = _best_split(X[idx], ys, features, mincut)
        if best is None:
            return node
        gain, feature, threshold = best
        if gain <= 0 or gain < min_gain:
            return node
        goes_left = X[idx, feature] <= threshold
        return dataclasses.replace(
            node,
            feature=feature,
            threshold=threshold,
            gain=gain,
            left=grow(idx[goes_left]),
            right=grow(idx[~goes_left]),
        )

    return grow(np.arange(len(y)))


def leaf_proportions(root, X):
    """Leaf share of good records for every row of X."""
    out = np.empty(len(X), dtype=np.float64)
    stack = [(root, np.arange(len(X)))]
    while stack:
        node, idx = stack.pop()
        if len(idx) == 0:
            continue
        if node.is_leaf:
            out[idx] = node.proportion
            continue
        goes_left = X[idx, node.feature] <= node.threshold
        stack.append((node.left, idx[goes_left]))
        stack.append((node.right, idx[~goes_left]))
    return out


def leaf_codes(root, X):
    """Leaf majority label (1/0) for every row of X."""
    out = np.empty(len(X), dtype=np.int8)
    stack = [(root, np.arange(len(X)))]
    while stack:
        node, idx = stack.pop()
        if len(idx) == 0:
            continue
        if node.is_leaf:
            out[idx] = node.label_code
            continue
        goes_left = X[idx, node.feature] <= node.threshold
        stack.append((node.left, idx[goes_left]))
        stack.append((node.right, idx[~goes_left]))
    return out


def tree_importance(root, n_features):
    """Deviance reduction summed per feature over the tree's splits (unnormalized)."""
    out = np.zeros(n_features, dtype=np.float64)
    for node in iter_nodes(root):
        if not node.is_leaf:
            out[node.feature] += node.gain
    return out


@dataclass(frozen=True, eq=False)
class FittedTree:
    """A grown (or pruned) tree. `train` is kept so the tree can be cross-validated; forest members drop it."""
    root: TreeNode
    feature_names: Tuple[str, ...]
    classifier: "DecisionTreeClassifier"
    train: Optional[Dataset] = None

    @property
    def n_leaves(self):
        return count_leaves(self.root)

    @property
    def training_misclassification(self):
        return leaf_errors(self.root)

    def with_root(self, root):
        return dataclasses.replace(self, root=root)


class DecisionTreeClassifier(BaseClassifier):
    """Deviance tree with mincut / minsize / mindev stopping."""

    name = "tree"

    def __init__(self, mincut=TREE_MINCUT, minsize=TREE_MINSIZE, mindev=TREE_MINDEV):
        if mincut < 1:
            raise ValueError(f"mincut must be >= 1, got {mincut}")
        if minsize < 1:
            raise ValueError(f"minsize must be >= 1, got {minsize}")
        if mindev < 0:
            raise ValueError(f"mindev must be >= 0, got {mindev}")
        self.mincut = mincut
        self.minsize = minsize
        self.mindev = mindev

    def fit(self, train):
        root = grow_tree(train.X, train.y, self.mincut, self.minsize, self.mindev)
        fitted = FittedTree(root=root, feature_names=train.feature_names, classifier=self, train=train)
        logger.debug("Grew tree on %d records: %d leaves", len(train), fitted.n_leaves)
        return fitted

    def predict_score(self, fitted, X):
        return leaf_proportions(fitted.root, as_matrix(X))

    def predict_code(self, fitted, X):
        return leaf_codes(fitted.root, as_matrix(X))


def summarize_tree(fitted):
    """Leaves, predictors used, residual mean deviance, and training error rate."""
    root = fitted.root
    leaves = list(iter_leaves(root))
    used = sorted({node.feature for node in iter_nodes(root) if not node.is_leaf})
    residual_dev = sum(leaf.deviance for leaf in leaves)
    dof = root.n - len(leaves)
    return {
        "n_leaves": len(leaves),
        "features_used": [fitted.feature_names[i] for i in used],
        "residual_mean_deviance": residual_dev / dof if dof > 0 else 0.0,
        "misclassification_rate": leaf_errors(root) / root.n,
        "n_records": root.n,
    }


# ----- Pruning -----

def _replace_node(node, target, replacement):
    """Copy of the tree rooted at node with `target` (by identity) swapped for `replacement`."""
    if node is target:
        return replacement
    if node.is_leaf:
        return node
    left = _replace_node(node.left, target, replacement)
    right = _replace_node(node.right, target, replacement)
    if left is node.left and right is node.right:
        return node
    return dataclasses.replace(node, left=left, right=right)


def _weakest_link(root):
    """(alpha, node) minimizing (R(t) - R(T_t)) / (|T_t| - 1); first in pre-order on ties."""
    stats = {}

    def collect(node):
        if node.is_leaf:
            stats[id(node)] = (1, node.errors)
            return stats[id(node)]
        l_leaves, l_err = collect(node.left)
        r_leaves, r_err = collect(node.right)
        stats[id(node)] = (l_leaves + r_leaves, l_err + r_err)
        return stats[id(node)]

    collect(root)
    best = None
    for node in iter_nodes(root):
        if node.is_leaf:
            continue
        leaves, subtree_err = stats[id(node)]
        alpha = (node.errors - subtree_err) / (leaves - 1)
        if best is None or alpha < best[0]:
            best = (alpha, node)
    return best


def cost_complexity_path(fitted):
    """
    Weakest-link pruning sequence from the full tree down to the root leaf.
    Returns a DataFrame (leaves, alpha, misclass), leaves strictly decreasing.
    """
    root = fitted.root
    rows = [{"leaves": count_leaves(root), "alpha": 0.0, "misclass": leaf_errors(root)}]
    while not root.is_leaf:
        alpha, node = _weakest_link(root)
        root = _replace_node(root, node, node.as_leaf())
        rows.append({"leaves": count_leaves(root), "alpha": float(alpha), "misclass": leaf_errors(root)})
    return pd.DataFrame(rows, columns=["leaves", "alpha", "misclass"])


class _SubtreeTable:
    """
    For every node and every leaf count m, the subtree with exactly m leaves
    and the fewest training misclassifications. Ties keep the collapse, then
    the smallest left-subtree size.
    """

    def __init__(self, root):
        self.root = root
        self.tables = {}
        self._build(root)

    def _build(self, node):
        table = {1: (node.errors, None)}
        if not node.is_leaf:
            left = self._build(node.left)
            right = self._build(node.right)
            for a in sorted(left):
                for b in sorted(right):
                    m = a + b
                    err = left[a][0] + right[b][0]
                    if m not in table or err < table[m][0]:
                        table[m] = (err, (a, b))
        self.tables[id(node)] = table
        return table

    @property
    def max_leaves(self):
        return max(self.tables[id(self.root)])

    def errors(self, m):
        return self.tables[id(self.root)][m][0]

    def subtree(self, m):
        return self._rebuild(self.root, m)

    def _rebuild(self, node, m):
        _, choice = self.tables[id(node)][m]
        if choice is None:
            return node if node.is_leaf else node.as_leaf()
        a, b = choice
        return dataclasses.replace(node, left=self._rebuild(node.left, a), right=self._rebuild(node.right, b))


def prune_to_size(fitted, target_leaf_count):
    """
    Collapse subtrees until exactly target_leaf_count leaves remain, choosing
    the collapses that add the least training misclassification.
    """
    n_leaves = fitted.n_leaves
    if target_leaf_count < 1 or target_leaf_count > n_leaves:
        raise InvalidTargetSizeError(
            "Pruning target must be between 1 and the current leaf count",
            target_leaf_count=target_leaf_count,
            n_leaves=n_leaves,
        )
    if target_leaf_count == n_leaves:
        return fitted
    return fitted.with_root(_SubtreeTable(fitted.root).subtree(target_leaf_count))


def _fold_misclassification(classifier, train, train_idx, held_out_idx, sizes):
    """Held-out misclassification per candidate size for one CV fold. Picklable for joblib."""
    fold_tree = classifier.fit(train.subset(train_idx))
    held_out = train.subset(held_out_idx)
    table = _SubtreeTable(fold_tree.root)
    counts = []
    for size in sizes:
        root = table.subtree(min(size, table.max_leaves))
        counts.append(int(np.sum(leaf_codes(root, held_out.X) != held_out.y)))
    return counts


def cv_prune_curve(fitted, k_folds=CV_FOLDS, seed=RANDOM_SEED, n_jobs=1):
    """
    k-fold CV over the tree's own training set. Each fold grows a tree with
    the same parameters on the other folds, prunes it to every candidate size
    of the full tree's cost-complexity path (or keeps it whole when smaller),
    and counts errors on the held-out fold.
    Returns a DataFrame (leaves, cv_misclass) summed over folds.
    """
    train = fitted.train
    if train is None:
        raise ValueError("Tree was fitted without its training data; cannot cross-validate")
    if k_folds < 2 or k_folds > len(train):
        raise InsufficientDataError("k_folds must be between 2 and the training size",
                                    k_folds=k_folds, n_records=len(train))
    sizes = cost_complexity_path(fitted)["leaves"].tolist()
    folds = KFold(n_splits=k_folds, shuffle=True, random_state=seed)
    per_fold = Parallel(n_jobs=n_jobs)(
        delayed(_fold_misclassification)(fitted.classifier, train, tr, va, sizes)
        for tr, va in folds.split(train.X)
    )
    totals = np.sum(np.asarray(per_fold), axis=0)
    return pd.DataFrame({"leaves": sizes, "cv_misclass": totals.astype(int)})


def best_leaf_count(curve):
    """Leaf count with the fewest CV misclassifications; ties go to the smaller tree."""
    best_err = curve["cv_misclass"].min()
    return int(curve.loc[curve["cv_misclass"] == best_err, "leaves"].min())


def cross_validate_prune(fitted, k_folds=CV_FOLDS, seed=RANDOM_SEED, n_jobs=1):
    """Optimal leaf count for the tree by k-fold cross-validated misclassification."""
    curve = cv_prune_curve(fitted, k_folds=k_folds, seed=seed, n_jobs=n_jobs)
    best = best_leaf_count(curve)
    logger.info("CV pruning (%d folds, seed=%s): best size %d leaves, %d misclassified",
                k_folds, seed, best, curve["cv_misclass"].min())
    return best
