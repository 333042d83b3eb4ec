import numpy as np
import pytest

from conftest import make_noisy, make_separable
from evaluation import evaluate
from exceptions import InvalidTargetSizeError
from models_dt import (
    DecisionTreeClassifier,
    cost_complexity_path,
    count_leaves,
    cross_validate_prune,
    cv_prune_curve,
    grow_tree,
    iter_nodes,
    node_deviance,
    prune_to_size,
    summarize_tree,
)
from preprocessing import BAD, GOOD, Dataset, split


def full_growth():
    return DecisionTreeClassifier(mincut=1, minsize=2, mindev=0.0)


def test_node_deviance():
    assert node_deviance(0, 10) == 0.0
    assert node_deviance(10, 10) == 0.0
    assert node_deviance(5, 10) == pytest.approx(-2 * 10 * np.log(0.5))
    np.testing.assert_allclose(node_deviance(np.array([1, 2]), np.array([4, 4])),
                               [-2 * (np.log(0.25) + 3 * np.log(0.75)), -2 * 4 * np.log(0.5)])


def test_perfect_separation_scores_one(separable):
    train, test = split(separable, 30, 0)
    tree = DecisionTreeClassifier()
    fitted = tree.fit(train)
    record = evaluate(tree, fitted, test, model_id="tree")
    assert record.accuracy == 1.0
    assert record.error_rate == 0.0
    assert record.auc == 1.0
    assert fitted.root.feature == 0
    assert summarize_tree(fitted)["features_used"] == ["feature_0"]


def test_tie_break_prefers_lowest_feature_index():
    x = np.array([0.1, 0.4, 0.2, 0.9, 0.7, 0.8])
    y = np.array([0, 0, 0, 1, 1, 1])
    root = grow_tree(np.column_stack([x, x]), y, mincut=1, minsize=2, mindev=0.0)
    assert root.feature == 0


def test_tie_break_prefers_lowest_threshold():
    # Splitting after x=1 and after x=3 give the same deviance reduction.
    X = np.array([[1.0], [2.0], [3.0], [4.0]])
    y = np.array([1, 0, 0, 1])
    root = grow_tree(X, y, mincut=1, minsize=2, mindev=0.0)
    assert root.feature == 0
    assert root.threshold == 1.5


def test_thresholds_are_midpoints_and_left_is_less_equal():
    X = np.array([[0.0], [1.0], [3.0], [4.0]])
    y = np.array([0, 0, 1, 1])
    root = grow_tree(X, y, mincut=1, minsize=2, mindev=0.0)
    assert root.threshold == 2.0
    assert root.left.n_good == 0
    assert root.right.n_good == 2


def test_prediction_is_total():
    data = make_noisy(n=200, seed=3)
    tree = full_growth()
    fitted = tree.fit(data)
    rng = np.random.RandomState(0)
    queries = np.vstack([rng.normal(scale=5.0, size=(50, data.n_features)),
                         np.full((1, data.n_features), np.nan)])
    labels = tree.predict_label(fitted, queries)
    assert len(labels) == len(queries)
    assert set(labels) <= {GOOD, BAD}
    scores = tree.predict_score(fitted, queries)
    assert np.all((scores >= 0) & (scores <= 1))


def test_labels_match_scores():
    data = make_noisy(n=200, seed=4)
    tree = DecisionTreeClassifier()
    fitted = tree.fit(data)
    scores = tree.predict_score(fitted, data.X)
    codes = tree.predict_code(fitted, data.X)
    np.testing.assert_array_equal(codes, (scores >= 0.5).astype(np.int8))


def test_stopping_rules_respected():
    data = make_noisy(n=300, seed=5)
    fitted = DecisionTreeClassifier(mincut=7, minsize=20, mindev=0.0).fit(data)
    for node in iter_nodes(fitted.root):
        if node is not fitted.root:
            assert node.n >= 7
        if not node.is_leaf:
            assert node.n >= 20
            assert node.left.n + node.right.n == node.n


def test_large_mindev_gives_single_leaf():
    data = make_noisy(n=200, seed=6)
    fitted = DecisionTreeClassifier(mindev=1.5).fit(data)
    assert fitted.root.is_leaf
    assert fitted.n_leaves == 1


def test_pure_node_is_leaf():
    ds = Dataset.from_arrays(np.arange(20.0).reshape(-1, 1), np.ones(20, dtype=int))
    fitted = DecisionTreeClassifier().fit(ds)
    assert fitted.root.is_leaf
    assert DecisionTreeClassifier().predict_label(fitted, [[100.0]])[0] == GOOD


def test_majority_tie_goes_to_good():
    ds = Dataset.from_arrays(np.array([[0.0], [0.0]]), [1, 0])
    tree = DecisionTreeClassifier(mincut=1, minsize=2, mindev=0.0)
    fitted = tree.fit(ds)
    assert fitted.root.is_leaf
    assert tree.predict_label(fitted, [[0.0]])[0] == GOOD
    assert tree.predict_score(fitted, [[0.0]])[0] == 0.5


def test_prune_to_size_is_exact_and_monotone():
    data = make_noisy(n=300, seed=7)
    fitted = full_growth().fit(data)
    n_leaves = fitted.n_leaves
    assert n_leaves > 10

    previous_errors = fitted.training_misclassification
    for target in range(n_leaves, 0, -1):
        pruned = prune_to_size(fitted, target)
        assert pruned.n_leaves == target
        errors = pruned.training_misclassification
        assert errors >= previous_errors
        previous_errors = errors

    stump = prune_to_size(fitted, 1)
    assert stump.root.is_leaf
    assert stump.training_misclassification == min(data.y.sum(), len(data) - data.y.sum())


def test_prune_does_not_modify_original():
    data = make_noisy(n=200, seed=8)
    fitted = full_growth().fit(data)
    before = fitted.n_leaves
    prune_to_size(fitted, 2)
    assert fitted.n_leaves == before


@pytest.mark.parametrize("offset", [0, 1])
def test_prune_invalid_targets(offset):
    fitted = full_growth().fit(make_noisy(n=100, seed=9))
    target = 0 if offset == 0 else fitted.n_leaves + 1
    with pytest.raises(InvalidTargetSizeError):
        prune_to_size(fitted, target)


def test_cost_complexity_path():
    fitted = full_growth().fit(make_noisy(n=200, seed=10))
    path = cost_complexity_path(fitted)
    leaves = path["leaves"].tolist()
    assert leaves[0] == fitted.n_leaves
    assert leaves[-1] == 1
    assert all(a > b for a, b in zip(leaves, leaves[1:]))
    assert path["misclass"].is_monotonic_increasing


def test_cross_validate_prune_returns_path_size():
    data = make_noisy(n=200, seed=11)
    fitted = DecisionTreeClassifier(mincut=2, minsize=5, mindev=0.0).fit(data)
    best = cross_validate_prune(fitted, k_folds=5, seed=1)
    assert best in set(cost_complexity_path(fitted)["leaves"])
    assert 1 <= best <= fitted.n_leaves
    assert cross_validate_prune(fitted, k_folds=5, seed=1) == best


def test_cv_prune_keeps_the_single_separating_split():
    data = make_separable(n=120, seed=2)
    fitted = full_growth().fit(data)
    curve = cv_prune_curve(fitted, k_folds=4, seed=0)
    assert curve["leaves"].tolist() == [2, 1]
    assert curve.loc[curve["leaves"] == 2, "cv_misclass"].item() == 0
    assert cross_validate_prune(fitted, k_folds=4, seed=0) == 2


def test_cv_is_independent_of_n_jobs():
    fitted = DecisionTreeClassifier(mincut=2, minsize=5, mindev=0.0).fit(make_noisy(n=150, seed=12))
    serial = cv_prune_curve(fitted, k_folds=3, seed=4, n_jobs=1)
    parallel = cv_prune_curve(fitted, k_folds=3, seed=4, n_jobs=2)
    assert serial.equals(parallel)


def test_cv_requires_training_data():
    fitted = full_growth().fit(make_noisy(n=60, seed=13))
    stripped = fitted.__class__(root=fitted.root, feature_names=fitted.feature_names, classifier=fitted.classifier)
    with pytest.raises(ValueError):
        cross_validate_prune(stripped, k_folds=3, seed=0)


def test_invalid_hyperparameters():
    with pytest.raises(ValueError):
        DecisionTreeClassifier(mincut=0)
    with pytest.raises(ValueError):
        DecisionTreeClassifier(mindev=-0.1)


def test_count_leaves_matches_summary():
    fitted = DecisionTreeClassifier().fit(make_noisy(n=200, seed=14))
    summary = summarize_tree(fitted)
    assert summary["n_leaves"] == count_leaves(fitted.root)
    assert 0.0 <= summary["misclassification_rate"] <= 1.0
