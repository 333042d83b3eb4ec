import numpy as np
import pytest

from conftest import make_noisy, make_separable
from evaluation import evaluate
from models_dt import DecisionTreeClassifier, leaf_codes
from models_rf import RandomForestClassifier, feature_importance
from preprocessing import BAD, GOOD, split


def test_importance_ranks_deciding_feature_first():
    data = make_separable(n=200, n_noise=5, seed=1)
    forest = RandomForestClassifier(n_trees=40, random_state=0)
    importance = feature_importance(forest.fit(data))
    assert importance.index[0] == "feature_0"
    assert importance.iloc[0] > importance.iloc[1]
    assert importance.sum() == pytest.approx(1.0)
    assert set(importance.index) == set(data.feature_names)


def test_forest_is_reproducible():
    data = make_noisy(n=150, seed=2)
    a = RandomForestClassifier(n_trees=10, random_state=3)
    b = RandomForestClassifier(n_trees=10, random_state=3)
    np.testing.assert_array_equal(a.predict_score(a.fit(data), data.X), b.predict_score(b.fit(data), data.X))


def test_forest_does_not_depend_on_n_jobs():
    data = make_noisy(n=120, seed=3)
    serial = RandomForestClassifier(n_trees=6, random_state=5, n_jobs=1)
    parallel = RandomForestClassifier(n_trees=6, random_state=5, n_jobs=2)
    fitted_serial = serial.fit(data)
    fitted_parallel = parallel.fit(data)
    np.testing.assert_array_equal(fitted_serial.in_bag, fitted_parallel.in_bag)
    np.testing.assert_array_equal(serial.predict_score(fitted_serial, data.X),
                                  parallel.predict_score(fitted_parallel, data.X))


def test_bootstrap_bookkeeping():
    data = make_noisy(n=100, seed=4)
    fitted = RandomForestClassifier(n_trees=12, random_state=0).fit(data)
    assert fitted.in_bag.shape == (12, len(data))
    np.testing.assert_array_equal(fitted.in_bag.sum(axis=1), len(data))
    assert 0.0 <= fitted.oob_error <= 1.0
    assert fitted.mtry == 3  # floor(sqrt(10))
    for tree, counts in zip(fitted.trees, fitted.in_bag):
        assert tree.root.n == counts.sum()


def test_mtry_is_capped_at_feature_count():
    data = make_noisy(n=60, n_noise=0, seed=5)
    fitted = RandomForestClassifier(n_trees=2, mtry=10, random_state=0).fit(data)
    assert fitted.mtry == data.n_features


def test_vote_and_score():
    data = make_noisy(n=120, seed=6)
    forest = RandomForestClassifier(n_trees=9, random_state=1)
    fitted = forest.fit(data)
    votes = np.mean([leaf_codes(t.root, data.X) for t in fitted.trees], axis=0)
    np.testing.assert_array_equal(forest.predict_code(fitted, data.X), (votes >= 0.5).astype(np.int8))
    labels = forest.predict_label(fitted, data.X)
    assert set(labels) <= {GOOD, BAD}
    scores = forest.predict_score(fitted, data.X)
    assert np.all((scores >= 0) & (scores <= 1))


def test_forest_at_least_as_accurate_as_tree_on_noisy_data():
    tree_acc, forest_acc = [], []
    for seed in range(10):
        data = make_noisy(n=300, n_noise=8, seed=seed)
        parts = split(data, 100, seed)
        tree = DecisionTreeClassifier()
        forest = RandomForestClassifier(n_trees=60, random_state=seed)
        tree_acc.append(evaluate(tree, tree.fit(parts.train), parts.test).accuracy)
        forest_acc.append(evaluate(forest, forest.fit(parts.train), parts.test).accuracy)
    assert np.mean(forest_acc) >= np.mean(tree_acc)


@pytest.mark.parametrize("kwargs", [{"n_trees": 0}, {"mtry": 0}])
def test_invalid_hyperparameters(kwargs):
    with pytest.raises(ValueError):
        RandomForestClassifier(**kwargs)
