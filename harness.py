"""
Evaluation harness for Wine Quality (binary good/bad).
Runs the three model families on one seeded train/test split:
full deviance tree, CV-pruned tree, k-NN, and random forest.
Writes the results table, CV pruning curve, and forest importances to
harness_results.txt.
"""

import argparse
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

import pandas as pd

from config import RESULTS_PATH, ForestConfig, HarnessConfig, KNNConfig
from evaluation import ResultsTable, evaluate
from exceptions import HarnessError
from models_dt import DecisionTreeClassifier, best_leaf_count, cv_prune_curve, prune_to_size, summarize_tree
from models_knn import KNNClassifier
from models_rf import RandomForestClassifier, feature_importance
from preprocessing import prepare_split
from utils import configure_logging, get_hardware_note, set_seed, timed

logger = logging.getLogger(__name__)


@dataclass
class HarnessReport:
    config: HarnessConfig
    results: ResultsTable
    n_train: int
    n_test: int
    cv_curve: Optional[pd.DataFrame] = None
    best_leaf_count: Optional[int] = None
    full_tree: Dict = field(default_factory=dict)
    pruned_tree: Dict = field(default_factory=dict)
    importance: Optional[pd.Series] = None
    oob_error: Optional[float] = None
    timings: Dict[str, float] = field(default_factory=dict)


def run_model(model_id, classifier, split, results, timings, split_seed=None):
    """Fit on train, evaluate on test, append to results. Errors carry the model id and split seed."""
    logger.info("Fitting %s as %s", classifier, model_id)
    try:
        with timed(timings, f"{model_id}_fit"):
            fitted = classifier.fit(split.train)
        with timed(timings, f"{model_id}_predict"):
            record = evaluate(classifier, fitted, split.test, model_id=model_id)
    except HarnessError as exc:
        raise exc.with_context(model_id=model_id, split_seed=split_seed) from exc
    results.append(record)
    return fitted, record


def run_evaluation(df, config=None):
    """
    Single entry point: prepare the split, evaluate every model family,
    and return a HarnessReport.
    """
    config = config or HarnessConfig()
    set_seed(config.split_seed)
    try:
        split, _ = prepare_split(df, config)
    except HarnessError as exc:
        raise exc.with_context(split_seed=config.split_seed, test_size=config.test_size) from exc
    results = ResultsTable()
    report = HarnessReport(config=config, results=results, n_train=len(split.train), n_test=len(split.test))
    timings = report.timings
    logger.info("Split: %d train / %d test (seed=%s)", report.n_train, report.n_test, config.split_seed)

    # 1) Full tree
    tree = DecisionTreeClassifier(config.tree.mincut, config.tree.minsize, config.tree.mindev)
    full, _ = run_model("tree", tree, split, results, timings, config.split_seed)
    report.full_tree = summarize_tree(full)

    # 2) CV-pruned tree
    try:
        with timed(timings, "tree_cv"):
            report.cv_curve = cv_prune_curve(full, config.cv.k_folds, config.cv.cv_seed, n_jobs=config.forest.n_jobs)
            report.best_leaf_count = best_leaf_count(report.cv_curve)
        pruned = prune_to_size(full, report.best_leaf_count)
    except HarnessError as exc:
        raise exc.with_context(model_id="tree_pruned", split_seed=config.split_seed) from exc
    with timed(timings, "tree_pruned_predict"):
        results.append(evaluate(tree, pruned, split.test, model_id="tree_pruned"))
    report.pruned_tree = summarize_tree(pruned)

    # 3) k-NN
    knn = KNNClassifier(k=config.knn.k, metric=config.knn.metric)
    run_model(f"knn_k{config.knn.k}", knn, split, results, timings, config.split_seed)

    # 4) Random forest
    forest = RandomForestClassifier(n_trees=config.forest.n_trees, mtry=config.forest.mtry,
                                    random_state=config.forest.seed, n_jobs=config.forest.n_jobs)
    fitted_forest, _ = run_model("forest", forest, split, results, timings, config.split_seed)
    report.importance = feature_importance(fitted_forest)
    report.oob_error = fitted_forest.oob_error
    return report


def format_report(report):
    """Plain-text report in the same banner/sections layout as the other *_results.txt files."""
    config = report.config
    lines = [
        "=" * 60,
        "EVALUATION HARNESS — RESULTS (Wine Quality, good vs bad)",
        "=" * 60,
        f"Label: {config.score_column} > {config.label_threshold} -> good",
        f"Split: {report.n_train} train / {report.n_test} test, seed={config.split_seed}, "
        f"scaling fitted on {'full table' if config.scale_on_full_data else 'train only'}",
        f"Dropped predictors: {list(config.drop_features) or 'none'}",
        f"Hardware: {get_hardware_note()}",
        "",
        "--- Results (held-out test set) ---",
        report.results.to_frame().round(4).to_string(),
        "",
        "--- Decision tree ---",
        f"Hyperparameters: mincut={config.tree.mincut}, minsize={config.tree.minsize}, mindev={config.tree.mindev}",
        f"Full tree: {report.full_tree.get('n_leaves')} leaves, "
        f"training misclassification {report.full_tree.get('misclassification_rate', float('nan')):.4f}",
        f"Full tree predictors: {report.full_tree.get('features_used')}",
    ]
    if report.cv_curve is not None:
        lines.extend([
            "",
            f"--- CV pruning ({config.cv.k_folds}-fold, seed={config.cv.cv_seed}) ---",
            report.cv_curve.to_string(index=False),
            f"Best size: {report.best_leaf_count} leaves",
            f"Pruned tree predictors: {report.pruned_tree.get('features_used')}",
        ])
    for model_id in ("tree", "tree_pruned", f"knn_k{config.knn.k}", "forest"):
        try:
            record = report.results[model_id]
        except KeyError:
            continue
        lines.extend(["", f"Confusion matrix — {model_id} (rows predicted, columns true):", str(record.confusion)])
    if report.importance is not None:
        lines.extend([
            "",
            f"--- Random forest (n_trees={config.forest.n_trees}, mtry={config.forest.mtry or 'sqrt(p)'}) ---",
            f"OOB error: {report.oob_error:.4f}",
            "Variable importance (normalized deviance reduction):",
            report.importance.round(4).to_string(),
        ])
    if report.timings:
        lines.extend(["", "--- Runtime (s) ---"])
        lines.extend(f"  {key}: {value:.3f}" for key, value in report.timings.items())
    lines.append("=" * 60)
    return "\n".join(lines)


def save_report(report, path=None):
    path = path or RESULTS_PATH
    text = format_report(report)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text + "\n")
    return path


def _parse_test_size(value):
    number = float(value)
    return int(number) if number >= 1 and number.is_integer() else number


def build_parser():
    defaults = HarnessConfig()
    parser = argparse.ArgumentParser(description="Evaluate tree, k-NN and random forest on binarized wine quality.")
    parser.add_argument("--data", default=None, help="CSV file (default: config.DATA_PATH)")
    parser.add_argument("--output", default=RESULTS_PATH, help="results text file")
    parser.add_argument("--threshold", type=float, default=defaults.label_threshold,
                        help="quality above this is good")
    parser.add_argument("--test-size", type=_parse_test_size, default=defaults.test_size,
                        help="test records (int) or fraction (float < 1)")
    parser.add_argument("--seed", type=int, default=defaults.split_seed)
    parser.add_argument("--k", type=int, default=defaults.knn.k)
    parser.add_argument("--n-trees", type=int, default=defaults.forest.n_trees)
    parser.add_argument("--mtry", type=int, default=None)
    parser.add_argument("--folds", type=int, default=defaults.cv.k_folds)
    parser.add_argument("--drop", nargs="*", default=[], help="predictor names to drop")
    parser.add_argument("--n-jobs", type=int, default=defaults.forest.n_jobs)
    parser.add_argument("--scale-on-full-data", action="store_true",
                        help="scale before splitting, as the original notebook did")
    parser.add_argument("--log-level", default="INFO")
    return parser


def config_from_args(args):
    defaults = HarnessConfig()
    return replace(
        defaults,
        label_threshold=args.threshold,
        test_size=args.test_size,
        split_seed=args.seed,
        scale_on_full_data=args.scale_on_full_data,
        drop_features=tuple(args.drop),
        cv=replace(defaults.cv, k_folds=args.folds),
        knn=KNNConfig(k=args.k, metric=defaults.knn.metric),
        forest=ForestConfig(n_trees=args.n_trees, mtry=args.mtry, seed=defaults.forest.seed, n_jobs=args.n_jobs),
    )


def main(argv=None):
    from data_loading import load_wine

    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    config = config_from_args(args)
    df = load_wine(path=args.data)
    report = run_evaluation(df, config)
    path = save_report(report, args.output)
    print(report.results.to_frame().round(4).to_string())
    print("\nResults written to:", path)
    return report


if __name__ == "__main__":
    main()
