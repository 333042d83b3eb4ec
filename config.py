"""
Wine Quality evaluation harness: configuration.
Reproducibility: random seeds, paths, label policy, and per-model defaults.
"""

import math
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

# ----- Reproducibility -----
RANDOM_SEED = 42

# ----- Paths -----
PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_PATH = os.path.join(PROJECT_DIR, "wine.csv")
RESULTS_PATH = os.path.join(PROJECT_DIR, "harness_results.txt")

# ----- Task -----
TARGET_COLUMN = "quality"  # Continuous 0-10 rating, binarized below
LABEL_THRESHOLD = 6  # quality > 6 -> good, else bad

# ----- Train/test split -----
TEST_SIZE = 0.2  # int = number of test records, float = fraction of the dataset

# ----- Decision tree growth (deviance impurity) -----
TREE_MINCUT = 5     # minimum records in either child of a split
TREE_MINSIZE = 10   # nodes smaller than this are not split
TREE_MINDEV = 0.01  # minimum deviance reduction, relative to the root deviance

# ----- Cross-validated pruning -----
CV_FOLDS = 10

# ----- k-NN -----
KNN_K = 10
KNN_METRIC = "euclidean"

# ----- Random forest -----
FOREST_N_TREES = 500
FOREST_MTRY = None  # None -> floor(sqrt(n_features))
N_JOBS = 1


def default_mtry(n_features):
    """Features sampled per split when mtry is not given: floor(sqrt(p)), at least 1."""
    return max(1, int(math.floor(math.sqrt(n_features))))


@dataclass(frozen=True)
class TreeConfig:
    mincut: int = TREE_MINCUT
    minsize: int = TREE_MINSIZE
    mindev: float = TREE_MINDEV


@dataclass(frozen=True)
class CVConfig:
    k_folds: int = CV_FOLDS
    cv_seed: int = RANDOM_SEED


@dataclass(frozen=True)
class KNNConfig:
    k: int = KNN_K
    metric: str = KNN_METRIC


@dataclass(frozen=True)
class ForestConfig:
    n_trees: int = FOREST_N_TREES
    mtry: Optional[int] = FOREST_MTRY
    seed: int = RANDOM_SEED
    n_jobs: int = N_JOBS


@dataclass(frozen=True)
class HarnessConfig:
    """Every parameter of one evaluation run. Passed explicitly, never read from globals."""
    label_threshold: float = LABEL_THRESHOLD
    score_column: str = TARGET_COLUMN
    test_size: Union[int, float] = TEST_SIZE
    split_seed: int = RANDOM_SEED
    # False: scaler fitted on train only and applied to test.
    # True: scale the whole table before splitting, as the original notebook did.
    scale_on_full_data: bool = False
    drop_features: Tuple[str, ...] = ()
    tree: TreeConfig = field(default_factory=TreeConfig)
    cv: CVConfig = field(default_factory=CVConfig)
    knn: KNNConfig = field(default_factory=KNNConfig)
    forest: ForestConfig = field(default_factory=ForestConfig)
