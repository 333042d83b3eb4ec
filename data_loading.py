"""
Load Wine Quality dataset.
Thin CSV entry point; everything downstream works on the returned DataFrame.
"""

import logging

import pandas as pd

from config import DATA_PATH, TARGET_COLUMN

logger = logging.getLogger(__name__)


def load_wine(path=None, remove_duplicates=False, sep=None):
    """
    Load wine.csv. Returns full DataFrame of numeric columns.

    Args:
        path: Path to CSV file (defaults to config.DATA_PATH)
        remove_duplicates: If True, remove exact duplicate rows
        sep: Column separator; None lets pandas sniff ',' vs ';' (UCI files use ';')

    Returns:
        DataFrame with non-numeric columns dropped
    """
    path = path or DATA_PATH
    df = pd.read_csv(path, sep=sep, engine="python")

    if remove_duplicates:
        initial_rows = len(df)
        df = df.drop_duplicates(keep="first").reset_index(drop=True)
        n_removed = initial_rows - len(df)
        if n_removed > 0:
            logger.info("Removed %d duplicate row(s). Dataset: %d -> %d rows.", n_removed, initial_rows, len(df))

    non_numeric = df.select_dtypes(exclude="number").columns.tolist()
    if non_numeric:
        logger.info("Dropping non-numeric columns: %s", non_numeric)
        df = df.drop(columns=non_numeric)
    return df


def get_target_and_features(df, target_column=TARGET_COLUMN):
    """Split into features and target."""
    y = df[target_column].copy()
    X = df.drop(columns=[target_column])
    return X, y
