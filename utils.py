"""
Shared utilities: seeds, logging setup, hardware note, timing.
"""

import logging
import platform
import random
import time
from contextlib import contextmanager

import numpy as np

from config import RANDOM_SEED

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def set_seed(seed=None):
    """Fix global random seeds (NumPy and random). Harness code passes seeds explicitly; this covers anything that doesn't."""
    seed = RANDOM_SEED if seed is None else seed
    np.random.seed(seed)
    random.seed(seed)


def configure_logging(level="INFO"):
    """Root logger to stderr with timestamps."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logging.basicConfig(level=level, format=LOG_FORMAT)


def get_hardware_note():
    """Return a brief hardware description for reproducibility."""
    try:
        cpu = platform.processor() or platform.machine() or "unknown"
        return f"{platform.system()} {platform.release()}, CPU: {cpu}"
    except Exception:
        return "unknown"


@contextmanager
def timed(timings, key):
    """Store the wall time of the block in timings[key] (seconds)."""
    t0 = time.perf_counter()
    try:
        yield
    finally:
        timings[key] = time.perf_counter() - t0
