# src/forest_compare/utils/seeds.py

"""
Seeds for the split, the CV folds and the forests.

Every entry point picks its seed from an ordered list of sources
(``params.yaml`` first, then ``SEED`` from the environment), falling back
to ``DEFAULT_SEED``.
"""

import os
import random
from typing import Optional

import numpy as np

DEFAULT_SEED = int(os.getenv("SEED", 42))


def resolve_seed(*candidates: Optional[int]) -> int:
    """First candidate that is not None, else DEFAULT_SEED."""
    for candidate in candidates:
        if candidate is not None:
            return int(candidate)
    return DEFAULT_SEED


def set_global_seed(*candidates: Optional[int]) -> int:
    """
    Resolve the seed from ``candidates`` and apply it to the ``random`` and
    NumPy global generators. Returns the seed so callers can log it.
    """
    seed = resolve_seed(*candidates)
    random.seed(seed)
    np.random.seed(seed)
    return seed
