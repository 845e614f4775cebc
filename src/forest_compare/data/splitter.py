"""Stratified learn/test (and train/valid/test) assignment.

Every label class is permuted independently with a generator seeded once per
call, so the same seed and the same input row order always give the same
assignment.
"""

from __future__ import annotations

from typing import Dict, Iterator, Tuple

import numpy as np
import pandas as pd

from forest_compare.data.data_loader import SPLIT_COLUMN
from forest_compare.exceptions import SchemaError

LEARN = "learn"
TEST = "test"
TRAIN = "train"
VALID = "valid"

DEFAULT_LEARN_FRACTION = 0.8
DEFAULT_THREE_WAY_CUTS = (0.70, 0.85)


def _class_positions(df: pd.DataFrame, label: str) -> Iterator[Tuple[object, np.ndarray]]:
    if label not in df.columns:
        raise SchemaError(label, "label column not found")
    if df[label].isna().any():
        raise SchemaError(label, "label column contains missing values")

    indices = df.groupby(label, sort=True, observed=True).indices
    for value in sorted(indices):
        yield value, np.asarray(indices[value])


def stratified_split(
    df: pd.DataFrame,
    label: str,
    *,
    seed: int,
    learn_fraction: float = DEFAULT_LEARN_FRACTION,
) -> pd.DataFrame:
    """Return a copy of ``df`` with a ``split`` column of ``learn``/``test``.

    Within each class the first ``floor(learn_fraction * n_class)`` permuted
    rows are ``learn``. Classes with a single row may end up entirely in one
    partition.
    """
    if not 0 < learn_fraction < 1:
        raise ValueError(f"learn_fraction must lie in (0, 1), got {learn_fraction}")

    rng = np.random.default_rng(seed)
    assignment = np.empty(len(df), dtype=object)
    for _, positions in _class_positions(df, label):
        permuted = rng.permutation(positions)
        n_learn = int(np.floor(learn_fraction * len(permuted)))
        assignment[permuted[:n_learn]] = LEARN
        assignment[permuted[n_learn:]] = TEST

    out = df.copy()
    out[SPLIT_COLUMN] = pd.Categorical(assignment, categories=[LEARN, TEST])
    return out


def stratified_three_way_split(
    df: pd.DataFrame,
    label: str,
    *,
    seed: int,
    cuts: Tuple[float, float] = DEFAULT_THREE_WAY_CUTS,
) -> pd.DataFrame:
    """Rank-based ``train``/``valid``/``test`` assignment per class.

    A row whose permuted percent rank is ``<= cuts[0]`` goes to ``train``,
    ``<= cuts[1]`` to ``valid`` and the rest to ``test``.
    """
    low, high = cuts
    if not 0 < low < high < 1:
        raise ValueError(f"cuts must satisfy 0 < low < high < 1, got {cuts}")

    rng = np.random.default_rng(seed)
    assignment = np.empty(len(df), dtype=object)
    for _, positions in _class_positions(df, label):
        permuted = rng.permutation(positions)
        pct_rank = np.arange(1, len(permuted) + 1) / len(permuted)
        assignment[permuted] = np.where(
            pct_rank <= low, TRAIN, np.where(pct_rank <= high, VALID, TEST)
        )

    out = df.copy()
    out[SPLIT_COLUMN] = pd.Categorical(assignment, categories=[TRAIN, VALID, TEST])
    return out


def split_frames(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """One frame per split value (empty frames included), ``split`` column dropped."""
    if SPLIT_COLUMN not in df.columns:
        raise SchemaError(SPLIT_COLUMN, "dataset has not been split yet")
    column = df[SPLIT_COLUMN]
    values = list(column.cat.categories) if isinstance(column.dtype, pd.CategoricalDtype) else sorted(column.unique())
    return {value: df[column == value].drop(columns=[SPLIT_COLUMN]) for value in values}


def split_summary(df: pd.DataFrame, label: str) -> pd.DataFrame:
    """Row counts per label class (index) and split value (columns)."""
    if SPLIT_COLUMN not in df.columns:
        raise SchemaError(SPLIT_COLUMN, "dataset has not been split yet")
    return df.groupby([label, SPLIT_COLUMN], observed=False).size().unstack(fill_value=0)
