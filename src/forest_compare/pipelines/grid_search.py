"""Backend-neutral pieces of the cross-validated grid search."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.model_selection import ParameterGrid

GRID_KNOBS = ("max_features", "min_leaf", "criterion")
SCORE_COLUMNS = ["mean_accuracy", "std_accuracy", "rank"]


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def validate_param_grid(
    param_grid: Mapping[str, Sequence],
    *,
    n_features: int,
    supported_criteria: Iterable[Optional[str]],
) -> List[Dict[str, object]]:
    """
    Check a knob grid against the data shape and return its points in order.

    Raises ValueError for an empty grid, unknown knobs, empty or duplicated
    candidate lists and any point the data cannot support.
    """
    if not param_grid:
        raise ValueError("[ERROR] Hyperparameter grid is empty.")

    unknown = sorted(set(param_grid) - set(GRID_KNOBS))
    if unknown:
        raise ValueError(f"[ERROR] Unknown grid knobs {unknown}; use any of {list(GRID_KNOBS)}")

    normalized = {}
    for knob in GRID_KNOBS:
        if knob not in param_grid:
            continue
        values = param_grid[knob]
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            raise ValueError(f"[ERROR] Candidates for '{knob}' must be a list, got {values!r}")
        values = list(values)
        if not values:
            raise ValueError(f"[ERROR] No candidate values for '{knob}'.")
        if len({repr(v) for v in values}) != len(values):
            raise ValueError(f"[ERROR] Duplicate candidate values for '{knob}': {values}")
        normalized[knob] = values

    supported = tuple(supported_criteria)
    for value in normalized.get("max_features", []):
        if not _is_int(value) or not 1 <= value <= n_features:
            raise ValueError(
                f"[ERROR] max_features={value!r} is infeasible with {n_features} features."
            )
    for value in normalized.get("min_leaf", []):
        if not _is_int(value) or value < 1:
            raise ValueError(f"[ERROR] min_leaf must be a positive integer, got {value!r}")
    for value in normalized.get("criterion", []):
        if value not in supported:
            raise ValueError(f"[ERROR] Unsupported criterion {value!r}; expected one of {list(supported)}")

    return list(ParameterGrid(normalized))


def validate_cv_folds(y: pd.Series, cv_folds: int) -> None:
    """Every class must be able to appear in every fold."""
    if not _is_int(cv_folds) or cv_folds < 2:
        raise ValueError(f"[ERROR] cv_folds must be an integer >= 2, got {cv_folds!r}")
    smallest = int(pd.Series(y).value_counts().min()) if len(y) else 0
    if smallest < cv_folds:
        raise ValueError(
            f"[ERROR] cv_folds={cv_folds} exceeds the smallest class count ({smallest})."
        )


def build_result_table(rows: List[Dict[str, object]], knobs: Sequence[str]) -> pd.DataFrame:
    """One row per grid point: knob values, mean/std accuracy and rank."""
    table = pd.DataFrame(rows, columns=list(knobs) + ["mean_accuracy", "std_accuracy"])
    table["rank"] = table["mean_accuracy"].rank(ascending=False, method="min").astype(int)
    return table


@dataclass
class GridSearchResult:
    backend: str
    table: pd.DataFrame
    cv_folds: int
    elapsed_seconds: float

    @property
    def knobs(self) -> List[str]:
        return [c for c in self.table.columns if c in GRID_KNOBS]

    def best_params(self) -> Dict[str, object]:
        """Top-ranked knob setting (first one on ties)."""
        best = self.table.sort_values("rank", kind="stable").iloc[0]
        params = {}
        for knob in self.knobs:
            value = best[knob]
            params[knob] = value.item() if isinstance(value, np.generic) else value
        return params

    def to_csv(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.table.to_csv(path, index=False)
        return path


def compare_cv_results(first: GridSearchResult, second: GridSearchResult) -> pd.DataFrame:
    """
    Side-by-side CV scores of two backends joined on their shared knobs.

    ``criterion`` is never a join key because the backends use different
    split criteria; it is kept as a suffixed column instead.
    """
    keys = [k for k in first.knobs if k in second.knobs and k != "criterion"]
    left = first.table.drop(columns=["rank"]).add_suffix(f"_{first.backend}")
    right = second.table.drop(columns=["rank"]).add_suffix(f"_{second.backend}")
    left = left.rename(columns={f"{k}_{first.backend}": k for k in keys})
    right = right.rename(columns={f"{k}_{second.backend}": k for k in keys})
    if not keys:
        return pd.concat([left, right], axis=1)
    merged = left.merge(right, on=keys, how="outer")
    return merged.sort_values(keys, kind="stable").reset_index(drop=True)
