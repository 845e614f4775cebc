"""Held-out accuracy as a function of ensemble size."""

from __future__ import annotations

from typing import Optional

import pandas as pd
from sklearn.metrics import accuracy_score

from forest_compare.pipelines.grid_search import _is_int

BATCH = "batch"
INCREMENTAL = "incremental"
STRATEGIES = (BATCH, INCREMENTAL)


def _batch_accuracies(backend, X_learn, y_learn, X_test, y_test, n_max: int) -> list:
    if not backend.supports_prefix_predict:
        raise NotImplementedError(f"{backend.name} backend does not support the batch strategy")
    backend.fit(X_learn, y_learn, n_estimators=n_max)
    return [float(accuracy_score(y_test, y_pred)) for y_pred in backend.staged_predict(X_test)]


def _incremental_accuracies(backend, X_learn, y_learn, X_test, y_test, n_max: int) -> list:
    if not backend.supports_warm_start:
        raise NotImplementedError(f"{backend.name} backend does not support the incremental strategy")
    backend.reset()
    accuracies = []
    # each step reuses the trees grown by the previous one
    for _ in range(n_max):
        backend.add_tree(X_learn, y_learn)
        accuracies.append(backend.score(X_test, y_test))
    return accuracies


def accuracy_by_ensemble_size(
    backend,
    X_learn,
    y_learn,
    X_test,
    y_test,
    *,
    n_max: int,
    strategy: Optional[str] = None,
) -> pd.DataFrame:
    """
    Accuracy on the test subset for every ensemble size from 1 to ``n_max``.

    ``batch`` fits ``n_max`` trees once and scores each prefix; ``incremental``
    grows the ensemble one warm-started tree at a time. When ``strategy`` is
    None the backend's preferred strategy is used. The backend is left
    holding the ``n_max``-tree model.
    """
    if not _is_int(n_max) or n_max < 1:
        raise ValueError(f"[ERROR] n_max must be a positive integer, got {n_max!r}")
    strategy = strategy or backend.preferred_strategy
    if strategy not in STRATEGIES:
        raise ValueError(f"[ERROR] Unknown strategy '{strategy}'. Use one of: {list(STRATEGIES)}")

    print(f"[INFO] Sweeping ensemble size 1..{n_max} for {backend.name} ({strategy} strategy)...")
    if strategy == BATCH:
        accuracies = _batch_accuracies(backend, X_learn, y_learn, X_test, y_test, n_max)
    else:
        accuracies = _incremental_accuracies(backend, X_learn, y_learn, X_test, y_test, n_max)

    curve = pd.DataFrame(
        {
            "tree_count": range(1, n_max + 1),
            "accuracy": accuracies,
        }
    )
    curve["backend"] = backend.name
    curve["strategy"] = strategy
    print(f"[INFO] Accuracy with {n_max} trees: {curve['accuracy'].iloc[-1]:.4f}")
    return curve
