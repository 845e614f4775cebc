"""Shared backend interface and trainer plumbing for both forest variants."""

from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

import mlflow
import numpy as np
import pandas as pd
from sklearn.exceptions import NotFittedError
from sklearn.metrics import accuracy_score

from forest_compare.pipelines.ensemble_sweep import accuracy_by_ensemble_size
from forest_compare.pipelines.grid_search import (
    GRID_KNOBS,
    GridSearchResult,
    build_result_table,
    validate_cv_folds,
    validate_param_grid,
)


class ClassifierBackend(ABC):
    """
    One Random Forest implementation behind a common capability set.

    Backends advertise which ensemble-size strategy they can serve through
    ``supports_prefix_predict`` (batch) and ``supports_warm_start``
    (incremental).
    """

    name = "base"
    supports_prefix_predict = False
    supports_warm_start = False
    preferred_strategy = "batch"
    supported_criteria: tuple = ()

    def __init__(self, model_params: Optional[dict] = None):
        self.model_params = dict(model_params or {})
        self.model = None

    @property
    @abstractmethod
    def n_trees(self) -> int:
        """Number of trees currently in the ensemble (0 before fitting)."""

    @abstractmethod
    def fit(self, X, y, n_estimators: Optional[int] = None):
        """Fit a fresh ensemble, optionally overriding its size."""

    @abstractmethod
    def predict(self, X) -> np.ndarray:
        """Predict labels with every tree of the ensemble."""

    @classmethod
    @abstractmethod
    def translate_knobs(cls, knobs: Dict[str, object], n_features: int) -> dict:
        """Map grid knobs (max_features, min_leaf, criterion) to model params."""

    def predict_first_n(self, X, n: int) -> np.ndarray:
        raise NotImplementedError(f"{self.name} backend cannot predict with a prefix of its trees")

    def staged_predict(self, X) -> Iterator[np.ndarray]:
        """Yield predictions using the first 1, 2, ..., n_trees trees."""
        self._check_fitted()
        for n in range(1, self.n_trees + 1):
            yield self.predict_first_n(X, n)

    def add_tree(self, X, y):
        raise NotImplementedError(f"{self.name} backend cannot grow its ensemble one tree at a time")

    def reset(self):
        self.model = None
        return self

    def set_knobs(self, knobs: Dict[str, object], n_features: int):
        """Fix the hyperparameter setting used by later fits."""
        validate_param_grid(
            {k: [v] for k, v in knobs.items()},
            n_features=n_features,
            supported_criteria=self.supported_criteria,
        )
        self.model_params.update(self.translate_knobs(knobs, n_features))
        return self

    def score(self, X, y, n: Optional[int] = None) -> float:
        y_pred = self.predict(X) if n is None else self.predict_first_n(X, n)
        return float(accuracy_score(y, y_pred))

    def _check_fitted(self):
        if self.n_trees == 0:
            raise NotFittedError(
                f"{self.name} backend has no trees yet; call fit() or add_tree() first."
            )

    def _check_prefix(self, n: int):
        self._check_fitted()
        if not 1 <= n <= self.n_trees:
            raise ValueError(f"[ERROR] n must lie in [1, {self.n_trees}], got {n}")


class BaseTrainer(ABC):
    """
    Runs grid search, refit and ensemble-size sweep for one backend, with
    optional MLflow tracking.
    """

    backend_cls = ClassifierBackend
    default_model_config: dict = {}
    default_training_config: dict = {}
    default_param_grid: dict = {}

    def __init__(self, model_params=None, training_params=None,
                 use_mlflow: bool = True,
                 mlflow_experiment: str | None = None,
                 mlflow_tracking_uri: str | None = None,
                 tags: dict | None = None):
        self.model_params = dict(model_params or self.default_model_config)
        self.training_params = {**self.default_training_config, **(training_params or {})}
        self.backend = self.backend_cls(self.model_params)

        self.use_mlflow = bool(use_mlflow)
        self.mlflow_experiment = (
            mlflow_experiment
            or os.getenv("EXPERIMENT_NAME")
            or os.getenv("MLFLOW_EXPERIMENT_NAME", "forest-compare")
        )
        self.mlflow_tracking_uri = mlflow_tracking_uri or os.getenv("MLFLOW_TRACKING_URI")
        self.tags = tags or {"backend": self.backend.name}

        if self.use_mlflow and self.mlflow_tracking_uri:
            mlflow.set_tracking_uri(self.mlflow_tracking_uri)

    @property
    def name(self) -> str:
        return self.backend.name

    # ---------------------- MLflow helpers ----------------------
    def _mlflow_start(self, run_name: str | None = None):
        if not self.use_mlflow:
            return None
        if mlflow.active_run() is not None:
            return mlflow.active_run()
        mlflow.set_experiment(self.mlflow_experiment)
        run = mlflow.start_run(run_name=run_name)
        mlflow.set_tags(self.tags)
        return run

    def _mlflow_end(self, run_ctx):
        if self.use_mlflow and run_ctx and mlflow.active_run() and \
                mlflow.active_run().info.run_id == run_ctx.info.run_id:
            mlflow.end_run()

    def _mlflow_log_params(self, prefix: str, params: dict):
        if not self.use_mlflow:
            return
        mlflow.log_params({f"{prefix}__{k}": v for k, v in params.items()})

    def _mlflow_log_metrics(self, metrics: dict):
        if not self.use_mlflow:
            return
        mlflow.log_metrics({k: float(v) for k, v in metrics.items()})

    def _mlflow_log_cv(self, result: GridSearchResult):
        if not self.use_mlflow:
            return
        for step, row in enumerate(result.table.itertuples(index=False)):
            mlflow.log_metric("cv_mean_accuracy", float(row.mean_accuracy), step=step)
            mlflow.log_metric("cv_std_accuracy", float(row.std_accuracy), step=step)
        mlflow.log_metric("cv_search_seconds", float(result.elapsed_seconds))

    def _mlflow_log_curve(self, curve: pd.DataFrame):
        if not self.use_mlflow:
            return
        for row in curve.itertuples(index=False):
            mlflow.log_metric("test_accuracy_by_trees", float(row.accuracy), step=int(row.tree_count))

    # ---------------------- search ----------------------
    @abstractmethod
    def _search(self, X, y, points, *, cv_folds: int, seed: int, n_jobs: int) -> list:
        """Return one dict per grid point with knob values and accuracy stats."""

    def grid_search(self, X, y, param_grid=None, *, cv_folds=None, seed=None, n_jobs=None) -> GridSearchResult:
        """
        K-fold cross-validated accuracy for every point of ``param_grid``.

        The grid and fold count are validated before any model is fitted.
        """
        param_grid = param_grid if param_grid is not None else self.default_param_grid
        cv_folds = cv_folds if cv_folds is not None else self.training_params.get("cv_folds", 4)
        seed = seed if seed is not None else self.training_params.get("seed", 42)
        n_jobs = n_jobs if n_jobs is not None else self.training_params.get("n_jobs", -1)

        points = validate_param_grid(
            param_grid,
            n_features=X.shape[1],
            supported_criteria=self.backend.supported_criteria,
        )
        validate_cv_folds(y, cv_folds)

        print(f"[INFO] Running {cv_folds}-fold grid search over {len(points)} points ({self.name})...")
        start = time.perf_counter()
        rows = self._search(X, y, points, cv_folds=cv_folds, seed=seed, n_jobs=n_jobs)
        elapsed = time.perf_counter() - start

        knobs = [k for k in GRID_KNOBS if k in param_grid]
        table = build_result_table(rows, knobs)
        result = GridSearchResult(backend=self.name, table=table, cv_folds=cv_folds, elapsed_seconds=elapsed)

        print(f"[INFO] {self.name} grid search finished in {elapsed:.2f}s")
        best = table.sort_values("rank", kind="stable").iloc[0]
        print(f"[INFO] Best CV accuracy: {best['mean_accuracy']:.4f} ± {best['std_accuracy']:.4f}")
        print(f"[INFO] Best params: {result.best_params()}")
        return result

    # ---------------------- refit & sweep ----------------------
    def evaluate(self, X_test, y_test) -> Dict[str, float]:
        accuracy = self.backend.score(X_test, y_test)
        print(f"[INFO] {self.name} test accuracy: {accuracy:.4f}")
        return {"accuracy": accuracy, "n_trees": float(self.backend.n_trees)}

    def sweep(self, X_learn, y_learn, X_test, y_test, *, n_max=None, strategy=None, knobs=None) -> pd.DataFrame:
        """
        Refit with the hand-picked ``knobs`` and report held-out accuracy for
        every ensemble size 1..n_max. The backend keeps the n_max-tree model.
        """
        if knobs:
            self.backend.set_knobs(knobs, n_features=X_learn.shape[1])
        n_max = n_max if n_max is not None else self.training_params.get("n_max", 100)
        strategy = strategy or self.training_params.get("strategy")
        return accuracy_by_ensemble_size(
            self.backend, X_learn, y_learn, X_test, y_test, n_max=n_max, strategy=strategy
        )

    def run(self, X_learn, y_learn, X_test, y_test, *, param_grid=None, knobs=None,
            n_max=None, strategy=None) -> dict:
        """
        Full comparison flow for one backend: grid search, then the
        ensemble-size sweep with the chosen knobs, then test accuracy.
        """
        print(f"[INFO] Starting {self.name} forest pipeline...")
        run_ctx = self._mlflow_start(run_name=f"{self.name}_forest")
        try:
            self._mlflow_log_params("model", self.model_params)
            self._mlflow_log_params("train", self.training_params)

            search = self.grid_search(X_learn, y_learn, param_grid)
            self._mlflow_log_cv(search)

            if knobs:
                self._mlflow_log_params("refit", knobs)
            curve = self.sweep(X_learn, y_learn, X_test, y_test, n_max=n_max, strategy=strategy, knobs=knobs)
            self._mlflow_log_curve(curve)

            metrics = self.evaluate(X_test, y_test)
            metrics["cv_search_seconds"] = search.elapsed_seconds
            self._mlflow_log_metrics(metrics)

            print(f"[INFO] {self.name} forest pipeline complete.\n")
            return {"search": search, "curve": curve, "metrics": metrics}
        finally:
            self._mlflow_end(run_ctx)
