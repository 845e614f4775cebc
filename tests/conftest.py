import sys
import types
from pathlib import Path

import pytest

# Ensure /src is on sys.path for imports like `forest_compare.*` without installing
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
str_path = str(SRC_DIR)
if str_path not in sys.path:
    sys.path.insert(0, str_path)

from forest_compare.data.data_loader import DatasetSchema  # noqa: E402
from forest_compare.pipelines.data_setup import make_synthetic_dataset, split_learn_test  # noqa: E402


@pytest.fixture
def synthetic_df():
    # 1000 rows, 2 balanced classes, 5 numeric features
    return make_synthetic_dataset(n_rows=1000, n_features=5, n_classes=2, seed=1)


@pytest.fixture
def small_df():
    return make_synthetic_dataset(n_rows=200, n_features=8, n_classes=2, seed=3)


@pytest.fixture
def small_split(small_df):
    return split_learn_test(small_df, DatasetSchema(label="label"), seed=1, learn_fraction=0.8)


@pytest.fixture
def multiclass_split():
    df = make_synthetic_dataset(n_rows=240, n_features=10, n_classes=3, seed=5)
    return split_learn_test(df, DatasetSchema(label="label"), seed=2, learn_fraction=0.75)


@pytest.fixture
def stub_mlflow(monkeypatch, tmp_path):
    import mlflow

    state = {"uri": f"file://{tmp_path}", "experiment": None, "active": None}

    class DummyRun:
        def __init__(self, run_id="run-123"):
            self.info = types.SimpleNamespace(run_id=run_id)
        def __enter__(self):
            return self
        def __exit__(self, exc_type, exc, tb):
            state["active"] = None

    def start_run(run_name=None):
        state["active"] = DummyRun()
        state.setdefault("runs", []).append(run_name)
        return state["active"]

    def active_run():
        return state.get("active")

    def end_run():
        state["active"] = None

    def set_tracking_uri(uri):
        state["uri"] = uri

    def set_experiment(name):
        state["experiment"] = name

    def set_tags(tags):
        state["tags"] = tags

    def log_params(params):
        state.setdefault("params", {}).update(params)

    def log_metrics(metrics):
        state["metrics"] = metrics

    def log_metric(key, value, step=None):
        state.setdefault("metric_items", {}).setdefault(key, []).append((step, value))

    def log_artifact(path, artifact_path=None):
        state.setdefault("artifacts", []).append(Path(path))

    def log_artifacts(path, artifact_path=None):
        state.setdefault("artifacts", []).append(Path(path))

    monkeypatch.setattr(mlflow, "start_run", start_run)
    monkeypatch.setattr(mlflow, "active_run", active_run)
    monkeypatch.setattr(mlflow, "end_run", end_run)
    monkeypatch.setattr(mlflow, "set_tracking_uri", set_tracking_uri)
    monkeypatch.setattr(mlflow, "set_experiment", set_experiment)
    monkeypatch.setattr(mlflow, "set_tags", set_tags)
    monkeypatch.setattr(mlflow, "log_params", log_params)
    monkeypatch.setattr(mlflow, "log_metrics", log_metrics)
    monkeypatch.setattr(mlflow, "log_metric", log_metric)
    monkeypatch.setattr(mlflow, "log_artifact", log_artifact)
    monkeypatch.setattr(mlflow, "log_artifacts", log_artifacts)

    return state
