"""Utilities to locate and load the dataset and prepare learn/test matrices."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import pandas as pd
from sklearn.datasets import make_classification

from forest_compare.data.data_loader import DataLoader, DatasetSchema, feature_matrix
from forest_compare.data.splitter import DEFAULT_LEARN_FRACTION, LEARN, TEST, split_frames, split_summary, stratified_split

DEFAULT_DATA_REL_PATH = Path("data/raw/dataset.csv.gz")


def infer_project_root(start: Optional[Path] = None) -> Path:
    """Walk upwards until we find the repository root."""
    search_path = start or Path.cwd()
    for candidate in [search_path, *search_path.parents]:
        if (candidate / "params.yaml").exists() or (
            (candidate / "data").exists() and (candidate / "src").exists()
        ):
            return candidate
    raise FileNotFoundError("Could not infer project root (missing params.yaml or data/ + src/).")


def resolve_data_path(path: Optional[str] = None, project_root: Optional[Path] = None) -> Path:
    """Absolute path of the input table; relative paths hang off the project root."""
    candidate = Path(path) if path else DEFAULT_DATA_REL_PATH
    if candidate.is_absolute():
        return candidate
    root = project_root or infer_project_root()
    return root / candidate


def dataset_schema_from_cfg(cfg: dict) -> DatasetSchema:
    data_cfg = cfg.get("data", {}) or {}
    return DatasetSchema(
        label=data_cfg.get("label", "label"),
        features=tuple(data_cfg.get("features") or ()),
    )


def load_dataset(data_path: Optional[Path] = None, schema: Optional[DatasetSchema] = None) -> pd.DataFrame:
    """Load and validate the labeled table."""
    path = data_path or resolve_data_path()
    return DataLoader(str(path), schema or DatasetSchema()).load_data()


def make_synthetic_dataset(
    n_rows: int = 1000,
    n_features: int = 10,
    n_classes: int = 2,
    *,
    seed: int = 1,
    label: str = "label",
) -> pd.DataFrame:
    """
    Balanced synthetic classification table with columns
    ``label, feature_1 .. feature_k`` and string class labels.
    """
    X, y = make_classification(
        n_samples=n_rows,
        n_features=n_features,
        n_informative=max(2, n_features // 2),
        n_redundant=0,
        n_classes=n_classes,
        flip_y=0.0,
        class_sep=1.0,
        random_state=seed,
    )
    df = pd.DataFrame(X, columns=[f"feature_{i}" for i in range(1, n_features + 1)])
    df.insert(0, label, [f"class_{k}" for k in y])
    return df


def save_dataset(df: pd.DataFrame, path) -> Path:
    """Write the table; compression follows the file extension."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    print(f"[INFO] Dataset saved to: {path}")
    return path


def split_learn_test(
    df: pd.DataFrame,
    schema: DatasetSchema,
    *,
    seed: int = 42,
    learn_fraction: float = DEFAULT_LEARN_FRACTION,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """Stratified split returned in (X_learn, X_test, y_learn, y_test) order."""
    split_df = stratified_split(df, schema.label, seed=seed, learn_fraction=learn_fraction)
    print("[INFO] Rows per class and split:")
    print(split_summary(split_df, schema.label))

    frames = split_frames(split_df)
    X_learn, y_learn = feature_matrix(frames[LEARN], schema)
    X_test, y_test = feature_matrix(frames[TEST], schema)
    print(f"[INFO] X_learn: {X_learn.shape}, X_test: {X_test.shape}")
    return X_learn, X_test, y_learn, y_test
