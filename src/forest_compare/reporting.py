"""Tables and figures produced by a comparison run."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from forest_compare.pipelines.grid_search import GridSearchResult, compare_cv_results

DIVERGENCE_NOTE = (
    "CV scores of different backends come from independent fold assignments "
    "and tree-growing randomness; differences between them are expected."
)


def ensure_output_dirs(out_dir="reports") -> Path:
    out_dir = Path(out_dir)
    (out_dir / "figures").mkdir(parents=True, exist_ok=True)
    return out_dir


def grid_point_label(row: pd.Series, knobs: Iterable[str]) -> str:
    return ", ".join(f"{k}={row[k]}" for k in knobs)


def save_cv_tables(results: List[GridSearchResult], out_dir="reports") -> Dict[str, Path]:
    """One CSV per backend plus the side-by-side comparison when there are two."""
    out_dir = ensure_output_dirs(out_dir)
    paths = {}
    for result in results:
        paths[result.backend] = result.to_csv(out_dir / f"cv_results_{result.backend}.csv")
        print(f"[INFO] CV table ({result.backend}) saved to: {paths[result.backend]}")

    if len(results) == 2:
        comparison = compare_cv_results(*results)
        paths["comparison"] = out_dir / "cv_comparison.csv"
        comparison.to_csv(paths["comparison"], index=False)
        print(f"[INFO] {DIVERGENCE_NOTE}")
    return paths


def plot_cv_scores(results: List[GridSearchResult], out_path) -> Path:
    """Mean ± std CV accuracy per grid point, one panel per backend."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    fig, axes = plt.subplots(1, len(results), figsize=(6 * len(results), 4), squeeze=False)
    for ax, result in zip(axes[0], results):
        labels = [grid_point_label(row, result.knobs) for _, row in result.table.iterrows()]
        positions = range(len(labels))
        ax.errorbar(
            list(positions),
            result.table["mean_accuracy"],
            yerr=result.table["std_accuracy"],
            fmt="o",
            capsize=4,
        )
        ax.set_xticks(list(positions))
        ax.set_xticklabels(labels, rotation=45, ha="right", fontsize=8)
        ax.set_ylabel(f"CV accuracy ({result.cv_folds}-fold)")
        ax.set_title(f"{result.backend} ({result.elapsed_seconds:.1f}s)")
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return out_path


def plot_accuracy_curves(curves: pd.DataFrame, out_path) -> Path:
    """Test accuracy against number of trees, one line per backend."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    sns.lineplot(data=curves, x="tree_count", y="accuracy", hue="backend", style="strategy")
    plt.xlabel("Number of trees")
    plt.ylabel("Test accuracy")
    plt.title("Random Forest - accuracy vs. ensemble size")
    plt.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close()
    return out_path


def save_curves(curves: pd.DataFrame, out_dir="reports") -> Path:
    out_dir = ensure_output_dirs(out_dir)
    path = out_dir / "ensemble_curve.csv"
    curves.to_csv(path, index=False)
    print(f"[INFO] Ensemble-size curves saved to: {path}")
    return path


def write_metrics(metrics: Dict[str, Dict[str, float]], out_dir="reports") -> Path:
    out_dir = ensure_output_dirs(out_dir)
    path = out_dir / "metrics.json"
    with open(path, "w") as f:
        json.dump(
            {backend: {k: float(v) for k, v in values.items()} for backend, values in metrics.items()},
            f,
            indent=2,
        )
    print(f"[INFO] Metrics saved to: {path}")
    return path
