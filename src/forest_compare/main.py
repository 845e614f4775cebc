# src/forest_compare/main.py
import argparse
import os
from pathlib import Path

import mlflow
import pandas as pd
import yaml

from forest_compare import reporting
from forest_compare.pipelines.data_setup import (
    dataset_schema_from_cfg,
    load_dataset,
    make_synthetic_dataset,
    resolve_data_path,
    save_dataset,
    split_learn_test,
)
from forest_compare.utils.env import load_env
from forest_compare.utils.seeds import resolve_seed, set_global_seed

# Import trainers (lightweight registry)
from forest_compare.models.random_forest_model import ModelTrainer as RFTrainer
from forest_compare.models.xgboost_model import ModelTrainer as XGBTrainer

MODEL_REGISTRY = {
    "sklearn": RFTrainer,
    "xgboost": XGBTrainer,
}

STAGES = ["all", "make_data", "search", "sweep"]


def load_cfg(path="params.yaml"):
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _banner(text):
    print("=" * 70); print(f"[INFO] {text}"); print("=" * 70)


def _backends(cfg):
    return (cfg.get("search", {}) or {}).get("backends") or list(MODEL_REGISTRY)


def build_trainer(cfg, name, env_vars=None):
    if name not in MODEL_REGISTRY:
        raise ValueError(f"Unsupported backend '{name}'. "
                         f"Use one of: {list(MODEL_REGISTRY.keys())}")
    trainer_cls = MODEL_REGISTRY[name]
    env_vars = env_vars or {}
    search_cfg = cfg.get("search", {}) or {}
    refit_cfg = cfg.get("refit", {}) or {}

    training_params = {k: search_cfg[k] for k in ("cv_folds", "n_jobs") if k in search_cfg}
    training_params["seed"] = resolve_seed(search_cfg.get("seed"), env_vars.get("SEED"))
    if "n_max" in refit_cfg:
        training_params["n_max"] = refit_cfg["n_max"]
    strategy = (refit_cfg.get(name) or {}).get("strategy")
    if strategy:
        training_params["strategy"] = strategy

    overrides = (cfg.get("model", {}) or {}).get(name) or {}
    model_params = {**trainer_cls.default_model_config, **overrides}

    use_mlflow = (cfg.get("tracking", {}) or {}).get("use_mlflow", env_vars.get("USE_MLFLOW", False))
    return trainer_cls(
        model_params=model_params,
        training_params=training_params,
        use_mlflow=use_mlflow,
        mlflow_experiment=env_vars.get("EXPERIMENT_NAME"),
        mlflow_tracking_uri=env_vars.get("MLFLOW_TRACKING_URI"),
    )


def run_make_data(cfg):
    _banner("STEP 0: Generating synthetic dataset")
    data_cfg = cfg.get("data", {}) or {}
    synth = data_cfg.get("synthetic", {}) or {}
    df = make_synthetic_dataset(
        n_rows=synth.get("n_rows", 1000),
        n_features=synth.get("n_features", 10),
        n_classes=synth.get("n_classes", 2),
        seed=synth.get("seed", 1),
        label=data_cfg.get("label", "label"),
    )
    return save_dataset(df, resolve_data_path(data_cfg.get("path"), project_root=Path.cwd()))


def run_data_loader(cfg):
    _banner("STEP 1: Loading and splitting dataset")
    data_cfg = cfg.get("data", {}) or {}
    split_cfg = cfg.get("split", {}) or {}
    schema = dataset_schema_from_cfg(cfg)
    df = load_dataset(resolve_data_path(data_cfg.get("path"), project_root=Path.cwd()), schema)
    return split_learn_test(
        df,
        schema,
        seed=split_cfg.get("seed", 42),
        learn_fraction=split_cfg.get("learn_fraction", 0.8),
    )


def _refit_knobs(cfg, name):
    return ((cfg.get("refit", {}) or {}).get(name) or {}).get("params") or None


def _param_grid(cfg, name):
    return ((cfg.get("search", {}) or {}).get("param_grid") or {}).get(name)


def run_search(cfg, data, trainers):
    _banner("STEP 2: Cross-validated grid search")
    X_learn, _, y_learn, _ = data
    results = [trainer.grid_search(X_learn, y_learn, _param_grid(cfg, name)) for name, trainer in trainers.items()]
    out_dir = _out_dir(cfg)
    reporting.save_cv_tables(results, out_dir)
    reporting.plot_cv_scores(results, os.path.join(out_dir, "figures", "cv_scores.png"))
    return results


def run_sweep(cfg, data, trainers):
    _banner("STEP 3: Refit and ensemble-size sweep")
    X_learn, X_test, y_learn, y_test = data
    curves, metrics = [], {}
    for name, trainer in trainers.items():
        curves.append(trainer.sweep(X_learn, y_learn, X_test, y_test, knobs=_refit_knobs(cfg, name)))
        metrics[name] = trainer.evaluate(X_test, y_test)
    return _report_curves(cfg, curves, metrics)


def run_all(cfg, data, trainers):
    _banner("STEP 2-3: Grid search, refit and ensemble-size sweep")
    X_learn, X_test, y_learn, y_test = data
    results, curves, metrics = [], [], {}
    for name, trainer in trainers.items():
        out = trainer.run(
            X_learn, y_learn, X_test, y_test,
            param_grid=_param_grid(cfg, name),
            knobs=_refit_knobs(cfg, name),
        )
        results.append(out["search"])
        curves.append(out["curve"])
        metrics[name] = out["metrics"]

    out_dir = _out_dir(cfg)
    reporting.save_cv_tables(results, out_dir)
    reporting.plot_cv_scores(results, os.path.join(out_dir, "figures", "cv_scores.png"))
    return _report_curves(cfg, curves, metrics)


def _out_dir(cfg):
    return (cfg.get("reports", {}) or {}).get("out_dir", "reports")


def _report_curves(cfg, curves, metrics):
    _banner("STEP 4: Reporting")
    out_dir = _out_dir(cfg)
    stacked = pd.concat(curves, ignore_index=True)
    reporting.save_curves(stacked, out_dir)
    reporting.plot_accuracy_curves(stacked, os.path.join(out_dir, "figures", "accuracy_vs_trees.png"))
    reporting.write_metrics(metrics, out_dir)
    return stacked, metrics


def log_reports(cfg, trainers):
    """Upload the report directory as artifacts of a summary MLflow run."""
    if not any(t.use_mlflow for t in trainers.values()):
        return
    first = next(iter(trainers.values()))
    mlflow.set_experiment(first.mlflow_experiment)
    with mlflow.start_run(run_name="comparison_report"):
        mlflow.log_artifacts(_out_dir(cfg), artifact_path="reports")


def run_stage(cfg, stage="all", env_vars=None):
    """Run one pipeline stage and return what it produced."""
    if stage not in STAGES:
        raise ValueError(f"Unknown stage '{stage}'. Use one of: {STAGES}")
    env_vars = env_vars if env_vars is not None else load_env()
    set_global_seed((cfg.get("split", {}) or {}).get("seed"), env_vars.get("SEED"))

    if stage == "make_data":
        return run_make_data(cfg)

    data = run_data_loader(cfg)
    trainers = {name: build_trainer(cfg, name, env_vars) for name in _backends(cfg)}

    if stage == "search":
        output = run_search(cfg, data, trainers)
    elif stage == "sweep":
        output = run_sweep(cfg, data, trainers)
    else:
        output = run_all(cfg, data, trainers)

    log_reports(cfg, trainers)
    return output


def main(argv=None):
    parser = argparse.ArgumentParser(description="Compare scikit-learn and xgboost random forests.")
    parser.add_argument("--stage", type=str, default="all", choices=STAGES)
    parser.add_argument("--params", type=str, default="params.yaml")
    args = parser.parse_args(argv)

    run_stage(load_cfg(args.params), args.stage, load_env())
    print(f"\n[INFO] ✅ Stage '{args.stage}' executed successfully!")


if __name__ == "__main__":
    main()
