# src/forest_compare/models/random_forest_model/config.py

MODEL_CONFIG = {
    "n_estimators": 500,
    "criterion": "gini",
    "max_features": "sqrt",   # overridden by the chosen grid point
    "min_samples_leaf": 1,
    "bootstrap": True,
    "random_state": 42,
    "n_jobs": -1
}

TRAINING_CONFIG = {
    "cv_folds": 4,
    "seed": 42,
    "n_jobs": -1,
    "n_max": 500,
    "strategy": "incremental",
}

PARAM_GRID = {
    "max_features": [5, 7],
    "min_leaf": [2, 5],
    "criterion": ["gini", "entropy"],
}
