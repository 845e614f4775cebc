# src/forest_compare/models/xgboost_model/config.py

MODEL_CONFIG = {
    "n_estimators": 500,
    "learning_rate": 1.0,
    "max_depth": 12,
    "subsample": 0.632,
    "colsample_bynode": 0.8,   # overridden by max_features / n_features
    "min_child_weight": 1,
    "reg_lambda": 1e-5,
    "tree_method": "hist",
    "random_state": 42,
    "n_jobs": -1
}

TRAINING_CONFIG = {
    "cv_folds": 4,
    "seed": 42,
    "n_jobs": -1,
    "n_max": 500,
    "strategy": "batch",
}

PARAM_GRID = {
    "max_features": [5, 7],
    "min_leaf": [2, 5],
}
