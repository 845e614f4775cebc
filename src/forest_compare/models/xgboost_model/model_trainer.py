# src/forest_compare/models/xgboost_model/model_trainer.py
import numpy as np
import xgboost as xgb
from joblib import Parallel, delayed
from sklearn.preprocessing import LabelEncoder

from forest_compare.models.base import BaseTrainer, ClassifierBackend
from .config import MODEL_CONFIG, PARAM_GRID, TRAINING_CONFIG

# sklearn-API name -> native booster name (the rest are shared)
_BOOSTER_RENAMES = {
    "n_estimators": "num_parallel_tree",
    "random_state": "seed",
    "n_jobs": "nthread",
}


class XGBoostForestBackend(ClassifierBackend):
    """
    xgboost random-forest mode (XGBRFClassifier): every tree is grown in a
    single boosting round, so prefixes are read from the per-tree leaf
    weights. Growing one extra tree would boost on the existing forest
    instead of averaging with it, hence no warm start.
    """

    name = "xgboost"
    supports_prefix_predict = True
    supports_warm_start = False
    preferred_strategy = "batch"
    supported_criteria = (None, "logloss")

    def __init__(self, model_params=None):
        super().__init__(model_params or MODEL_CONFIG)
        self.label_encoder = None
        self._leaf_lookup = None

    @classmethod
    def translate_knobs(cls, knobs, n_features):
        params = {}
        if "max_features" in knobs:
            params["colsample_bynode"] = knobs["max_features"] / n_features
        if "min_leaf" in knobs:
            params["min_child_weight"] = knobs["min_leaf"]
        # criterion: xgboost always splits on the log-loss gradient
        return params

    @property
    def n_trees(self) -> int:
        if self.model is None:
            return 0
        return int(self.model.get_params()["n_estimators"])

    def fit(self, X, y, n_estimators=None):
        params = dict(self.model_params)
        if n_estimators is not None:
            params["n_estimators"] = n_estimators
        # xgboost wants class codes 0..K-1
        self.label_encoder = LabelEncoder().fit(y)
        self.model = xgb.XGBRFClassifier(**params)
        self.model.fit(X, self.label_encoder.transform(y))
        self._leaf_lookup = None
        return self

    def reset(self):
        self.label_encoder = None
        self._leaf_lookup = None
        return super().reset()

    def predict(self, X):
        self._check_fitted()
        return self.label_encoder.inverse_transform(self.model.predict(X).astype(int))

    def _lookup(self) -> np.ndarray:
        """Leaf weight table indexed by [tree id, node id]."""
        if self._leaf_lookup is None:
            frame = self.model.get_booster().trees_to_dataframe()
            leaves = frame[frame["Feature"] == "Leaf"]
            lookup = np.zeros((int(frame["Tree"].max()) + 1, int(frame["Node"].max()) + 1))
            lookup[leaves["Tree"].to_numpy(), leaves["Node"].to_numpy()] = leaves["Gain"].to_numpy()
            self._leaf_lookup = lookup
        return self._leaf_lookup

    def _margin_parts(self, X):
        """
        Split the raw margin into the model's base margin and the per-tree
        contributions, shaped (rows, groups) and (rows, groups, trees).
        Trees of one round are stored group by group.
        """
        n_rows = X.shape[0]
        n_forest = self.n_trees
        leaf_ids = np.asarray(self.model.apply(X)).reshape(n_rows, -1).astype(np.int64)
        tree_ids = np.arange(leaf_ids.shape[1])
        contributions = self._lookup()[tree_ids[None, :], leaf_ids]
        n_groups = leaf_ids.shape[1] // n_forest
        contributions = contributions.reshape(n_rows, n_groups, n_forest)

        full_margin = np.asarray(self.model.predict(X, output_margin=True), dtype=float)
        full_margin = full_margin.reshape(n_rows, n_groups)
        base = full_margin - contributions.sum(axis=2)
        return base, contributions

    def _decode(self, margin):
        if margin.shape[1] == 1:
            codes = (margin[:, 0] > 0).astype(int)
        else:
            codes = np.argmax(margin, axis=1)
        return self.label_encoder.inverse_transform(codes)

    def predict_first_n(self, X, n):
        """
        Predict with the first ``n`` forest members. Their summed weights are
        rescaled by ``n_trees / n`` so that ``n == n_trees`` reproduces the
        full model.
        """
        self._check_prefix(n)
        base, contributions = self._margin_parts(X)
        partial = contributions[:, :, :n].sum(axis=2)
        return self._decode(base + partial * (self.n_trees / n))

    def staged_predict(self, X):
        self._check_fitted()
        base, contributions = self._margin_parts(X)
        running = np.zeros_like(base)
        for n in range(1, self.n_trees + 1):
            running += contributions[:, :, n - 1]
            yield self._decode(base + running * (self.n_trees / n))


def _booster_params(model_params, n_classes, seed):
    params = {_BOOSTER_RENAMES.get(k, k): v for k, v in model_params.items()}
    params["nthread"] = 1
    params["seed"] = seed
    if n_classes > 2:
        params.update({"objective": "multi:softprob", "num_class": n_classes})
    else:
        params["objective"] = "binary:logistic"
    return params


def _cv_point(X, codes, params, metric, cv_folds, seed):
    dtrain = xgb.DMatrix(X, label=codes)
    history = xgb.cv(
        params,
        dtrain,
        num_boost_round=1,
        nfold=cv_folds,
        stratified=True,
        shuffle=True,
        seed=seed,
        metrics=[metric],
        as_pandas=True,
    )
    last = history.iloc[-1]
    return 1.0 - float(last[f"test-{metric}-mean"]), float(last[f"test-{metric}-std"])


class ModelTrainer(BaseTrainer):
    """
    Grid search, refit and ensemble-size sweep for the xgboost forest.
    Cross-validation uses xgboost's own fold engine (``xgb.cv``).
    """

    backend_cls = XGBoostForestBackend
    default_model_config = MODEL_CONFIG
    default_training_config = TRAINING_CONFIG
    default_param_grid = PARAM_GRID

    def _search(self, X, y, points, *, cv_folds, seed, n_jobs):
        codes = LabelEncoder().fit_transform(y)
        n_classes = int(codes.max()) + 1
        metric = "merror" if n_classes > 2 else "error"
        n_features = X.shape[1]

        tasks = []
        for point in points:
            model_params = {**self.model_params, **XGBoostForestBackend.translate_knobs(point, n_features)}
            tasks.append(_booster_params(model_params, n_classes, seed))

        # xgboost releases the GIL, threads avoid copying X into every worker
        scores = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_cv_point)(X, codes, params, metric, cv_folds, seed) for params in tasks
        )

        rows = []
        for point, (mean, std) in zip(points, scores):
            rows.append({**point, "mean_accuracy": mean, "std_accuracy": std})
        return rows
