import numpy as np
from sklearn.ensemble import RandomForestClassifier
from sklearn.model_selection import GridSearchCV, StratifiedKFold

from forest_compare.models.base import BaseTrainer, ClassifierBackend
from .config import MODEL_CONFIG, PARAM_GRID, TRAINING_CONFIG

# grid knob -> RandomForestClassifier parameter
KNOB_TO_PARAM = {
    "max_features": "max_features",
    "min_leaf": "min_samples_leaf",
    "criterion": "criterion",
}
PARAM_TO_KNOB = {v: k for k, v in KNOB_TO_PARAM.items()}


class SklearnForestBackend(ClassifierBackend):
    """
    scikit-learn RandomForestClassifier. Serves both strategies: prefix
    prediction over ``estimators_`` and warm-start growth.
    """

    name = "sklearn"
    supports_prefix_predict = True
    supports_warm_start = True
    preferred_strategy = "incremental"
    supported_criteria = ("gini", "entropy", "log_loss")

    def __init__(self, model_params=None):
        super().__init__(model_params or MODEL_CONFIG)

    @classmethod
    def translate_knobs(cls, knobs, n_features):
        return {KNOB_TO_PARAM[k]: v for k, v in knobs.items()}

    def _build(self, **overrides) -> RandomForestClassifier:
        return RandomForestClassifier(**{**self.model_params, **overrides})

    @property
    def n_trees(self) -> int:
        if self.model is None:
            return 0
        return len(getattr(self.model, "estimators_", []))

    def fit(self, X, y, n_estimators=None):
        overrides = {"warm_start": False}
        if n_estimators is not None:
            overrides["n_estimators"] = n_estimators
        self.model = self._build(**overrides)
        self.model.fit(X, y)
        return self

    def add_tree(self, X, y):
        if self.model is None:
            self.model = self._build(n_estimators=1, warm_start=True)
        else:
            self.model.set_params(n_estimators=self.n_trees + 1, warm_start=True)
        self.model.fit(X, y)
        return self

    def predict(self, X):
        self._check_fitted()
        return self.model.predict(X)

    def _tree_probas(self, X, trees):
        # the trees were fitted on float32 arrays without feature names
        X = np.asarray(X, dtype=np.float32)
        for tree in trees:
            yield tree.predict_proba(X)

    def predict_first_n(self, X, n):
        self._check_prefix(n)
        total = sum(self._tree_probas(X, self.model.estimators_[:n]))
        return self.model.classes_.take(np.argmax(total, axis=1), axis=0)

    def staged_predict(self, X):
        self._check_fitted()
        total = None
        for proba in self._tree_probas(X, self.model.estimators_):
            total = proba if total is None else total + proba
            yield self.model.classes_.take(np.argmax(total, axis=1), axis=0)


class ModelTrainer(BaseTrainer):
    """
    Grid search, refit and ensemble-size sweep for the scikit-learn forest.
    """

    backend_cls = SklearnForestBackend
    default_model_config = MODEL_CONFIG
    default_training_config = TRAINING_CONFIG
    default_param_grid = PARAM_GRID

    def _search(self, X, y, points, *, cv_folds, seed, n_jobs):
        # one worker per (grid point, fold); the forests themselves stay single-threaded
        estimator = RandomForestClassifier(**{**self.model_params, "n_jobs": 1})
        grid = GridSearchCV(
            estimator=estimator,
            param_grid=[
                {KNOB_TO_PARAM[k]: [v] for k, v in point.items()} for point in points
            ],
            scoring="accuracy",
            cv=StratifiedKFold(n_splits=cv_folds, shuffle=True, random_state=seed),
            n_jobs=n_jobs,
            refit=False,
            verbose=0,
        )
        grid.fit(X, y)

        cv = grid.cv_results_
        rows = []
        for params, mean, std in zip(cv["params"], cv["mean_test_score"], cv["std_test_score"]):
            row = {PARAM_TO_KNOB[k]: v for k, v in params.items()}
            row["mean_accuracy"] = float(mean)
            row["std_accuracy"] = float(std)
            rows.append(row)
        return rows
