import numpy as np
import pytest

from forest_compare.exceptions import NotFittedError
from forest_compare.models.random_forest_model import model_trainer as rf_mod
from forest_compare.models.random_forest_model.model_trainer import (
    ModelTrainer as RandomForestTrainer,
    SklearnForestBackend,
)
from forest_compare.models.xgboost_model.model_trainer import ModelTrainer as XGBTrainer, XGBoostForestBackend

SMALL_SKLEARN = {"n_estimators": 15, "random_state": 0, "n_jobs": 1}
SMALL_XGB = {
    "n_estimators": 15,
    "learning_rate": 1.0,
    "max_depth": 4,
    "subsample": 0.632,
    "colsample_bynode": 0.8,
    "reg_lambda": 1e-5,
    "tree_method": "hist",
    "random_state": 0,
    "n_jobs": 1,
}


@pytest.fixture(params=["sklearn", "xgboost"])
def backend(request):
    if request.param == "sklearn":
        return SklearnForestBackend(SMALL_SKLEARN)
    return XGBoostForestBackend(SMALL_XGB)


def test_predict_before_fit_raises_not_fitted(backend, small_split):
    _, X_test, _, _ = small_split
    assert backend.n_trees == 0
    with pytest.raises(NotFittedError):
        backend.predict(X_test)
    with pytest.raises(NotFittedError):
        backend.predict_first_n(X_test, 1)
    with pytest.raises(NotFittedError):
        next(backend.staged_predict(X_test))


def test_fit_predict_returns_original_labels(backend, small_split):
    X_learn, X_test, y_learn, y_test = small_split
    backend.fit(X_learn, y_learn)

    assert backend.n_trees == 15
    y_pred = backend.predict(X_test)
    assert len(y_pred) == len(X_test)
    assert set(y_pred) <= set(y_learn)
    assert 0.0 <= backend.score(X_test, y_test) <= 1.0


def test_full_prefix_matches_full_model(backend, small_split):
    X_learn, X_test, y_learn, _ = small_split
    backend.fit(X_learn, y_learn)

    agreement = np.mean(backend.predict_first_n(X_test, backend.n_trees) == backend.predict(X_test))
    assert agreement >= 0.99


def test_staged_predict_yields_one_prediction_per_tree(backend, small_split):
    X_learn, X_test, y_learn, _ = small_split
    backend.fit(X_learn, y_learn, n_estimators=6)

    stages = list(backend.staged_predict(X_test))
    assert len(stages) == 6
    for n, y_pred in enumerate(stages, start=1):
        np.testing.assert_array_equal(y_pred, backend.predict_first_n(X_test, n))


@pytest.mark.parametrize("n", [0, 16])
def test_prefix_out_of_range_raises(backend, small_split, n):
    X_learn, X_test, y_learn, _ = small_split
    backend.fit(X_learn, y_learn)
    with pytest.raises(ValueError):
        backend.predict_first_n(X_test, n)


def test_sklearn_add_tree_grows_one_tree_at_a_time(small_split):
    X_learn, X_test, y_learn, _ = small_split
    backend = SklearnForestBackend(SMALL_SKLEARN)

    for expected in range(1, 4):
        backend.add_tree(X_learn, y_learn)
        assert backend.n_trees == expected
    first_tree = backend.model.estimators_[0]
    backend.add_tree(X_learn, y_learn)
    # warm start keeps the existing trees
    assert backend.model.estimators_[0] is first_tree
    assert len(backend.predict(X_test)) == len(X_test)


def test_sklearn_reset_drops_the_ensemble(small_split):
    X_learn, _, y_learn, _ = small_split
    backend = SklearnForestBackend(SMALL_SKLEARN).fit(X_learn, y_learn)
    backend.reset()
    assert backend.n_trees == 0


def test_xgboost_has_no_warm_start(small_split):
    X_learn, _, y_learn, _ = small_split
    backend = XGBoostForestBackend(SMALL_XGB)
    assert not backend.supports_warm_start
    with pytest.raises(NotImplementedError):
        backend.add_tree(X_learn, y_learn)


def test_xgboost_multiclass_prefix_prediction(multiclass_split):
    X_learn, X_test, y_learn, y_test = multiclass_split
    backend = XGBoostForestBackend(SMALL_XGB).fit(X_learn, y_learn)

    full = backend.predict(X_test)
    assert np.mean(backend.predict_first_n(X_test, backend.n_trees) == full) >= 0.99
    assert set(backend.predict_first_n(X_test, 1)) <= {"class_0", "class_1", "class_2"}


def test_translate_knobs():
    assert SklearnForestBackend.translate_knobs(
        {"max_features": 3, "min_leaf": 4, "criterion": "entropy"}, n_features=6
    ) == {"max_features": 3, "min_samples_leaf": 4, "criterion": "entropy"}
    assert XGBoostForestBackend.translate_knobs({"max_features": 3, "min_leaf": 4}, n_features=6) == {
        "colsample_bynode": 0.5,
        "min_child_weight": 4,
    }


def test_set_knobs_validates_and_updates_params():
    backend = SklearnForestBackend(SMALL_SKLEARN)
    backend.set_knobs({"max_features": 2, "min_leaf": 3}, n_features=8)
    assert backend.model_params["max_features"] == 2
    assert backend.model_params["min_samples_leaf"] == 3
    with pytest.raises(ValueError):
        backend.set_knobs({"max_features": 20}, n_features=8)


def test_random_forest_trainer_sweep_applies_knobs_and_evaluates(small_split):
    X_learn, X_test, y_learn, y_test = small_split
    trainer = RandomForestTrainer(model_params=SMALL_SKLEARN, use_mlflow=False)

    curve = trainer.sweep(
        X_learn, y_learn, X_test, y_test, knobs={"max_features": 3, "min_leaf": 2}, n_max=5, strategy="incremental"
    )
    metrics = trainer.evaluate(X_test, y_test)

    assert len(curve) == 5
    assert metrics["n_trees"] == 5
    assert 0.0 <= metrics["accuracy"] <= 1.0
    assert metrics["accuracy"] == pytest.approx(curve["accuracy"].iloc[-1])
    assert trainer.backend.model.get_params()["max_features"] == 3
    assert trainer.backend.model.get_params()["min_samples_leaf"] == 2


def test_grid_search_prints_best_params(small_split, capsys):
    X_learn, _, y_learn, _ = small_split
    trainer = RandomForestTrainer(model_params=SMALL_SKLEARN, use_mlflow=False)

    result = trainer.grid_search(X_learn, y_learn, {"max_features": [2, 3]}, cv_folds=2, seed=0, n_jobs=1)

    assert f"[INFO] Best params: {result.best_params()}" in capsys.readouterr().out


def test_random_forest_trainer_run_with_stubbed_mlflow(small_split, stub_mlflow):
    X_learn, X_test, y_learn, y_test = small_split
    trainer = RandomForestTrainer(
        model_params=SMALL_SKLEARN,
        training_params={"cv_folds": 2, "n_jobs": 1, "n_max": 5},
        use_mlflow=True,
    )

    out = trainer.run(
        X_learn, y_learn, X_test, y_test,
        param_grid={"max_features": [2, 3]},
        knobs={"max_features": 3, "min_leaf": 1},
    )

    assert len(out["search"].table) == 2
    assert out["curve"]["tree_count"].tolist() == [1, 2, 3, 4, 5]
    assert out["curve"]["strategy"].iloc[0] == "incremental"
    assert stub_mlflow["runs"] == ["sklearn_forest"]
    assert stub_mlflow["active"] is None
    assert "model__n_estimators" in stub_mlflow["params"]
    assert "refit__max_features" in stub_mlflow["params"]
    assert len(stub_mlflow["metric_items"]["test_accuracy_by_trees"]) == 5
    assert "accuracy" in stub_mlflow["metrics"]


def test_xgb_trainer_run_without_mlflow(small_split):
    X_learn, X_test, y_learn, y_test = small_split
    trainer = XGBTrainer(
        model_params=SMALL_XGB,
        training_params={"cv_folds": 2, "n_jobs": 1, "n_max": 4},
        use_mlflow=False,
    )

    out = trainer.run(X_learn, y_learn, X_test, y_test, param_grid={"min_leaf": [1, 3]})

    assert len(out["search"].table) == 2
    assert out["curve"]["strategy"].iloc[0] == "batch"
    assert out["metrics"]["n_trees"] == 4


def test_default_configs_are_used():
    trainer = RandomForestTrainer(use_mlflow=False)
    assert trainer.model_params == rf_mod.MODEL_CONFIG
    assert trainer.training_params["cv_folds"] == 4
