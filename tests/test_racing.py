import numpy as np
import pytest

from racetune.data import log_target, make_folds
from racetune.models import ModelFamily, get_family
from racetune.racing import RaceTuner, anova_filter
from racetune.search_space import ParamSpec, SearchSpace
from sklearn.linear_model import Ridge


def _build_fragile_ridge(params, seed):
    if params["alpha"] > 50:
        raise RuntimeError("did not converge")
    return Ridge(alpha=params["alpha"])


FRAGILE = ModelFamily(
    "fragile_ridge", "normalized",
    SearchSpace([ParamSpec("alpha", "continuous", 0.1, 100.0)]),
    _build_fragile_ridge,
)


# =============================================================================
# ANOVA FILTER
# =============================================================================

@pytest.mark.parametrize("rep", range(20))
def test_filter_never_drops_best_and_only_shrinks(rep):
    rng = np.random.RandomState(rep)
    n_cfg, n_folds = 8, 6
    metrics = rng.normal(0.15, 0.01, size=(n_cfg, 1)) + rng.normal(0, 0.01, size=(n_cfg, n_folds))
    alive = list(range(n_cfg))
    for f in range(3, n_folds + 1):
        means = metrics[alive, :f].mean(axis=1)
        current_best = alive[int(np.argmin(means))]
        keep, best = anova_filter(metrics[:, :f], alive, alpha=0.05)
        assert best == current_best
        assert current_best in keep
        assert set(keep) <= set(alive)
        alive = keep


def test_filter_drops_clearly_worse_configuration():
    rng = np.random.RandomState(0)
    metrics = np.array([
        0.10 + rng.normal(0, 0.002, 4),
        0.11 + rng.normal(0, 0.002, 4),
        0.40 + rng.normal(0, 0.002, 4),
    ])
    keep, best = anova_filter(metrics, [0, 1, 2], alpha=0.05)
    assert best == 0
    assert 2 not in keep


def test_filter_keeps_indistinguishable_configurations():
    fold_effect = np.array([0.10, 0.20, 0.15, 0.12])
    metrics = np.vstack([fold_effect, fold_effect + 1e-15, fold_effect])
    keep, best = anova_filter(metrics, [0, 1, 2], alpha=0.05)
    assert keep == [0, 1, 2]
    assert best in keep


def test_filter_honours_maximised_metrics():
    metrics = np.array([[0.9, 0.91, 0.92], [0.2, 0.21, 0.19]])
    keep, best = anova_filter(metrics, [0, 1], alpha=0.05, sign=-1.0)
    assert best == 0
    assert keep == [0]


def test_filter_eliminates_configurations_without_valid_cells():
    metrics = np.array([
        [0.10, 0.12, 0.11],
        [np.nan, np.nan, np.nan],
        [0.11, np.nan, 0.12],
    ])
    keep, best = anova_filter(metrics, [0, 1, 2], alpha=0.05)
    assert 1 not in keep
    assert best in keep


# =============================================================================
# TUNER
# =============================================================================

def test_tuner_races_and_saves_fewer_fits(abalone_df, schema, seed):
    train = abalone_df.iloc[:800]
    folds = make_folds(len(train), 10, seed)
    family = get_family("glmnet", schema)
    configs = [
        {"alpha": 1e-5, "l1_ratio": 0.5},
        {"alpha": 1e-4, "l1_ratio": 0.5},
        {"alpha": 1.0, "l1_ratio": 1.0},   # predicts a constant
        {"alpha": 5.0, "l1_ratio": 1.0},   # predicts a constant
    ]
    tuner = RaceTuner(family, schema, folds, burn_in=3, seed=seed)
    result = tuner.tune(train, log_target(train["Rings"]), configs=configs)

    assert 2 not in result.survivors
    assert 3 not in result.survivors
    assert result.eliminated_after[2] == 3
    assert result.n_fits < len(configs) * len(folds)
    # eliminated configurations keep their partial results
    assert np.isfinite(result.fold_metrics[2, :3]).all()
    assert np.isnan(result.fold_metrics[2, 3:]).all()


def test_survivors_shrink_monotonically(abalone_df, schema, seed):
    train = abalone_df.iloc[:600]
    folds = make_folds(len(train), 6, seed)
    tuner = RaceTuner(get_family("glmnet", schema), schema, folds, grid_size=8, burn_in=2, seed=seed)
    result = tuner.tune(train, log_target(train["Rings"]))

    history = result.survivor_history
    assert len(history) == len(folds) + 1
    for before, after in zip(history, history[1:]):
        assert set(after) <= set(before)
        assert len(after) >= 1

    summary = result.summary()
    assert len(summary) == 8
    best_id = summary.iloc[0]["config_id"]
    assert result.config_ids.index(best_id) in result.survivors


def test_sole_survivor_completes_every_fold(abalone_df, schema, seed):
    train = abalone_df.iloc[:500]
    folds = make_folds(len(train), 5, seed)
    configs = [{"alpha": 1e-5, "l1_ratio": 0.5}, {"alpha": 5.0, "l1_ratio": 1.0}]
    tuner = RaceTuner(get_family("glmnet", schema), schema, folds, burn_in=3, seed=seed)
    result = tuner.tune(train, log_target(train["Rings"]), configs=configs)

    assert result.survivors == [0]
    assert np.isfinite(result.fold_metrics[0]).all()
    assert result.complete_configs() == [0]
    oof = result.oof_predictions()
    assert list(oof.columns) == ["glmnet_01"]
    assert oof.index.equals(train.index)
    assert np.isfinite(oof.values).all()


def test_per_fit_failures_are_recorded_not_fatal(small_df, schema, seed):
    folds = make_folds(len(small_df), 4, seed)
    configs = [{"alpha": 1.0}, {"alpha": 80.0}, {"alpha": 10.0}]
    tuner = RaceTuner(FRAGILE, schema, folds, burn_in=3, seed=seed)
    with pytest.warns(RuntimeWarning, match="failed on fold"):
        result = tuner.tune(small_df, log_target(small_df["Rings"]), configs=configs)

    assert np.isnan(result.fold_metrics[1, :3]).all()
    assert (1, 0) in result.errors
    assert 1 not in result.survivors
    summary = result.summary()
    # all-missing configuration ranks last
    assert summary.iloc[-1]["config_id"] == "fragile_ridge_02"
    assert summary.iloc[-1]["n_folds"] == 0


def test_tuner_rejects_misaligned_target(small_df, schema, seed):
    folds = make_folds(len(small_df), 4, seed)
    tuner = RaceTuner(get_family("glmnet", schema), schema, folds, grid_size=2, seed=seed)
    with pytest.raises(ValueError, match="Target has"):
        tuner.tune(small_df, np.zeros(10))


def test_tuner_runs_on_worker_pool(small_df, schema, seed):
    folds = make_folds(len(small_df), 4, seed)
    y = log_target(small_df["Rings"])
    serial = RaceTuner(get_family("knn", schema), schema, folds, grid_size=3, seed=seed, n_workers=1)
    pooled = RaceTuner(get_family("knn", schema), schema, folds, grid_size=3, seed=seed, n_workers=2)
    a = serial.tune(small_df, y)
    b = pooled.tune(small_df, y)
    np.testing.assert_allclose(a.fold_metrics, b.fold_metrics, equal_nan=True)
