# Cross-validated racing tuner
# Every configuration is evaluated fold by fold; after the burn-in folds an
# ANOVA-style filter drops configurations that are significantly worse than
# the current best, so they are not fitted on the remaining folds.

import warnings
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import delayed
from scipy import stats

from .metrics import Metric, rmse
from .parallel import worker_pool
from .recipes import Recipe

# Differences below this are treated as ties, never as evidence
TIE_TOLERANCE = 1e-12


def _fit_predict(family, params, seed, X_fit, y_fit, X_val, categorical):
    """Fit one configuration on one fold; failures come back as an error string."""
    try:
        estimator = family.fit(X_fit, y_fit, params, seed, categorical)
        preds = family.predict(estimator, X_val)
    except Exception as e:
        return None, f"{type(e).__name__}: {e}"
    if not np.isfinite(preds).all():
        return None, "non-finite predictions"
    return preds, None


def _summarise_cells(values):
    valid = values[np.isfinite(values)]
    n = len(valid)
    mean = float(valid.mean()) if n else np.nan
    std_err = float(valid.std(ddof=1) / np.sqrt(n)) if n > 1 else np.nan
    return mean, std_err, n


def anova_filter(fold_metrics, alive, alpha=0.05, sign=1.0):
    """
    One racing elimination step.

    Fits the additive model  metric ~ configuration + fold  by least squares
    over every finite cell of the surviving configurations, then keeps each
    configuration whose one-sided (1 - alpha) interval on its difference from
    the best configuration still reaches zero.

    Args:
        fold_metrics: (n_configs, n_folds_done) array, NaN for missing cells
        alive: indices of the configurations still racing
        alpha: significance level of the one-sided comparison
        sign: +1 when lower metric values are better, -1 otherwise

    Returns:
        (keep, best): surviving indices in their original order, and the index
        of the best configuration (None when no configuration has a valid cell)
    """
    scores = sign * np.asarray(fold_metrics, dtype=float)
    candidates = [i for i in alive if np.isfinite(scores[i]).any()]
    # no valid cell anywhere: nothing to compare yet
    if not candidates:
        return list(alive), None
    if len(candidates) == 1:
        return candidates, candidates[0]

    cells = [
        (r, f, scores[i, f])
        for r, i in enumerate(candidates)
        for f in range(scores.shape[1])
        if np.isfinite(scores[i, f])
    ]
    folds_used = sorted({f for _, f, _ in cells})
    fold_pos = {f: j for j, f in enumerate(folds_used)}
    n_cfg = len(candidates)
    n_par = n_cfg + len(folds_used) - 1

    design = np.zeros((len(cells), n_par))
    values = np.empty(len(cells))
    for k, (r, f, v) in enumerate(cells):
        design[k, r] = 1.0
        j = fold_pos[f]
        if j > 0:
            design[k, n_cfg + j - 1] = 1.0
        values[k] = v

    xtx_inv = np.linalg.pinv(design.T @ design)
    beta = xtx_inv @ design.T @ values
    df_resid = len(values) - np.linalg.matrix_rank(design)

    effects = beta[:n_cfg]
    b = int(np.argmin(effects))
    best = candidates[b]
    if df_resid <= 0:
        return candidates, best

    resid = values - design @ beta
    sigma2 = float(resid @ resid) / df_resid
    t_crit = stats.t.ppf(1.0 - alpha, df_resid)

    keep = []
    for r, i in enumerate(candidates):
        if r == b:
            keep.append(i)
            continue
        contrast = np.zeros(n_par)
        contrast[r], contrast[b] = 1.0, -1.0
        diff = float(contrast @ beta)
        se = np.sqrt(max(sigma2 * float(contrast @ xtx_inv @ contrast), 0.0))
        if diff - t_crit * se <= TIE_TOLERANCE:
            keep.append(i)
    return keep, best


class TuneResult:
    """Per-fold metrics and out-of-fold predictions of one racing pass."""

    def __init__(self, family, configs, fold_metrics, evaluated, oof, row_index,
                 survivor_history, eliminated_after, errors, metric, n_fits):
        self.family = family
        self.configs = configs
        self.fold_metrics = fold_metrics
        self.evaluated = evaluated
        self.oof = oof
        self.row_index = row_index
        self.survivor_history = survivor_history
        self.eliminated_after = eliminated_after
        self.errors = errors
        self.metric = metric
        self.n_fits = n_fits

    def __repr__(self):
        return (f"TuneResult(model={self.model_name!r}, configs={len(self.configs)}, "
                f"survivors={len(self.survivors)}, fits={self.n_fits})")

    @property
    def model_name(self) -> str:
        return self.family.name

    @property
    def n_folds(self) -> int:
        return self.fold_metrics.shape[1]

    @property
    def config_ids(self) -> List[str]:
        return [f"{self.model_name}_{i + 1:02d}" for i in range(len(self.configs))]

    @property
    def survivors(self) -> List[int]:
        return self.survivor_history[-1]

    def summary(self) -> pd.DataFrame:
        """One row per configuration, best first, configurations without a valid fold last."""
        rows = []
        for i, (config_id, params) in enumerate(zip(self.config_ids, self.configs)):
            mean, std_err, n = _summarise_cells(self.fold_metrics[i])
            rows.append({
                'config_id': config_id,
                'model': self.model_name,
                'params': params,
                'metric': self.metric.name,
                'mean': mean,
                'std_err': std_err,
                'n_folds': n,
                'eliminated_after': self.eliminated_after.get(i),
                'survived': i in self.survivors,
            })
        table = pd.DataFrame(rows)
        table['_order'] = self.metric.sign * table['mean']
        table = table.sort_values('_order', kind='mergesort', na_position='last')
        return table.drop(columns='_order').reset_index(drop=True)

    def show_best(self, n=5) -> pd.DataFrame:
        return self.summary().head(n)

    def select_best(self) -> Dict[str, Any]:
        top = self.summary().iloc[0]
        if not np.isfinite(top['mean']):
            raise RuntimeError(f"No configuration of '{self.model_name}' produced a valid fold")
        return dict(top['params'])

    def complete_configs(self) -> List[int]:
        """Configurations with a valid result on every fold."""
        return [i for i in range(len(self.configs)) if np.isfinite(self.fold_metrics[i]).all()]

    def oof_predictions(self) -> pd.DataFrame:
        """Out-of-fold predictions of the complete configurations (rows = training rows)."""
        if self.oof is None:
            raise RuntimeError("Tuning ran with save_predictions=False")
        complete = self.complete_configs()
        ids = self.config_ids
        return pd.DataFrame(
            {ids[i]: self.oof[i] for i in complete},
            index=self.row_index,
        )

    def params_for(self, config_id) -> Dict[str, Any]:
        return dict(self.configs[self.config_ids.index(config_id)])


class RaceTuner:
    """
    Racing hyperparameter search for one model family.

    Usage:
      tuner = RaceTuner(family, schema, folds, grid_size=10, n_workers=3)
      result = tuner.tune(train_df, log_target(train_df['Rings']))
    """

    def __init__(self, family, schema, folds, grid_size=10, metric: Metric = rmse, alpha=0.05,
                 burn_in=3, n_workers=1, seed=0, save_predictions=True, backend='loky'):
        if burn_in < 2:
            raise ValueError("burn_in must be >= 2 to estimate fold-to-fold variance")
        self.family = family
        self.schema = schema
        self.folds = list(folds)
        self.grid_size = grid_size
        self.metric = metric
        self.alpha = alpha
        self.burn_in = burn_in
        self.n_workers = n_workers
        self.seed = seed
        self.save_predictions = save_predictions
        self.backend = backend

    def tune(self, train_df, y, configs: Optional[Sequence[Dict[str, Any]]] = None) -> TuneResult:
        """
        Race the configurations over the folds.

        Args:
            train_df: training rows (raw schema); folds index it positionally
            y: target on the modelling scale, aligned with train_df
            configs: explicit configurations; drawn from the search space if None
        """
        if configs is None:
            configs = self.family.search_space().sample(self.grid_size, self.seed)
        configs = [dict(c) for c in configs]
        y = np.asarray(y, dtype=float)
        if len(y) != len(train_df):
            raise ValueError(f"Target has {len(y)} rows, training frame has {len(train_df)}")

        n_cfg, n_folds = len(configs), len(self.folds)
        fold_metrics = np.full((n_cfg, n_folds), np.nan)
        evaluated = np.zeros((n_cfg, n_folds), dtype=bool)
        oof = np.full((n_cfg, len(train_df)), np.nan) if self.save_predictions else None
        errors: Dict[Tuple[int, int], str] = {}
        eliminated_after: Dict[int, int] = {}
        alive = list(range(n_cfg))
        history = [list(alive)]
        n_fits = 0

        recipe = Recipe(self.family.recipe, self.schema)
        print(f"Racing {self.family.name}: {n_cfg} configurations x {n_folds} folds "
              f"({self.n_workers} workers, alpha={self.alpha}, burn-in={self.burn_in})")

        with worker_pool(self.n_workers, backend=self.backend) as parallel:
            for f, (fit_idx, val_idx) in enumerate(self.folds):
                state = recipe.fit(train_df.iloc[fit_idx])
                X_fit = state.apply(train_df.iloc[fit_idx])
                X_val = state.apply(train_df.iloc[val_idx])

                outcomes = parallel(
                    delayed(_fit_predict)(self.family, configs[i], self.seed, X_fit, y[fit_idx],
                                          X_val, state.categorical_features)
                    for i in alive
                )

                # barrier: every survivor's result for this fold is in
                for i, (preds, error) in zip(alive, outcomes):
                    evaluated[i, f] = True
                    n_fits += 1
                    if error is not None:
                        errors[(i, f)] = error
                        warnings.warn(f"{self.family.name} configuration {i + 1} failed on fold {f + 1}: {error}",
                                      RuntimeWarning)
                        continue
                    fold_metrics[i, f] = self.metric(y[val_idx], preds)
                    if oof is not None:
                        oof[i, val_idx] = preds

                if f + 1 >= self.burn_in and len(alive) > 1:
                    keep, _ = anova_filter(fold_metrics[:, :f + 1], alive, self.alpha, self.metric.sign)
                    for i in alive:
                        if i not in keep:
                            eliminated_after[i] = f + 1
                    alive = keep

                history.append(list(alive))
                print(f"  fold {f + 1}/{n_folds}: {len(alive)} of {n_cfg} configurations remaining")

        print(f"  {n_fits} fits (full grid would need {n_cfg * n_folds})")

        return TuneResult(
            family=self.family,
            configs=configs,
            fold_metrics=fold_metrics,
            evaluated=evaluated,
            oof=oof,
            row_index=train_df.index,
            survivor_history=history,
            eliminated_after=eliminated_after,
            errors=errors,
            metric=self.metric,
            n_fits=n_fits,
        )
