# Finalizer: refit a selected configuration on all training rows

from typing import Any, Dict

import numpy as np

from .data import inverse_target, log_target
from .metrics import rmse, rmsle
from .recipes import Recipe


class FittedPipeline:
    """A fitted recipe plus a fitted model; predicts on the log1p scale."""

    def __init__(self, family, params, state, estimator):
        self.family = family
        self.params = dict(params)
        self.state = state
        self.estimator = estimator

    def __repr__(self):
        return f"FittedPipeline(model={self.family.name!r}, params={self.params})"

    @property
    def model_name(self) -> str:
        return self.family.name

    def predict(self, df):
        """Predictions on the modelling (log1p) scale; the target column is not needed."""
        return self.family.predict(self.estimator, self.state.apply(df))

    def predict_original(self, df):
        return inverse_target(self.predict(df))


def fit_final(family, params, train_df, schema, seed=0) -> FittedPipeline:
    """Fit the recipe once and the model once on the full training frame."""
    y = log_target(train_df[schema.target_column])
    state = Recipe(family.recipe, schema).fit(train_df)
    X = state.apply(train_df)
    estimator = family.fit(X, y, params, seed, state.categorical_features)
    return FittedPipeline(family, params, state, estimator)


def evaluate(model, df, schema) -> Dict[str, float]:
    """
    Score any fitted model exposing predict() on labelled rows.

    Returns rmse on the log1p scale (the tuning metric) and the exact rmsle
    on the original scale.
    """
    y = np.asarray(df[schema.target_column], dtype=float)
    pred_log = model.predict(df)
    return {
        rmse.name: rmse(log_target(y), pred_log),
        rmsle.name: rmsle(y, inverse_target(pred_log)),
    }


def last_fit(family, params, train_df, test_df, schema, seed=0):
    """
    Fit on the training split and score once on the held-out split.

    Returns:
        (FittedPipeline, metrics dict)
    """
    pipeline = fit_final(family, params, train_df, schema, seed)
    return pipeline, evaluate(pipeline, test_df, schema)
