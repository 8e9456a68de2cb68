# Ensemble blending (stacking) from out-of-fold predictions

from collections import OrderedDict
from typing import List

import numpy as np
import pandas as pd
from sklearn.linear_model import LassoCV
from sklearn.model_selection import KFold

from .config_schema import ConfigValidationError
from .data import inverse_target
from .finalize import fit_final

DEFAULT_PENALTIES = [1e-6, 1e-5, 1e-4, 1e-3, 1e-2, 1e-1]


class EnsembleBlender:
    """
    Non-negative lasso over the candidates' out-of-fold predictions.

    Usage:
      blender = EnsembleBlender()
      for result in tune_results:
          blender.add_candidates(result)
      blender.blend(y_log)
      blender.fit_members(train_df, schema)
      preds = blender.predict_original(test_df)
    """

    def __init__(self, penalties=None, n_splits=5, seed=0):
        self.penalties = sorted(penalties or DEFAULT_PENALTIES)
        self.n_splits = n_splits
        self.seed = seed
        self.candidates = OrderedDict()
        self._columns: List[pd.DataFrame] = []
        self.weights = None
        self.intercept = 0.0
        self.penalty = None
        self.members = OrderedDict()

    def add_candidates(self, result):
        """Register every configuration of a TuneResult that finished all folds."""
        preds = result.oof_predictions()
        if self._columns and not preds.index.equals(self._columns[0].index):
            raise ValueError(f"Out-of-fold rows of '{result.model_name}' do not match earlier candidates")
        for config_id in preds.columns:
            if config_id in self.candidates:
                raise ValueError(f"Candidate '{config_id}' was already added")
            self.candidates[config_id] = (result.family, result.params_for(config_id))
        self._columns.append(preds)
        print(f"Blend candidates from {result.model_name}: {len(preds.columns)}")
        return self

    def stack_data(self) -> pd.DataFrame:
        if not self._columns:
            raise ConfigValidationError("No blend candidates: no configuration completed every fold")
        return pd.concat(self._columns, axis=1)

    def blend(self, y):
        """
        Learn non-negative blending weights.

        Args:
            y: target on the modelling scale, aligned with the stacked rows

        Raises:
            ConfigValidationError if every weight is zero
        """
        X = self.stack_data()
        y = np.asarray(y, dtype=float)
        if len(y) != len(X):
            raise ValueError(f"Target has {len(y)} rows, stacked predictions have {len(X)}")

        cv = KFold(n_splits=self.n_splits, shuffle=True, random_state=self.seed)
        model = LassoCV(alphas=self.penalties, cv=cv, positive=True, max_iter=100000)
        model.fit(X.values, y)

        self.penalty = float(model.alpha_)
        self.weights = pd.Series(model.coef_, index=X.columns, name='weight')
        self.intercept = float(model.intercept_)

        n_members = int((self.weights > 0).sum())
        if n_members == 0:
            raise ConfigValidationError(
                f"All blend weights are zero at penalty {self.penalty:g}; the ensemble has no members"
            )
        print(f"Blend: penalty={self.penalty:g}, {n_members} of {len(self.weights)} candidates kept")
        return self.weights

    def member_weights(self) -> pd.Series:
        if self.weights is None:
            raise RuntimeError("Call blend() first")
        return self.weights[self.weights > 0]

    def fit_members(self, train_df, schema, seed=0):
        """Refit every non-zero member's recipe and model on all training rows."""
        self.members = OrderedDict()
        for config_id in self.member_weights().index:
            family, params = self.candidates[config_id]
            self.members[config_id] = fit_final(family, params, train_df, schema, seed)
        return self

    def predict(self, df):
        """Weighted combination of member predictions on the log1p scale."""
        if not self.members:
            raise RuntimeError("Call fit_members() first")
        weights = self.member_weights()
        pred = np.full(len(df), self.intercept)
        for config_id, member in self.members.items():
            pred += weights[config_id] * member.predict(df)
        return pred

    def predict_original(self, df):
        return inverse_target(self.predict(df))
