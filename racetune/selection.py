# Model selection across tuned families

from collections import OrderedDict
from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd


class ModelSelector:
    """
    Collects TuneResults and ranks every tuned configuration.

    Lower is better for minimised metrics; ties keep insertion order
    (families in the order they were added, configurations in draw order).
    """

    def __init__(self):
        self.results = OrderedDict()

    def add(self, result):
        if result.model_name in self.results:
            raise ValueError(f"Model '{result.model_name}' was already added")
        if self.results:
            first = next(iter(self.results.values()))
            if first.metric.name != result.metric.name:
                raise ValueError(
                    f"Cannot rank '{result.metric.name}' against '{first.metric.name}'"
                )
        self.results[result.model_name] = result
        return self

    def _metric(self):
        if not self.results:
            raise RuntimeError("No tuning results to rank")
        return next(iter(self.results.values())).metric

    def rank(self) -> pd.DataFrame:
        """One row per evaluated configuration across all families, best first."""
        metric = self._metric()
        table = pd.concat([r.summary() for r in self.results.values()], ignore_index=True)
        table['_order'] = metric.sign * table['mean']
        table = table.sort_values('_order', kind='mergesort', na_position='last')
        table = table.drop(columns='_order').reset_index(drop=True)
        table.insert(0, 'rank', np.arange(1, len(table) + 1))
        return table

    def show_best(self, model, n=5) -> pd.DataFrame:
        return self._result(model).show_best(n)

    def best_config(self, model) -> Dict[str, Any]:
        return self._result(model).select_best()

    def best(self) -> Tuple[str, Dict[str, Any]]:
        """(model, params) of the overall best configuration."""
        top = self.rank().iloc[0]
        if not np.isfinite(top['mean']):
            raise RuntimeError("No configuration produced a valid fold")
        return top['model'], dict(top['params'])

    def _result(self, model):
        if model not in self.results:
            raise KeyError(f"No tuning result for '{model}'. Available: {list(self.results)}")
        return self.results[model]
