# Evaluation metrics with an explicit optimisation direction

from dataclasses import dataclass
from typing import Callable

import numpy as np
from sklearn.metrics import mean_squared_error

MINIMIZE = 'minimize'
MAXIMIZE = 'maximize'


@dataclass(frozen=True)
class Metric:
    name: str
    func: Callable
    direction: str = MINIMIZE

    def __post_init__(self):
        if self.direction not in (MINIMIZE, MAXIMIZE):
            raise ValueError(f"Unknown metric direction: {self.direction!r}")

    def __call__(self, y_true, y_pred) -> float:
        return float(self.func(np.asarray(y_true, dtype=float), np.asarray(y_pred, dtype=float)))

    @property
    def sign(self) -> float:
        """+1 when lower is better, -1 otherwise; sign * value is always 'lower is better'."""
        return 1.0 if self.direction == MINIMIZE else -1.0

    def is_better(self, a, b) -> bool:
        return self.sign * a < self.sign * b


def _rmse(y_true, y_pred):
    return np.sqrt(mean_squared_error(y_true, y_pred))


def _rmsle(y_true, y_pred):
    return np.sqrt(mean_squared_error(np.log1p(y_true), np.log1p(y_pred)))


# Tuning metric: RMSE of predictions on the log1p target. Plain squared error on
# that scale is used as the RMSLE stand-in during tuning and blending.
rmse = Metric('rmse', _rmse, MINIMIZE)

# Exact RMSLE on the original scale, for holdout reporting.
rmsle = Metric('rmsle', _rmsle, MINIMIZE)

METRICS = {m.name: m for m in (rmse, rmsle)}


def get_metric(name):
    if name not in METRICS:
        raise ValueError(f"Unknown metric '{name}'. Supported: {sorted(METRICS)}")
    return METRICS[name]
