# Hyperparameter search space declarations and random configuration draws

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy import stats
from sklearn.model_selection import ParameterSampler

from .config_schema import ConfigValidationError

PARAM_KINDS = ['continuous', 'integer', 'categorical']


@dataclass(frozen=True)
class ParamSpec:
    name: str
    kind: str
    low: Optional[float] = None
    high: Optional[float] = None
    log: bool = False
    levels: Optional[Sequence[Any]] = None

    def __post_init__(self):
        if self.kind not in PARAM_KINDS:
            raise ValueError(f"Unknown parameter kind '{self.kind}' for '{self.name}'")
        if self.kind == 'categorical':
            if not self.levels:
                raise ValueError(f"Categorical parameter '{self.name}' needs levels")
            return
        if self.low is None or self.high is None or self.low > self.high:
            raise ValueError(f"Parameter '{self.name}' needs bounds with low <= high")
        if self.log and self.low <= 0:
            raise ValueError(f"Log-scaled parameter '{self.name}' needs a positive lower bound")

    def distribution(self):
        """Sampling distribution understood by ParameterSampler."""
        if self.kind == 'categorical':
            return list(self.levels)
        if self.kind == 'integer':
            return stats.randint(int(self.low), int(self.high) + 1)
        if self.log:
            return stats.loguniform(self.low, self.high)
        return stats.uniform(self.low, self.high - self.low)

    def cast(self, value):
        if self.kind == 'integer':
            return int(value)
        if self.kind == 'continuous':
            return float(value)
        return value.item() if isinstance(value, np.generic) else value

    def contains(self, value) -> bool:
        if self.kind == 'categorical':
            return value in self.levels
        return self.low <= value <= self.high


class SearchSpace:
    """Ordered collection of ParamSpec for one model family."""

    def __init__(self, params: List[ParamSpec]):
        names = [p.name for p in params]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate parameter names in search space: {names}")
        self.params = list(params)

    def __len__(self):
        return len(self.params)

    def __iter__(self):
        return iter(self.params)

    def __repr__(self):
        return f"SearchSpace({[p.name for p in self.params]})"

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.params]

    def sample(self, n, seed) -> List[Dict[str, Any]]:
        """
        Draw n configurations at random from the space.

        Configurations come back in draw order with plain Python values.
        """
        if not self.params:
            raise ConfigValidationError("Search space is empty; nothing to tune")
        if n < 1:
            raise ConfigValidationError(f"Grid size must be >= 1, got {n}")

        distributions = {p.name: p.distribution() for p in self.params}
        sampler = ParameterSampler(distributions, n_iter=n, random_state=seed)
        specs = {p.name: p for p in self.params}
        return [
            {name: specs[name].cast(draw[name]) for name in self.names}
            for draw in sampler
        ]

    def contains(self, config) -> bool:
        return set(config) == set(self.names) and all(
            p.contains(config[p.name]) for p in self.params
        )
