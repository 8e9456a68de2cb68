# Model candidate set
# Each family declares its recipe variant and search space; nothing is trained
# until the tuner or finalizer calls fit().

from dataclasses import dataclass
from typing import Any, Callable, Dict, Sequence

import numpy as np
from lightgbm import LGBMRegressor
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import ElasticNet
from sklearn.neighbors import KNeighborsRegressor
from sklearn.neural_network import MLPRegressor
from sklearn.svm import SVR
from xgboost import XGBRegressor

from .search_space import ParamSpec, SearchSpace

SUPPORTED_MODELS = ['glmnet', 'knn', 'random_forest', 'svm_rbf', 'xgboost', 'lightgbm', 'mlp']


@dataclass(frozen=True)
class ModelFamily:
    name: str
    recipe: str
    space: SearchSpace
    builder: Callable[[Dict[str, Any], int], Any]
    native_categorical: bool = False

    def search_space(self) -> SearchSpace:
        return self.space

    def build(self, params, seed):
        return self.builder(params, seed)

    def fit(self, X, y, params, seed, categorical: Sequence[str] = ()):
        estimator = self.build(params, seed)
        fit_kwargs = {}
        if self.native_categorical and categorical:
            fit_kwargs['categorical_feature'] = list(categorical)
        estimator.fit(X, y, **fit_kwargs)
        return estimator

    def predict(self, estimator, X):
        return np.asarray(estimator.predict(X), dtype=float)


def gaussian_kernel_weights(distances):
    """Neighbour weights from a Gaussian kernel on row-scaled distances."""
    distances = np.asarray(distances, dtype=float)
    scale = distances.max(axis=1, keepdims=True)
    scale = np.where(scale > 0, scale, 1.0)
    return np.exp(-0.5 * (distances / scale) ** 2)


# Builders are module-level so estimators can be rebuilt inside worker processes.

def _build_glmnet(params, seed):
    # ElasticNet is a deterministic coordinate-descent solver, no random_state
    return ElasticNet(alpha=params['alpha'], l1_ratio=params['l1_ratio'], max_iter=10000)


def _build_knn(params, seed):
    return KNeighborsRegressor(n_neighbors=params['n_neighbors'], weights=gaussian_kernel_weights)


def _build_random_forest(params, seed):
    return RandomForestRegressor(
        n_estimators=params['n_estimators'],
        max_features=params['max_features'],
        min_samples_leaf=params['min_samples_leaf'],
        random_state=seed,
        n_jobs=1,
    )


def _build_svm_rbf(params, seed):
    return SVR(kernel='rbf', C=params['C'], gamma=params['gamma'])


def _build_xgboost(params, seed):
    return XGBRegressor(
        max_depth=params['max_depth'],
        learning_rate=params['learning_rate'],
        min_child_weight=params['min_child_weight'],
        subsample=params['subsample'],
        n_estimators=params['n_estimators'],
        colsample_bytree=params['colsample_bytree'],
        gamma=params['gamma'],
        tree_method='hist',
        random_state=seed,
        n_jobs=1,
        verbosity=0,
    )


def _build_lightgbm(params, seed):
    return LGBMRegressor(
        max_depth=params['max_depth'],
        learning_rate=params['learning_rate'],
        min_child_samples=params['min_child_samples'],
        subsample=params['subsample'],
        subsample_freq=1,
        n_estimators=params['n_estimators'],
        random_state=seed,
        n_jobs=1,
        verbose=-1,
    )


def _build_mlp(params, seed):
    return MLPRegressor(
        hidden_layer_sizes=(params['hidden_units'],),
        alpha=params['alpha'],
        max_iter=params['max_iter'],
        learning_rate_init=params['learning_rate_init'],
        random_state=seed,
    )


def build_candidates(schema) -> Dict[str, ModelFamily]:
    """
    Declare every supported family.

    The random forest feature-sampling range depends on the number of
    predictors the tree recipe produces, hence the schema argument.
    """
    n_tree_features = len(schema.numeric_columns) + 1

    return {
        'glmnet': ModelFamily('glmnet', 'normalized', SearchSpace([
            ParamSpec('alpha', 'continuous', 1e-10, 1.0, log=True),
            ParamSpec('l1_ratio', 'continuous', 0.05, 1.0),
        ]), _build_glmnet),
        'knn': ModelFamily('knn', 'normalized', SearchSpace([
            ParamSpec('n_neighbors', 'integer', 5, 50),
        ]), _build_knn),
        'random_forest': ModelFamily('random_forest', 'tree', SearchSpace([
            ParamSpec('max_features', 'integer', 1, n_tree_features),
            ParamSpec('n_estimators', 'integer', 200, 1000),
            ParamSpec('min_samples_leaf', 'integer', 2, 40),
        ]), _build_random_forest),
        'svm_rbf': ModelFamily('svm_rbf', 'normalized', SearchSpace([
            ParamSpec('C', 'continuous', 2.0 ** -10, 2.0 ** 5, log=True),
            ParamSpec('gamma', 'continuous', 1e-10, 1.0, log=True),
        ]), _build_svm_rbf),
        'xgboost': ModelFamily('xgboost', 'boost', SearchSpace([
            ParamSpec('max_depth', 'integer', 1, 15),
            ParamSpec('learning_rate', 'continuous', 1e-3, 0.3, log=True),
            ParamSpec('min_child_weight', 'integer', 2, 40),
            ParamSpec('subsample', 'continuous', 0.5, 1.0),
            ParamSpec('n_estimators', 'integer', 100, 1000),
            ParamSpec('colsample_bytree', 'continuous', 0.3, 1.0),
            ParamSpec('gamma', 'continuous', 1e-10, 30.0, log=True),
        ]), _build_xgboost),
        'lightgbm': ModelFamily('lightgbm', 'tree', SearchSpace([
            ParamSpec('max_depth', 'integer', 1, 15),
            ParamSpec('learning_rate', 'continuous', 1e-3, 0.3, log=True),
            ParamSpec('min_child_samples', 'integer', 2, 40),
            ParamSpec('subsample', 'continuous', 0.5, 1.0),
            ParamSpec('n_estimators', 'integer', 100, 1000),
        ]), _build_lightgbm, native_categorical=True),
        'mlp': ModelFamily('mlp', 'normalized', SearchSpace([
            ParamSpec('hidden_units', 'integer', 1, 10),
            ParamSpec('alpha', 'continuous', 1e-10, 1.0, log=True),
            ParamSpec('max_iter', 'integer', 10, 1000),
            ParamSpec('learning_rate_init', 'continuous', 1e-3, 0.1, log=True),
        ]), _build_mlp),
    }


def get_family(name, schema) -> ModelFamily:
    candidates = build_candidates(schema)
    if name not in candidates:
        raise ValueError(f"Unknown model type: '{name}'. Supported: {SUPPORTED_MODELS}")
    return candidates[name]
