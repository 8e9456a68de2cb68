# racetune package
# Tune-evaluate-select-blend workflow for tabular regression with racing CV

from .config_schema import validate_config, ConfigValidationError
from .io import load_config, save_results, save_model, create_run_dir, save_data_profile, write_predictions
from .data import (
    Schema, schema_from_config, load_dataset, validate_data_integrity,
    split_dataset, make_folds, log_target, inverse_target,
)
from .metrics import Metric, rmse, rmsle
from .recipes import Recipe, RecipeState
from .search_space import ParamSpec, SearchSpace
from .models import ModelFamily, build_candidates, get_family, SUPPORTED_MODELS
from .racing import RaceTuner, TuneResult, anova_filter
from .selection import ModelSelector
from .finalize import FittedPipeline, fit_final, last_fit, evaluate
from .blending import EnsembleBlender

__all__ = [
    'validate_config',
    'ConfigValidationError',
    'load_config',
    'save_results',
    'save_model',
    'create_run_dir',
    'save_data_profile',
    'write_predictions',
    'Schema',
    'schema_from_config',
    'load_dataset',
    'validate_data_integrity',
    'split_dataset',
    'make_folds',
    'log_target',
    'inverse_target',
    'Metric',
    'rmse',
    'rmsle',
    'Recipe',
    'RecipeState',
    'ParamSpec',
    'SearchSpace',
    'ModelFamily',
    'build_candidates',
    'get_family',
    'SUPPORTED_MODELS',
    'RaceTuner',
    'TuneResult',
    'anova_filter',
    'ModelSelector',
    'FittedPipeline',
    'fit_final',
    'last_fit',
    'evaluate',
    'EnsembleBlender',
]
