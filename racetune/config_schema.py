# Config schema validation
# Validates config structure, types and value ranges before any fitting starts

REQUIRED_KEYS = {
    'experiment': ['name', 'seed'],
    'data': ['id_column', 'target_column', 'categorical_column', 'numeric_columns'],
    'split': ['prop'],
    'cross_validation': ['n_splits'],
    'tuning': ['grid_size', 'models'],
}

ALLOWED_MODEL_TYPES = [
    'glmnet', 'knn', 'random_forest', 'svm_rbf', 'xgboost', 'lightgbm', 'mlp'
]


class ConfigValidationError(Exception):
    """Raised when a configuration cannot produce a valid run."""
    pass


def validate_config(config):
    """
    Validate pipeline configuration.

    Args:
        config: dict - Configuration dictionary (as loaded from YAML)

    Raises:
        ConfigValidationError if validation fails
    """
    errors = []

    # Check required top-level keys
    for section, required_keys in REQUIRED_KEYS.items():
        if section not in config:
            errors.append(f"Missing required section: '{section}'")
            continue
        for key in required_keys:
            if key not in config[section]:
                errors.append(f"Missing required key: '{section}.{key}'")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    if not isinstance(config['experiment'].get('seed'), int):
        errors.append("experiment.seed must be an integer")

    errors.extend(_validate_data(config['data']))

    prop = config['split'].get('prop')
    if not isinstance(prop, (int, float)) or not 0 < prop < 1:
        errors.append(f"split.prop must be in (0, 1), got {prop!r}")

    n_splits = config['cross_validation'].get('n_splits')
    if not isinstance(n_splits, int):
        errors.append("cross_validation.n_splits must be an integer")
    elif n_splits < 2:
        errors.append("cross_validation.n_splits must be >= 2")

    errors.extend(_validate_tuning(config['tuning'], n_splits))

    blending = config.get('blending', {})
    if blending.get('enabled'):
        penalties = blending.get('penalties', [])
        if not penalties or any(not isinstance(p, (int, float)) or p <= 0 for p in penalties):
            errors.append("blending.penalties must be a non-empty list of positive numbers")
        if blending.get('n_splits', 5) < 2:
            errors.append("blending.n_splits must be >= 2")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    return True


def _validate_data(data):
    errors = []
    numeric = data.get('numeric_columns') or []
    if not isinstance(numeric, list) or not numeric:
        errors.append("data.numeric_columns must be a non-empty list")
        numeric = []

    weight = data.get('weight_columns', []) or []
    unknown_weight = [c for c in weight if c not in numeric]
    if unknown_weight:
        errors.append(f"data.weight_columns must be numeric columns, unknown: {unknown_weight}")

    reserved = {data.get('id_column'), data.get('target_column'), data.get('categorical_column')}
    clashes = [c for c in numeric if c in reserved]
    if clashes:
        errors.append(f"data.numeric_columns overlaps id/target/categorical columns: {clashes}")
    return errors


def _validate_tuning(tuning, n_splits):
    errors = []

    grid_size = tuning.get('grid_size')
    if not isinstance(grid_size, int) or grid_size < 1:
        errors.append("tuning.grid_size must be a positive integer")

    models = tuning.get('models') or []
    if not models:
        errors.append("tuning.models must name at least one model")
    invalid = [m for m in models if m not in ALLOWED_MODEL_TYPES]
    if invalid:
        errors.append(f"Invalid model type(s) {invalid}. Allowed: {ALLOWED_MODEL_TYPES}")

    for name, size in (tuning.get('grid_sizes') or {}).items():
        if name not in models:
            errors.append(f"tuning.grid_sizes names a model that is not tuned: '{name}'")
        elif not isinstance(size, int) or size < 1:
            errors.append(f"tuning.grid_sizes.{name} must be a positive integer")

    alpha = tuning.get('alpha', 0.05)
    if not isinstance(alpha, (int, float)) or not 0 < alpha < 1:
        errors.append(f"tuning.alpha must be in (0, 1), got {alpha!r}")

    burn_in = tuning.get('burn_in', 3)
    if not isinstance(burn_in, int) or burn_in < 2:
        errors.append("tuning.burn_in must be an integer >= 2")
    elif isinstance(n_splits, int) and burn_in > n_splits:
        errors.append(f"tuning.burn_in ({burn_in}) exceeds cross_validation.n_splits ({n_splits})")

    n_workers = tuning.get('n_workers', 1)
    if not isinstance(n_workers, int) or n_workers < 1:
        errors.append("tuning.n_workers must be a positive integer")
    return errors
