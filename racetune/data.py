# Data loading, integrity checks, splitting and fold assignment

from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold

from .config_schema import ConfigValidationError


@dataclass(frozen=True)
class Schema:
    """Column roles of the tabular dataset."""
    id_column: str
    target_column: str
    categorical_column: str
    numeric_columns: Tuple[str, ...]
    weight_columns: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def feature_columns(self) -> List[str]:
        return [self.categorical_column] + list(self.numeric_columns)


def schema_from_config(config) -> Schema:
    data = config['data']
    return Schema(
        id_column=data['id_column'],
        target_column=data['target_column'],
        categorical_column=data['categorical_column'],
        numeric_columns=tuple(data['numeric_columns']),
        weight_columns=tuple(data.get('weight_columns') or ()),
    )


def load_dataset(path):
    """Load a delimited table from disk."""
    print(f"Loading dataset: {path}")
    return pd.read_csv(path)


def validate_data_integrity(df, schema, require_target=True):
    """
    Validate a frame against the schema before it enters the pipeline.

    Checks:
    - Non-empty, all schema columns present
    - No NaN/infinite values in numeric features
    - Target (when required) is a non-negative integer with no missing values
    """
    errors = []

    if len(df) == 0:
        raise ValueError("Dataset is empty")

    expected = [schema.id_column] + schema.feature_columns
    if require_target:
        expected.append(schema.target_column)
    missing = [c for c in expected if c not in df.columns]
    if missing:
        raise ValueError(f"Columns not found in dataset: {missing}. Available: {list(df.columns)}")

    if df[schema.id_column].duplicated().any():
        errors.append(f"Duplicate identifiers in '{schema.id_column}'")

    for col in schema.numeric_columns:
        values = pd.to_numeric(df[col], errors='coerce')
        if values.isnull().any():
            errors.append(f"NaN or non-numeric values found in feature: {col}")
        elif not np.isfinite(values).all():
            errors.append(f"Infinite values found in feature: {col}")

    if df[schema.categorical_column].isnull().any():
        errors.append(f"NaN values found in categorical feature: {schema.categorical_column}")

    if require_target:
        y = df[schema.target_column]
        if y.isnull().any():
            errors.append(f"NaN values found in target ({schema.target_column}): {y.isnull().sum()} missing")
        elif (y < 0).any():
            errors.append(f"Negative values found in target: {schema.target_column}")
        elif not np.allclose(y, np.round(y)):
            errors.append(f"Non-integer values found in target: {schema.target_column}")

    if errors:
        raise ValueError("Data integrity check failed:\n  - " + "\n  - ".join(errors))

    return True


def split_dataset(df, prop, seed):
    """
    Split a frame into training and held-out subsets.

    The training subset holds round(prop * n) rows drawn uniformly without
    replacement; the same seed and input always give the same split.

    Returns:
        (train, test) DataFrames, original index preserved
    """
    if not isinstance(prop, (int, float)) or not 0 < prop < 1:
        raise ConfigValidationError(f"Split proportion must be in (0, 1), got {prop!r}")
    n = len(df)
    if n == 0:
        raise ValueError("Cannot split an empty dataset")

    rng = np.random.default_rng(seed)
    order = rng.permutation(n)
    n_train = int(round(prop * n))
    train_pos = np.sort(order[:n_train])
    test_pos = np.sort(order[n_train:])
    return df.iloc[train_pos], df.iloc[test_pos]


def make_folds(n_rows, n_splits, seed):
    """
    Assign rows to k folds.

    Returns:
        list of (analysis_idx, assessment_idx) positional index arrays
    """
    if n_splits < 2:
        raise ConfigValidationError("n_splits must be >= 2")
    if n_rows < n_splits:
        raise ValueError(f"Cannot make {n_splits} folds from {n_rows} rows")
    cv = KFold(n_splits=n_splits, shuffle=True, random_state=seed)
    return [(train_idx, val_idx) for train_idx, val_idx in cv.split(np.arange(n_rows))]


def log_target(y):
    """Target on the modelling scale (log1p)."""
    return np.log1p(np.asarray(y, dtype=float))


def inverse_target(y_log):
    """Back to the original target scale (expm1)."""
    return np.expm1(np.asarray(y_log, dtype=float))
