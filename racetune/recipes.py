# Preprocessing recipes
# A recipe is fitted once on training rows; the resulting RecipeState transforms
# any frame with the same schema using only the fitted statistics.

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder, PowerTransformer, StandardScaler

from .data import Schema

RECIPE_VARIANTS = ['normalized', 'tree', 'boost']

POLY_DEGREE = 2


def clean_name(name):
    """Column name safe for every model backend."""
    return re.sub(r'[^0-9a-zA-Z_]+', '_', str(name)).strip('_')


# =============================================================================
# ORTHOGONAL POLYNOMIALS
# =============================================================================

def fit_orthogonal_poly(x, degree=POLY_DEGREE):
    """
    Fit the recurrence coefficients of an orthogonal polynomial basis.

    The basis is built with the three-term recurrence
        z_{j+1} = (x - alpha_j) z_j - (norm2_{j+1} / norm2_j) z_{j-1}
    starting from z_0 = 1, so that on the fitted x every basis column is
    orthogonal to the constant and to the other columns, with unit norm
    after scaling.

    Returns:
        (alpha, norm2): alpha has `degree` entries, norm2 has `degree + 2`
    """
    x = np.asarray(x, dtype=float)
    if len(np.unique(x)) <= degree:
        raise ValueError(f"Need more than {degree} distinct values for a degree-{degree} basis")

    alpha = []
    norm2 = [1.0, float(len(x))]
    z_prev, z = np.zeros_like(x), np.ones_like(x)
    for _ in range(degree):
        a = float(np.sum(x * z ** 2) / norm2[-1])
        alpha.append(a)
        z_prev, z = z, (x - a) * z - (norm2[-1] / norm2[-2]) * z_prev
        norm2.append(float(np.sum(z ** 2)))
    return alpha, norm2


def apply_orthogonal_poly(x, alpha, norm2):
    """Evaluate a fitted basis on new values; returns an (n, degree) array."""
    x = np.asarray(x, dtype=float)
    degree = len(alpha)
    out = np.empty((len(x), degree))
    z_prev, z = np.zeros_like(x), np.ones_like(x)
    for j in range(degree):
        z_prev, z = z, (x - alpha[j]) * z - (norm2[j + 1] / norm2[j]) * z_prev
        out[:, j] = z / np.sqrt(norm2[j + 2])
    return out


# =============================================================================
# RECIPE
# =============================================================================

@dataclass
class RecipeState:
    """Everything a fitted recipe needs to transform new rows."""
    variant: str
    schema: Schema
    levels: List[str]
    power: Optional[PowerTransformer] = None
    scaler: Optional[StandardScaler] = None
    encoder: Optional[OneHotEncoder] = None
    poly: Dict[str, Tuple[List[float], List[float]]] = field(default_factory=dict)

    @property
    def categorical_features(self) -> List[str]:
        """Output columns that hold unordered label codes."""
        if self.variant == 'tree':
            return [clean_name(self.schema.categorical_column)]
        return []

    def apply(self, df) -> pd.DataFrame:
        """
        Transform a frame with the fitted statistics.

        The id and target columns are ignored, so scoring data without a
        target is accepted.
        """
        schema = self.schema
        numeric = df[list(schema.numeric_columns)].astype(float)

        if self.variant == 'normalized':
            values = self.power.transform(numeric)
            values = self.scaler.transform(values)
            numeric = pd.DataFrame(values, columns=list(schema.numeric_columns), index=df.index)

        out = {}
        for col in schema.numeric_columns:
            if col in self.poly:
                alpha, norm2 = self.poly[col]
                basis = apply_orthogonal_poly(numeric[col].values, alpha, norm2)
                for j in range(basis.shape[1]):
                    out[f"{clean_name(col)}_poly_{j + 1}"] = basis[:, j]
            else:
                out[clean_name(col)] = numeric[col].values

        categories = df[schema.categorical_column].astype(str)
        if self.variant == 'tree':
            codes = {level: i for i, level in enumerate(self.levels)}
            out[clean_name(schema.categorical_column)] = categories.map(codes).fillna(-1).astype(int).values
        else:
            # unseen levels encode as all zeros
            dummies = self.encoder.transform(categories.to_frame())
            for j, level in enumerate(self.levels):
                out[clean_name(f"{schema.categorical_column}_{level}")] = dummies[:, j]

        return pd.DataFrame(out, index=df.index)


class Recipe:
    """
    Declarative preprocessing for one of the recipe variants.

    normalized: Yeo-Johnson, centre/scale, one-hot, orthogonal polynomials
    tree:       categorical kept as a label code, numeric untouched
    boost:      tree variant plus one-hot and orthogonal polynomials
    """

    def __init__(self, variant, schema):
        if variant not in RECIPE_VARIANTS:
            raise ValueError(f"Unknown recipe variant '{variant}'. Supported: {RECIPE_VARIANTS}")
        self.variant = variant
        self.schema = schema

    def __repr__(self):
        return f"Recipe(variant={self.variant!r})"

    def fit(self, df) -> RecipeState:
        schema = self.schema
        if len(df) == 0:
            raise ValueError("Cannot fit a recipe on an empty frame")

        numeric = df[list(schema.numeric_columns)].astype(float)
        categories = df[schema.categorical_column].astype(str)
        levels = sorted(categories.unique().tolist())
        state = RecipeState(variant=self.variant, schema=schema, levels=levels)

        if self.variant == 'normalized':
            state.power = PowerTransformer(method='yeo-johnson', standardize=False)
            values = state.power.fit_transform(numeric)
            state.scaler = StandardScaler()
            values = state.scaler.fit_transform(values)
            numeric = pd.DataFrame(values, columns=list(schema.numeric_columns), index=df.index)

        if self.variant in ('normalized', 'boost'):
            state.encoder = OneHotEncoder(categories=[levels], handle_unknown='ignore', sparse_output=False)
            state.encoder.fit(categories.to_frame())
            for col in schema.weight_columns:
                state.poly[col] = fit_orthogonal_poly(numeric[col].values, POLY_DEGREE)

        return state
