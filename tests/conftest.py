import pytest
import pandas as pd
import numpy as np

from racetune.data import Schema

NUMERIC_COLUMNS = [
    "Length", "Diameter", "Height",
    "Whole weight", "Whole weight.1", "Whole weight.2", "Shell weight",
]
WEIGHT_COLUMNS = ["Whole weight", "Whole weight.1", "Whole weight.2", "Shell weight"]


def make_abalone_df(n, seed, with_target=True):
    """
    Synthetic frame with the abalone schema:
      - id (unique identifier)
      - Sex (3 levels)
      - 7 continuous measurements, 4 of them weights
      - Rings (integer target in [1, 29])
    """
    rng = np.random.default_rng(seed)
    sex = rng.choice(["M", "F", "I"], size=n, p=[0.37, 0.31, 0.32])
    length = rng.uniform(0.1, 0.8, size=n) - np.where(sex == "I", 0.08, 0.0)
    length = np.clip(length, 0.075, None)
    diameter = 0.8 * length + rng.normal(0, 0.01, size=n)
    height = np.abs(0.35 * length + rng.normal(0, 0.01, size=n))
    whole = 2.6 * length ** 3 + np.abs(rng.normal(0, 0.02, size=n))
    shucked = whole * rng.uniform(0.38, 0.48, size=n)
    viscera = whole * rng.uniform(0.18, 0.24, size=n)
    shell = whole * rng.uniform(0.25, 0.32, size=n)

    df = pd.DataFrame({
        "id": np.arange(n),
        "Sex": sex,
        "Length": length,
        "Diameter": diameter,
        "Height": height,
        "Whole weight": whole,
        "Whole weight.1": shucked,
        "Whole weight.2": viscera,
        "Shell weight": shell,
    })
    if with_target:
        rings = 4 + 22 * shell + 6 * height + rng.normal(0, 1.5, size=n) - (sex == "I") * 1.5
        df["Rings"] = np.clip(np.round(rings), 1, 29).astype(int)
    return df


@pytest.fixture(scope="session")
def seed():
    return 42


@pytest.fixture(scope="session")
def schema():
    return Schema(
        id_column="id",
        target_column="Rings",
        categorical_column="Sex",
        numeric_columns=tuple(NUMERIC_COLUMNS),
        weight_columns=tuple(WEIGHT_COLUMNS),
    )


@pytest.fixture
def abalone_df(seed):
    """1000 labelled rows."""
    return make_abalone_df(1000, seed)


@pytest.fixture
def small_df(seed):
    """200 labelled rows for quick fits."""
    return make_abalone_df(200, seed)


@pytest.fixture
def base_config(tmp_path, seed):
    """
    Minimal config: one fast model, no blending.
    """
    cfg = {
        "experiment": {
            "name": "pytest_racing",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "train_path": str(tmp_path / "train.csv"),
            "id_column": "id",
            "target_column": "Rings",
            "categorical_column": "Sex",
            "numeric_columns": list(NUMERIC_COLUMNS),
            "weight_columns": list(WEIGHT_COLUMNS),
        },
        "split": {"prop": 0.8},
        "cross_validation": {"n_splits": 5},
        "tuning": {
            "grid_size": 4,
            "models": ["glmnet"],
            "alpha": 0.05,
            "burn_in": 3,
            "n_workers": 1,
        },
        "blending": {"enabled": False},
    }
    return cfg


@pytest.fixture
def write_yaml(tmp_path):
    import yaml
    def _write(cfg, name="temp.yaml"):
        p = tmp_path / name
        with open(p, "w") as f:
            yaml.safe_dump(cfg, f, default_flow_style=False)
        return str(p)
    return _write
