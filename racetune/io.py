# I/O utilities for the racing pipeline
# Config loading, run directory management, result and prediction files

import os
import json
import hashlib
from datetime import datetime

import joblib
import numpy as np
import pandas as pd
import yaml


def load_config(config_path):
    """Load YAML configuration file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Config file is empty or invalid: {config_path}")

    return config


def config_hash(config):
    """Generate deterministic hash of config for run naming."""
    config_str = json.dumps(config, sort_keys=True)
    return hashlib.md5(config_str.encode()).hexdigest()[:8]


def dataset_hash(df):
    """Generate hash of dataset content for fingerprinting."""
    content = f"{df.shape}_{df.columns.tolist()}_{df.head(10).to_json()}_{df.tail(10).to_json()}"
    return hashlib.md5(content.encode()).hexdigest()[:12]


def create_run_dir(config, output_dir=None):
    """Create unique run directory for pipeline outputs."""
    output_dir = output_dir or config['experiment'].get('output_dir', 'runs')
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    cfg_hash = config_hash(config)
    run_name = f"{config['experiment']['name']}_{timestamp}_{cfg_hash}"
    run_dir = os.path.join(output_dir, run_name)
    os.makedirs(run_dir, exist_ok=True)
    return run_dir


def _to_builtin(value):
    if isinstance(value, dict):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_builtin(v) for v in value]
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def save_results(run_dir, config, ranking, summary):
    """
    Save run artifacts: config.yaml, ranking.csv and metrics.json.

    Args:
        run_dir: Output directory (created by create_run_dir)
        config: The validated configuration dict
        ranking: DataFrame from ModelSelector.rank()
        summary: dict with holdout metrics, best config and blend weights
    """
    with open(os.path.join(run_dir, 'config.yaml'), 'w') as f:
        yaml.dump(config, f, default_flow_style=False)

    ranking_out = ranking.copy()
    if 'params' in ranking_out.columns:
        ranking_out['params'] = ranking_out['params'].apply(lambda p: json.dumps(_to_builtin(p), sort_keys=True))
    ranking_out.to_csv(os.path.join(run_dir, 'ranking.csv'), index=False)

    results_json = {
        'experiment_name': config['experiment']['name'],
        'seed': config['experiment']['seed'],
        'target_column': config['data']['target_column'],
        'n_configurations': int(len(ranking)),
    }
    results_json.update(_to_builtin(summary))

    with open(os.path.join(run_dir, 'metrics.json'), 'w') as f:
        json.dump(results_json, f, indent=2)

    print(f"Results saved to: {run_dir}")
    return run_dir


def save_model(run_dir, model, filename='model.joblib'):
    """Persist a fitted pipeline with joblib and return its path."""
    os.makedirs(run_dir, exist_ok=True)
    path = os.path.join(run_dir, filename)
    joblib.dump(model, path)
    print(f"Model saved to: {path}")
    return path


def write_predictions(path, ids, predictions, id_column, target_column):
    """
    Write an id + prediction file on the original target scale.

    Predictions must already be inverse-transformed (expm1) by the caller.
    """
    predictions = np.asarray(predictions, dtype=float)
    if len(ids) != len(predictions):
        raise ValueError(f"Got {len(ids)} ids but {len(predictions)} predictions")
    if not np.isfinite(predictions).all():
        raise ValueError("Refusing to write non-finite predictions")

    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    out = pd.DataFrame({id_column: np.asarray(ids), target_column: predictions})
    out.to_csv(path, index=False)
    return path


def save_data_profile(run_dir, df, config, dataset_path):
    """Save dataset fingerprint/profile for reproducibility tracking."""
    target = config['data']['target_column']
    y = df[target] if target in df.columns else None
    profile = {
        'dataset_path': str(dataset_path) if dataset_path else None,
        'dataset_hash': dataset_hash(df),
        'total_rows': len(df),
        'total_columns': len(df.columns),
        'numeric_columns': list(config['data']['numeric_columns']),
        'categorical_column': config['data']['categorical_column'],
        'categorical_levels': sorted(df[config['data']['categorical_column']].astype(str).unique().tolist()),
        'target_column': target,
        'target_stats': {
            'mean': float(y.mean()),
            'std': float(y.std()),
            'min': float(y.min()),
            'max': float(y.max()),
        } if y is not None else None,
        'timestamp': datetime.now().isoformat()
    }

    with open(os.path.join(run_dir, 'data_profile.json'), 'w') as f:
        json.dump(profile, f, indent=2)

    return profile
