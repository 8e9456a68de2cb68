# Pipeline runner
# Split -> race every configured model family -> rank -> finalize the best
# configuration -> blend -> holdout metrics and prediction files

import argparse
import random
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from racetune.config_schema import validate_config, ConfigValidationError
from racetune.io import (
    load_config, save_results, save_model, create_run_dir, save_data_profile, write_predictions,
)
from racetune.data import (
    schema_from_config, load_dataset, validate_data_integrity, split_dataset, make_folds, log_target,
)
from racetune.models import build_candidates
from racetune.racing import RaceTuner
from racetune.selection import ModelSelector
from racetune.finalize import last_fit, evaluate
from racetune.blending import EnsembleBlender


def set_seeds(seed):
    """Set all random seeds for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)


def print_header(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def run_pipeline(config_path, train_path=None, scoring_path=None, output_dir=None):
    """
    Run the full tune-select-blend workflow.

    Args:
        config_path: Path to YAML config file
        train_path: Optional path to the labelled CSV (overrides config)
        scoring_path: Optional path to the unlabelled CSV (overrides config)
        output_dir: Optional output directory (overrides config)

    Returns:
        run_dir: Path to the run output directory
    """
    config = load_config(config_path)
    if output_dir:
        config['experiment']['output_dir'] = output_dir
    if train_path:
        config['data']['train_path'] = train_path
    if scoring_path:
        config['data']['scoring_path'] = scoring_path

    try:
        validate_config(config)
    except ConfigValidationError as e:
        print(f"\nCONFIG ERROR:\n{e}")
        raise

    seed = config['experiment']['seed']
    set_seeds(seed)
    schema = schema_from_config(config)
    tuning = config['tuning']
    blending = config.get('blending', {})

    print_header("RACING PIPELINE")
    print(f"Experiment: {config['experiment']['name']}")
    print(f"Target: {schema.target_column} (log1p scale, metric rmse)")
    print(f"Seed: {seed}")
    print(f"Models: {tuning['models']}")

    # Load and split
    df = load_dataset(config['data']['train_path'])
    validate_data_integrity(df, schema, require_target=True)
    train, test = split_dataset(df, config['split']['prop'], seed)
    y_train = log_target(train[schema.target_column])
    folds = make_folds(len(train), config['cross_validation']['n_splits'], seed)
    print(f"\nTrain rows: {len(train)}, holdout rows: {len(test)}, folds: {len(folds)}")

    # Race every family
    candidates = build_candidates(schema)
    selector = ModelSelector()
    grid_sizes = tuning.get('grid_sizes') or {}
    for name in tuning['models']:
        print_header(f"TUNING: {name}")
        tuner = RaceTuner(
            candidates[name],
            schema,
            folds,
            grid_size=grid_sizes.get(name, tuning['grid_size']),
            alpha=tuning.get('alpha', 0.05),
            burn_in=tuning.get('burn_in', 3),
            n_workers=tuning.get('n_workers', 1),
            seed=seed,
            save_predictions=bool(blending.get('enabled')),
        )
        selector.add(tuner.tune(train, y_train))

    ranking = selector.rank()
    print_header("RANKING (top 10)")
    print(ranking[['rank', 'config_id', 'mean', 'std_err', 'n_folds']].head(10).to_string(index=False))

    # Finalize the overall best configuration
    best_model, best_params = selector.best()
    best_pipeline, holdout = last_fit(candidates[best_model], best_params, train, test, schema, seed)
    print_header("HOLDOUT (best single model)")
    print(f"Model:  {best_model} {best_params}")
    print(f"RMSE (log1p): {holdout['rmse']:.5f}")
    print(f"RMSLE:        {holdout['rmsle']:.5f}")

    summary = {
        'best_model': best_model,
        'best_params': best_params,
        'holdout': holdout,
        'fits_per_model': {name: r.n_fits for name, r in selector.results.items()},
    }

    blender = None
    if blending.get('enabled'):
        print_header("BLENDING")
        blender = EnsembleBlender(
            penalties=blending.get('penalties'),
            n_splits=blending.get('n_splits', 5),
            seed=seed,
        )
        for result in selector.results.values():
            blender.add_candidates(result)
        blender.blend(y_train)
        blender.fit_members(train, schema, seed)
        blend_holdout = evaluate(blender, test, schema)
        print(f"RMSE (log1p): {blend_holdout['rmse']:.5f}")
        print(f"RMSLE:        {blend_holdout['rmsle']:.5f}")
        summary['blend'] = {
            'penalty': blender.penalty,
            'intercept': blender.intercept,
            'weights': blender.member_weights().to_dict(),
            'holdout': blend_holdout,
        }

    # Artifacts
    run_dir = create_run_dir(config)
    save_data_profile(run_dir, df, config, config['data']['train_path'])
    save_model(run_dir, best_pipeline)
    save_results(run_dir, config, ranking, summary)

    scoring_path = config['data'].get('scoring_path')
    if scoring_path:
        scoring = load_dataset(scoring_path)
        validate_data_integrity(scoring, schema, require_target=False)
        ids = scoring[schema.id_column].values
        write_predictions(os.path.join(run_dir, 'predictions_best.csv'), ids,
                          best_pipeline.predict_original(scoring), schema.id_column, schema.target_column)
        if blender is not None:
            write_predictions(os.path.join(run_dir, 'predictions_blend.csv'), ids,
                              blender.predict_original(scoring), schema.id_column, schema.target_column)

    print_header("Pipeline complete!")
    return run_dir


def main():
    parser = argparse.ArgumentParser(description='Run the racing tune/select/blend pipeline')
    parser.add_argument('--config', '-c', type=str, default='configs/pipeline.yaml',
                        help='Path to config YAML file')
    parser.add_argument('--train', '-t', type=str, default=None,
                        help='Path to labelled CSV (overrides config)')
    parser.add_argument('--scoring', '-s', type=str, default=None,
                        help='Path to unlabelled CSV to predict (overrides config)')
    parser.add_argument('--output-dir', '-o', type=str, default=None,
                        help='Output directory (overrides config)')
    args = parser.parse_args()

    run_pipeline(args.config, args.train, args.scoring, args.output_dir)


if __name__ == "__main__":
    main()
