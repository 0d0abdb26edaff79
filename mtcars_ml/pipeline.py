"""
The two modelling stages, run strictly in order.

Stage 1 searches k-means over the three recipes, fits the chosen (recipe, k)
on every row and appends a ``cluster`` column. Stage 2 treats that column as
the class label: stratified split, decision-tree grid search on ROC AUC, final
fit on the training split and evaluation on the held-out rows.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from mtcars_ml.config import CLUSTER_COLUMN, PipelineConfig
from mtcars_ml.errors import SchemaError
from mtcars_ml.evaluation import EvaluationReport, evaluate, variable_importance
from mtcars_ml.models import cluster_grid, decision_tree, filter_grid, k_means, tree_grid
from mtcars_ml.recipes import build_recipes, get_recipe
from mtcars_ml.resampling import initial_split, vfold
from mtcars_ml.tuning import TuningResult, tune_grid
from mtcars_ml.workflows import FittedWorkflow, add_cluster_column, finalize, fit, workflow

logger = logging.getLogger("mtcars_ml.pipeline")


@dataclass
class ClusteringOutcome:
    tuning: TuningResult
    elbow: pd.DataFrame
    fitted: FittedWorkflow
    labeled: pd.DataFrame


@dataclass
class ClassificationOutcome:
    train: pd.DataFrame
    test: pd.DataFrame
    tuning: TuningResult
    best_params: Dict[str, object]
    fitted: FittedWorkflow
    predictions: pd.Series
    report: EvaluationReport
    importance: List[Tuple[str, float]]


def run_clustering_stage(df: pd.DataFrame, config: Optional[PipelineConfig] = None) -> ClusteringOutcome:
    config = (config or PipelineConfig()).validate()
    recipes = build_recipes()
    spec = k_means()

    folds = vfold(df, v=config.cluster_folds, seed=config.seed)
    result = tune_grid(spec, recipes, df, folds, cluster_grid(config.cluster_grid),
                       seed=config.seed, n_jobs=config.n_jobs)
    elbow = result.elbow_table('sse_ratio')

    # k is picked by eye from the elbow table; the config carries that choice
    chosen = get_recipe(config.chosen_recipe)
    wf = finalize(workflow(chosen, spec), {'num_clusters': config.chosen_k})
    fitted = fit(wf, df, seed=config.seed)
    labeled = add_cluster_column(fitted, df)
    logger.info("Cluster sizes (k=%d, recipe '%s'): %s", config.chosen_k, chosen.name,
                labeled[CLUSTER_COLUMN].value_counts(sort=False).to_dict())
    return ClusteringOutcome(result, elbow, fitted, labeled)


def run_classification_stage(labeled: pd.DataFrame, config: Optional[PipelineConfig] = None) -> ClassificationOutcome:
    config = (config or PipelineConfig()).validate()
    if CLUSTER_COLUMN not in labeled.columns:
        raise SchemaError(f"No '{CLUSTER_COLUMN}' column; run the clustering stage first")

    train, test = initial_split(labeled, prop=config.split_prop, seed=config.seed, strata=CLUSTER_COLUMN)
    folds = vfold(train, v=config.class_folds, seed=config.seed, strata=CLUSTER_COLUMN)
    rec = get_recipe(config.class_recipe, outcome=CLUSTER_COLUMN,
                     oversample_seed=config.seed if config.oversample else None)
    spec = decision_tree()

    full_grid = tree_grid(config.tree_levels)
    grid = filter_grid(full_grid, min(len(f.train_index) for f in folds))
    if len(grid) < len(full_grid):
        logger.info("Dropped %d of %d tree configs whose min_n exceeds the fold size",
                    len(full_grid) - len(grid), len(full_grid))
    result = tune_grid(spec, rec, train, folds, grid, metrics=('roc_auc',),
                       seed=config.seed, n_jobs=config.n_jobs)
    best = result.select_best('roc_auc')
    logger.info("Best tree hyperparameters: %s", best)

    fitted = fit(finalize(workflow(rec, spec), best), train, seed=config.seed)
    predictions = fitted.predict(test)
    report = evaluate(predictions, test[CLUSTER_COLUMN], labels=list(labeled[CLUSTER_COLUMN].cat.categories))
    importance = variable_importance(fitted)
    return ClassificationOutcome(train, test, result, best, fitted, predictions, report, importance)
