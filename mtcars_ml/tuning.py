"""
Grid search over (recipe x hyperparameters) with v-fold resampling.

Clustering and classification share one engine: every (recipe, grid row, fold)
cell fits the recipe on the fold's training rows, fits the model on the
transformed rows and scores the fold's validation rows. Cells are independent
and run through joblib; a cell that fails is recorded as missing metrics plus a
note instead of stopping the search.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import accuracy_score, roc_auc_score

from mtcars_ml import recipes as rcp
from mtcars_ml.errors import ConfigError, FitError, InsufficientDataError, SchemaError, UnseenCategoryError
from mtcars_ml.models import CLASSIFICATION, CLUSTERING, Grid, ModelSpec, build_estimator
from mtcars_ml.recipes import Recipe
from mtcars_ml.resampling import Fold

logger = logging.getLogger("mtcars_ml.tuning")

METRIC_MODES: Dict[str, str] = {
    'sse_within': CLUSTERING,
    'sse_total': CLUSTERING,
    'sse_ratio': CLUSTERING,
    'roc_auc': CLASSIFICATION,
    'accuracy': CLASSIFICATION,
}
DEFAULT_METRICS: Dict[str, Tuple[str, ...]] = {
    CLUSTERING: ('sse_within', 'sse_total', 'sse_ratio'),
    CLASSIFICATION: ('roc_auc',),
}

CELL_ERRORS = (FitError, UnseenCategoryError, ValueError, np.linalg.LinAlgError)


# ------------------------
# Metrics
# ------------------------

def cluster_sums_of_squares(X: np.ndarray, centers: np.ndarray) -> Tuple[float, float]:
    """Within and total sums of squares of X grouped by nearest center.

    Both are measured inside X itself (within uses each group's own mean), so
    within <= total always holds and the ratio stays in [0, 1].
    """
    X = np.asarray(X, dtype=float)
    distances = ((X[:, None, :] - np.asarray(centers)[None, :, :]) ** 2).sum(axis=2)
    assignment = distances.argmin(axis=1)
    total = float(((X - X.mean(axis=0)) ** 2).sum())
    within = 0.0
    for label in np.unique(assignment):
        members = X[assignment == label]
        within += float(((members - members.mean(axis=0)) ** 2).sum())
    return within, total


def _clustering_scores(model, X_valid: np.ndarray, metrics: Sequence[str]) -> Dict[str, float]:
    within, total = cluster_sums_of_squares(X_valid, model.cluster_centers_)
    values = {
        'sse_within': within,
        'sse_total': total,
        'sse_ratio': within / total if total > 0 else np.nan,
    }
    return {m: values[m] for m in metrics}


def aligned_proba(model, X: np.ndarray, classes: Sequence[object]) -> np.ndarray:
    """predict_proba with one column per class in ``classes``, zeros for classes the model never saw."""
    proba = np.zeros((len(X), len(classes)))
    lookup = {c: i for i, c in enumerate(classes)}
    raw = model.predict_proba(X)
    for j, c in enumerate(model.classes_):
        proba[:, lookup[c]] = raw[:, j]
    return proba


def roc_auc(y_true: np.ndarray, proba: np.ndarray, classes: Sequence[object]) -> float:
    present = pd.unique(y_true)
    if len(present) < 2:
        return np.nan
    if len(classes) == 2:
        return float(roc_auc_score(y_true == classes[1], proba[:, 1]))
    return float(roc_auc_score(y_true, proba, multi_class='ovo', labels=list(classes)))


def _classification_scores(model, X_valid: np.ndarray, y_valid: np.ndarray,
                           classes: Sequence[object], metrics: Sequence[str]) -> Dict[str, float]:
    scores = {}
    if 'roc_auc' in metrics:
        scores['roc_auc'] = roc_auc(y_valid, aligned_proba(model, X_valid, classes), classes)
    if 'accuracy' in metrics:
        scores['accuracy'] = float(accuracy_score(y_valid, model.predict(X_valid)))
    return scores


# ------------------------
# One cell of the search
# ------------------------

@dataclass
class CellResult:
    rows: List[dict]
    note: Optional[dict] = None


def _fit_cell(spec: ModelSpec, rec: Recipe, config: int, params: Mapping[str, object], fold_id: str,
              train: pd.DataFrame, valid: pd.DataFrame, metrics: Sequence[str],
              classes: Optional[Sequence[object]], seed: int) -> CellResult:
    base = {'recipe': rec.name, 'config': config, **params, 'fold': fold_id}
    try:
        fitted = rcp.fit(rec, train)
        predictors = fitted.predictors()
        X_train = fitted.training[predictors].to_numpy(dtype=float)
        X_valid = rcp.apply(fitted, valid)[predictors].to_numpy(dtype=float)
        model = build_estimator(spec, params, seed)
        if spec.mode == CLUSTERING:
            model.fit(X_train)
            scores = _clustering_scores(model, X_valid, metrics)
        else:
            y_train = np.asarray(fitted.training[rec.outcome])
            y_valid = np.asarray(valid[rec.outcome])
            model.fit(X_train, y_train)
            scores = _classification_scores(model, X_valid, y_valid, classes, metrics)
    except ConfigError:
        raise
    except CELL_ERRORS as e:
        rows = [{**base, 'metric': m, 'value': np.nan} for m in metrics]
        note = {'recipe': rec.name, 'config': config, 'fold': fold_id,
                'error': type(e).__name__, 'message': str(e)}
        return CellResult(rows, note)
    return CellResult([{**base, 'metric': m, 'value': scores[m]} for m in metrics])


# ------------------------
# Results
# ------------------------

@dataclass
class TuningResult:
    mode: str
    recipes: Tuple[str, ...]
    grid: Grid
    metrics: Tuple[str, ...]
    fold_metrics: pd.DataFrame
    notes: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def param_names(self) -> List[str]:
        return list(self.grid[0]) if self.grid else []

    def collect_metrics(self) -> pd.DataFrame:
        """Mean, std and successful-fold count per (recipe, config, metric), in grid order."""
        grouped = self.fold_metrics.groupby(['recipe', 'config', 'metric'], sort=False)['value']
        summary = grouped.agg(['mean', 'std', 'count']).rename(columns={'count': 'n'}).reset_index()
        params = pd.DataFrame(self.grid)
        params['config'] = range(len(self.grid))
        summary = summary.merge(params, on='config', how='left')
        summary['_recipe_order'] = summary['recipe'].map({r: i for i, r in enumerate(self.recipes)})
        summary['_metric_order'] = summary['metric'].map({m: i for i, m in enumerate(self.metrics)})
        summary = summary.sort_values(['_recipe_order', 'config', '_metric_order'], kind='mergesort')
        cols = ['recipe', 'config'] + self.param_names + ['metric', 'mean', 'std', 'n']
        return summary[cols].reset_index(drop=True)

    def _scored(self, metric: str, recipe: Optional[str]) -> pd.DataFrame:
        if metric not in self.metrics:
            raise ConfigError(f"Metric '{metric}' was not computed; available: {list(self.metrics)}")
        table = self.collect_metrics()
        table = table[table['metric'] == metric]
        if recipe is not None:
            if recipe not in self.recipes:
                raise ConfigError(f"Recipe '{recipe}' was not part of this search")
            table = table[table['recipe'] == recipe]
        return table[(table['n'] > 0) & table['mean'].notna()].reset_index(drop=True)

    def show_best(self, metric: str, n: int = 5, recipe: Optional[str] = None, maximize: bool = True) -> pd.DataFrame:
        table = self._scored(metric, recipe)
        return table.sort_values('mean', ascending=not maximize, kind='mergesort').head(n).reset_index(drop=True)

    def select_best(self, metric: str, recipe: Optional[str] = None, maximize: bool = True) -> Dict[str, object]:
        """Hyperparameters with the best mean metric; ties go to the earliest grid row."""
        table = self._scored(metric, recipe)
        if table.empty:
            raise InsufficientDataError(f"No configuration produced a '{metric}' value")
        means = table['mean'].to_numpy()
        idx = int(means.argmax() if maximize else means.argmin())
        return dict(self.grid[int(table.loc[idx, 'config'])])

    def elbow_table(self, metric: str = 'sse_ratio') -> pd.DataFrame:
        """(recipe, num_clusters, mean) rows for choosing k by eye."""
        if self.mode != CLUSTERING:
            raise ConfigError('elbow_table only applies to clustering searches')
        table = self.collect_metrics()
        table = table[table['metric'] == metric]
        return table[['recipe', 'num_clusters', 'mean', 'n']].reset_index(drop=True)


# ------------------------
# Search runner
# ------------------------

def _as_recipe_list(recipes: Union[Recipe, Sequence[Recipe], Mapping[str, Recipe]]) -> List[Recipe]:
    if isinstance(recipes, Recipe):
        return [recipes]
    if isinstance(recipes, Mapping):
        return list(recipes.values())
    return list(recipes)


def _check_grid(spec: ModelSpec, grid: Grid) -> None:
    if not grid:
        raise ConfigError('grid is empty')
    tunable = set(spec.tunable())
    for row in grid:
        if set(row) != tunable:
            raise ConfigError(f'grid row {row} does not match tunable parameters {sorted(tunable)}')
        if 'num_clusters' in row and int(row['num_clusters']) < 1:
            raise ConfigError(f"num_clusters must be >= 1, got {row['num_clusters']}")


def _classes(df: pd.DataFrame, outcome: str) -> List[object]:
    # roc_auc_score wants labels in sorted order
    return sorted(set(df[outcome].dropna().tolist()))


def tune_grid(spec: ModelSpec, recipes, df: pd.DataFrame, folds: Sequence[Fold], grid: Grid,
              metrics: Optional[Sequence[str]] = None, seed: int = 42, n_jobs: int = 1) -> TuningResult:
    recs = _as_recipe_list(recipes)
    if not recs:
        raise ConfigError('at least one recipe is required')
    if len({r.name for r in recs}) != len(recs):
        raise ConfigError('recipe names must be unique within a search')
    if not folds:
        raise InsufficientDataError('no resampling folds given')
    _check_grid(spec, grid)

    mode = spec.mode
    metrics = tuple(metrics) if metrics else DEFAULT_METRICS[mode]
    wrong = [m for m in metrics if METRIC_MODES.get(m) != mode]
    if wrong:
        raise ConfigError(f'metrics {wrong} do not apply to {mode} models')

    classes = None
    if mode == CLASSIFICATION:
        outcomes = {r.outcome for r in recs}
        if len(outcomes) != 1 or None in outcomes:
            raise ConfigError('classification recipes must share one outcome column')
        outcome = outcomes.pop()
        if outcome not in df.columns:
            raise SchemaError(f"Outcome column '{outcome}' not found")
        classes = _classes(df, outcome)

    n_cells = len(recs) * len(grid) * len(folds)
    logger.info("Tuning %s (%s): %d recipes x %d configs x %d folds = %d fits, n_jobs=%s",
                spec.family, mode, len(recs), len(grid), len(folds), n_cells, n_jobs)

    results = Parallel(n_jobs=n_jobs)(
        delayed(_fit_cell)(spec, rec, config, params, fold.id, fold.train(df), fold.valid(df),
                           metrics, classes, seed)
        for rec in recs
        for config, params in enumerate(grid)
        for fold in folds
    )

    rows = [row for result in results for row in result.rows]
    notes = [result.note for result in results if result.note is not None]
    for note in notes:
        logger.warning("Fit failed for %s config %d %s: %s: %s",
                       note['recipe'], note['config'], note['fold'], note['error'], note['message'])
    if notes:
        logger.info("%d of %d fits failed and were recorded as missing", len(notes), n_cells)

    return TuningResult(
        mode=mode,
        recipes=tuple(r.name for r in recs),
        grid=[dict(row) for row in grid],
        metrics=metrics,
        fold_metrics=pd.DataFrame(rows),
        notes=pd.DataFrame(notes, columns=['recipe', 'config', 'fold', 'error', 'message']),
    )
