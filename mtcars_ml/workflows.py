from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from mtcars_ml import recipes as rcp
from mtcars_ml.config import CLUSTER_COLUMN, RANDOM_STATE
from mtcars_ml.errors import ConfigError, SchemaError
from mtcars_ml.models import CLUSTERING, ModelSpec, build_estimator
from mtcars_ml.recipes import FittedRecipe, Recipe
from mtcars_ml.tuning import aligned_proba

logger = logging.getLogger("mtcars_ml.workflows")


@dataclass(frozen=True)
class Workflow:
    recipe: Recipe
    spec: ModelSpec

    @property
    def mode(self) -> str:
        return self.spec.mode


def workflow(recipe: Recipe, spec: ModelSpec) -> Workflow:
    if spec.mode != CLUSTERING and recipe.outcome is None:
        raise ConfigError(f"Recipe '{recipe.name}' has no outcome; {spec.family} needs one")
    return Workflow(recipe, spec)


def finalize(wf: Workflow, params: Mapping[str, object]) -> Workflow:
    """Replace tuning markers with chosen values; every marker must be resolved."""
    spec = wf.spec.with_params(params)
    pending = spec.tunable()
    if pending:
        raise ConfigError(f'{spec.family} still has unresolved hyperparameters {pending}')
    return dataclasses.replace(wf, spec=spec)


@dataclass(eq=False)
class FittedWorkflow:
    workflow: Workflow
    recipe: FittedRecipe
    model: object
    label_map: Optional[Dict[int, int]] = None

    @property
    def mode(self) -> str:
        return self.workflow.mode

    @property
    def feature_names(self) -> List[str]:
        return self.recipe.predictors()

    def _features(self, df: pd.DataFrame) -> np.ndarray:
        baked = rcp.apply(self.recipe, df)
        return baked[self.feature_names].to_numpy(dtype=float)

    def predict(self, df: pd.DataFrame) -> pd.Series:
        """Cluster numbers 1..k for clustering workflows, class labels otherwise."""
        raw = self.model.predict(self._features(df))
        if self.mode == CLUSTERING:
            labels = [self.label_map[int(r)] for r in raw]
            return pd.Series(labels, index=df.index, name=CLUSTER_COLUMN)
        outcome = self.recipe.outcome
        categories = self.recipe.training[outcome]
        if isinstance(categories.dtype, pd.CategoricalDtype):
            raw = pd.Categorical(raw, categories=categories.cat.categories)
        return pd.Series(raw, index=df.index, name=f'.pred_{outcome}')

    def predict_proba(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.mode == CLUSTERING:
            raise ConfigError('clustering workflows have no class probabilities')
        classes = list(self.model.classes_)
        proba = aligned_proba(self.model, self._features(df), classes)
        return pd.DataFrame(proba, index=df.index, columns=[f'.pred_{c}' for c in classes])


def _first_appearance(raw: np.ndarray) -> Dict[int, int]:
    mapping: Dict[int, int] = {}
    for r in raw:
        if int(r) not in mapping:
            mapping[int(r)] = len(mapping) + 1
    return mapping


def fit(wf: Workflow, df: pd.DataFrame, seed: int = RANDOM_STATE) -> FittedWorkflow:
    pending = wf.spec.tunable()
    if pending:
        raise ConfigError(f'finalize the workflow first; {pending} are still marked for tuning')
    fitted_recipe = rcp.fit(wf.recipe, df)
    X = fitted_recipe.training[fitted_recipe.predictors()].to_numpy(dtype=float)
    model = build_estimator(wf.spec, {}, seed)

    if wf.mode == CLUSTERING:
        raw = model.fit_predict(X)
        # clusters are numbered in order of first appearance in the fitting rows
        label_map = _first_appearance(raw)
        for r in range(int(model.n_clusters)):
            label_map.setdefault(r, len(label_map) + 1)
        logger.info("Fitted %s on %d rows with recipe '%s'", wf.spec.family, len(df), wf.recipe.name)
        return FittedWorkflow(wf, fitted_recipe, model, label_map)

    y = np.asarray(fitted_recipe.training[wf.recipe.outcome])
    model.fit(X, y)
    logger.info("Fitted %s on %d rows with recipe '%s'", wf.spec.family, len(fitted_recipe.training), wf.recipe.name)
    return FittedWorkflow(wf, fitted_recipe, model)


def add_cluster_column(fitted: FittedWorkflow, df: pd.DataFrame, column: str = CLUSTER_COLUMN) -> pd.DataFrame:
    """Return a copy of df with a categorical cluster label column."""
    if fitted.mode != CLUSTERING:
        raise ConfigError('add_cluster_column needs a fitted clustering workflow')
    if column in df.columns:
        raise SchemaError(f"Column '{column}' already exists")
    labels = fitted.predict(df)
    out = df.copy()
    out[column] = pd.Categorical(labels.to_numpy(), categories=sorted(fitted.label_map.values()))
    return out
