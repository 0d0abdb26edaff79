"""
Preprocessing recipes: declarative, fit/apply feature pipelines.

A Recipe is an immutable, ordered tuple of steps. ``fit`` learns every step's
statistics from the training frame only and returns a FittedRecipe; ``apply``
replays those fitted steps on any frame with the same schema.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import PowerTransformer

from mtcars_ml.data import categorical_columns, numeric_columns
from mtcars_ml.errors import ConfigError, FitError, SchemaError, UnseenCategoryError

logger = logging.getLogger("mtcars_ml.recipes")

ALL_NUMERIC = 'all_numeric_predictors'
ALL_NOMINAL = 'all_nominal_predictors'
ALL_PREDICTORS = 'all_predictors'

Selector = Union[str, Tuple[str, ...]]


def _resolve(cols: Selector, df: pd.DataFrame, outcome: Optional[str]) -> List[str]:
    exclude = [outcome] if outcome else []
    if cols == ALL_NUMERIC:
        return numeric_columns(df, exclude=exclude)
    if cols == ALL_NOMINAL:
        return categorical_columns(df, exclude=exclude)
    if cols == ALL_PREDICTORS:
        return [c for c in df.columns if c not in exclude]
    names = [cols] if isinstance(cols, str) else list(cols)
    if outcome in names:
        raise ConfigError(f"Outcome '{outcome}' cannot be selected by a preprocessing step")
    missing = [c for c in names if c not in df.columns]
    if missing:
        raise SchemaError(f"Columns {missing} not found; got {list(df.columns)}")
    return names


def _require(df: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaError(f"Columns {missing} required by a fitted step are missing")


def _levels(series: pd.Series) -> List[object]:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    return sorted(series.dropna().unique().tolist(), key=str)


# ------------------------
# Fitted steps
# ------------------------

@dataclass(frozen=True)
class FittedStep:
    columns: Tuple[str, ...]

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError

    def apply_training(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.apply(df)


@dataclass(frozen=True)
class FittedLog(FittedStep):
    offset: float = 0.0

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        _require(df, self.columns)
        out = df.copy()
        for col in self.columns:
            out[col] = np.log(out[col].astype(float) + self.offset)
        return out


@dataclass(frozen=True)
class FittedNovel(FittedStep):
    levels: Tuple[Tuple[object, ...], ...] = ()
    new_level: str = 'new'

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        _require(df, self.columns)
        out = df.copy()
        for col, known in zip(self.columns, self.levels):
            values = out[col].astype(object)
            unseen = values.notna() & ~values.isin(known)
            values = values.where(~unseen, self.new_level)
            out[col] = pd.Categorical(values, categories=list(known) + [self.new_level])
        return out


@dataclass(frozen=True)
class FittedOneHot(FittedStep):
    levels: Tuple[Tuple[object, ...], ...] = ()
    keep_all: bool = False

    def indicator_names(self) -> List[str]:
        names = []
        for col, known in zip(self.columns, self.levels):
            kept = known if self.keep_all else known[1:]
            names.extend(f'{col}_{level}' for level in kept)
        return names

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        _require(df, self.columns)
        blocks = []
        for col, known in zip(self.columns, self.levels):
            values = df[col].astype(object)
            unseen = values.notna() & ~values.isin(known)
            if unseen.any():
                bad = sorted(values[unseen].unique().tolist(), key=str)
                raise UnseenCategoryError(
                    f"Column '{col}' has levels {bad} not seen during fitting; "
                    f"add flag_unseen_category before one_hot to tolerate them"
                )
            kept = known if self.keep_all else known[1:]
            block = pd.DataFrame(
                {f'{col}_{level}': (values == level).astype(float) for level in kept},
                index=df.index,
            )
            block.loc[values.isna().to_numpy()] = np.nan
            blocks.append(block)
        return pd.concat([df.drop(columns=list(self.columns))] + blocks, axis=1)


@dataclass(frozen=True)
class FittedDrop(FittedStep):

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.drop(columns=list(self.columns), errors='ignore')


@dataclass(frozen=True)
class FittedNormalize(FittedStep):
    means: Tuple[float, ...] = ()
    stds: Tuple[float, ...] = ()

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        _require(df, self.columns)
        out = df.copy()
        for col, mean, std in zip(self.columns, self.means, self.stds):
            out[col] = (out[col].astype(float) - mean) / std
        return out


@dataclass(frozen=True)
class FittedSklearn(FittedStep):
    """Wraps a fitted scikit-learn transformer over a fixed column block."""
    transformer: object = None
    output_names: Tuple[str, ...] = ()

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        _require(df, self.columns)
        values = self.transformer.transform(df[list(self.columns)].to_numpy(dtype=float))
        block = pd.DataFrame(values, columns=list(self.output_names), index=df.index)
        if tuple(self.output_names) == tuple(self.columns):
            out = df.copy()
            out[list(self.columns)] = block
            return out
        return pd.concat([df.drop(columns=list(self.columns)), block], axis=1)


@dataclass(frozen=True)
class FittedOversample(FittedStep):
    outcome: str = ''
    neighbors: int = 5
    seed: int = 42

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        # new data is never resampled
        return df

    def apply_training(self, df: pd.DataFrame) -> pd.DataFrame:
        from imblearn.over_sampling import SMOTE

        y = df[self.outcome]
        X = df.drop(columns=[self.outcome])
        smallest = int(y.value_counts().loc[lambda s: s > 0].min())
        if smallest < 2:
            raise FitError(f"SMOTE needs at least 2 rows per class in '{self.outcome}', smallest has {smallest}")
        smote = SMOTE(k_neighbors=min(self.neighbors, smallest - 1), random_state=self.seed)
        try:
            X_res, y_res = smote.fit_resample(X.to_numpy(dtype=float), np.asarray(y.astype(object)))
        except ValueError as e:
            raise FitError(f'SMOTE failed: {e}') from e

        n_new = len(X_res) - len(df)
        index = list(df.index) + [f'synthetic_{i}' for i in range(1, n_new + 1)]
        out = pd.DataFrame(X_res, columns=X.columns, index=index)
        categories = y.cat.categories if isinstance(y.dtype, pd.CategoricalDtype) else None
        out[self.outcome] = pd.Categorical(y_res, categories=categories) if categories is not None else y_res
        logger.debug("SMOTE added %d synthetic rows", n_new)
        return out


# ------------------------
# Step library
# ------------------------

@dataclass(frozen=True)
class LogTransform:
    cols: Selector = ALL_NUMERIC
    offset: float = 0.0

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        for col in columns:
            if (df[col].astype(float) + self.offset <= 0).any():
                raise FitError(f"log_transform needs positive values in '{col}' (offset={self.offset})")
        return FittedLog(tuple(columns), offset=self.offset)


@dataclass(frozen=True)
class FlagUnseenCategory:
    cols: Selector = ALL_NOMINAL
    new_level: str = 'new'

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        levels = []
        for col in columns:
            known = tuple(level for level in _levels(df[col]) if level != self.new_level)
            levels.append(known)
        return FittedNovel(tuple(columns), levels=tuple(levels), new_level=self.new_level)


@dataclass(frozen=True)
class OneHot:
    cols: Selector = ALL_NOMINAL
    keep_all: bool = False

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        levels = tuple(tuple(_levels(df[col])) for col in columns)
        return FittedOneHot(tuple(columns), levels=levels, keep_all=self.keep_all)


@dataclass(frozen=True)
class DropZeroVariance:
    cols: Selector = ALL_PREDICTORS

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        constant = [col for col in columns if df[col].nunique(dropna=True) <= 1]
        if constant:
            logger.debug("Dropping zero-variance columns %s", constant)
        return FittedDrop(tuple(constant))


@dataclass(frozen=True)
class Normalize:
    cols: Selector = ALL_NUMERIC

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        means, stds = [], []
        for col in columns:
            values = df[col].astype(float)
            std = float(values.std(ddof=1))
            if not np.isfinite(std) or std == 0:
                raise FitError(f"normalize cannot scale '{col}': standard deviation is {std}")
            means.append(float(values.mean()))
            stds.append(std)
        return FittedNormalize(tuple(columns), means=tuple(means), stds=tuple(stds))


@dataclass(frozen=True)
class PowerTransform:
    cols: Selector = ALL_NUMERIC

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        columns = _resolve(self.cols, df, outcome)
        transformer = PowerTransformer(method='yeo-johnson', standardize=False)
        try:
            transformer.fit(df[columns].to_numpy(dtype=float))
        except ValueError as e:
            raise FitError(f'Yeo-Johnson fit failed: {e}') from e
        return FittedSklearn(tuple(columns), transformer=transformer, output_names=tuple(columns))


@dataclass(frozen=True)
class ProjectPCA:
    cols: Selector = ALL_NUMERIC
    num_comp: int = 5

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        if self.num_comp < 1:
            raise ConfigError(f'project_pca needs num_comp >= 1, got {self.num_comp}')
        columns = _resolve(self.cols, df, outcome)
        k = min(self.num_comp, len(df), len(columns))
        pca = PCA(n_components=k, svd_solver='full')
        try:
            pca.fit(df[columns].to_numpy(dtype=float))
        except ValueError as e:
            raise FitError(f'PCA fit failed: {e}') from e
        names = tuple(f'PC{i}' for i in range(1, k + 1))
        return FittedSklearn(tuple(columns), transformer=pca, output_names=names)


@dataclass(frozen=True)
class Oversample:
    neighbors: int = 5
    seed: int = 42

    def fit(self, df: pd.DataFrame, outcome: Optional[str] = None) -> FittedStep:
        if outcome is None:
            raise ConfigError('oversample needs a recipe with an outcome column')
        return FittedOversample((), outcome=outcome, neighbors=self.neighbors, seed=self.seed)


def log_transform(cols: Selector = ALL_NUMERIC, offset: float = 0.0) -> LogTransform:
    return LogTransform(cols, offset)


def one_hot(cols: Selector = ALL_NOMINAL, keep_all: bool = False) -> OneHot:
    return OneHot(cols, keep_all)


def drop_zero_variance(cols: Selector = ALL_PREDICTORS) -> DropZeroVariance:
    return DropZeroVariance(cols)


def normalize(cols: Selector = ALL_NUMERIC) -> Normalize:
    return Normalize(cols)


def project_pca(cols: Selector = ALL_NUMERIC, k: int = 5) -> ProjectPCA:
    return ProjectPCA(cols, k)


def power_transform(cols: Selector = ALL_NUMERIC) -> PowerTransform:
    return PowerTransform(cols)


def flag_unseen_category(cols: Selector = ALL_NOMINAL, new_level: str = 'new') -> FlagUnseenCategory:
    return FlagUnseenCategory(cols, new_level)


def oversample(neighbors: int = 5, seed: int = 42) -> Oversample:
    return Oversample(neighbors, seed)


# ------------------------
# Recipes
# ------------------------

@dataclass(frozen=True)
class Recipe:
    name: str
    steps: Tuple[object, ...] = ()
    outcome: Optional[str] = None


@dataclass(frozen=True, eq=False)
class FittedRecipe:
    recipe: Recipe
    steps: Tuple[FittedStep, ...]
    training: pd.DataFrame

    @property
    def name(self) -> str:
        return self.recipe.name

    @property
    def outcome(self) -> Optional[str]:
        return self.recipe.outcome

    def predictors(self) -> List[str]:
        return [c for c in self.training.columns if c != self.recipe.outcome]


def recipe(name: str, outcome: Optional[str] = None) -> Recipe:
    return Recipe(name=name, steps=(), outcome=outcome)


def add_step(rec: Recipe, step) -> Recipe:
    if not hasattr(step, 'fit'):
        raise ConfigError(f'{step!r} is not a preprocessing step')
    return dataclasses.replace(rec, steps=rec.steps + (step,))


def _outcome_last(df: pd.DataFrame, outcome: Optional[str]) -> pd.DataFrame:
    if outcome is None or outcome not in df.columns:
        return df
    return df[[c for c in df.columns if c != outcome] + [outcome]]


def fit(rec: Recipe, df: pd.DataFrame) -> FittedRecipe:
    if rec.outcome is not None and rec.outcome not in df.columns:
        raise SchemaError(f"Outcome column '{rec.outcome}' not found in training data")
    current = df.copy()
    fitted_steps = []
    for step in rec.steps:
        fitted_step = step.fit(current, rec.outcome)
        current = fitted_step.apply_training(current)
        fitted_steps.append(fitted_step)
    return FittedRecipe(rec, tuple(fitted_steps), _outcome_last(current, rec.outcome))


def apply(fitted: FittedRecipe, df: pd.DataFrame) -> pd.DataFrame:
    current = df.copy()
    for fitted_step in fitted.steps:
        current = fitted_step.apply(current)
    return _outcome_last(current, fitted.recipe.outcome)


# ------------------------
# Registry
# ------------------------

RECIPE_NAMES = ('log_normalize', 'yeo_johnson_pca', 'dummy_normalize')
PCA_COMPONENTS = 4


def _compose(name: str, outcome: Optional[str], steps) -> Recipe:
    rec = recipe(name, outcome)
    for step in steps:
        rec = add_step(rec, step)
    return rec


def build_recipes(outcome: Optional[str] = None, oversample_seed: Optional[int] = None) -> Dict[str, Recipe]:
    """Return the three named recipes, in registry order.

    Passing ``oversample_seed`` appends a SMOTE step (needs ``outcome``); it is
    off unless asked for.
    """
    recipes = {
        'log_normalize': _compose('log_normalize', outcome, [
            log_transform(ALL_NUMERIC),
            flag_unseen_category(ALL_NOMINAL),
            one_hot(ALL_NOMINAL),
            drop_zero_variance(ALL_PREDICTORS),
            normalize(ALL_NUMERIC),
        ]),
        'yeo_johnson_pca': _compose('yeo_johnson_pca', outcome, [
            power_transform(ALL_NUMERIC),
            flag_unseen_category(ALL_NOMINAL),
            one_hot(ALL_NOMINAL),
            drop_zero_variance(ALL_PREDICTORS),
            normalize(ALL_NUMERIC),
            project_pca(ALL_NUMERIC, k=PCA_COMPONENTS),
        ]),
        'dummy_normalize': _compose('dummy_normalize', outcome, [
            one_hot(ALL_NOMINAL),
            drop_zero_variance(ALL_PREDICTORS),
            normalize(ALL_NUMERIC),
        ]),
    }
    if oversample_seed is not None:
        if outcome is None:
            raise ConfigError('oversampling needs an outcome column')
        recipes = {name: add_step(rec, oversample(seed=oversample_seed)) for name, rec in recipes.items()}
    return recipes


def get_recipe(name: str, outcome: Optional[str] = None, oversample_seed: Optional[int] = None) -> Recipe:
    recipes = build_recipes(outcome, oversample_seed)
    if name not in recipes:
        raise ConfigError(f"Unknown recipe '{name}'; expected one of {list(RECIPE_NAMES)}")
    return recipes[name]
