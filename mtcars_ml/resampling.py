from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold

from mtcars_ml.errors import ConfigError, InsufficientDataError, SchemaError

logger = logging.getLogger("mtcars_ml.resampling")


@dataclass(frozen=True)
class Fold:
    id: str
    train_index: Tuple[int, ...]
    valid_index: Tuple[int, ...]

    def train(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.iloc[list(self.train_index)]

    def valid(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.iloc[list(self.valid_index)]


def _strata_values(df: pd.DataFrame, strata: Optional[str]) -> Optional[np.ndarray]:
    if strata is None:
        return None
    if strata not in df.columns:
        raise SchemaError(f"Stratification column '{strata}' not found")
    values = df[strata]
    if values.isna().any():
        raise InsufficientDataError(f"Stratification column '{strata}' has missing values")
    return np.asarray(values.astype(str))


def vfold(df: pd.DataFrame, v: int = 10, seed: int = 42, strata: Optional[str] = None) -> List[Fold]:
    """Split rows into v train/validation folds, shuffled with an explicit seed."""
    if v < 2:
        raise InsufficientDataError(f'v-fold cross-validation needs v >= 2, got {v}')
    if v > len(df):
        raise InsufficientDataError(f'Cannot make {v} folds from {len(df)} rows')

    labels = _strata_values(df, strata)
    positions = np.arange(len(df))
    if labels is None:
        splits = KFold(n_splits=v, shuffle=True, random_state=seed).split(positions)
    else:
        counts = pd.Series(labels).value_counts()
        if counts.max() < v:
            raise InsufficientDataError(
                f"Every stratum of '{strata}' has fewer than {v} rows ({counts.to_dict()}); use fewer folds"
            )
        if counts.min() < v:
            logger.warning("Strata %s of '%s' have fewer rows than folds; their folds will be unbalanced",
                           counts[counts < v].index.tolist(), strata)
        splits = StratifiedKFold(n_splits=v, shuffle=True, random_state=seed).split(positions, labels)

    width = len(str(v))
    return [
        Fold(f'Fold{str(i).zfill(width)}', tuple(int(t) for t in train), tuple(int(t) for t in valid))
        for i, (train, valid) in enumerate(splits, start=1)
    ]


def initial_split(df: pd.DataFrame, prop: float = 0.75, seed: int = 42,
                  strata: Optional[str] = None) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Seeded train/test split; with strata, each stratum keeps close to ``prop`` of its rows in train."""
    if not 0 < prop < 1:
        raise ConfigError(f'prop must be between 0 and 1, got {prop}')

    rng = np.random.default_rng(seed)
    labels = _strata_values(df, strata)
    if labels is None:
        groups = [np.arange(len(df))]
    else:
        groups = [np.flatnonzero(labels == level) for level in pd.unique(labels)]

    train_pos, test_pos = [], []
    for members in groups:
        members = members.copy()
        rng.shuffle(members)
        n_train = int(round(len(members) * prop))
        # strata with two or more rows keep at least one row on each side
        if len(members) > 1:
            n_train = min(max(n_train, 1), len(members) - 1)
        elif len(members) == 1:
            n_train = 1
        train_pos.extend(members[:n_train].tolist())
        test_pos.extend(members[n_train:].tolist())

    if not train_pos or not test_pos:
        raise InsufficientDataError(
            f'A {prop:.2f} split of {len(df)} rows leaves an empty side (train={len(train_pos)}, test={len(test_pos)})'
        )
    train = df.iloc[sorted(train_pos)]
    test = df.iloc[sorted(test_pos)]
    logger.info("Split %d rows into %d train / %d test", len(df), len(train), len(test))
    return train, test
