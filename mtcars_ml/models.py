from __future__ import annotations

import dataclasses
import itertools
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np
from sklearn.cluster import KMeans
from sklearn.tree import DecisionTreeClassifier

from mtcars_ml.errors import ConfigError


class _Tune:
    """Marker for a hyperparameter whose value comes from a grid search."""

    def __repr__(self) -> str:
        return 'tune()'


TUNE = _Tune()

CLUSTERING = 'clustering'
CLASSIFICATION = 'classification'


# ------------------------
# Model families
# ------------------------

def _kmeans(params: Mapping[str, object], seed: int) -> KMeans:
    return KMeans(n_clusters=int(params['num_clusters']), n_init=10, random_state=seed)


def _decision_tree(params: Mapping[str, object], seed: int) -> DecisionTreeClassifier:
    return DecisionTreeClassifier(
        ccp_alpha=float(params['cost_complexity']),
        max_depth=int(params['tree_depth']),
        min_samples_split=int(params['min_n']),
        random_state=seed,
    )


@dataclass(frozen=True)
class Family:
    name: str
    mode: str
    params: Tuple[str, ...]
    builder: Callable[[Mapping[str, object], int], object]


FAMILIES: Dict[str, Family] = {
    'k_means': Family('k_means', CLUSTERING, ('num_clusters',), _kmeans),
    'decision_tree': Family('decision_tree', CLASSIFICATION, ('cost_complexity', 'tree_depth', 'min_n'), _decision_tree),
}


def get_family(name: str) -> Family:
    if name not in FAMILIES:
        raise ConfigError(f"Unknown model family '{name}'; expected one of {list(FAMILIES)}")
    return FAMILIES[name]


# ------------------------
# Model specs
# ------------------------

@dataclass(frozen=True)
class ModelSpec:
    family: str
    params: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        family = get_family(self.family)
        unknown = [p for p in self.params if p not in family.params]
        if unknown:
            raise ConfigError(f'{self.family} has no hyperparameters {unknown}; expected {list(family.params)}')
        missing = [p for p in family.params if p not in self.params]
        if missing:
            raise ConfigError(f'{self.family} needs values (or TUNE) for {missing}')

    @property
    def mode(self) -> str:
        return get_family(self.family).mode

    def tunable(self) -> List[str]:
        return [name for name, value in self.params.items() if value is TUNE]

    def with_params(self, values: Mapping[str, object]) -> 'ModelSpec':
        params = dict(self.params)
        for name, value in values.items():
            if name not in params:
                raise ConfigError(f"{self.family} has no hyperparameter '{name}'")
            params[name] = value
        return dataclasses.replace(self, params=params)


def k_means(num_clusters=TUNE) -> ModelSpec:
    return ModelSpec('k_means', {'num_clusters': num_clusters})


def decision_tree(cost_complexity=TUNE, tree_depth=TUNE, min_n=TUNE) -> ModelSpec:
    return ModelSpec('decision_tree', {
        'cost_complexity': cost_complexity,
        'tree_depth': tree_depth,
        'min_n': min_n,
    })


def build_estimator(spec: ModelSpec, values: Mapping[str, object], seed: int):
    resolved = spec.with_params(values)
    pending = resolved.tunable()
    if pending:
        raise ConfigError(f'{spec.family} still has tuning markers for {pending}')
    return get_family(spec.family).builder(resolved.params, seed)


# ------------------------
# Grids
# ------------------------

Grid = List[Dict[str, object]]


def grid_values(name: str, values: Iterable[object]) -> Grid:
    return [{name: v} for v in values]


def regular_grid(ranges: Mapping[str, Sequence[object]]) -> Grid:
    """Cross product of per-parameter values; the first parameter varies slowest."""
    names = list(ranges)
    return [dict(zip(names, combo)) for combo in itertools.product(*(ranges[n] for n in names))]


def cluster_grid(values: Iterable[int]) -> Grid:
    values = [int(v) for v in values]
    if not values:
        raise ConfigError('cluster grid is empty')
    bad = [v for v in values if v < 1]
    if bad:
        raise ConfigError(f'cluster counts must be >= 1, got {bad}')
    return grid_values('num_clusters', values)


def tree_ranges(levels: int = 4) -> Dict[str, List[object]]:
    if levels < 1:
        raise ConfigError(f'levels must be >= 1, got {levels}')
    if levels == 1:
        return {'cost_complexity': [1e-10], 'tree_depth': [1], 'min_n': [2]}
    return {
        'cost_complexity': [float(v) for v in np.logspace(-10, -1, levels)],
        'tree_depth': [int(round(v)) for v in np.linspace(1, 15, levels)],
        'min_n': [int(round(v)) for v in np.linspace(2, 40, levels)],
    }


def tree_grid(levels: int = 4) -> Grid:
    return regular_grid(tree_ranges(levels))


def filter_grid(grid: Grid, n_rows: int) -> Grid:
    """Drop combinations whose min_n can never be met with n_rows training rows."""
    return [row for row in grid if int(row.get('min_n', 2)) <= n_rows]
