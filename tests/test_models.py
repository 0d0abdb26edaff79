import pytest
from sklearn.cluster import KMeans
from sklearn.tree import DecisionTreeClassifier

from mtcars_ml.errors import ConfigError
from mtcars_ml.models import (
    CLASSIFICATION, CLUSTERING, TUNE, ModelSpec, build_estimator, cluster_grid, decision_tree,
    filter_grid, k_means, regular_grid, tree_grid, tree_ranges,
)


def test_specs_know_their_mode_and_tunables():
    assert k_means().mode == CLUSTERING
    assert k_means().tunable() == ['num_clusters']
    assert decision_tree().mode == CLASSIFICATION
    assert decision_tree(tree_depth=3).tunable() == ['cost_complexity', 'min_n']
    assert repr(TUNE) == 'tune()'


def test_spec_validation():
    with pytest.raises(ConfigError):
        ModelSpec('random_forest', {})
    with pytest.raises(ConfigError):
        ModelSpec('k_means', {'num_clusters': 3, 'max_iter': 10})
    with pytest.raises(ConfigError):
        ModelSpec('decision_tree', {'tree_depth': 3})
    with pytest.raises(ConfigError):
        k_means().with_params({'depth': 2})


def test_build_estimator():
    km = build_estimator(k_means(), {'num_clusters': 4}, seed=1)
    assert isinstance(km, KMeans) and km.n_clusters == 4 and km.random_state == 1
    tree = build_estimator(decision_tree(), {'cost_complexity': 0.01, 'tree_depth': 5, 'min_n': 4}, seed=2)
    assert isinstance(tree, DecisionTreeClassifier)
    assert (tree.ccp_alpha, tree.max_depth, tree.min_samples_split) == (0.01, 5, 4)
    with pytest.raises(ConfigError):
        build_estimator(decision_tree(), {'tree_depth': 5}, seed=2)


def test_regular_grid_order():
    grid = regular_grid({'a': [1, 2], 'b': ['x', 'y', 'z']})
    assert len(grid) == 6
    assert grid[0] == {'a': 1, 'b': 'x'}
    assert grid[1] == {'a': 1, 'b': 'y'}
    assert grid[3] == {'a': 2, 'b': 'x'}


def test_tree_grid_has_levels_cubed():
    assert len(tree_grid(4)) == 64
    ranges = tree_ranges(4)
    assert ranges['tree_depth'] == [1, 6, 10, 15]
    assert ranges['min_n'] == [2, 15, 27, 40]
    assert ranges['cost_complexity'][0] == pytest.approx(1e-10)
    assert ranges['cost_complexity'][-1] == pytest.approx(0.1)
    assert len(tree_grid(1)) == 1
    with pytest.raises(ConfigError):
        tree_ranges(0)


def test_filter_grid_drops_unreachable_min_n():
    grid = tree_grid(4)
    assert len(filter_grid(grid, 100)) == 64
    kept = filter_grid(grid, 20)
    assert len(kept) == 32
    assert {row['min_n'] for row in kept} == {2, 15}


def test_cluster_grid():
    assert cluster_grid(range(1, 11)) == [{'num_clusters': k} for k in range(1, 11)]
    with pytest.raises(ConfigError):
        cluster_grid([0, 1, 2])
    with pytest.raises(ConfigError):
        cluster_grid([])
