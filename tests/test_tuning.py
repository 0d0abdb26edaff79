import numpy as np
import pandas as pd
import pytest

from mtcars_ml import recipes as rcp
from mtcars_ml.errors import ConfigError, InsufficientDataError
from mtcars_ml.models import CLASSIFICATION, cluster_grid, decision_tree, filter_grid, k_means, tree_grid
from mtcars_ml.resampling import vfold
from mtcars_ml.tuning import TuningResult, cluster_sums_of_squares, tune_grid


def _result(values_by_config, grid=None):
    grid = grid or [{'a': i + 1} for i in range(len(values_by_config))]
    rows = []
    for config, values in enumerate(values_by_config):
        for fold, value in enumerate(values):
            rows.append({'recipe': 'r', 'config': config, 'fold': f'Fold{fold}', 'metric': 'roc_auc', 'value': value})
    return TuningResult(CLASSIFICATION, ('r',), grid, ('roc_auc',), pd.DataFrame(rows))


def test_sums_of_squares():
    X = np.array([[0.0], [2.0], [10.0], [12.0]])
    within, total = cluster_sums_of_squares(X, np.array([[1.0], [11.0]]))
    assert within == pytest.approx(4.0)
    assert total == pytest.approx(104.0)
    within, total = cluster_sums_of_squares(X, np.array([[5.0]]))
    assert within == total


def test_select_best_breaks_ties_by_grid_order():
    result = _result([[0.75, 0.25], [0.5, 0.5], [np.nan, np.nan]])
    assert result.select_best('roc_auc') == {'a': 1}


def test_select_best_uses_partial_folds_and_skips_failed_configs():
    result = _result([[0.75, 0.25], [np.nan, 0.95], [np.nan, np.nan]])
    assert result.select_best('roc_auc') == {'a': 2}
    summary = result.collect_metrics()
    assert list(summary['n']) == [2, 1, 0]
    assert np.isnan(summary.loc[2, 'mean'])


def test_select_best_minimize_and_errors():
    result = _result([[0.75, 0.25], [0.2, 0.2]])
    assert result.select_best('roc_auc', maximize=False) == {'a': 2}
    with pytest.raises(ConfigError):
        result.select_best('accuracy')
    with pytest.raises(InsufficientDataError):
        _result([[np.nan], [np.nan]]).select_best('roc_auc')


def test_show_best_sorts_by_mean():
    result = _result([[0.5], [0.9], [0.7]])
    assert list(result.show_best('roc_auc', n=2)['a']) == [2, 3]


def test_clustering_search_gives_ten_ratios_per_recipe(clustering_outcome):
    elbow = clustering_outcome.elbow
    assert len(elbow) == 30
    for name in rcp.RECIPE_NAMES:
        ratios = elbow.loc[elbow['recipe'] == name, 'mean']
        assert len(ratios) == 10
        assert ratios.notna().all()
        assert ((ratios >= 0) & (ratios <= 1 + 1e-12)).all()
    k1 = elbow[elbow['num_clusters'] == 1]['mean']
    assert np.allclose(k1, 1.0)


def test_clustering_search_metrics_table(clustering_outcome):
    summary = clustering_outcome.tuning.collect_metrics()
    assert set(summary['metric']) == {'sse_within', 'sse_total', 'sse_ratio'}
    assert (summary['n'] == 10).all()
    assert clustering_outcome.tuning.notes.empty


def test_failed_cells_are_recorded_not_fatal(mtcars):
    folds = vfold(mtcars, v=4, seed=1)
    result = tune_grid(k_means(), rcp.get_recipe('dummy_normalize'), mtcars, folds,
                       cluster_grid([2, 40]), n_jobs=1)
    assert len(result.notes) == 4
    assert set(result.notes['config']) == {1}
    summary = result.collect_metrics()
    failed = summary[summary['config'] == 1]
    assert (failed['n'] == 0).all() and failed['mean'].isna().all()
    assert result.select_best('sse_ratio', maximize=False) == {'num_clusters': 2}


def test_classification_search_covers_filtered_grid(mtcars):
    rec = rcp.get_recipe('dummy_normalize', outcome='am')
    folds = vfold(mtcars, v=5, seed=42, strata='am')
    full = tree_grid(4)
    grid = filter_grid(full, min(len(f.train_index) for f in folds))
    assert len(full) == 64 and len(grid) == 32

    result = tune_grid(decision_tree(), rec, mtcars, folds, grid, metrics=['roc_auc', 'accuracy'], n_jobs=1)
    summary = result.collect_metrics()
    auc = summary[summary['metric'] == 'roc_auc']
    assert len(auc) == len(grid)
    assert auc['mean'].between(0, 1).all()
    best = result.select_best('roc_auc')
    assert set(best) == {'cost_complexity', 'tree_depth', 'min_n'}
    assert best in grid


def test_parallel_matches_serial(mtcars):
    folds = vfold(mtcars, v=3, seed=2)
    recs = rcp.build_recipes()
    grid = cluster_grid([1, 2, 3])
    serial = tune_grid(k_means(), recs, mtcars, folds, grid, n_jobs=1).collect_metrics()
    parallel = tune_grid(k_means(), recs, mtcars, folds, grid, n_jobs=2).collect_metrics()
    pd.testing.assert_frame_equal(serial, parallel)


def test_search_configuration_errors(mtcars):
    folds = vfold(mtcars, v=3, seed=2)
    rec = rcp.get_recipe('dummy_normalize')
    with pytest.raises(ConfigError):
        tune_grid(k_means(), rec, mtcars, folds, [{'num_clusters': 0}])
    with pytest.raises(ConfigError):
        tune_grid(k_means(), rec, mtcars, folds, cluster_grid([2]), metrics=['roc_auc'])
    with pytest.raises(ConfigError):
        tune_grid(k_means(), rec, mtcars, folds, [{'depth': 2}])
    with pytest.raises(ConfigError):
        tune_grid(decision_tree(), rec, mtcars, folds, tree_grid(1))
    with pytest.raises(ConfigError):
        tune_grid(k_means(), [rec, rec], mtcars, folds, cluster_grid([2]))
    with pytest.raises(ConfigError):
        _result([[0.5]]).elbow_table()
    with pytest.raises(InsufficientDataError):
        tune_grid(k_means(), rec, mtcars, [], cluster_grid([2]))


def test_config_error_inside_a_cell_stops_the_search(mtcars):
    rec = rcp.add_step(rcp.recipe('bad_pca'), rcp.project_pca(rcp.ALL_NUMERIC, k=0))
    with pytest.raises(ConfigError, match='num_comp'):
        tune_grid(k_means(), rec, mtcars, vfold(mtcars, v=4), cluster_grid([2, 3]))


def test_outcome_selected_by_a_step_stops_the_search(mtcars):
    rec = rcp.add_step(rcp.recipe('bad_select', outcome='am'), rcp.normalize(('mpg', 'am')))
    folds = vfold(mtcars, v=4, strata='am')
    with pytest.raises(ConfigError, match='Outcome'):
        tune_grid(decision_tree(), rec, mtcars, folds, filter_grid(tree_grid(2), 20))
