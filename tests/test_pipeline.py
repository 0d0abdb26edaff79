import dataclasses

import pytest

from mtcars_ml.config import PipelineConfig
from mtcars_ml.errors import ConfigError, SchemaError
from mtcars_ml.pipeline import run_classification_stage


@pytest.fixture(scope='module')
def classification_outcome(clustering_outcome):
    config = PipelineConfig(n_jobs=1, class_folds=3)
    return run_classification_stage(clustering_outcome.labeled, config)


def test_clustering_stage_labels_all_rows(clustering_outcome):
    labeled = clustering_outcome.labeled
    assert len(labeled) == 32
    assert labeled['cluster'].notna().all()
    assert set(labeled['cluster']) <= set(range(1, 7))
    assert list(labeled.columns[:-1]) == ['mpg', 'cyl', 'disp', 'hp', 'drat', 'wt', 'qsec', 'vs', 'am', 'gear', 'carb']


def test_classification_stage(classification_outcome, clustering_outcome):
    out = classification_outcome
    assert len(out.train) + len(out.test) == 32
    assert set(out.best_params) == {'cost_complexity', 'tree_depth', 'min_n'}
    assert out.best_params in out.tuning.grid
    assert len(out.tuning.grid) == 32
    assert len(out.predictions) == len(out.test)
    assert out.report.confusion.shape == (6, 6)
    assert out.report.confusion.to_numpy().sum() == len(out.test)
    assert 0 <= out.report.accuracy <= 1
    assert [name for name, _ in out.importance] != []
    assert 'cluster' not in out.fitted.feature_names


def test_classification_stage_is_reproducible(classification_outcome, clustering_outcome):
    again = run_classification_stage(clustering_outcome.labeled, PipelineConfig(n_jobs=1, class_folds=3))
    assert again.best_params == classification_outcome.best_params
    assert list(again.predictions) == list(classification_outcome.predictions)


def test_classification_needs_cluster_column(mtcars):
    with pytest.raises(SchemaError, match='clustering stage'):
        run_classification_stage(mtcars, PipelineConfig(n_jobs=1))


def test_config_validation():
    assert PipelineConfig().validate().chosen_k == 6
    bad = [
        {'cluster_grid': (0, 1, 2)},
        {'cluster_grid': ()},
        {'chosen_k': 0},
        {'split_prop': 1.0},
        {'class_folds': 1},
        {'tree_levels': 0},
        {'n_jobs': 0},
    ]
    for change in bad:
        with pytest.raises(ConfigError):
            dataclasses.replace(PipelineConfig(), **change).validate()


def test_tree_plot_written(tmp_path, classification_outcome):
    from mtcars_ml.plots import plot_tree_model
    plot_tree_model(classification_outcome.fitted, tmp_path / 'tree.png')
    assert (tmp_path / 'tree.png').exists()


def test_every_multi_row_cluster_reaches_the_test_split(classification_outcome, clustering_outcome):
    sizes = clustering_outcome.labeled['cluster'].value_counts()
    tested = set(classification_outcome.test['cluster'])
    for cluster, size in sizes.items():
        if size >= 2:
            assert cluster in tested


def test_stage_dir_lives_under_configured_artifacts(config, tmp_path):
    path = config.stage_dir('clustering')
    assert path == tmp_path / 'clustering'
    assert path.is_dir()
    assert config.stage_dir('clustering') == path
