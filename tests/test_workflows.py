import numpy as np
import pandas as pd
import pytest

from mtcars_ml import recipes as rcp
from mtcars_ml.errors import ConfigError, SchemaError
from mtcars_ml.models import decision_tree, k_means
from mtcars_ml.workflows import add_cluster_column, finalize, fit, workflow


@pytest.fixture
def fitted_kmeans(mtcars):
    wf = finalize(workflow(rcp.get_recipe('yeo_johnson_pca'), k_means()), {'num_clusters': 6})
    return fit(wf, mtcars, seed=42)


@pytest.fixture
def fitted_tree(mtcars):
    rec = rcp.get_recipe('dummy_normalize', outcome='am')
    params = {'cost_complexity': 1e-10, 'tree_depth': 3, 'min_n': 2}
    return fit(finalize(workflow(rec, decision_tree()), params), mtcars, seed=42)


def test_kmeans_k6_labels_every_row(fitted_kmeans, mtcars):
    labels = fitted_kmeans.predict(mtcars)
    assert len(labels) == 32
    assert labels.notna().all()
    assert set(labels) <= set(range(1, 7))
    assert labels.iloc[0] == 1
    assert sorted(fitted_kmeans.label_map.values()) == [1, 2, 3, 4, 5, 6]


def test_predict_is_repeatable(fitted_kmeans, mtcars):
    pd.testing.assert_series_equal(fitted_kmeans.predict(mtcars), fitted_kmeans.predict(mtcars))


def test_add_cluster_column(fitted_kmeans, mtcars):
    labeled = add_cluster_column(fitted_kmeans, mtcars)
    assert 'cluster' not in mtcars.columns
    assert isinstance(labeled['cluster'].dtype, pd.CategoricalDtype)
    assert list(labeled['cluster'].cat.categories) == [1, 2, 3, 4, 5, 6]
    assert list(labeled['cluster']) == list(fitted_kmeans.predict(mtcars))
    with pytest.raises(SchemaError):
        add_cluster_column(fitted_kmeans, labeled)


def test_finalize_requires_every_marker(mtcars):
    wf = workflow(rcp.get_recipe('dummy_normalize'), k_means())
    with pytest.raises(ConfigError):
        finalize(wf, {})
    with pytest.raises(ConfigError):
        fit(wf, mtcars)
    assert finalize(wf, {'num_clusters': 3}).spec.params == {'num_clusters': 3}
    assert wf.spec.tunable() == ['num_clusters']


def test_classification_workflow_needs_outcome():
    with pytest.raises(ConfigError):
        workflow(rcp.get_recipe('dummy_normalize'), decision_tree())


def test_tree_predictions_and_probabilities(fitted_tree, mtcars):
    preds = fitted_tree.predict(mtcars)
    assert set(preds) <= {'automatic', 'manual'}
    assert list(preds.cat.categories) == ['automatic', 'manual']
    proba = fitted_tree.predict_proba(mtcars)
    assert list(proba.columns) == ['.pred_automatic', '.pred_manual']
    np.testing.assert_allclose(proba.sum(axis=1).to_numpy(), 1.0)
    assert 'am_manual' not in fitted_tree.feature_names


def test_mode_mismatches_raise(fitted_kmeans, fitted_tree, mtcars):
    with pytest.raises(ConfigError):
        fitted_kmeans.predict_proba(mtcars)
    with pytest.raises(ConfigError):
        add_cluster_column(fitted_tree, mtcars)
