import json

import pytest

from mtcars_ml import recipes as rcp
from mtcars_ml.errors import ConfigError, SchemaError
from mtcars_ml.evaluation import evaluate, save_json, variable_importance
from mtcars_ml.models import decision_tree
from mtcars_ml.workflows import finalize, fit, workflow


def test_confusion_matrix_and_per_class():
    report = evaluate([1, 1, 2, 2], [1, 2, 2, 2])
    assert report.confusion.loc[1, 1] == 1
    assert report.confusion.loc[2, 1] == 1
    assert report.confusion.loc[2, 2] == 2
    assert report.confusion.loc[1, 2] == 0
    assert report.accuracy == pytest.approx(0.75)
    assert report.per_class.loc[2, 'recall'] == pytest.approx(2 / 3)
    assert report.per_class.loc[1, 'precision'] == pytest.approx(0.5)
    assert report.per_class['support'].tolist() == [1, 3]


def test_labels_fix_matrix_shape():
    report = evaluate(['a', 'a'], ['a', 'a'], labels=['a', 'b', 'c'])
    assert report.confusion.shape == (3, 3)
    assert report.confusion.to_numpy().sum() == 2


def test_evaluate_rejects_bad_input():
    with pytest.raises(SchemaError):
        evaluate([1, 2], [1])
    with pytest.raises(ConfigError):
        evaluate([], [])


def test_variable_importance_is_ranked(mtcars):
    rec = rcp.get_recipe('dummy_normalize', outcome='cyl')
    params = {'cost_complexity': 1e-10, 'tree_depth': 4, 'min_n': 2}
    fitted = fit(finalize(workflow(rec, decision_tree()), params), mtcars)
    ranking = variable_importance(fitted)
    scores = [score for _, score in ranking]
    assert scores == sorted(scores, reverse=True)
    assert {name for name, _ in ranking} == set(fitted.feature_names)
    assert sum(scores) == pytest.approx(1.0)


def test_report_serializes(tmp_path):
    report = evaluate([1, 2], [1, 2])
    path = tmp_path / 'report.json'
    save_json({'evaluation': report.as_dict(), 'importance': [('mpg', 0.5)]}, path)
    loaded = json.loads(path.read_text())
    assert loaded['evaluation']['accuracy'] == 1.0
    assert loaded['evaluation']['confusion_matrix']['1']['1'] == 1
