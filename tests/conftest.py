import matplotlib
matplotlib.use('Agg')

import pytest

from mtcars_ml import data
from mtcars_ml.config import PipelineConfig
from mtcars_ml.pipeline import run_clustering_stage


@pytest.fixture
def mtcars():
    """The 32-row reference table with categorical columns applied."""
    return data.load()


@pytest.fixture
def config(tmp_path):
    """Default run settings, single process, artifacts in a temp dir."""
    return PipelineConfig(n_jobs=1, artifacts_dir=tmp_path)


@pytest.fixture(scope='session')
def clustering_outcome():
    """Full clustering stage (3 recipes x k=1..10 x 10 folds), computed once."""
    return run_clustering_stage(data.load(), PipelineConfig(n_jobs=1))
