from mtcars_ml import eda, plots
from mtcars_ml import recipes as rcp
from mtcars_ml.evaluation import evaluate


def test_summary_tables(mtcars):
    summary = eda.summary_stats(mtcars)
    assert list(summary.index) == ['mpg', 'disp', 'hp', 'drat', 'wt', 'qsec', 'carb']
    assert 'skew' in summary.columns
    counts = eda.category_counts(mtcars)
    assert counts.groupby('column')['count'].sum().eq(32).all()
    assert set(counts['column']) == {'cyl', 'vs', 'am', 'gear'}
    assert eda.correlation_matrix(mtcars).shape == (7, 7)
    assert set(eda.outlier_counts(mtcars)) == set(summary.index)


def test_eda_artifacts(tmp_path, mtcars):
    eda.save_summary_stats(mtcars, tmp_path / 'summary.csv')
    eda.plot_correlation_heatmap(mtcars, tmp_path / 'corr.png')
    eda.plot_boxplots(mtcars, tmp_path / 'box.png')
    eda.plot_pairplot(mtcars, 'cyl', tmp_path / 'pairs.png')
    for name in ['summary.csv', 'corr.png', 'box.png', 'pairs.png']:
        assert (tmp_path / name).exists()


def test_cluster_plots(tmp_path, clustering_outcome, mtcars):
    plots.plot_elbow(clustering_outcome.elbow, tmp_path / 'elbow.png')
    features = rcp.apply(clustering_outcome.fitted.recipe, mtcars)
    explained = plots.plot_cluster_pca(features, clustering_outcome.labeled['cluster'], tmp_path / 'pca.png')
    assert 0 < explained <= 1
    assert (tmp_path / 'elbow.png').exists() and (tmp_path / 'pca.png').exists()


def test_classification_plots(tmp_path):
    report = evaluate([1, 2, 2], [1, 2, 1])
    plots.plot_confusion_matrix(report, tmp_path / 'cm.png')
    plots.plot_importance([('wt', 0.6), ('hp', 0.4)], tmp_path / 'imp.png')
    assert (tmp_path / 'cm.png').exists() and (tmp_path / 'imp.png').exists()
