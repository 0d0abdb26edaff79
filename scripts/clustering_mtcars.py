"""
Task 2: K-means over three preprocessing recipes

Usage:
  python scripts/clustering_mtcars.py

Outputs the elbow table and plot, cluster plot and the labeled dataset under artifacts/clustering
"""
from pathlib import Path
import sys
import logging

logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')


def _ensure_root_on_path():
    cwd = Path.cwd().resolve()
    p = cwd
    for _ in range(10):
        if (p / 'mtcars_ml' / '__init__.py').exists():
            if str(p) not in sys.path:
                sys.path.insert(0, str(p))
            return p
        if p.parent == p:
            break
        p = p.parent
    return cwd

_ensure_root_on_path()
from mtcars_ml import data, plots
from mtcars_ml import recipes as rcp
from mtcars_ml.config import CLUSTER_COLUMN, PipelineConfig
from mtcars_ml.pipeline import run_clustering_stage


def main():
    config = PipelineConfig()
    art_dir = config.stage_dir('clustering')
    df = data.load()
    outcome = run_clustering_stage(df, config)

    elbow = outcome.elbow.pivot(index='num_clusters', columns='recipe', values='mean')
    print('Mean WSS/TSS on validation folds:')
    print(elbow.round(3).to_string())
    outcome.elbow.to_csv(art_dir / 'elbow_table.csv', index=False)
    outcome.tuning.collect_metrics().to_csv(art_dir / 'cluster_metrics.csv', index=False)
    if not outcome.tuning.notes.empty:
        outcome.tuning.notes.to_csv(art_dir / 'cluster_fit_notes.csv', index=False)
    plots.plot_elbow(outcome.elbow, save_path=art_dir / 'elbow_curve.png')

    features = rcp.apply(outcome.fitted.recipe, df)
    plots.plot_cluster_pca(features, outcome.labeled[CLUSTER_COLUMN], save_path=art_dir / 'clusters_pca.png')

    print(f"k={config.chosen_k} ({config.chosen_recipe}) cluster sizes:")
    print(outcome.labeled[CLUSTER_COLUMN].value_counts(sort=False).to_string())
    outcome.labeled.to_csv(art_dir / 'mtcars_clustered.csv', index=True)


if __name__ == '__main__':
    main()
