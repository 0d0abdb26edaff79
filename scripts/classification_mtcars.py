"""
Task 3: Predict k-means cluster membership with a tuned decision tree

Usage:
  python scripts/classification_mtcars.py

Runs the clustering stage first (its labels are the target), then tunes, fits and
evaluates the tree. Outputs under artifacts/classification
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
from mtcars_ml import data, evaluation, plots
from mtcars_ml.config import PipelineConfig
from mtcars_ml.pipeline import run_classification_stage, run_clustering_stage


def main():
    config = PipelineConfig()
    art_dir = config.stage_dir('classification')
    df = data.load()
    labeled = run_clustering_stage(df, config).labeled
    outcome = run_classification_stage(labeled, config)

    print('Train/Test sizes:', len(outcome.train), len(outcome.test))
    print('Top configurations by ROC AUC:')
    print(outcome.tuning.show_best('roc_auc', n=5).round(4).to_string(index=False))
    print('Best hyperparameters:', outcome.best_params)
    print('Confusion matrix (test):')
    print(outcome.report.confusion.to_string())
    print(outcome.report.per_class.round(3).to_string())
    print(f'Accuracy: {outcome.report.accuracy:.3f}')
    for name, score in outcome.importance[:5]:
        print(f'  {name:<20} {score:.3f}')

    outcome.tuning.collect_metrics().to_csv(art_dir / 'tree_tuning_metrics.csv', index=False)
    evaluation.save_json({
        'best_params': outcome.best_params,
        'evaluation': outcome.report.as_dict(),
        'importance': outcome.importance,
    }, art_dir / 'tree_results.json')
    plots.plot_tree_model(outcome.fitted, save_path=art_dir / 'decision_tree.png')
    plots.plot_confusion_matrix(outcome.report, save_path=art_dir / 'confusion_matrix.png')
    plots.plot_importance(outcome.importance, save_path=art_dir / 'variable_importance.png')


if __name__ == '__main__':
    main()
