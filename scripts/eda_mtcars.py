"""
Task 1: Load and explore the Motor Trend car road tests data

Usage:
  python scripts/eda_mtcars.py

Outputs summary tables and plots under artifacts/eda
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
from mtcars_ml import data, eda
from mtcars_ml.config import PipelineConfig


def main():
    config = PipelineConfig()
    art_dir = config.stage_dir('eda')
    df = data.load()

    summary = eda.save_summary_stats(df, art_dir / 'summary_stats.csv')
    print(summary.round(3).to_string())
    print()
    print(eda.category_counts(df).to_string(index=False))
    print('Outliers (1.5 IQR):', eda.outlier_counts(df))

    eda.plot_pairplot(df, hue='am', save_path=art_dir / 'pairplot_by_transmission.png')
    eda.plot_correlation_heatmap(df, save_path=art_dir / 'correlation_heatmap.png')
    eda.plot_boxplots(df, save_path=art_dir / 'boxplots.png')


if __name__ == '__main__':
    main()
