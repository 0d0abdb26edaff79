from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from mtcars_ml.data import categorical_columns, numeric_columns


# ------------------------
# Tables
# ------------------------

def summary_stats(df: pd.DataFrame) -> pd.DataFrame:
    numeric = df[numeric_columns(df)]
    summary = numeric.describe().T
    summary['skew'] = numeric.skew()
    return summary


def category_counts(df: pd.DataFrame, exclude: Iterable[str] = ()) -> pd.DataFrame:
    rows = []
    for col in categorical_columns(df, exclude=exclude):
        counts = df[col].value_counts(sort=False, dropna=False)
        for level, count in counts.items():
            rows.append({'column': col, 'level': level, 'count': int(count)})
    return pd.DataFrame(rows, columns=['column', 'level', 'count'])


def correlation_matrix(df: pd.DataFrame) -> pd.DataFrame:
    return df[numeric_columns(df)].corr()


def outlier_counts(df: pd.DataFrame) -> Dict[str, int]:
    outlier_summary: Dict[str, int] = {}
    for col in numeric_columns(df):
        q1, q3 = df[col].quantile([0.25, 0.75])
        iqr = q3 - q1
        lower, upper = q1 - 1.5*iqr, q3 + 1.5*iqr
        outlier_summary[col] = int(((df[col] < lower) | (df[col] > upper)).sum())
    return outlier_summary


def save_summary_stats(df: pd.DataFrame, path: Path) -> pd.DataFrame:
    summary = summary_stats(df)
    summary.to_csv(path, index=True)
    return summary


# ------------------------
# Plots
# ------------------------

def plot_pairplot(df: pd.DataFrame, hue: str, save_path: Path) -> None:
    sns.set_theme(style='whitegrid', context='notebook')
    cols = numeric_columns(df, exclude=[hue]) + [hue]
    pp = sns.pairplot(df[cols], hue=hue, corner=True, diag_kind='hist')
    pp.fig.suptitle(f'Pairplot of Numeric Columns by {hue}', y=1.02)
    pp.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(pp.fig)


def plot_correlation_heatmap(df: pd.DataFrame, save_path: Path) -> None:
    corr = correlation_matrix(df)
    plt.figure(figsize=(7,6))
    sns.heatmap(corr, annot=True, cmap='coolwarm', fmt='.2f', square=True, cbar_kws={'shrink':0.8})
    plt.title('Correlation Heatmap')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close()


def plot_boxplots(df: pd.DataFrame, save_path: Path) -> None:
    feature_cols = numeric_columns(df)
    fig, axes = plt.subplots(1, len(feature_cols), figsize=(2.5*len(feature_cols), 4))
    if len(feature_cols) == 1:
        axes = [axes]
    for ax, col in zip(axes, feature_cols):
        sns.boxplot(y=df[col], ax=ax, color='#4c72b0')
        ax.set_title(col)
    plt.suptitle('Boxplots')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close(fig)
