from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.decomposition import PCA
from sklearn.tree import plot_tree

from mtcars_ml.evaluation import EvaluationReport
from mtcars_ml.workflows import FittedWorkflow


def plot_elbow(elbow: pd.DataFrame, save_path: Path, metric_label: str = 'WSS / TSS') -> None:
    plt.figure(figsize=(6,4))
    for recipe_name, group in elbow.groupby('recipe', sort=False):
        plt.plot(group['num_clusters'], group['mean'], marker='o', label=recipe_name)
    plt.title('Elbow Curve by Recipe')
    plt.xlabel('k')
    plt.ylabel(metric_label)
    plt.xticks(sorted(elbow['num_clusters'].unique()))
    plt.legend()
    plt.tight_layout()
    plt.savefig(save_path, dpi=140)
    plt.close()


def plot_cluster_pca(features: pd.DataFrame, labels: Sequence[int], save_path: Path) -> float:
    X = features.to_numpy(dtype=float)
    pca = PCA(n_components=2, svd_solver='full')
    X_pca = pca.fit_transform(X)
    explained = float(pca.explained_variance_ratio_.sum())
    plt.figure(figsize=(6,5))
    plt.scatter(X_pca[:,0], X_pca[:,1], c=np.asarray(labels, dtype=int), cmap='viridis', edgecolor='k', alpha=0.85)
    plt.title(f'Clusters in PCA Projection VarExpl: {explained:.2%}')
    plt.xlabel('PC1')
    plt.ylabel('PC2')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close()
    return explained


def plot_tree_model(fitted: FittedWorkflow, save_path: Path) -> None:
    plt.figure(figsize=(12,7))
    plot_tree(fitted.model, feature_names=fitted.feature_names,
              class_names=[str(c) for c in fitted.model.classes_], filled=True, rounded=True)
    depth = fitted.model.get_depth()
    plt.title(f'Decision Tree (depth={depth})')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close()


def plot_confusion_matrix(report: EvaluationReport, save_path: Path) -> None:
    plt.figure(figsize=(6,5))
    sns.heatmap(report.confusion, annot=True, fmt='d', cmap='Blues', cbar=False, square=True)
    plt.title(f'Confusion Matrix (accuracy={report.accuracy:.2f})')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close()


def plot_importance(ranking: List[Tuple[str, float]], save_path: Path) -> None:
    names = [name for name, _ in ranking][::-1]
    scores = [score for _, score in ranking][::-1]
    plt.figure(figsize=(6, max(3, 0.35*len(names))))
    plt.barh(names, scores, color='#4c72b0')
    plt.title('Variable Importance')
    plt.xlabel('Importance')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close()
