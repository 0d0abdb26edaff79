"""Clustering-then-classification analysis of the Motor Trend car road tests data.

Modules:
- data: Reference table, schema and loading into typed (numeric/categorical) columns.
- eda: Summary statistics and exploratory plots.
- recipes: Fit/apply preprocessing recipes and the registry of three named recipes.
- models: Model specs (k-means, decision tree), tuning markers and grids.
- resampling: Seeded v-fold and stratified train/test splits.
- tuning: Grid search runner shared by clustering and classification.
- workflows: Final fit of a (recipe, model) pair, predictions and cluster labels.
- evaluation: Confusion matrix, per-class metrics and variable importance.
- plots: Elbow, cluster, tree, confusion and importance figures.
- pipeline: The clustering stage and the classification stage.
"""

__all__ = [
    'config',
    'data',
    'eda',
    'errors',
    'recipes',
    'models',
    'resampling',
    'tuning',
    'workflows',
    'evaluation',
    'plots',
    'pipeline',
]
