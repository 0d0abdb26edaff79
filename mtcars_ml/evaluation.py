from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, confusion_matrix, precision_recall_fscore_support

from mtcars_ml.errors import ConfigError, SchemaError
from mtcars_ml.workflows import FittedWorkflow


@dataclass
class EvaluationReport:
    confusion: pd.DataFrame
    per_class: pd.DataFrame
    accuracy: float

    def as_dict(self) -> dict:
        return {
            'accuracy': self.accuracy,
            'confusion_matrix': {str(k): {str(c): int(v) for c, v in row.items()}
                                 for k, row in self.confusion.iterrows()},
            'per_class': {str(k): {m: float(v) for m, v in row.items()}
                          for k, row in self.per_class.iterrows()},
        }


def evaluate(predictions: Sequence[object], truth: Sequence[object],
             labels: Optional[Sequence[object]] = None) -> EvaluationReport:
    """Confusion matrix (truth rows x predicted columns) and per-class precision/recall/f1."""
    y_pred = np.asarray(predictions)
    y_true = np.asarray(truth)
    if len(y_pred) != len(y_true):
        raise SchemaError(f'{len(y_pred)} predictions for {len(y_true)} true labels')
    if len(y_true) == 0:
        raise ConfigError('nothing to evaluate')
    if labels is None:
        labels = sorted(set(y_true.tolist()) | set(y_pred.tolist()), key=str)
    labels = list(labels)

    cm = confusion_matrix(y_true, y_pred, labels=labels)
    confusion = pd.DataFrame(cm, index=pd.Index(labels, name='truth'), columns=pd.Index(labels, name='prediction'))
    precision, recall, f1, support = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, zero_division=0
    )
    per_class = pd.DataFrame(
        {'precision': precision, 'recall': recall, 'f1': f1, 'support': support},
        index=pd.Index(labels, name='class'),
    )
    return EvaluationReport(confusion, per_class, float(accuracy_score(y_true, y_pred)))


def variable_importance(fitted: FittedWorkflow) -> List[Tuple[str, float]]:
    """(feature, importance) pairs, most important first; ties keep feature order."""
    importances = getattr(fitted.model, 'feature_importances_', None)
    if importances is None:
        raise ConfigError(f'{type(fitted.model).__name__} does not expose feature importances')
    pairs = list(zip(fitted.feature_names, (float(v) for v in importances)))
    return sorted(pairs, key=lambda kv: -kv[1])


def save_json(obj: dict, path: Path) -> None:
    with open(path, 'w') as f:
        json.dump(obj, f, indent=2, default=str)
