from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from mtcars_ml.errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ARTIFACTS_DIR = PROJECT_ROOT / 'artifacts'

RANDOM_STATE = 42
CLUSTER_COLUMN = 'cluster'


@dataclass(frozen=True)
class PipelineConfig:
    """Knobs for one end-to-end run (clustering stage, then classification stage)."""
    seed: int = RANDOM_STATE
    cluster_folds: int = 10
    cluster_grid: Tuple[int, ...] = tuple(range(1, 11))
    chosen_recipe: str = 'yeo_johnson_pca'
    chosen_k: int = 6
    split_prop: float = 0.75
    class_folds: int = 5
    class_recipe: str = 'dummy_normalize'
    tree_levels: int = 4
    oversample: bool = False
    n_jobs: int = -1
    artifacts_dir: Path = field(default=ARTIFACTS_DIR)

    def stage_dir(self, name: str) -> Path:
        """Artifact folder for one task, created on first use."""
        path = Path(self.artifacts_dir) / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def validate(self) -> 'PipelineConfig':
        if not self.cluster_grid or min(self.cluster_grid) < 1:
            raise ConfigError(f'cluster_grid values must be >= 1, got {self.cluster_grid}')
        if self.chosen_k < 1:
            raise ConfigError(f'chosen_k must be >= 1, got {self.chosen_k}')
        if not 0 < self.split_prop < 1:
            raise ConfigError(f'split_prop must be between 0 and 1, got {self.split_prop}')
        if self.cluster_folds < 2 or self.class_folds < 2:
            raise ConfigError('fold counts must be at least 2')
        if self.tree_levels < 1:
            raise ConfigError(f'tree_levels must be >= 1, got {self.tree_levels}')
        if self.n_jobs == 0:
            raise ConfigError('n_jobs must be non-zero')
        return self
