"""
Configuration for the segmentation engines.

Defaults live in the constants block below; ``load_config`` reads overrides
from a YAML file (``configs/config.yaml``).
"""
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import InvalidParameter


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SEED = 42
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_N_RESTARTS = 10
DEFAULT_K_MAX = 10
DEFAULT_N_BOOTSTRAP = 50
DEFAULT_N_COMPONENTS = 2
DEFAULT_GAP_METHOD = "Tibs2001SEmax"

PARTITIONAL_ENGINES = ("kmeans", "pam")
LINKAGE = "complete"


@dataclass(frozen=True)
class ClusteringConfig:
    """Explicit parameter set for one segmentation run."""
    k: Optional[int] = None          # fixed k; None lets the gap statistic decide
    k_max: int = DEFAULT_K_MAX
    seed: int = DEFAULT_SEED
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    n_restarts: int = DEFAULT_N_RESTARTS
    n_bootstrap: int = DEFAULT_N_BOOTSTRAP
    n_components: int = DEFAULT_N_COMPONENTS
    gap_engine: str = "kmeans"       # which partitional engine backs the gap statistic
    gap_method: str = DEFAULT_GAP_METHOD
    pam_init: str = "build"
    linkage: str = LINKAGE
    n_jobs: int = 1

    def __post_init__(self):
        if self.gap_engine not in PARTITIONAL_ENGINES:
            raise InvalidParameter(
                f"gap_engine must be one of {PARTITIONAL_ENGINES}, got {self.gap_engine!r}"
            )
        if self.linkage != LINKAGE:
            raise InvalidParameter(f"only '{LINKAGE}' linkage is supported, got {self.linkage!r}")

    @classmethod
    def from_dict(cls, values: dict) -> "ClusteringConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise InvalidParameter(f"unknown clustering settings: {sorted(unknown)}")
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


def load_config(config_path: str = "configs/config.yaml") -> dict:
    """Load configuration from YAML file."""
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def load_clustering_config(config_path: str = "configs/config.yaml") -> ClusteringConfig:
    """Build a ClusteringConfig from the ``clustering`` section of a YAML file."""
    config_path = Path(config_path)
    config = load_config(str(config_path))
    return ClusteringConfig.from_dict(config.get("clustering", {}))
