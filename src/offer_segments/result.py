"""
Shared output value types for the clustering engines.

Labels are exposed 1-based (``1..k``); row ``j - 1`` of ``centroids`` is the
representative of label ``j``. Results are immutable: their arrays are
read-only and no engine ever updates a result after returning it.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .distance import total_sum_of_squares, within_sum_of_squares


def _frozen(values, dtype=None) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ClusterMetrics:
    """Per-model sum-of-squares summary (R's kmeans naming: tot.withinss, betweenss, ...)."""
    tot_withinss: float
    withinss: Tuple[float, ...]
    totss: float
    betweenss: float
    size: Tuple[int, ...]

    @property
    def ratio(self) -> float:
        """Share of the total sum of squares explained by the partition."""
        if self.totss <= 0:
            return 0.0
        return self.betweenss / self.totss

    def to_dict(self) -> dict:
        return {
            "tot_withinss": self.tot_withinss,
            "withinss": list(self.withinss),
            "totss": self.totss,
            "betweenss": self.betweenss,
            "size": list(self.size),
            "ratio": self.ratio,
        }


def compute_metrics(X: np.ndarray, labels0: np.ndarray, k: int) -> ClusterMetrics:
    """
    Sum-of-squares metrics about cluster means for 0-based labels.

    Means are used for every engine (including PAM) so that dispersion is
    comparable whichever engine produced the partition.
    """
    withinss = within_sum_of_squares(X, labels0, k)
    totss = total_sum_of_squares(X)
    tot_withinss = float(withinss.sum())
    betweenss = max(totss - tot_withinss, 0.0)
    size = np.bincount(labels0, minlength=k)
    return ClusterMetrics(
        tot_withinss=tot_withinss,
        withinss=tuple(float(w) for w in withinss),
        totss=totss,
        betweenss=betweenss,
        size=tuple(int(s) for s in size),
    )


@dataclass(frozen=True)
class ClusterResult:
    """Assignment, centroids and metrics of one fitted partition."""
    labels: np.ndarray
    centroids: np.ndarray
    metrics: ClusterMetrics
    k: int
    algorithm: str
    seed: Optional[int] = None
    objective: float = 0.0
    n_iterations: int = 0
    converged: bool = True
    history: Tuple[float, ...] = ()
    medoid_indices: Optional[Tuple[int, ...]] = None
    restart: int = 0
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "labels", _frozen(self.labels, dtype=np.int64))
        object.__setattr__(self, "centroids", _frozen(self.centroids, dtype=np.float64))
        object.__setattr__(self, "history", tuple(float(h) for h in self.history))

    @property
    def n_points(self) -> int:
        return len(self.labels)

    @property
    def tot_withinss(self) -> float:
        return self.metrics.tot_withinss

    def cluster_sizes(self) -> dict:
        """Number of points per label (labels 1..k)."""
        return {j + 1: size for j, size in enumerate(self.metrics.size)}

    def members(self, label: int) -> np.ndarray:
        """Point indices carrying ``label``."""
        return np.flatnonzero(self.labels == label)

    def to_frame(self, index=None) -> pd.DataFrame:
        """One row per point with its cluster label."""
        return pd.DataFrame({"cluster": self.labels}, index=index)


def build_result(
    X: np.ndarray,
    labels0: np.ndarray,
    centroids: np.ndarray,
    algorithm: str,
    **kwargs,
) -> ClusterResult:
    """Assemble a ClusterResult from 0-based engine labels."""
    k = len(centroids)
    return ClusterResult(
        labels=np.asarray(labels0) + 1,
        centroids=centroids,
        metrics=compute_metrics(X, np.asarray(labels0), k),
        k=k,
        algorithm=algorithm,
        **kwargs,
    )
