"""
K-Means clustering (Lloyd's algorithm).

This module handles:
1. Seeded random initialization (k distinct points per restart)
2. Assignment / mean-update iterations until no point changes cluster
3. Deterministic recovery of clusters that end up empty
4. Multiple restarts, keeping the lowest total within-cluster sum of squares
"""
import warnings
from typing import Optional

import numpy as np

from .config import DEFAULT_MAX_ITERATIONS, DEFAULT_N_RESTARTS, DEFAULT_SEED
from .distance import cluster_means, squared_distances, within_sum_of_squares
from .exceptions import InvalidParameter, NonConvergence
from .matrix import as_points
from .result import ClusterResult, build_result
from .seeding import check_seed, derive_rng
from .validation import check_clusterable, check_count, check_k


def _reseed_empty_clusters(labels: np.ndarray, distances: np.ndarray, k: int) -> np.ndarray:
    """
    Give every empty cluster a point.

    An empty cluster is re-seeded on the point that is currently farthest
    (squared distance) from its own centroid, among points whose cluster keeps
    at least one other member. Ties go to the lowest point index. The point
    moves into the empty cluster, whose mean then becomes that point.
    """
    counts = np.bincount(labels, minlength=k)
    empty = np.flatnonzero(counts == 0)
    if len(empty) == 0:
        return labels

    labels = labels.copy()
    own = distances[np.arange(len(labels)), labels].copy()

    for j in empty:
        counts = np.bincount(labels, minlength=k)
        candidates = np.where(counts[labels] > 1, own, -1.0)
        p = int(np.argmax(candidates))
        labels[p] = j
        own[p] = 0.0

    return labels


def _lloyd(X: np.ndarray, centroids: np.ndarray, max_iterations: int):
    """
    Run Lloyd iterations from the given starting centroids.

    Returns:
        Tuple of (labels, centroids, withinss_history, n_iterations, converged);
        labels are 0-based and centroids are the means of the final labels.
    """
    k = len(centroids)
    labels = None
    history = []
    converged = False
    iteration = 0

    for iteration in range(1, max_iterations + 1):
        distances = squared_distances(X, centroids)
        # argmin keeps the first minimum: ties go to the lowest cluster index
        new_labels = np.argmin(distances, axis=1)
        new_labels = _reseed_empty_clusters(new_labels, distances, k)

        if labels is not None and np.array_equal(new_labels, labels):
            converged = True
            break

        labels = new_labels
        centroids = cluster_means(X, labels, k)
        history.append(float(within_sum_of_squares(X, labels, k).sum()))

    return labels, centroids, history, iteration, converged


class KMeansEngine:
    """
    Partitional clustering with Lloyd's algorithm.

    Usable directly or as the engine behind the gap statistic through
    ``fit(matrix, k, seed)``.

    Args:
        max_iterations: Iteration cap per restart
        n_restarts: Independent restarts; the lowest tot.withinss wins
    """

    name = "kmeans"

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        n_restarts: int = DEFAULT_N_RESTARTS,
    ):
        self.max_iterations = check_count(max_iterations, "max_iterations")
        self.n_restarts = check_count(n_restarts, "n_restarts")

    def __repr__(self) -> str:
        return f"KMeansEngine(max_iterations={self.max_iterations}, n_restarts={self.n_restarts})"

    def fit(
        self,
        matrix,
        k: int,
        seed: int = DEFAULT_SEED,
        max_iterations: Optional[int] = None,
        n_restarts: Optional[int] = None,
        init: Optional[np.ndarray] = None,
    ) -> ClusterResult:
        """
        Fit k-means with k clusters.

        Each restart r samples k distinct points from a stream derived from
        (seed, r) alone, so a restart reproduces regardless of how many others
        run or in which order.

        Args:
            matrix: PurchaseMatrix, DataFrame or 2-D array
            k: Number of clusters, 1 <= k <= number of points
            seed: Non-negative integer seed
            max_iterations: Overrides the engine default
            n_restarts: Overrides the engine default
            init: Explicit (k x n_features) starting centroids; forces one restart

        Returns:
            ClusterResult with labels 1..k and mean centroids
        """
        X = as_points(matrix)
        n, p = X.shape
        k = check_k(k, n)
        seed = check_seed(seed)
        max_iterations = check_count(
            self.max_iterations if max_iterations is None else max_iterations, "max_iterations"
        )
        n_restarts = check_count(self.n_restarts if n_restarts is None else n_restarts, "n_restarts")
        check_clusterable(X)

        if init is not None:
            init = np.array(init, dtype=np.float64)
            if init.shape != (k, p):
                raise InvalidParameter(f"init must have shape {(k, p)}, got {init.shape}")
            n_restarts = 1

        best = None
        for restart in range(n_restarts):
            if init is None:
                rng = derive_rng(seed, restart)
                start = X[rng.choice(n, size=k, replace=False)]
            else:
                start = init.copy()

            labels, centroids, history, n_iter, converged = _lloyd(X, start, max_iterations)
            withinss = history[-1]
            # strict comparison: ties keep the first restart
            if best is None or withinss < best[0]:
                best = (withinss, restart, labels, centroids, history, n_iter, converged)

        withinss, restart, labels, centroids, history, n_iter, converged = best
        if not converged:
            warnings.warn(
                f"k-means (k={k}) reached max_iterations={max_iterations} without stabilizing",
                NonConvergence,
                stacklevel=2,
            )

        return build_result(
            X,
            labels,
            centroids,
            algorithm=self.name,
            seed=seed,
            objective=withinss,
            n_iterations=n_iter,
            converged=converged,
            history=history,
            restart=restart,
            params={"max_iterations": max_iterations, "n_restarts": n_restarts},
        )
