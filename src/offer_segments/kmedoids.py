"""
K-Medoids clustering (Partitioning Around Medoids).

Medoids are actual customers, and the objective is the total Euclidean
dissimilarity of every point to its medoid, which makes PAM less sensitive to
outlying customers than k-means. The full distance matrix is held in memory,
so cost grows quadratically with the number of customers.
"""
import warnings
from typing import Optional

import numpy as np

from .config import DEFAULT_MAX_ITERATIONS, DEFAULT_SEED
from .distance import distinct_row_indices, pairwise_distances
from .exceptions import InvalidParameter, NonConvergence
from .matrix import as_points
from .result import ClusterResult, build_result
from .seeding import check_seed, derive_rng
from .validation import check_clusterable, check_count, check_k


INIT_METHODS = ("build", "random")

# Swaps must improve the objective by more than this to be accepted
SWAP_TOLERANCE = 1e-10


def build_medoids(D: np.ndarray, k: int) -> np.ndarray:
    """
    Greedy BUILD initialization.

    The first medoid minimizes the total distance to all points; each further
    medoid is the point that lowers the total cost the most. Ties go to the
    lowest point index.
    """
    medoids = [int(np.argmin(D.sum(axis=1)))]
    nearest = D[:, medoids[0]].copy()

    while len(medoids) < k:
        # gain[c] = total cost reduction if c became a medoid
        gain = np.maximum(nearest[:, np.newaxis] - D, 0.0).sum(axis=0)
        gain[medoids] = -np.inf
        c = int(np.argmax(gain))
        medoids.append(c)
        nearest = np.minimum(nearest, D[:, c])

    return np.array(medoids)


def assign_to_medoids(D: np.ndarray, medoids: np.ndarray):
    """
    0-based labels (position in ``medoids``, lowest on ties) and the total cost.

    A medoid always belongs to its own cluster, even when it duplicates
    another medoid's row.
    """
    to_medoids = D[:, medoids]
    labels = np.argmin(to_medoids, axis=1)
    labels[medoids] = np.arange(len(medoids))
    cost = float(to_medoids[np.arange(len(D)), labels].sum())
    return labels, cost


def _best_swap(D: np.ndarray, medoids: np.ndarray):
    """
    Evaluate every (medoid, non-medoid) swap.

    Returns:
        Tuple of (medoid position, candidate point, cost after swap) for the
        cheapest swap; ties go to the lowest position, then the lowest point.
    """
    k = len(medoids)
    to_medoids = D[:, medoids]
    best = (None, None, np.inf)

    for i in range(k):
        if k > 1:
            others = np.delete(to_medoids, i, axis=1).min(axis=1)
        else:
            others = np.full(len(D), np.inf)
        # cost[h] = total cost if medoid i is replaced by point h
        cost = np.minimum(others[:, np.newaxis], D).sum(axis=0)
        cost[medoids] = np.inf
        h = int(np.argmin(cost))
        if cost[h] < best[2]:
            best = (i, h, float(cost[h]))

    return best


class KMedoidsEngine:
    """
    PAM clustering: BUILD (or seeded random) initialization followed by the
    swap phase.

    Args:
        max_iterations: Cap on accepted swaps
        init: ``"build"`` (deterministic greedy) or ``"random"`` (k distinct
            rows sampled from a stream derived from the seed, as k-means does;
            any rows once k exceeds the number of distinct rows)
    """

    name = "pam"

    def __init__(self, max_iterations: int = DEFAULT_MAX_ITERATIONS, init: str = "build"):
        self.max_iterations = check_count(max_iterations, "max_iterations")
        if init not in INIT_METHODS:
            raise InvalidParameter(f"init must be one of {INIT_METHODS}, got {init!r}")
        self.init = init

    def __repr__(self) -> str:
        return f"KMedoidsEngine(max_iterations={self.max_iterations}, init={self.init!r})"

    def _initial_medoids(self, X: np.ndarray, D: np.ndarray, k: int, seed: int) -> np.ndarray:
        if self.init == "build":
            return build_medoids(D, k)
        # sample among distinct rows so no two medoids coincide, unless k
        # needs duplicates
        candidates = distinct_row_indices(X)
        if k > len(candidates):
            candidates = np.arange(len(X))
        rng = derive_rng(seed, 0)
        return candidates[rng.choice(len(candidates), size=k, replace=False)]

    def fit(
        self,
        matrix,
        k: int,
        seed: int = DEFAULT_SEED,
        max_iterations: Optional[int] = None,
    ) -> ClusterResult:
        """
        Fit PAM with k medoids.

        Args:
            matrix: PurchaseMatrix, DataFrame or 2-D array
            k: Number of clusters, 1 <= k <= number of points
            seed: Non-negative integer seed (only consumed by ``init="random"``)
            max_iterations: Overrides the engine default

        Returns:
            ClusterResult whose centroids are the medoid rows; ``objective``
            is the total dissimilarity to the medoids
        """
        X = as_points(matrix)
        k = check_k(k, X.shape[0])
        seed = check_seed(seed)
        max_iterations = check_count(
            self.max_iterations if max_iterations is None else max_iterations, "max_iterations"
        )
        check_clusterable(X)

        D = pairwise_distances(X)
        medoids = self._initial_medoids(X, D, k, seed)
        labels, cost = assign_to_medoids(D, medoids)
        history = [cost]

        converged = False
        n_swaps = 0
        while n_swaps < max_iterations:
            i, h, new_cost = _best_swap(D, medoids)
            if i is None or new_cost >= cost - SWAP_TOLERANCE:
                converged = True
                break
            medoids = medoids.copy()
            medoids[i] = h
            labels, cost = assign_to_medoids(D, medoids)
            history.append(cost)
            n_swaps += 1
        else:
            # cap reached: converged only if no further improving swap exists
            i, h, new_cost = _best_swap(D, medoids)
            converged = i is None or new_cost >= cost - SWAP_TOLERANCE

        if not converged:
            warnings.warn(
                f"PAM (k={k}) reached max_iterations={max_iterations} with improving swaps left",
                NonConvergence,
                stacklevel=2,
            )

        return build_result(
            X,
            labels,
            X[medoids],
            algorithm=self.name,
            seed=seed,
            objective=cost,
            n_iterations=n_swaps,
            converged=converged,
            history=history,
            medoid_indices=tuple(int(m) for m in medoids),
            params={"max_iterations": max_iterations, "init": self.init},
        )

