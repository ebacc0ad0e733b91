"""
Gap statistic for choosing the number of clusters.

This module handles:
1. Observed log-dispersion log(W_k) for k = 1..k_max with any partitional engine
2. Uniform reference datasets drawn inside each column's observed range
3. Gap values and simulation standard errors (parallel bootstrap fits via joblib)
4. Selection rules for the optimal k (Tibs2001SEmax and the related rules)

W_k is the within-cluster sum of squares about cluster means, computed from
the engine's assignment, so k-means and PAM results are scored the same way.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .config import DEFAULT_GAP_METHOD, DEFAULT_K_MAX, DEFAULT_N_BOOTSTRAP, DEFAULT_SEED
from .exceptions import InvalidParameter, NoSolution
from .matrix import as_points
from .result import ClusterResult
from .seeding import check_seed, derive_rng, derive_seed
from .validation import check_count, check_k


# =============================================================================
# CONSTANTS
# =============================================================================

GAP_METHODS = ("firstSEmax", "Tibs2001SEmax", "globalSEmax", "firstmax", "globalmax")

# Stream keys so reference sampling and reference fits never share a stream
REFERENCE_STREAM = 1
REFERENCE_FIT_STREAM = 2


class PartitionalEngine(Protocol):
    """Anything that can partition a matrix into k clusters (KMeansEngine, KMedoidsEngine)."""

    def fit(self, matrix, k: int, seed: int) -> ClusterResult:
        ...


@dataclass(frozen=True)
class GapResult:
    """Gap statistic for one k."""
    k: int
    log_w: float
    e_log_w: float
    se_sim: float
    gap: float
    reference_log_w: Tuple[float, ...] = ()


# =============================================================================
# BUILDING BLOCKS
# =============================================================================

def log_dispersion(result: ClusterResult) -> float:
    """log(W_k); -inf when every cluster is a set of identical points."""
    with np.errstate(divide="ignore"):
        return float(np.log(result.metrics.tot_withinss))


def uniform_reference(X: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Reference dataset under the null model.

    Each column is sampled independently and uniformly within its observed
    [min, max], which keeps the bounding box and destroys any correlation.
    """
    return rng.uniform(X.min(axis=0), X.max(axis=0), size=X.shape)


def _reference_log_dispersions(
    X: np.ndarray,
    engine: PartitionalEngine,
    k_max: int,
    seed: int,
    b: int,
) -> np.ndarray:
    """log(W_k) for k = 1..k_max on reference dataset b."""
    X_ref = uniform_reference(X, derive_rng(seed, REFERENCE_STREAM, b))
    return np.array([
        log_dispersion(engine.fit(X_ref, k, derive_seed(seed, REFERENCE_FIT_STREAM, b, k)))
        for k in range(1, k_max + 1)
    ])


def select_k(
    gap: Sequence[float],
    se: Sequence[float],
    method: str = DEFAULT_GAP_METHOD,
    se_factor: float = 1.0,
) -> int:
    """
    Pick the number of clusters from gap values for k = 1..K.

    Rules:
        Tibs2001SEmax: smallest k with gap(k) >= gap(k+1) - se(k+1)
        firstSEmax: smallest k within one SE of the first local maximum
        globalSEmax: smallest k within one SE of the global maximum
        firstmax: first local maximum
        globalmax: global maximum

    Raises:
        NoSolution: Tibs2001SEmax finds no qualifying k below K
        InvalidParameter: unknown method or mismatched inputs
    """
    if method not in GAP_METHODS:
        raise InvalidParameter(f"method must be one of {GAP_METHODS}, got {method!r}")
    f = np.asarray(gap, dtype=np.float64)
    f_se = se_factor * np.asarray(se, dtype=np.float64)
    if f.shape != f_se.shape or f.ndim != 1 or len(f) == 0:
        raise InvalidParameter("gap and se must be non-empty sequences of equal length")
    K = len(f)

    if method == "Tibs2001SEmax":
        qualifies = f[:-1] >= f[1:] - f_se[1:]
        if not qualifies.any():
            raise NoSolution(
                f"no k < {K} satisfies gap(k) >= gap(k+1) - se(k+1); "
                "raise k_max or fall back to the elbow of tot.withinss"
            )
        return int(np.argmax(qualifies)) + 1

    if method == "globalmax":
        return int(np.argmax(f)) + 1

    decreasing = np.diff(f) <= 0
    first_max = int(np.argmax(decreasing)) + 1 if decreasing.any() else K
    if method == "firstmax":
        return first_max

    nc = first_max if method == "firstSEmax" else int(np.argmax(f)) + 1
    within = f[: nc - 1] >= f[nc - 1] - f_se[nc - 1]
    return int(np.argmax(within)) + 1 if within.any() else nc


def to_frame(results: Sequence[GapResult]) -> pd.DataFrame:
    """Gap results as a table, one row per k."""
    return pd.DataFrame({
        "k": [r.k for r in results],
        "log_w": [r.log_w for r in results],
        "e_log_w": [r.e_log_w for r in results],
        "gap": [r.gap for r in results],
        "se_sim": [r.se_sim for r in results],
    })


# =============================================================================
# EVALUATOR
# =============================================================================

class GapStatisticEvaluator:
    """
    Bootstrap gap statistic over any partitional engine.

    Args:
        n_jobs: joblib workers for the reference fits (1 = sequential, -1 = all cores)
        method: Default selection rule for ``optimal_k``
    """

    def __init__(self, n_jobs: int = 1, method: str = DEFAULT_GAP_METHOD):
        if method not in GAP_METHODS:
            raise InvalidParameter(f"method must be one of {GAP_METHODS}, got {method!r}")
        self.n_jobs = n_jobs
        self.method = method

    def evaluate(
        self,
        matrix,
        engine: PartitionalEngine,
        k_max: int = DEFAULT_K_MAX,
        n_bootstrap: int = DEFAULT_N_BOOTSTRAP,
        seed: int = DEFAULT_SEED,
    ) -> List[GapResult]:
        """
        Compute the gap statistic for k = 1..k_max.

        Reference dataset b comes from a stream derived from (seed, b) and is
        reused for every k; each reference fit gets its own seed derived from
        (seed, b, k). Results are therefore identical for any ``n_jobs``.

        Args:
            matrix: PurchaseMatrix, DataFrame or 2-D array
            engine: Object with ``fit(matrix, k, seed) -> ClusterResult``
            k_max: Largest k evaluated (1 <= k_max <= number of points)
            n_bootstrap: Reference datasets (>= 2, needed for a standard error)
            seed: Non-negative integer seed

        Returns:
            List of GapResult ordered by k
        """
        X = as_points(matrix)
        k_max = check_k(k_max, X.shape[0], name="k_max")
        n_bootstrap = check_count(n_bootstrap, "n_bootstrap", minimum=2)
        seed = check_seed(seed)

        print(f"📊 Computing gap statistic (k=1..{k_max}, B={n_bootstrap}, engine={engine!r})")

        observed = np.array([log_dispersion(engine.fit(X, k, seed)) for k in range(1, k_max + 1)])

        reference = Parallel(n_jobs=self.n_jobs)(
            delayed(_reference_log_dispersions)(X, engine, k_max, seed, b)
            for b in range(n_bootstrap)
        )
        reference = np.vstack(reference)

        e_log_w = reference.mean(axis=0)
        se_sim = reference.std(axis=0, ddof=1) * np.sqrt(1 + 1 / n_bootstrap)
        with np.errstate(invalid="ignore"):
            gap = e_log_w - observed

        results = []
        for idx, k in enumerate(range(1, k_max + 1)):
            results.append(GapResult(
                k=k,
                log_w=float(observed[idx]),
                e_log_w=float(e_log_w[idx]),
                se_sim=float(se_sim[idx]),
                gap=float(gap[idx]),
                reference_log_w=tuple(float(v) for v in reference[:, idx]),
            ))
            print(f"  K={k}: logW={observed[idx]:.4f}, E[logW]={e_log_w[idx]:.4f}, "
                  f"gap={gap[idx]:.4f}, SE={se_sim[idx]:.4f}")

        return results

    def optimal_k(
        self,
        results: Sequence[GapResult],
        method: Optional[str] = None,
        se_factor: float = 1.0,
    ) -> int:
        """Apply a selection rule to evaluated results (default: the evaluator's method)."""
        if not results:
            raise InvalidParameter("no gap results to select from")
        ordered = sorted(results, key=lambda r: r.k)
        if [r.k for r in ordered] != list(range(1, len(ordered) + 1)):
            raise InvalidParameter("gap results must cover k = 1..k_max without holes")
        return select_k(
            [r.gap for r in ordered],
            [r.se_sim for r in ordered],
            method=method or self.method,
            se_factor=se_factor,
        )
