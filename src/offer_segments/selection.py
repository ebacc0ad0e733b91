"""
Elbow analysis of the total within-cluster sum of squares.

Used on its own for a quick look at the dispersion curve, and as the fallback
when the gap statistic's Tibs2001SEmax rule finds no qualifying k.
"""
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .config import DEFAULT_SEED
from .exceptions import InvalidParameter
from .matrix import as_points
from .seeding import check_seed


def withinss_curve(
    matrix,
    engine,
    k_values: Iterable[int] = range(1, 11),
    seed: int = DEFAULT_SEED,
    n_jobs: int = 1,
) -> pd.DataFrame:
    """
    Fit ``engine`` for every k and collect sum-of-squares metrics.

    Fits for different k are independent and run through joblib; each one
    receives the same seed, as a stand-alone ``engine.fit`` call would.

    Args:
        matrix: PurchaseMatrix, DataFrame or 2-D array
        engine: Object with ``fit(matrix, k, seed) -> ClusterResult``
        k_values: Candidate numbers of clusters
        seed: Non-negative integer seed
        n_jobs: joblib workers

    Returns:
        DataFrame with k, tot_withinss, betweenss, totss, ratio and converged
    """
    X = as_points(matrix)
    seed = check_seed(seed)
    k_values = sorted(set(int(k) for k in k_values))
    if not k_values:
        raise InvalidParameter("k_values is empty")

    print(f"📊 Computing tot.withinss curve for K={k_values[0]}..{k_values[-1]}")

    fits = Parallel(n_jobs=n_jobs)(delayed(engine.fit)(X, k, seed) for k in k_values)

    results = {
        'k': [],
        'tot_withinss': [],
        'betweenss': [],
        'totss': [],
        'ratio': [],
        'converged': [],
    }
    for k, fit in zip(k_values, fits):
        results['k'].append(k)
        results['tot_withinss'].append(fit.metrics.tot_withinss)
        results['betweenss'].append(fit.metrics.betweenss)
        results['totss'].append(fit.metrics.totss)
        results['ratio'].append(fit.metrics.ratio)
        results['converged'].append(fit.converged)

        print(f"  K={k}: tot.withinss={fit.metrics.tot_withinss:.3f}, "
              f"between/total={fit.metrics.ratio:.1%}")

    return pd.DataFrame(results)


def find_elbow(curve: pd.DataFrame) -> Optional[int]:
    """
    Find the elbow of the tot.withinss curve.

    Uses the angle method: the elbow is the k where the turn between the
    segments (k-1, k) and (k, k+1) is sharpest. Dispersions are rescaled to
    the k spacing first so the result does not depend on their units.

    Returns:
        The elbow k, or None with fewer than 3 points on the curve
    """
    curve = curve.sort_values('k')
    k_values = curve['k'].to_numpy()
    inertias = curve['tot_withinss'].to_numpy(dtype=np.float64)

    if len(k_values) < 3:
        return None

    span = inertias.max() - inertias.min()
    if span > 0:
        inertias = (inertias - inertias.min()) / span * (k_values[-1] - k_values[0])

    angles = []
    for i in range(1, len(k_values) - 1):
        v1 = np.array([k_values[i] - k_values[i - 1], inertias[i] - inertias[i - 1]])
        v2 = np.array([k_values[i + 1] - k_values[i], inertias[i + 1] - inertias[i]])
        cos_angle = np.dot(v1, v2) / (np.linalg.norm(v1) * np.linalg.norm(v2))
        angles.append(np.arccos(np.clip(cos_angle, -1, 1)))

    # largest direction change = sharpest bend
    elbow_idx = int(np.argmax(angles)) + 1
    return int(k_values[elbow_idx])
