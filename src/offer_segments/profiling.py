"""
Cluster profiling and evaluation.

This module handles:
1. Offer uptake per cluster, joined with the offer metadata
2. Cluster sizes
3. Quality scores: sums of squares about cluster means plus silhouette,
   Davies-Bouldin and Calinski-Harabasz
4. Side-by-side comparison of clustering methods
"""
from typing import Dict, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import silhouette_score, davies_bouldin_score, calinski_harabasz_score

from .exceptions import InvalidParameter
from .matrix import OFFER_COL, PurchaseMatrix, as_points, validate_offers
from .result import ClusterResult, compute_metrics


# =============================================================================
# CLUSTER PROFILING
# =============================================================================

def profile_clusters(
    matrix: PurchaseMatrix,
    labels: np.ndarray,
    offers: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Count how many customers of each cluster took each offer.

    Args:
        matrix: Purchase matrix the labels were fitted on
        labels: Cluster label per customer
        offers: Optional offer metadata (must contain ``offer_id``)

    Returns:
        DataFrame indexed by offer_id with one count column per cluster
        (``cluster_1``, ...), preceded by the metadata columns when given, and
        sorted by the first cluster's count (descending)
    """
    labels = np.asarray(labels)
    if len(labels) != matrix.n_customers:
        raise InvalidParameter(
            f"{len(labels)} labels for {matrix.n_customers} customers"
        )

    print("📊 Profiling offer uptake per cluster")

    frame = matrix.to_frame()
    counts = frame.groupby(labels).sum().T
    counts.columns = [f"cluster_{c}" for c in counts.columns]
    counts.index.name = OFFER_COL

    if offers is not None:
        metadata = validate_offers(offers).set_index(OFFER_COL)
        counts = metadata.join(counts, how="right")

    first = f"cluster_{np.min(labels)}"
    profile = counts.sort_values(first, ascending=False, kind="mergesort")

    print(f"  ✓ Profiled {matrix.n_offers} offers across {len(np.unique(labels))} clusters")
    return profile


def top_offers(profile: pd.DataFrame, label: int, n: int = 10) -> pd.DataFrame:
    """The n offers most often taken by cluster ``label``."""
    column = f"cluster_{label}"
    if column not in profile.columns:
        raise InvalidParameter(f"no cluster {label} in profile")
    return profile.sort_values(column, ascending=False, kind="mergesort").head(n)


def summarize_clusters(labels: np.ndarray) -> pd.DataFrame:
    """Cluster sizes and percentages, one row per label."""
    labels = np.asarray(labels)
    unique, counts = np.unique(labels, return_counts=True)
    summary = pd.DataFrame({
        'cluster': unique,
        'count': counts,
        'pct': (counts / len(labels) * 100).round(1),
    })

    print("  Cluster distribution:")
    for cluster, count, pct in summary.itertuples(index=False, name=None):
        print(f"    Cluster {cluster}: {count:,} ({pct:.1f}%)")

    return summary


# =============================================================================
# CLUSTERING EVALUATION
# =============================================================================

def _labels_of(assignment) -> np.ndarray:
    if isinstance(assignment, ClusterResult):
        return assignment.labels
    return np.asarray(assignment)


def evaluate_clustering(
    X,
    labels,
    name: str,
) -> Dict:
    """
    Score one partition of the purchase matrix.

    Sum-of-squares figures (tot.withinss, between/total) are computed about
    cluster means for every method, so partitions from different engines
    compare directly. Silhouette, Davies-Bouldin and Calinski-Harabasz come
    from scikit-learn and need 2 <= n_clusters < n_points.

    Args:
        X: Matrix the labels were fitted on
        labels: Cluster labels, or a ClusterResult
        name: Name of the clustering method

    Returns:
        Dictionary with evaluation metrics
    """
    X = as_points(X)
    labels = _labels_of(labels)
    if len(labels) != X.shape[0]:
        raise InvalidParameter(f"{len(labels)} labels for {X.shape[0]} points")

    clusters, labels0 = np.unique(labels, return_inverse=True)
    n_clusters = len(clusters)
    metrics = compute_metrics(X, labels0, n_clusters)

    scores = {
        'name': name,
        'k': n_clusters,
        'tot_withinss': metrics.tot_withinss,
        'between_ratio': metrics.ratio,
        'smallest_cluster': min(metrics.size),
    }

    if n_clusters < 2 or n_clusters >= len(labels):
        scores.update({
            'silhouette': np.nan,
            'davies_bouldin': np.nan,
            'calinski_harabasz': np.nan,
            'error': 'Need 2 <= n_clusters < n_points',
        })
        return scores

    scores.update({
        'silhouette': silhouette_score(X, labels0),
        'davies_bouldin': davies_bouldin_score(X, labels0),
        'calinski_harabasz': calinski_harabasz_score(X, labels0),
    })
    return scores


def compare_clustering_methods(X, assignments: Dict[str, object]) -> pd.DataFrame:
    """
    Evaluate several partitions of the same matrix side by side.

    Args:
        X: Matrix the partitions were fitted on
        assignments: Method name -> labels or ClusterResult

    Returns:
        DataFrame with one row per method, ordered as given
    """
    print(f"📊 Comparing {len(assignments)} clustering methods")

    comparison = pd.DataFrame([
        evaluate_clustering(X, assignment, name) for name, assignment in assignments.items()
    ])

    columns = ['name', 'k', 'tot_withinss', 'between_ratio', 'silhouette', 'davies_bouldin']
    print(comparison[columns].to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    return comparison
