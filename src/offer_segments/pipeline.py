"""
End-to-end segmentation run.

This module handles:
1. Choosing k with the gap statistic (elbow fallback)
2. K-Means, PAM and complete-linkage hierarchical fits at the chosen k
3. 2-D PCA coordinates for customers and centroids
4. Offer profiles and method comparison
5. Saving / loading the run's artifacts
"""
import json
from pathlib import Path
from typing import Dict, Optional

import joblib
import numpy as np
import pandas as pd

from .config import ClusteringConfig
from .exceptions import NoSolution
from .gap import GapStatisticEvaluator, to_frame
from .hierarchical import HierarchicalClusterer
from .kmeans import KMeansEngine
from .kmedoids import KMedoidsEngine
from .matrix import PurchaseMatrix
from .pca import PCAReducer, variance_frame
from .profiling import compare_clustering_methods, profile_clusters, summarize_clusters
from .selection import find_elbow, withinss_curve


def _banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def make_engines(config: ClusteringConfig) -> Dict[str, object]:
    """Partitional engines configured from ``config``, keyed by name."""
    return {
        "kmeans": KMeansEngine(max_iterations=config.max_iterations, n_restarts=config.n_restarts),
        "pam": KMedoidsEngine(max_iterations=config.max_iterations, init=config.pam_init),
    }


def choose_k(matrix: PurchaseMatrix, config: ClusteringConfig) -> Dict:
    """
    Pick k with the gap statistic, falling back to the tot.withinss elbow.

    Returns:
        Dictionary with optimal_k, the method that produced it, the gap table
        and the tot.withinss curve
    """
    engines = make_engines(config)
    engine = engines[config.gap_engine]
    k_max = min(config.k_max, matrix.n_customers)

    evaluator = GapStatisticEvaluator(n_jobs=config.n_jobs, method=config.gap_method)
    gap_results = evaluator.evaluate(
        matrix, engine, k_max=k_max, n_bootstrap=config.n_bootstrap, seed=config.seed
    )
    curve = withinss_curve(matrix, engine, range(1, k_max + 1), seed=config.seed, n_jobs=config.n_jobs)

    try:
        optimal_k = evaluator.optimal_k(gap_results)
        method = config.gap_method
    except NoSolution as e:
        print(f"  ⚠️  {e}")
        optimal_k = find_elbow(curve) or k_max
        method = "elbow"

    print(f"\n  Suggested optimal K: {optimal_k} (based on {method})")

    return {
        'optimal_k': optimal_k,
        'k_method': method,
        'gap_results': gap_results,
        'gap_table': to_frame(gap_results),
        'withinss_curve': curve,
    }


def run_segmentation_pipeline(
    matrix: PurchaseMatrix,
    offers: Optional[pd.DataFrame] = None,
    config: Optional[ClusteringConfig] = None,
) -> Dict:
    """
    Run the complete segmentation pipeline.

    Args:
        matrix: Customer x offer purchase matrix
        offers: Optional offer metadata for the profiles
        config: Run parameters (defaults: ClusteringConfig())

    Returns:
        Dictionary with all results and artifacts
    """
    config = config or ClusteringConfig()

    _banner("SEGMENTATION PIPELINE")
    print(f"Customers: {matrix.n_customers:,}")
    print(f"Offers: {matrix.n_offers:,}")
    print("=" * 60)

    # =========================================================================
    # STEP 1: Choose K
    # =========================================================================
    _banner("CHOOSING K")
    if config.k is None:
        selection = choose_k(matrix, config)
    else:
        print(f"  Using fixed K={config.k}")
        selection = {'optimal_k': config.k, 'k_method': 'fixed'}
    optimal_k = selection['optimal_k']

    # =========================================================================
    # STEP 2: Partitional fits
    # =========================================================================
    _banner("PARTITIONAL CLUSTERING")
    engines = make_engines(config)

    print(f"📊 Training K-Means with K={optimal_k}")
    kmeans = engines["kmeans"].fit(matrix, optimal_k, seed=config.seed)
    summarize_clusters(kmeans.labels)

    print(f"📊 Training PAM with K={optimal_k}")
    pam = engines["pam"].fit(matrix, optimal_k, seed=config.seed)
    summarize_clusters(pam.labels)

    # =========================================================================
    # STEP 3: Hierarchical
    # =========================================================================
    _banner("HIERARCHICAL CLUSTERING")
    clusterer = HierarchicalClusterer()
    dendrogram = clusterer.fit(matrix)
    labels_hier = clusterer.cut(dendrogram, optimal_k)
    print(f"  ✓ {dendrogram.n_leaves - 1} merges, cut into K={optimal_k}")
    summarize_clusters(labels_hier)

    # =========================================================================
    # STEP 4: PCA coordinates
    # =========================================================================
    _banner("PCA PROJECTION")
    reducer = PCAReducer(n_components=config.n_components)
    pca_model = reducer.fit(matrix)
    n_components = min(config.n_components, pca_model.n_components)
    coordinates = reducer.project(pca_model, matrix, n_components)
    centroid_coordinates = reducer.project(pca_model, kmeans.centroids, n_components)
    explained = pca_model.explained_variance_ratio[:n_components].sum()
    print(f"  ✓ {n_components} components explain {explained:.1%} of variance")

    # =========================================================================
    # STEP 5: Profiles and comparison
    # =========================================================================
    _banner("CLUSTER PROFILING")
    profile = profile_clusters(matrix, kmeans.labels, offers)
    comparison = compare_clustering_methods(matrix, {
        'K-Means': kmeans,
        'PAM': pam,
        'Hierarchical': labels_hier,
    })

    _banner("SEGMENTATION COMPLETE")
    print(f"\nFinal model: K-Means with K={optimal_k} ({selection['k_method']})")
    print(f"between_SS / total_SS: {kmeans.metrics.ratio:.1%}")

    customers = pd.DataFrame({
        'kmeans': kmeans.labels,
        'pam': pam.labels,
        'hierarchical': labels_hier,
        'pc1': coordinates[:, 0],
        'pc2': coordinates[:, 1] if n_components > 1 else np.nan,
    }, index=pd.Index(matrix.customers, name='customer_name'))

    return {
        **selection,
        'config': config,
        'kmeans': kmeans,
        'pam': pam,
        'dendrogram': dendrogram,
        'labels_hier': labels_hier,
        'pca_model': pca_model,
        'pca_variance': variance_frame(pca_model),
        'coordinates': coordinates,
        'centroid_coordinates': centroid_coordinates,
        'profile': profile,
        'comparison': comparison,
        'customers': customers,
    }


# =============================================================================
# ARTIFACT SAVING
# =============================================================================

def save_segmentation_artifacts(results: Dict, models_dir: str = "models") -> None:
    """
    Save the fitted models and tables of a pipeline run.

    Args:
        results: Output of run_segmentation_pipeline
        models_dir: Output directory
    """
    models_dir = Path(models_dir)
    models_dir.mkdir(parents=True, exist_ok=True)

    _banner("SAVING SEGMENTATION ARTIFACTS")

    joblib.dump(results['kmeans'], models_dir / "kmeans_result.joblib")
    print("✓ Saved kmeans_result.joblib")

    joblib.dump(results['pam'], models_dir / "pam_result.joblib")
    print("✓ Saved pam_result.joblib")

    joblib.dump(results['pca_model'], models_dir / "pca_model.joblib")
    print("✓ Saved pca_model.joblib")

    np.save(models_dir / "linkage_matrix.npy", results['dendrogram'].to_linkage_matrix())
    print("✓ Saved linkage_matrix.npy")

    results['customers'].to_csv(models_dir / "customer_segments.csv")
    print("✓ Saved customer_segments.csv")

    results['profile'].to_csv(models_dir / "cluster_profiles.csv")
    print("✓ Saved cluster_profiles.csv")

    results['comparison'].to_csv(models_dir / "clustering_metrics.csv", index=False)
    print("✓ Saved clustering_metrics.csv")

    if 'gap_table' in results:
        results['gap_table'].to_csv(models_dir / "gap_statistic.csv", index=False)
        print("✓ Saved gap_statistic.csv")

    segmentation_config = {
        'optimal_k': int(results['optimal_k']),
        'k_method': results['k_method'],
        'kmeans_metrics': results['kmeans'].metrics.to_dict(),
        'settings': results['config'].to_dict(),
    }
    with open(models_dir / "segmentation_config.json", 'w') as f:
        json.dump(segmentation_config, f, indent=2)
    print("✓ Saved segmentation_config.json")

    print("\n✅ All segmentation artifacts saved!")


def load_segmentation_artifacts(models_dir: str = "models") -> Dict:
    """Load saved segmentation artifacts."""
    models_dir = Path(models_dir)

    artifacts = {
        'kmeans': joblib.load(models_dir / "kmeans_result.joblib"),
        'pam': joblib.load(models_dir / "pam_result.joblib"),
        'pca_model': joblib.load(models_dir / "pca_model.joblib"),
        'linkage_matrix': np.load(models_dir / "linkage_matrix.npy"),
        'customers': pd.read_csv(models_dir / "customer_segments.csv", index_col=0),
        'profile': pd.read_csv(models_dir / "cluster_profiles.csv", index_col=0),
        'metrics': pd.read_csv(models_dir / "clustering_metrics.csv"),
    }

    with open(models_dir / "segmentation_config.json") as f:
        artifacts['config'] = json.load(f)

    print("✓ Loaded segmentation artifacts")

    return artifacts
