"""
Customer segmentation from binary offer-purchase matrices.

Modules:
- matrix: purchase matrix construction and validation
- kmeans / kmedoids: partitional engines
- hierarchical: complete-linkage merge tree and fixed-k cut
- pca: principal component projection
- gap / selection: choosing the number of clusters
- profiling / pipeline: reporting tables and the end-to-end run
"""
from .config import ClusteringConfig, load_clustering_config, load_config
from .exceptions import (
    DegenerateInput,
    InvalidParameter,
    NonConvergence,
    NoSolution,
    SegmentationError,
)
from .gap import GapResult, GapStatisticEvaluator, select_k
from .hierarchical import Dendrogram, HierarchicalClusterer, Merge
from .kmeans import KMeansEngine
from .kmedoids import KMedoidsEngine
from .matrix import PurchaseMatrix, build_purchase_matrix
from .pca import PCAModel, PCAReducer
from .result import ClusterMetrics, ClusterResult
from .selection import find_elbow, withinss_curve

__version__ = "1.0.0"

__all__ = [
    "ClusterMetrics",
    "ClusterResult",
    "ClusteringConfig",
    "DegenerateInput",
    "Dendrogram",
    "GapResult",
    "GapStatisticEvaluator",
    "HierarchicalClusterer",
    "InvalidParameter",
    "KMeansEngine",
    "KMedoidsEngine",
    "Merge",
    "NoSolution",
    "NonConvergence",
    "PCAModel",
    "PCAReducer",
    "PurchaseMatrix",
    "SegmentationError",
    "build_purchase_matrix",
    "find_elbow",
    "load_clustering_config",
    "load_config",
    "select_k",
    "withinss_curve",
]
