"""
Agglomerative hierarchical clustering with complete linkage.

This module handles:
1. Building the full merge tree (dendrogram) over all customers
2. Cutting the tree into a fixed number of clusters
3. Exporting the tree in scipy's linkage-matrix layout for plotting
"""
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .distance import cluster_means, pairwise_distances
from .exceptions import DegenerateInput
from .matrix import as_points
from .result import ClusterResult, build_result
from .validation import check_k


@dataclass(frozen=True)
class Merge:
    """One agglomeration step: nodes ``left`` and ``right`` joined at ``height``."""
    left: int
    right: int
    height: float
    size: int


@dataclass(frozen=True)
class Dendrogram:
    """
    Binary merge tree.

    Leaves are node ids ``0..n_leaves-1``; merge ``i`` creates node
    ``n_leaves + i``. Heights are non-decreasing from the first merge to the
    last.
    """
    n_leaves: int
    merges: Tuple[Merge, ...]
    linkage: str = "complete"

    @property
    def heights(self) -> np.ndarray:
        return np.array([m.height for m in self.merges])

    def to_linkage_matrix(self) -> np.ndarray:
        """(n-1) x 4 array [left, right, height, size], as scipy.cluster.hierarchy uses."""
        return np.array(
            [[m.left, m.right, m.height, m.size] for m in self.merges],
            dtype=np.float64,
        ).reshape(-1, 4)


class HierarchicalClusterer:
    """Complete-linkage agglomerative clustering over Euclidean distances."""

    linkage = "complete"

    def fit(self, matrix) -> Dendrogram:
        """
        Merge clusters bottom-up until one remains.

        At every step the two active clusters with the smallest complete-linkage
        distance merge. Each cluster is tracked in the slot of its lowest point
        index, so scanning slot pairs in row-major order resolves ties by the
        lowest (smallest-member) index pair.

        Raises:
            DegenerateInput: fewer than 2 points
        """
        X = as_points(matrix)
        n = X.shape[0]
        if n < 2:
            raise DegenerateInput(f"hierarchical clustering needs at least 2 points, got {n}")

        D = pairwise_distances(X)
        np.fill_diagonal(D, np.inf)

        node_id = np.arange(n)
        size = np.ones(n, dtype=int)
        merges = []

        for step in range(n - 1):
            upper = np.triu(D, k=1)
            upper[np.tril_indices(n)] = np.inf
            height = upper.min()
            # first hit in row-major order = lowest (i, j) pair
            i, j = np.argwhere(upper == height)[0]

            merges.append(Merge(
                left=int(node_id[i]),
                right=int(node_id[j]),
                height=float(height),
                size=int(size[i] + size[j]),
            ))

            # Lance-Williams update for complete linkage: d(i+j, c) = max(d(i, c), d(j, c))
            merged = np.maximum(D[i], D[j])
            D[i, :] = merged
            D[:, i] = merged
            D[i, i] = np.inf
            D[j, :] = np.inf
            D[:, j] = np.inf

            node_id[i] = n + step
            size[i] += size[j]

        return Dendrogram(n_leaves=n, merges=tuple(merges), linkage=self.linkage)

    def cut(self, dendrogram: Dendrogram, k: int) -> np.ndarray:
        """
        Cluster assignment with exactly k groups.

        Replays all but the k-1 highest merges. Labels run 1..k, numbered in
        order of each group's lowest point index.

        Raises:
            InvalidParameter: k outside 1..n_points
        """
        n = dendrogram.n_leaves
        k = check_k(k, n)

        parent = list(range(2 * n - 1))

        def find(node):
            while parent[node] != node:
                parent[node] = parent[parent[node]]
                node = parent[node]
            return node

        for step, merge in enumerate(dendrogram.merges[: n - k]):
            new_node = n + step
            parent[find(merge.left)] = new_node
            parent[find(merge.right)] = new_node

        labels = np.zeros(n, dtype=np.int64)
        roots = {}
        for point in range(n):
            root = find(point)
            if root not in roots:
                roots[root] = len(roots) + 1
            labels[point] = roots[root]
        return labels

    def fit_predict(self, matrix, k: int) -> ClusterResult:
        """Fit, cut at k and wrap the assignment with mean centroids and metrics."""
        X = as_points(matrix)
        dendrogram = self.fit(X)
        labels0 = self.cut(dendrogram, k) - 1
        return build_result(
            X,
            labels0,
            cluster_means(X, labels0, k),
            algorithm=f"hierarchical-{self.linkage}",
            params={"linkage": self.linkage},
        )
