"""Euclidean distance and sum-of-squares helpers shared by the clustering engines."""
import numpy as np
from scipy.spatial.distance import pdist, squareform


def squared_distances(X: np.ndarray, Y: np.ndarray) -> np.ndarray:
    """
    Squared Euclidean distances between every row of X and every row of Y.

    Uses explicit differences, so identical rows give exactly 0.

    Returns:
        Array of shape (len(X), len(Y))
    """
    diff = X[:, np.newaxis, :] - Y[np.newaxis, :, :]
    return np.einsum("ijk,ijk->ij", diff, diff)


def pairwise_distances(X: np.ndarray) -> np.ndarray:
    """Symmetric Euclidean distance matrix with an exact zero diagonal."""
    return squareform(pdist(X, metric="euclidean"))


def total_sum_of_squares(X: np.ndarray) -> float:
    """Sum of squared distances of all points to the global mean (totss)."""
    return float(np.sum((X - X.mean(axis=0)) ** 2))


def cluster_means(X: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    """Component-wise mean of each cluster; labels are 0-based. Empty clusters give NaN rows."""
    means = np.full((k, X.shape[1]), np.nan)
    for j in range(k):
        members = X[labels == j]
        if len(members):
            means[j] = members.mean(axis=0)
    return means


def within_sum_of_squares(X: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    """Per-cluster sum of squared distances to the cluster mean (withinss); labels are 0-based."""
    withinss = np.zeros(k)
    for j in range(k):
        members = X[labels == j]
        if len(members):
            withinss[j] = np.sum((members - members.mean(axis=0)) ** 2)
    return withinss


def count_distinct_rows(X: np.ndarray) -> int:
    return int(np.unique(X, axis=0).shape[0])


def distinct_row_indices(X: np.ndarray) -> np.ndarray:
    """Index of the first occurrence of every distinct row, in row order."""
    _, first = np.unique(X, axis=0, return_index=True)
    return np.sort(first)
