"""
Principal component analysis for reporting.

This module handles:
1. Fitting orthonormal components (scikit-learn PCA, or a plain SVD when
   the matrix is left uncentered)
2. Explained variance and variance ratios per component
3. Projecting customers (or cluster centroids) onto the leading components
4. Reconstructing points from their component scores
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from .config import DEFAULT_N_COMPONENTS
from .exceptions import DegenerateInput, InvalidParameter
from .matrix import PurchaseMatrix, as_points
from .validation import check_count


@dataclass(frozen=True)
class PCAModel:
    """
    Fitted components.

    ``components`` rows are orthonormal loading vectors ordered by
    non-increasing explained variance; ``mean`` is the centering vector
    (zeros when the matrix was not centered).
    """
    components: np.ndarray
    explained_variance: np.ndarray
    explained_variance_ratio: np.ndarray
    mean: np.ndarray
    feature_names: tuple = ()

    def __post_init__(self):
        for name in ("components", "explained_variance", "explained_variance_ratio", "mean"):
            arr = np.array(getattr(self, name), dtype=np.float64)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)
        object.__setattr__(self, "feature_names", tuple(self.feature_names))

    @property
    def n_components(self) -> int:
        return self.components.shape[0]

    @property
    def n_features(self) -> int:
        return self.components.shape[1]

    def cumulative_variance_ratio(self) -> np.ndarray:
        return np.cumsum(self.explained_variance_ratio)


def _flip_signs(components: np.ndarray) -> np.ndarray:
    """Make the largest-magnitude loading of every component positive."""
    largest = np.argmax(np.abs(components), axis=1)
    signs = np.sign(components[np.arange(len(components)), largest])
    signs[signs == 0] = 1.0
    return components * signs[:, np.newaxis]


class PCAReducer:
    """
    Fits and applies principal components.

    Args:
        n_components: Default number of components ``project`` keeps (2 for
            scatter plots)
        center: Subtract column means before decomposition
    """

    def __init__(self, n_components: int = DEFAULT_N_COMPONENTS, center: bool = True):
        self.n_components = check_count(n_components, "n_components")
        self.center = center

    def fit(self, matrix) -> PCAModel:
        """
        Decompose the matrix.

        Zero-variance columns are valid and end up with ~0 loadings; only a
        matrix with no variance at all is rejected.

        Raises:
            DegenerateInput: fewer than 2 points or zero total variance
        """
        X = as_points(matrix)
        n, p = X.shape
        if n < 2:
            raise DegenerateInput(f"PCA needs at least 2 points, got {n}")

        if np.var(X, axis=0).sum() <= 0:
            raise DegenerateInput("matrix has zero total variance")

        if self.center:
            pca = PCA(svd_solver="full").fit(X)
            components = pca.components_
            explained_variance = pca.explained_variance_
            mean = pca.mean_
        else:
            # sklearn's PCA always centers; decompose the raw matrix instead
            _, singular_values, components = np.linalg.svd(X, full_matrices=False)
            explained_variance = singular_values ** 2 / (n - 1)
            mean = np.zeros(p)

        feature_names = matrix.offers if isinstance(matrix, PurchaseMatrix) else ()
        if isinstance(matrix, pd.DataFrame):
            feature_names = tuple(matrix.columns)

        return PCAModel(
            components=_flip_signs(components),
            explained_variance=explained_variance,
            explained_variance_ratio=explained_variance / explained_variance.sum(),
            mean=mean,
            feature_names=feature_names,
        )

    def _check_n_components(self, model: PCAModel, n_components: Optional[int]) -> int:
        if n_components is None:
            n_components = min(self.n_components, model.n_components)
        n_components = check_count(n_components, "n_components")
        if n_components > model.n_components:
            raise InvalidParameter(
                f"n_components={n_components} exceeds the {model.n_components} fitted components"
            )
        return n_components

    def project(self, model: PCAModel, points, n_components: Optional[int] = None) -> np.ndarray:
        """
        Scores of ``points`` on the first ``n_components`` components.

        Args:
            model: Fitted PCAModel
            points: Customers, centroids, or any rows with the fitted dimensionality
            n_components: Defaults to the reducer's ``n_components``

        Returns:
            Array of shape (n_points, n_components)
        """
        X = as_points(points)
        if X.shape[1] != model.n_features:
            raise InvalidParameter(
                f"points have {X.shape[1]} features, model was fitted on {model.n_features}"
            )
        n_components = self._check_n_components(model, n_components)
        return (X - model.mean) @ model.components[:n_components].T

    def reconstruct(self, model: PCAModel, scores) -> np.ndarray:
        """Map component scores back to the original feature space."""
        scores = np.atleast_2d(np.asarray(scores, dtype=np.float64))
        n_components = scores.shape[1]
        if n_components > model.n_components:
            raise InvalidParameter(
                f"scores have {n_components} columns, model has {model.n_components} components"
            )
        return scores @ model.components[:n_components] + model.mean

    def fit_project(self, matrix, n_components: Optional[int] = None):
        """Fit on ``matrix`` and return (model, projected matrix)."""
        model = self.fit(matrix)
        return model, self.project(model, matrix, n_components)


def loadings_frame(model: PCAModel, n_components: Optional[int] = None) -> pd.DataFrame:
    """Loadings as a features x components table (PC1, PC2, ...)."""
    n_components = model.n_components if n_components is None else n_components
    index = list(model.feature_names) if model.feature_names else None
    return pd.DataFrame(
        model.components[:n_components].T,
        index=index,
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )


def variance_frame(model: PCAModel) -> pd.DataFrame:
    """Explained variance summary, one row per component."""
    return pd.DataFrame({
        "component": [f"PC{i + 1}" for i in range(model.n_components)],
        "explained_variance": model.explained_variance,
        "explained_variance_ratio": model.explained_variance_ratio,
        "cumulative_ratio": model.cumulative_variance_ratio(),
    })
