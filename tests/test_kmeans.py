"""Tests for the k-means engine."""
import warnings

import numpy as np
import pytest
from sklearn.metrics import adjusted_rand_score

from offer_segments.distance import total_sum_of_squares
from offer_segments.exceptions import DegenerateInput, InvalidParameter, NonConvergence
from offer_segments.kmeans import KMeansEngine
from tests.conftest import same_partition


class TestKMeansBasics:
    """Tests for single fits."""

    def test_two_group_scenario(self, six_point_matrix):
        """Two groups of identical customers are recovered with zero dispersion."""
        result = KMeansEngine().fit(six_point_matrix, k=2, seed=1)

        assert same_partition(result.labels, [0, 0, 0, 1, 1, 1])
        assert result.tot_withinss == 0.0
        assert result.converged

    def test_labels_are_one_based(self, offer_matrix):
        """Labels are drawn from 1..k and every cluster is used."""
        matrix, _ = offer_matrix
        result = KMeansEngine().fit(matrix, k=3, seed=0)

        assert set(np.unique(result.labels)) == {1, 2, 3}
        assert result.centroids.shape == (3, matrix.n_offers)

    def test_single_cluster_metrics(self, offer_matrix):
        """For k=1 tot.withinss equals totss and betweenss is 0."""
        matrix, _ = offer_matrix
        result = KMeansEngine().fit(matrix, k=1, seed=0)

        assert result.metrics.tot_withinss == pytest.approx(total_sum_of_squares(matrix.values))
        assert result.metrics.betweenss == pytest.approx(0.0, abs=1e-9)
        np.testing.assert_allclose(result.centroids[0], matrix.values.mean(axis=0))

    def test_singletons_when_k_equals_n(self, blobs):
        """k = number of points puts every point in its own cluster."""
        X, _ = blobs
        X = X[:8]
        result = KMeansEngine().fit(X, k=8, seed=3)

        assert sorted(result.labels) == list(range(1, 9))
        assert result.tot_withinss == 0.0

    def test_singletons_with_duplicate_customers(self, six_point_matrix):
        """Duplicate rows do not prevent k = number of points."""
        result = KMeansEngine().fit(six_point_matrix, k=6, seed=0)

        assert sorted(result.labels) == [1, 2, 3, 4, 5, 6]
        assert result.tot_withinss == 0.0
        assert result.metrics.betweenss == pytest.approx(result.metrics.totss)

    def test_k_above_distinct_rows(self, six_point_matrix):
        """Three clusters over two distinct customers: none empty, zero dispersion."""
        result = KMeansEngine().fit(six_point_matrix, k=3, seed=0)

        assert min(result.metrics.size) > 0
        assert result.tot_withinss == 0.0

    def test_metrics_add_up(self, offer_matrix):
        """betweenss = totss - tot.withinss and withinss sums to tot.withinss."""
        matrix, _ = offer_matrix
        metrics = KMeansEngine().fit(matrix, k=3, seed=0).metrics

        assert metrics.betweenss == pytest.approx(metrics.totss - metrics.tot_withinss)
        assert sum(metrics.withinss) == pytest.approx(metrics.tot_withinss)
        assert sum(metrics.size) == matrix.n_customers
        assert 0.0 <= metrics.ratio <= 1.0

    def test_recovers_taste_profiles(self, offer_matrix):
        """The three synthetic taste profiles come back as the clusters."""
        matrix, truth = offer_matrix
        result = KMeansEngine().fit(matrix, k=3, seed=42)

        assert adjusted_rand_score(truth, result.labels) == pytest.approx(1.0)

    def test_result_is_read_only(self, six_point_matrix):
        """Results are immutable values."""
        result = KMeansEngine().fit(six_point_matrix, k=2, seed=1)

        with pytest.raises(ValueError):
            result.labels[0] = 2
        with pytest.raises(ValueError):
            result.centroids[0, 0] = 0.5


class TestKMeansProperties:
    """Tests for the dispersion and reproducibility properties."""

    def test_withinss_non_increasing_over_iterations(self, blobs):
        """Every Lloyd iteration keeps or lowers tot.withinss."""
        X, _ = blobs
        for seed in range(5):
            history = KMeansEngine(n_restarts=1).fit(X, k=4, seed=seed).history
            assert all(b <= a + 1e-9 for a, b in zip(history, history[1:]))

    def test_withinss_non_increasing_in_k(self, blobs):
        """The best restart's tot.withinss does not grow with k."""
        X, _ = blobs
        engine = KMeansEngine(n_restarts=10)
        values = [engine.fit(X, k=k, seed=5).tot_withinss for k in range(1, 6)]

        assert all(b <= a + 1e-9 for a, b in zip(values, values[1:]))

    def test_same_seed_same_result(self, offer_matrix):
        """Fits are pure functions of matrix, parameters and seed."""
        matrix, _ = offer_matrix
        first = KMeansEngine(n_restarts=3).fit(matrix, k=4, seed=11)
        second = KMeansEngine(n_restarts=3).fit(matrix, k=4, seed=11)

        np.testing.assert_array_equal(first.labels, second.labels)
        np.testing.assert_array_equal(first.centroids, second.centroids)

    def test_row_permutation_invariance(self, blobs):
        """Permuting the rows permutes the assignment, nothing more."""
        X, _ = blobs
        order = np.random.default_rng(9).permutation(len(X))

        original = KMeansEngine().fit(X, k=3, seed=2)
        permuted = KMeansEngine().fit(X[order], k=3, seed=2)

        assert same_partition(original.labels[order], permuted.labels)

    def test_restarts_keep_lowest_withinss(self, blobs):
        """More restarts can only lower the kept tot.withinss."""
        X, _ = blobs
        single = KMeansEngine(n_restarts=1).fit(X, k=5, seed=4)
        many = KMeansEngine(n_restarts=10).fit(X, k=5, seed=4)

        assert many.tot_withinss <= single.tot_withinss + 1e-9


class TestKMeansEmptyClusters:
    """Tests for empty-cluster recovery."""

    def test_empty_cluster_is_reseeded(self):
        """Duplicate starting centroids leave a cluster empty; it is re-seeded."""
        X = np.array([[0.0, 0.0], [0.0, 0.0], [5.0, 5.0], [5.0, 5.0], [5.0, 6.0]])
        init = np.array([[0.0, 0.0], [0.0, 0.0], [5.0, 5.0]])

        result = KMeansEngine().fit(X, k=3, seed=0, init=init)

        assert sorted(result.cluster_sizes().values()) == [1, 2, 2]
        assert same_partition(result.labels, [0, 0, 1, 1, 2])
        assert result.tot_withinss == 0.0

    def test_identical_initial_centroids_binary(self, six_point_matrix):
        """Starting both centroids on the same group still yields 2 clusters."""
        init = np.array([[1.0, 0.0], [1.0, 0.0]])
        result = KMeansEngine().fit(six_point_matrix, k=2, seed=0, init=init)

        assert min(result.metrics.size) > 0
        assert same_partition(result.labels, [0, 0, 0, 1, 1, 1])


class TestKMeansErrors:
    """Tests for parameter validation."""

    @pytest.mark.parametrize("k", [0, 7, -1])
    def test_k_out_of_range(self, six_point_matrix, k):
        """k must be within 1..n_points."""
        with pytest.raises(InvalidParameter):
            KMeansEngine().fit(six_point_matrix, k=k, seed=0)

    def test_negative_seed(self, six_point_matrix):
        """Seeds are non-negative integers."""
        with pytest.raises(InvalidParameter):
            KMeansEngine().fit(six_point_matrix, k=2, seed=-3)

    def test_bad_iteration_counts(self):
        """Iteration and restart counts must be positive."""
        with pytest.raises(InvalidParameter):
            KMeansEngine(max_iterations=0)
        with pytest.raises(InvalidParameter):
            KMeansEngine(n_restarts=-1)

    def test_init_shape_mismatch(self, six_point_matrix):
        """Explicit centroids must be k x n_features."""
        with pytest.raises(InvalidParameter):
            KMeansEngine().fit(six_point_matrix, k=2, seed=0, init=np.zeros((3, 2)))

    def test_identical_points(self):
        """All-identical points cannot be clustered."""
        with pytest.raises(DegenerateInput):
            KMeansEngine().fit(np.ones((5, 3)), k=1, seed=0)

    def test_single_point(self):
        """At least two points are needed."""
        with pytest.raises(DegenerateInput):
            KMeansEngine().fit(np.array([[1.0, 0.0]]), k=1, seed=0)


class TestKMeansNonConvergence:
    """Tests for the iteration cap."""

    def test_cap_flags_result(self, blobs):
        """Hitting max_iterations warns and flags the result instead of failing."""
        X, _ = blobs
        with pytest.warns(NonConvergence):
            result = KMeansEngine(max_iterations=1, n_restarts=1).fit(X, k=3, seed=0)

        assert not result.converged
        assert result.n_iterations == 1
        assert len(np.unique(result.labels)) == 3

    def test_converged_run_does_not_warn(self, six_point_matrix):
        """A stable run emits no NonConvergence warning."""
        with warnings.catch_warnings():
            warnings.simplefilter("error", NonConvergence)
            result = KMeansEngine().fit(six_point_matrix, k=2, seed=1)

        assert result.converged
