"""Tests for the end-to-end segmentation run."""
import numpy as np
import pytest

from offer_segments.config import ClusteringConfig
from offer_segments.pipeline import (
    load_segmentation_artifacts,
    run_segmentation_pipeline,
    save_segmentation_artifacts,
)
from tests.conftest import same_partition


@pytest.fixture
def fast_config():
    return ClusteringConfig(k=3, n_restarts=3, seed=1)


class TestPipeline:
    """Tests for run_segmentation_pipeline."""

    def test_fixed_k(self, offer_matrix, offers_metadata, fast_config):
        matrix, _ = offer_matrix
        results = run_segmentation_pipeline(matrix, offers_metadata, fast_config)

        assert results['optimal_k'] == 3
        assert results['k_method'] == 'fixed'
        assert results['kmeans'].k == 3
        assert results['pam'].k == 3
        assert set(np.unique(results['labels_hier'])) == {1, 2, 3}
        assert results['coordinates'].shape == (30, 2)
        assert results['centroid_coordinates'].shape == (3, 2)
        assert list(results['customers'].columns) == ['kmeans', 'pam', 'hierarchical', 'pc1', 'pc2']
        assert results['customers'].index.name == 'customer_name'
        assert len(results['comparison']) == 3

    def test_gap_selection(self, offer_matrix):
        """Without a fixed k the gap statistic (or the elbow) picks one."""
        matrix, _ = offer_matrix
        config = ClusteringConfig(k_max=4, n_bootstrap=3, n_restarts=2, seed=0)
        results = run_segmentation_pipeline(matrix, config=config)

        assert 1 <= results['optimal_k'] <= 4
        assert results['k_method'] in ('Tibs2001SEmax', 'elbow')
        assert results['gap_table']['k'].tolist() == [1, 2, 3, 4]
        assert len(results['withinss_curve']) == 4

    def test_two_group_scenario(self, six_point_matrix):
        """Duplicate customers with the default k_max: the gap picks the two groups."""
        config = ClusteringConfig(n_bootstrap=3, n_restarts=2)
        results = run_segmentation_pipeline(six_point_matrix, config=config)

        assert results['optimal_k'] == 2
        assert results['k_method'] == 'Tibs2001SEmax'
        assert results['gap_table']['k'].tolist() == [1, 2, 3, 4, 5, 6]
        assert same_partition(results['kmeans'].labels, [0, 0, 0, 1, 1, 1])
        assert same_partition(results['labels_hier'], results['kmeans'].labels)
        assert results['comparison']['tot_withinss'].tolist() == [0.0, 0.0, 0.0]

    def test_deterministic(self, offer_matrix, fast_config):
        matrix, _ = offer_matrix
        first = run_segmentation_pipeline(matrix, config=fast_config)
        second = run_segmentation_pipeline(matrix, config=fast_config)

        np.testing.assert_array_equal(first['kmeans'].labels, second['kmeans'].labels)
        np.testing.assert_array_equal(first['pam'].labels, second['pam'].labels)


class TestArtifacts:
    """Tests for saving and loading a run."""

    def test_save_and_load(self, offer_matrix, offers_metadata, fast_config, tmp_path):
        matrix, _ = offer_matrix
        results = run_segmentation_pipeline(matrix, offers_metadata, fast_config)
        save_segmentation_artifacts(results, tmp_path)

        assert (tmp_path / "linkage_matrix.npy").exists()
        assert not (tmp_path / "gap_statistic.csv").exists()

        loaded = load_segmentation_artifacts(tmp_path)

        assert loaded['config']['optimal_k'] == 3
        assert loaded['config']['settings']['k'] == 3
        np.testing.assert_array_equal(loaded['kmeans'].labels, results['kmeans'].labels)
        assert loaded['linkage_matrix'].shape == (29, 4)
        assert loaded['customers']['kmeans'].tolist() == results['kmeans'].labels.tolist()
