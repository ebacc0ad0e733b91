"""Shared fixtures for the segmentation tests."""
import numpy as np
import pandas as pd
import pytest

from offer_segments.matrix import PurchaseMatrix


def same_partition(labels_a, labels_b) -> bool:
    """True when two labelings group the points identically (up to label names)."""
    groups_a = {frozenset(np.flatnonzero(np.asarray(labels_a) == l)) for l in np.unique(labels_a)}
    groups_b = {frozenset(np.flatnonzero(np.asarray(labels_b) == l)) for l in np.unique(labels_b)}
    return groups_a == groups_b


@pytest.fixture
def six_point_matrix():
    """Two groups of three identical customers over two offers."""
    values = np.array([
        [1, 0],
        [1, 0],
        [1, 0],
        [0, 1],
        [0, 1],
        [0, 1],
    ])
    return PurchaseMatrix.from_array(values, customers=list("ABCDEF"), offers=[1, 2])


@pytest.fixture
def blobs():
    """Three tight, well-separated 2-D blobs of 20 points each (labels 0, 1, 2)."""
    rng = np.random.default_rng(0)
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [5.0, 8.0]])
    X = np.vstack([rng.normal(center, 0.5, size=(20, 2)) for center in centers])
    truth = np.repeat([0, 1, 2], 20)
    return X, truth


@pytest.fixture
def offer_matrix():
    """
    30 customers x 12 offers built from three taste profiles.

    Profile 0 takes offers 1-4, profile 1 offers 5-8, profile 2 offers 9-12.
    Every customer skips at most one offer of its profile and takes one random
    extra offer.
    """
    rng = np.random.default_rng(7)
    values = np.zeros((30, 12), dtype=int)
    truth = np.repeat([0, 1, 2], 10)
    for i, profile in enumerate(truth):
        values[i, profile * 4:(profile + 1) * 4] = 1
        if rng.random() < 0.5:
            values[i, profile * 4 + rng.integers(0, 4)] = 0
        values[i, rng.integers(0, 12)] = 1
    customers = [f"customer_{i:02d}" for i in range(30)]
    return PurchaseMatrix.from_array(values, customers=customers, offers=range(1, 13)), truth


@pytest.fixture
def offers_metadata():
    """Offer metadata table for offers 1..12."""
    return pd.DataFrame({
        "offer_id": range(1, 13),
        "campaign": ["January", "February", "March", "April"] * 3,
        "varietal": ["Malbec", "Pinot Noir", "Espumante", "Champagne"] * 3,
        "min_qty": [72, 12, 144, 6] * 3,
        "discount": [56, 17, 32, 48] * 3,
        "origin": ["France", "Oregon", "Chile", "Australia"] * 3,
        "past_peak": [False, True, False, False] * 3,
    })


@pytest.fixture
def transactions():
    """Parsed transaction rows (customer, offer), including one duplicate."""
    return pd.DataFrame({
        "customer_name": ["Smith", "Smith", "Adams", "Brown", "Brown", "Adams", "Smith"],
        "offer_id": [2, 24, 17, 2, 4, 17, 2],
    })
