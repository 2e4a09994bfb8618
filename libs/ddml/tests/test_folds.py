"""Tests for sample splitting."""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ddml.core.base import DataValidationError
from ddml.ml.folds import (
    folds_to_subsamples,
    generate_cluster_folds,
    generate_folds,
    generate_stratified_folds,
    subsamples_to_folds,
    validate_subsamples,
)


class TestGenerateFolds:
    """Test cases for observation-level fold assignment."""

    def test_labels_and_sizes(self):
        folds = generate_folds(10, 3, random_state=0)

        assert folds.shape == (10,)
        assert set(np.unique(folds)) == {1, 2, 3}
        assert sorted(np.bincount(folds)[1:]) == [3, 3, 4]

    def test_reproducible_with_seed(self):
        np.testing.assert_array_equal(
            generate_folds(50, 5, random_state=7), generate_folds(50, 5, random_state=7)
        )

    def test_random_state_object_advances(self):
        rng = np.random.RandomState(1)
        first = generate_folds(100, 4, random_state=rng)
        second = generate_folds(100, 4, random_state=rng)
        assert not np.array_equal(first, second)

    def test_too_few_folds(self):
        with pytest.raises(ValueError, match="at least 2"):
            generate_folds(10, 1)

    def test_more_folds_than_observations(self):
        with pytest.raises(ValueError, match="Cannot split"):
            generate_folds(3, 5)

    @given(
        n_obs=st.integers(min_value=2, max_value=300),
        n_folds=st.integers(min_value=2, max_value=20),
        seed=st.integers(min_value=0, max_value=2**31 - 1),
    )
    @settings(max_examples=50, deadline=None)
    def test_fold_sizes_balanced(self, n_obs, n_folds, seed):
        n_folds = min(n_folds, n_obs)
        folds = generate_folds(n_obs, n_folds, random_state=seed)

        counts = np.bincount(folds, minlength=n_folds + 1)[1:]
        assert counts.sum() == n_obs
        assert counts.min() >= 1
        assert counts.max() - counts.min() <= 1


class TestClusterFolds:
    """Test cases for cluster-level fold assignment."""

    def test_clusters_never_split(self):
        clusters = np.repeat(np.arange(12), 5)
        folds = generate_cluster_folds(clusters, 4, random_state=0)

        for c in np.unique(clusters):
            assert len(np.unique(folds[clusters == c])) == 1

    def test_cluster_counts_balanced(self):
        rng = np.random.RandomState(3)
        clusters = rng.choice(["a", "b", "c", "d", "e", "f", "g"], size=70)
        folds = generate_cluster_folds(clusters, 3, random_state=0)

        cluster_fold = {c: folds[clusters == c][0] for c in np.unique(clusters)}
        counts = np.bincount(list(cluster_fold.values()), minlength=4)[1:]
        assert counts.max() - counts.min() <= 1

    def test_too_few_clusters(self):
        with pytest.raises(ValueError):
            generate_cluster_folds(np.array([1, 1, 2, 2]), 3)


class TestStratifiedFolds:
    """Test cases for stratified fold assignment."""

    def test_within_stratum_balance(self):
        strata = np.array([0] * 23 + [1] * 11)
        folds = generate_stratified_folds(strata, 5, random_state=0)

        for level in (0, 1):
            counts = np.bincount(folds[strata == level], minlength=6)[1:]
            assert counts.max() - counts.min() <= 1

    def test_overall_balance(self):
        strata = np.random.RandomState(0).binomial(1, 0.3, size=97)
        folds = generate_stratified_folds(strata, 4, random_state=1)

        counts = np.bincount(folds, minlength=5)[1:]
        assert counts.max() - counts.min() <= 1


class TestSubsamples:
    """Test cases for subsample conversion and validation."""

    def test_round_trip(self):
        folds = generate_folds(30, 3, random_state=0)
        subsamples = folds_to_subsamples(folds, 3)

        assert len(subsamples) == 3
        np.testing.assert_array_equal(subsamples_to_folds(subsamples, 30), folds)

    def test_valid_partition(self):
        subsamples = validate_subsamples([[0, 2, 4], [1, 3, 5]], 6)
        assert [len(s) for s in subsamples] == [3, 3]

    def test_overlapping_subsamples(self):
        with pytest.raises(DataValidationError, match="exactly once"):
            validate_subsamples([[0, 1, 2], [2, 3]], 4)

    def test_uncovered_rows(self):
        with pytest.raises(DataValidationError, match="exactly once"):
            validate_subsamples([[0, 1], [2]], 4)

    def test_out_of_range(self):
        with pytest.raises(DataValidationError, match="must lie in"):
            validate_subsamples([[0, 1], [2, 7]], 4)

    def test_single_subsample(self):
        with pytest.raises(DataValidationError, match="At least two"):
            validate_subsamples([[0, 1, 2, 3]], 4)
