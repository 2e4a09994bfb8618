"""Sample splitting for cross-fitting.

Fold labels run from 1 to K. An assignment is always a random permutation of
the first ``n`` entries of the repeating sequence ``1, 2, ..., K, 1, 2, ...``,
so fold sizes never differ by more than one unit (observation or cluster).
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from sklearn.utils import check_random_state

RandomStateLike = int | np.random.RandomState | None


def _check_fold_count(n_units: int, n_folds: int) -> None:
    if n_folds < 2:
        raise ValueError(f"n_folds must be at least 2, got {n_folds}")
    if n_units < n_folds:
        raise ValueError(
            f"Cannot split {n_units} units into {n_folds} folds"
        )


def _label_sequence(n_units: int, n_folds: int, offset: int = 0) -> NDArray[np.int_]:
    """Entries ``offset .. offset + n_units`` of the repeating sequence 1..K."""
    return (np.arange(offset, offset + n_units) % n_folds) + 1


def generate_folds(
    n_obs: int,
    n_folds: int,
    random_state: RandomStateLike = None,
) -> NDArray[np.int_]:
    """Assign every observation to one of ``n_folds`` balanced folds.

    Args:
        n_obs: Number of observations
        n_folds: Number of folds K (at least 2)
        random_state: Seed or RandomState used for the permutation

    Returns:
        Array of length ``n_obs`` with labels in 1..K

    Raises:
        ValueError: If K < 2 or n_obs < K
    """
    _check_fold_count(n_obs, n_folds)
    rng = check_random_state(random_state)
    return rng.permutation(_label_sequence(n_obs, n_folds))


def generate_cluster_folds(
    cluster_ids: pd.Series | NDArray[Any],
    n_folds: int,
    random_state: RandomStateLike = None,
) -> NDArray[np.int_]:
    """Assign whole clusters to folds; observations inherit their cluster's label.

    Args:
        cluster_ids: Cluster identifier of every observation
        n_folds: Number of folds K (at least 2)
        random_state: Seed or RandomState used for the permutation

    Returns:
        Array of observation-level fold labels in 1..K
    """
    clusters, inverse = np.unique(np.asarray(cluster_ids), return_inverse=True)
    cluster_folds = generate_folds(len(clusters), n_folds, random_state=random_state)
    return cluster_folds[inverse.ravel()]


def generate_stratified_folds(
    strata: pd.Series | NDArray[Any],
    n_folds: int,
    random_state: RandomStateLike = None,
) -> NDArray[np.int_]:
    """Balanced folds within every stratum (e.g. treatment arm).

    Each stratum receives the next consecutive block of the repeating label
    sequence, so both the overall and the within-stratum fold sizes differ by
    at most one.

    Args:
        strata: Stratum of every observation
        n_folds: Number of folds K (at least 2)
        random_state: Seed or RandomState used for the permutations

    Returns:
        Array of fold labels in 1..K
    """
    strata = np.asarray(strata)
    _check_fold_count(len(strata), n_folds)
    rng = check_random_state(random_state)

    folds = np.empty(len(strata), dtype=int)
    offset = 0
    for level in np.unique(strata):
        idx = np.flatnonzero(strata == level)
        folds[idx] = rng.permutation(_label_sequence(len(idx), n_folds, offset))
        offset += len(idx)
    return folds


def folds_to_subsamples(
    folds: NDArray[np.int_], n_folds: int
) -> list[NDArray[np.intp]]:
    """Convert 1..K fold labels to a list of held-out row index arrays."""
    folds = np.asarray(folds)
    return [np.flatnonzero(folds == k) for k in range(1, n_folds + 1)]


def subsamples_to_folds(
    subsamples: list[NDArray[Any]], n_obs: int
) -> NDArray[np.int_]:
    """Inverse of :func:`folds_to_subsamples`."""
    folds = np.zeros(n_obs, dtype=int)
    for k, idx in enumerate(subsamples, start=1):
        folds[np.asarray(idx, dtype=int)] = k
    return folds


def validate_subsamples(
    subsamples: list[NDArray[Any]], n_obs: int
) -> list[NDArray[np.intp]]:
    """Check that user supplied held-out sets partition ``0..n_obs-1``.

    Raises:
        DataValidationError: If the index sets overlap, leave rows uncovered,
            or fewer than two folds are given
    """
    from ..core.base import DataValidationError

    if len(subsamples) < 2:
        raise DataValidationError("At least two subsamples are required")

    checked = [np.asarray(idx, dtype=np.intp).ravel() for idx in subsamples]
    if any(len(idx) == 0 for idx in checked):
        raise DataValidationError("Subsamples cannot be empty")

    all_idx = np.concatenate(checked)
    if all_idx.min() < 0 or all_idx.max() >= n_obs:
        raise DataValidationError(f"Subsample indices must lie in [0, {n_obs})")

    counts = np.bincount(all_idx, minlength=n_obs)
    if len(counts) != n_obs or not np.all(counts == 1):
        raise DataValidationError(
            f"Subsamples must partition the {n_obs} observations exactly once"
        )
    return checked
