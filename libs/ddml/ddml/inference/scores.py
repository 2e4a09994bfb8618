"""Moment-based inference for scalar parameters identified by linear scores.

The target parameter solves the sample moment condition

    mean(psi_a * theta + psi_b) = 0

for observation-level score components psi_a and psi_b built from
cross-fitted nuisance predictions (AIPW scores for ATE/ATT/LATE).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from .results import InferenceResult


def _as_columns(psi: NDArray[Any], n_cols: int) -> NDArray[np.float64]:
    psi = np.asarray(psi, dtype=float)
    if psi.ndim == 1:
        psi = psi.reshape(-1, 1)
    if psi.shape[1] == 1 and n_cols > 1:
        psi = np.repeat(psi, n_cols, axis=1)
    return psi


def solve_moment(psi_a: NDArray[Any], psi_b: NDArray[Any]) -> NDArray[np.float64]:
    """Root of the linear moment condition, one value per score column.

    Returns:
        -mean(psi_b) / mean(psi_a) column-wise
    """
    psi_b = np.asarray(psi_b, dtype=float)
    if psi_b.ndim == 1:
        psi_b = psi_b.reshape(-1, 1)
    psi_a = _as_columns(psi_a, psi_b.shape[1])
    return -psi_b.mean(axis=0) / psi_a.mean(axis=0)


def compute_moment_inf_results(
    coef: float,
    psi_a: NDArray[Any],
    psi_b: NDArray[Any],
    clusters: NDArray[Any] | None = None,
) -> NDArray[np.float64]:
    """Estimate, standard error, t value and p value of one moment estimator.

    The standard error is ``sqrt(mean(s^2) / n) / |mean(psi_a)|`` with
    ``s = psi_a * coef + psi_b``; with clusters the squared score mean is
    replaced by the sum of squared within-cluster score totals over n.

    Returns:
        Array of length 4
    """
    psi_a = np.asarray(psi_a, dtype=float).ravel()
    psi_b = np.asarray(psi_b, dtype=float).ravel()
    if psi_a.shape[0] == 1:
        psi_a = np.full_like(psi_b, psi_a[0])
    n_obs = len(psi_b)

    score = psi_a * coef + psi_b
    jacobian = psi_a.mean()

    if clusters is None:
        score_var = np.mean(score**2)
    else:
        _, inverse = np.unique(np.asarray(clusters), return_inverse=True)
        cluster_totals = np.bincount(inverse.ravel(), weights=score)
        score_var = np.sum(cluster_totals**2) / n_obs

    se = np.sqrt(score_var / n_obs) / np.abs(jacobian)
    t_value = coef / se if se > 0 else np.inf * np.sign(coef)
    p_value = 2 * stats.norm.sf(np.abs(t_value))
    return np.array([coef, se, t_value, p_value])


def organize_moment_inf_results(
    coef: NDArray[Any],
    psi_a: NDArray[Any],
    psi_b: NDArray[Any],
    ensemble_types: Sequence[str],
    parameter: str,
    clusters: NDArray[Any] | None = None,
) -> InferenceResult:
    """One row of statistics per ensemble type for a scalar parameter.

    Args:
        coef: Estimates (C,)
        psi_a: Score derivative components (n,) or (n, C)
        psi_b: Score level components (n, C)
        ensemble_types: Labels of the C columns
        parameter: Parameter label, e.g. 'ATE'
        clusters: Cluster ids for cluster-robust standard errors

    Returns:
        InferenceResult of shape (1, 4, C)
    """
    coef = np.atleast_1d(np.asarray(coef, dtype=float))
    n_types = len(ensemble_types)
    if n_types == 0 or coef.shape[0] != n_types:
        raise ValueError(
            f"Need one estimate per ensemble type, got {coef.shape[0]} "
            f"for {n_types} ensemble types"
        )
    psi_a = _as_columns(psi_a, n_types)
    psi_b = _as_columns(psi_b, n_types)

    rows = [
        compute_moment_inf_results(coef[j], psi_a[:, j], psi_b[:, j], clusters=clusters)
        for j in range(n_types)
    ]
    values = np.stack(rows, axis=1)[None, :, :]
    return InferenceResult(
        values=values,
        coef_names=[parameter],
        ensemble_types=list(ensemble_types),
        parameter=parameter,
    )
