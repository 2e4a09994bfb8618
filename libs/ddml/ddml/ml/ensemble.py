"""Stacking weights for combining several learners' out-of-sample predictions.

Every scheme maps an out-of-sample prediction matrix P (n, L) and the realised
target t (n,) to a weight vector w (L,); the combined prediction is ``P @ w``
with no intercept. Several schemes can be requested at once and are returned
as the columns of an (L, C) weight matrix.
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import optimize

from ..utils.linalg import csolve

logger = logging.getLogger(__name__)

ENSEMBLE_TYPES = ("ols", "nnls", "nnls1", "singlebest", "average")


def as_type_list(ensemble_type: str | Sequence[str]) -> list[str]:
    """Ensemble type(s) as a non-empty list; a single type is a list of one."""
    types = [ensemble_type] if isinstance(ensemble_type, str) else list(ensemble_type)
    unknown = [t for t in types if t not in ENSEMBLE_TYPES]
    if unknown:
        raise ValueError(
            f"Unknown ensemble type(s) {unknown}; choose from {list(ENSEMBLE_TYPES)}"
        )
    return types


def ols_weights(P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
    """Unconstrained least squares weights via a generalized inverse."""
    return csolve(P.T @ P) @ (P.T @ t)


def nnls_weights(P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
    """Non-negative least squares weights."""
    w, _ = optimize.nnls(P, t)
    return w


def nnls1_weights(P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
    """Least squares weights on the unit simplex (w >= 0, sum(w) = 1).

    Solved with SLSQP from the uniform starting point; the solution is clipped
    at zero and renormalised so both constraints hold to machine precision.
    """
    n_obs, n_learners = P.shape
    Q = P.T @ P / n_obs
    c = P.T @ t / n_obs

    def objective(w: NDArray[Any]) -> float:
        return float(0.5 * w @ Q @ w - c @ w)

    def gradient(w: NDArray[Any]) -> NDArray[Any]:
        return Q @ w - c

    result = optimize.minimize(
        objective,
        x0=np.full(n_learners, 1.0 / n_learners),
        jac=gradient,
        method="SLSQP",
        bounds=[(0.0, None)] * n_learners,
        constraints=[
            {
                "type": "eq",
                "fun": lambda w: np.sum(w) - 1.0,
                "jac": lambda w: np.ones_like(w),
            }
        ],
        options={"ftol": 1e-12, "maxiter": 500},
    )
    if not result.success:
        logger.warning("nnls1 optimisation did not converge: %s", result.message)

    w = np.clip(result.x, 0.0, None)
    total = w.sum()
    if total <= 0:
        return np.full(n_learners, 1.0 / n_learners)
    return w / total


def singlebest_weights(P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
    """Indicator of the learner with the smallest out-of-sample MSE."""
    mspe = np.mean((P - t[:, None]) ** 2, axis=0)
    w = np.zeros(P.shape[1])
    w[int(np.argmin(mspe))] = 1.0
    return w


def average_weights(P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
    """Uniform weights 1/L."""
    return np.full(P.shape[1], 1.0 / P.shape[1])


_SCHEMES = {
    "ols": ols_weights,
    "nnls": nnls_weights,
    "nnls1": nnls1_weights,
    "singlebest": singlebest_weights,
    "average": average_weights,
}


class EnsembleCombiner:
    """Fit stacking weights for one or several ensemble schemes.

    Args:
        ensemble_type: Scheme name or list of scheme names
        custom_ensemble_weights: Optional fixed (L, c) weight matrix; each column
            adds one ensemble type named after the DataFrame column, or
            ``custom_1``, ``custom_2``, ... for arrays

    Attributes:
        ensemble_types: Built-in scheme names in request order
        labels: Labels of all weight columns (built-in schemes, then custom)
    """

    def __init__(
        self,
        ensemble_type: str | Sequence[str] = "nnls",
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None = None,
    ) -> None:
        self.ensemble_types = as_type_list(ensemble_type)
        self.custom_weights: NDArray[np.float64] | None = None
        custom_labels: list[str] = []

        if custom_ensemble_weights is not None:
            if isinstance(custom_ensemble_weights, pd.DataFrame):
                custom_labels = [str(c) for c in custom_ensemble_weights.columns]
            weights = np.asarray(custom_ensemble_weights, dtype=float)
            if weights.ndim == 1:
                weights = weights.reshape(-1, 1)
            if not custom_labels:
                custom_labels = [f"custom_{j + 1}" for j in range(weights.shape[1])]
            self.custom_weights = weights

        self.labels = self.ensemble_types + custom_labels
        if not self.labels:
            raise ValueError("At least one ensemble type is required")
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"Ensemble labels must be unique, got {self.labels}")

    @property
    def n_types(self) -> int:
        return len(self.labels)

    def fit_weights(self, P: NDArray[Any], t: NDArray[Any]) -> NDArray[np.float64]:
        """Weights for every ensemble type.

        Args:
            P: Out-of-sample prediction matrix (n, L)
            t: Realised target (n,)

        Returns:
            Weight matrix (L, C) with columns ordered as ``labels``

        Raises:
            ValueError: If custom weights do not have one row per learner
        """
        P = np.asarray(P, dtype=float)
        t = np.asarray(t, dtype=float).ravel()
        n_learners = P.shape[1]

        weights = np.zeros((n_learners, self.n_types))
        for j, scheme in enumerate(self.ensemble_types):
            if n_learners == 1:
                weights[:, j] = 1.0
            else:
                weights[:, j] = _SCHEMES[scheme](P, t)

        if self.custom_weights is not None:
            if self.custom_weights.shape[0] != n_learners:
                raise ValueError(
                    f"custom_ensemble_weights must have one row per learner "
                    f"({n_learners}), got {self.custom_weights.shape[0]}"
                )
            weights[:, len(self.ensemble_types) :] = self.custom_weights
        return weights

    @staticmethod
    def combine(P: NDArray[Any], weights: NDArray[Any]) -> NDArray[np.float64]:
        """Combined predictions (n, C) = P (n, L) @ weights (L, C)."""
        return np.asarray(P, dtype=float) @ np.asarray(weights, dtype=float)
