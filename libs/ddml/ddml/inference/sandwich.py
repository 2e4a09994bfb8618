"""Regression-residual inference for partially linear models.

The second stage of PLM/PLIV is a linear regression (OLS or 2SLS) of the
residualised outcome on the residualised treatment. Standard errors use the
heteroskedasticity- or cluster-robust sandwich

    V = (W'X)^-1  W' diag(u^2) W  (X'W)^-1

where W is the design itself for OLS and the first-stage projection of the
design for 2SLS. p values use the standard normal reference distribution.
"""
# ruff: noqa: N803, N806

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from ..utils.linalg import csolve
from .results import InferenceResult

COV_TYPES = ("HC0", "HC1", "HC3")


@dataclass
class LinearFit:
    """A fitted OLS or 2SLS regression.

    Attributes:
        coefficients: Coefficient vector (k,)
        design: Regressor matrix X (n, k)
        residuals: Structural residuals y - X b (n,)
        coef_names: Coefficient labels
        instruments: First-stage projection of X for 2SLS, None for OLS
    """

    coefficients: NDArray[np.float64]
    design: NDArray[np.float64]
    residuals: NDArray[np.float64]
    coef_names: list[str]
    instruments: NDArray[np.float64] | None = None

    @property
    def n_obs(self) -> int:
        return self.design.shape[0]

    @property
    def n_params(self) -> int:
        return self.design.shape[1]

    @property
    def weight_matrix(self) -> NDArray[np.float64]:
        return self.design if self.instruments is None else self.instruments


def add_constant(X: NDArray[Any]) -> NDArray[np.float64]:
    """Prepend an intercept column."""
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    return np.column_stack([np.ones(X.shape[0]), X])


def fit_ols(y: NDArray[Any], X: NDArray[Any], coef_names: list[str]) -> LinearFit:
    """Least squares fit of y on X (include the intercept in X yourself)."""
    y = np.asarray(y, dtype=float).ravel()
    X = np.asarray(X, dtype=float)
    beta = csolve(X.T @ X) @ (X.T @ y)
    return LinearFit(
        coefficients=beta,
        design=X,
        residuals=y - X @ beta,
        coef_names=list(coef_names),
    )


def fit_iv(
    y: NDArray[Any],
    X: NDArray[Any],
    Z: NDArray[Any],
    coef_names: list[str],
) -> LinearFit:
    """Two-stage least squares fit of y on X with instruments Z.

    Z must contain every exogenous column of X (e.g. the intercept) and at
    least as many columns as X.
    """
    y = np.asarray(y, dtype=float).ravel()
    X = np.asarray(X, dtype=float)
    Z = np.asarray(Z, dtype=float)
    if Z.shape[1] < X.shape[1]:
        raise ValueError(
            f"Need at least as many instruments ({Z.shape[1]}) as regressors ({X.shape[1]})"
        )
    X_hat = Z @ (csolve(Z.T @ Z) @ (Z.T @ X))
    beta = csolve(X_hat.T @ X) @ (X_hat.T @ y)
    return LinearFit(
        coefficients=beta,
        design=X,
        residuals=y - X @ beta,
        coef_names=list(coef_names),
        instruments=X_hat,
    )


def vcov_sandwich(
    fit: LinearFit,
    cov_type: str = "HC1",
    clusters: NDArray[Any] | None = None,
) -> NDArray[np.float64]:
    """Heteroskedasticity- or cluster-robust covariance matrix.

    Args:
        fit: Fitted regression
        cov_type: 'HC0', 'HC1' or 'HC3'; ignored when ``clusters`` is given
        clusters: Cluster ids; uses the CR1 estimator with the
            G/(G-1) * (n-1)/(n-k) small-sample factor

    Returns:
        Covariance matrix (k, k)
    """
    X = fit.design
    W = fit.weight_matrix
    u = fit.residuals
    n_obs, n_params = X.shape
    bread = csolve(W.T @ X)

    if clusters is not None:
        _, inverse = np.unique(np.asarray(clusters), return_inverse=True)
        inverse = inverse.ravel()
        n_clusters = int(inverse.max()) + 1
        if n_clusters < 2:
            raise ValueError("Cluster-robust covariance requires at least two clusters")
        cluster_scores = np.zeros((n_clusters, n_params))
        np.add.at(cluster_scores, inverse, W * u[:, None])
        meat = cluster_scores.T @ cluster_scores
        meat *= (n_clusters / (n_clusters - 1)) * ((n_obs - 1) / (n_obs - n_params))
    else:
        cov_type = cov_type.upper()
        if cov_type == "HC0":
            omega = u**2
        elif cov_type == "HC1":
            omega = u**2 * n_obs / (n_obs - n_params)
        elif cov_type == "HC3":
            leverage = np.sum((X @ bread) * W, axis=1)
            omega = (u / (1.0 - leverage)) ** 2
        else:
            raise ValueError(f"cov_type must be one of {COV_TYPES}, got {cov_type!r}")
        meat = (W * omega[:, None]).T @ W

    return bread @ meat @ bread.T


def compute_inf_results_by_ensemble(
    fit: LinearFit,
    cov_type: str = "HC1",
    clusters: NDArray[Any] | None = None,
) -> NDArray[np.float64]:
    """(k, 4) matrix of estimate, standard error, t value and p value."""
    vcov = vcov_sandwich(fit, cov_type=cov_type, clusters=clusters)
    se = np.sqrt(np.diag(vcov))
    with np.errstate(divide="ignore", invalid="ignore"):
        t_values = fit.coefficients / se
    p_values = 2 * stats.norm.sf(np.abs(t_values))
    return np.column_stack([fit.coefficients, se, t_values, p_values])


def organize_inf_results(
    fits: Sequence[LinearFit],
    ensemble_types: Sequence[str],
    cov_type: str = "HC1",
    clusters: NDArray[Any] | None = None,
    parameter: str = "",
) -> InferenceResult:
    """Stack per-ensemble regression inference along the third axis.

    Args:
        fits: One fitted regression per ensemble type
        ensemble_types: Labels of ``fits``
        cov_type: Heteroskedasticity-consistent covariance type
        clusters: Cluster ids for cluster-robust inference
        parameter: Display name of the target parameter

    Returns:
        InferenceResult of shape (k, 4, C)
    """
    if len(fits) == 0 or len(fits) != len(ensemble_types):
        raise ValueError(
            f"Need one fit per ensemble type, got {len(fits)} fits "
            f"for {len(ensemble_types)} ensemble types"
        )
    values = np.stack(
        [
            compute_inf_results_by_ensemble(fit, cov_type=cov_type, clusters=clusters)
            for fit in fits
        ],
        axis=2,
    )
    return InferenceResult(
        values=values,
        coef_names=list(fits[0].coef_names),
        ensemble_types=list(ensemble_types),
        parameter=parameter,
    )
