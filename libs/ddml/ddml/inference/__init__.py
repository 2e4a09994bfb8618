"""Inference for regression-residual and moment-based estimators."""

from .results import STATISTICS, InferenceResult
from .sandwich import (
    LinearFit,
    compute_inf_results_by_ensemble,
    fit_iv,
    fit_ols,
    organize_inf_results,
    vcov_sandwich,
)
from .scores import (
    compute_moment_inf_results,
    organize_moment_inf_results,
    solve_moment,
)

__all__ = [
    "InferenceResult",
    "LinearFit",
    "STATISTICS",
    "compute_inf_results_by_ensemble",
    "compute_moment_inf_results",
    "fit_iv",
    "fit_ols",
    "organize_inf_results",
    "organize_moment_inf_results",
    "solve_moment",
    "vcov_sandwich",
]
