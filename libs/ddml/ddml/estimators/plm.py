"""Partially linear model estimated by double/debiased machine learning.

Model:
    y = D theta + g(X) + e,   E[e | D, X] = 0

The nuisance functions E[y|X] and E[D|X] are cross-fitted; theta is the OLS
coefficient of the residualised outcome on the residualised treatment(s).
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from shared.config import get_config

from ..core.base import BaseDDMLEstimator
from ..inference.results import InferenceResult
from ..inference.sandwich import LinearFit, add_constant, fit_ols, organize_inf_results

logger = logging.getLogger(__name__)


class DDMLPLM(BaseDDMLEstimator):
    """DDML estimator for the partially linear model.

    Args:
        learners: Learners for E[y|X] (and E[D|X] unless ``learners_DX`` is given)
        learners_DX: Learners for E[D|X]
        custom_ensemble_weights_DX: Fixed weights for the E[D|X] learners
        **kwargs: See :class:`~ddml.core.base.BaseDDMLEstimator`

    Attributes:
        coef_: Coefficients (1 + p_D, C): intercept then treatments, per ensemble type
        ols_fits_: Second-stage regressions, one per ensemble type
    """

    def __init__(
        self,
        learners: Any,
        learners_DX: Any = None,
        custom_ensemble_weights_DX: NDArray[Any] | pd.DataFrame | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(learners, **kwargs)
        self.learners_DX = learners_DX if learners_DX is not None else learners
        self.custom_ensemble_weights_DX = (
            custom_ensemble_weights_DX
            if custom_ensemble_weights_DX is not None
            else self.custom_ensemble_weights
        )
        self.coef_: NDArray[np.float64] | None = None
        self.ols_fits_: list[LinearFit] = []

    def _custom_weights_by_nuisance(
        self,
    ) -> dict[str, NDArray[Any] | pd.DataFrame | None]:
        return {
            "custom_ensemble_weights": self.custom_ensemble_weights,
            "custom_ensemble_weights_DX": self.custom_ensemble_weights_DX,
        }

    def _fit_implementation(
        self,
        y: NDArray[np.float64],
        D: NDArray[np.float64],
        X: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> None:
        d_names = self.treatment_names_

        y_X = self._crosspred(
            "y_X",
            self.learners,
            y,
            X,
            custom_ensemble_weights=self.custom_ensemble_weights,
        )
        D_X = np.stack(
            [
                self._crosspred(
                    f"{name}_X",
                    self.learners_DX,
                    D[:, j],
                    X,
                    custom_ensemble_weights=self.custom_ensemble_weights_DX,
                )
                for j, name in enumerate(d_names)
            ],
            axis=1,
        )

        coef_names = ["(Intercept)"] + d_names
        self.ols_fits_ = []
        for c in range(len(self.ensemble_types_)):
            y_r = y - y_X[:, c]
            D_r = D - D_X[:, :, c]
            self.ols_fits_.append(fit_ols(y_r, add_constant(D_r), coef_names))

        self.coef_ = np.column_stack([fit.coefficients for fit in self.ols_fits_])
        logger.info(
            "PLM coefficients on %s: %s",
            ", ".join(d_names),
            dict(zip(self.ensemble_types_, np.round(self.coef_[1], 4).tolist())),
        )

    def _summary_implementation(self, cov_type: str | None = None) -> InferenceResult:
        return organize_inf_results(
            self.ols_fits_,
            self.ensemble_types_,
            cov_type=cov_type or get_config().cov_type,
            clusters=self.cluster_variable,
            parameter="PLM",
        )
