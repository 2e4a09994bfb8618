"""Partially linear instrumental variables model.

Model:
    y = D theta + g(X) + e,   E[e | Z, X] = 0

E[y|X], E[D|X] and E[Z|X] are cross-fitted; theta is the 2SLS coefficient of
the residualised outcome on the residualised treatment(s), instrumented by the
residualised instrument(s).
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from shared.config import get_config

from ..core.base import BaseDDMLEstimator, DataValidationError
from ..inference.results import InferenceResult
from ..inference.sandwich import LinearFit, add_constant, fit_iv, organize_inf_results

logger = logging.getLogger(__name__)


class DDMLPLIV(BaseDDMLEstimator):
    """DDML estimator for the partially linear IV model.

    Args:
        learners: Learners for E[y|X], and for the other nuisances unless overridden
        learners_DX: Learners for E[D|X]
        learners_ZX: Learners for E[Z|X]
        custom_ensemble_weights_DX: Fixed weights for the E[D|X] learners
        custom_ensemble_weights_ZX: Fixed weights for the E[Z|X] learners
        **kwargs: See :class:`~ddml.core.base.BaseDDMLEstimator`

    Attributes:
        coef_: Coefficients (1 + p_D, C) per ensemble type
        iv_fits_: Second-stage 2SLS regressions, one per ensemble type
    """

    _requires_instrument = True

    def __init__(
        self,
        learners: Any,
        learners_DX: Any = None,
        learners_ZX: Any = None,
        custom_ensemble_weights_DX: NDArray[Any] | pd.DataFrame | None = None,
        custom_ensemble_weights_ZX: NDArray[Any] | pd.DataFrame | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(learners, **kwargs)
        self.learners_DX = learners_DX if learners_DX is not None else learners
        self.learners_ZX = learners_ZX if learners_ZX is not None else learners
        self.custom_ensemble_weights_DX = (
            custom_ensemble_weights_DX
            if custom_ensemble_weights_DX is not None
            else self.custom_ensemble_weights
        )
        self.custom_ensemble_weights_ZX = (
            custom_ensemble_weights_ZX
            if custom_ensemble_weights_ZX is not None
            else self.custom_ensemble_weights
        )
        self.coef_: NDArray[np.float64] | None = None
        self.iv_fits_: list[LinearFit] = []

    def _custom_weights_by_nuisance(
        self,
    ) -> dict[str, NDArray[Any] | pd.DataFrame | None]:
        return {
            "custom_ensemble_weights": self.custom_ensemble_weights,
            "custom_ensemble_weights_DX": self.custom_ensemble_weights_DX,
            "custom_ensemble_weights_ZX": self.custom_ensemble_weights_ZX,
        }

    def _fit_implementation(
        self,
        y: NDArray[np.float64],
        D: NDArray[np.float64],
        X: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> None:
        if Z is None:
            raise DataValidationError("DDMLPLIV requires instrument data")
        if Z.shape[1] < D.shape[1]:
            raise DataValidationError(
                f"Need at least as many instruments ({Z.shape[1]}) "
                f"as treatments ({D.shape[1]})"
            )

        y_X = self._crosspred(
            "y_X",
            self.learners,
            y,
            X,
            custom_ensemble_weights=self.custom_ensemble_weights,
        )
        D_X = self._crosspred_columns(
            D, X, self.treatment_names_, self.learners_DX, self.custom_ensemble_weights_DX
        )
        Z_X = self._crosspred_columns(
            Z, X, self.instrument_names_, self.learners_ZX, self.custom_ensemble_weights_ZX
        )

        coef_names = ["(Intercept)"] + self.treatment_names_
        self.iv_fits_ = []
        for c in range(len(self.ensemble_types_)):
            y_r = y - y_X[:, c]
            D_r = D - D_X[:, :, c]
            Z_r = Z - Z_X[:, :, c]
            self.iv_fits_.append(
                fit_iv(y_r, add_constant(D_r), add_constant(Z_r), coef_names)
            )

        self.coef_ = np.column_stack([fit.coefficients for fit in self.iv_fits_])
        logger.info(
            "PLIV coefficients on %s: %s",
            ", ".join(self.treatment_names_),
            dict(zip(self.ensemble_types_, np.round(self.coef_[1], 4).tolist())),
        )

    def _crosspred_columns(
        self,
        V: NDArray[np.float64],
        X: NDArray[np.float64],
        names: list[str],
        learners: Any,
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None,
    ) -> NDArray[np.float64]:
        """E[V_j|X] for every column j, shape (n, p_V, C)."""
        return np.stack(
            [
                self._crosspred(
                    f"{name}_X",
                    learners,
                    V[:, j],
                    X,
                    custom_ensemble_weights=custom_ensemble_weights,
                )
                for j, name in enumerate(names)
            ],
            axis=1,
        )

    def _summary_implementation(self, cov_type: str | None = None) -> InferenceResult:
        return organize_inf_results(
            self.iv_fits_,
            self.ensemble_types_,
            cov_type=cov_type or get_config().cov_type,
            clusters=self.cluster_variable,
            parameter="PLIV",
        )
