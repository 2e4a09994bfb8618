"""Average treatment effects (ATE, ATT) with a binary treatment.

Both estimators use the cross-fitted outcome regressions E[y|D=d,X] and the
trimmed propensity score E[D|X] in augmented inverse probability weighted
(Neyman-orthogonal) scores.
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from shared.config import get_config

from ..core.base import BaseDDMLEstimator, DDMLError
from ..inference.results import InferenceResult
from ..inference.scores import organize_moment_inf_results, solve_moment
from .propensity import trim_propensity_scores

logger = logging.getLogger(__name__)


class _BinaryTreatmentEstimator(BaseDDMLEstimator):
    """Shared setup of the binary-treatment estimators.

    Args:
        learners: Learners for E[y|D=d,X] (and E[D|X] unless overridden)
        learners_DX: Learners for the propensity score E[D|X]
        custom_ensemble_weights_DX: Fixed weights for the E[D|X] learners
        trim: Propensity score trimming threshold in (0, 0.5)
        **kwargs: See :class:`~ddml.core.base.BaseDDMLEstimator`
    """

    _stratify_on = "treatment"
    _requires_binary_treatment = True
    _parameter = ""

    def __init__(
        self,
        learners: Any,
        learners_DX: Any = None,
        custom_ensemble_weights_DX: NDArray[Any] | pd.DataFrame | None = None,
        trim: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(learners, **kwargs)
        self.learners_DX = learners_DX if learners_DX is not None else learners
        self.custom_ensemble_weights_DX = (
            custom_ensemble_weights_DX
            if custom_ensemble_weights_DX is not None
            else self.custom_ensemble_weights
        )
        self.trim = trim if trim is not None else get_config().trim
        if not 0 < self.trim < 0.5:
            raise ValueError(f"trim must lie strictly between 0 and 0.5, got {self.trim}")

        self.psi_a_: NDArray[np.float64] | None = None
        self.psi_b_: NDArray[np.float64] | None = None

    def _custom_weights_by_nuisance(
        self,
    ) -> dict[str, NDArray[Any] | pd.DataFrame | None]:
        return {
            "custom_ensemble_weights": self.custom_ensemble_weights,
            "custom_ensemble_weights_DX": self.custom_ensemble_weights_DX,
        }

    def _outcome_regression(
        self,
        y: NDArray[np.float64],
        X: NDArray[np.float64],
        d: NDArray[np.float64],
        level: int,
    ) -> NDArray[np.float64]:
        """E[y|D=level,X], fitted on training rows with D == level."""
        return self._crosspred(
            f"y_X_D{level}",
            self.learners,
            y,
            X,
            train_mask=d == level,
            custom_ensemble_weights=self.custom_ensemble_weights,
        )

    def _propensity(
        self, d: NDArray[np.float64], X: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """Trimmed E[D|X]."""
        m_X = self._crosspred(
            "D_X",
            self.learners_DX,
            d,
            X,
            custom_ensemble_weights=self.custom_ensemble_weights_DX,
        )
        return trim_propensity_scores(m_X, self.trim, self.ensemble_types_)

    def _summary_implementation(self, **kwargs: Any) -> InferenceResult:
        if kwargs:
            raise DDMLError(
                f"Unsupported summary option(s) for {self.__class__.__name__}: "
                f"{sorted(kwargs)}"
            )
        return organize_moment_inf_results(
            solve_moment(self.psi_a_, self.psi_b_),
            self.psi_a_,
            self.psi_b_,
            self.ensemble_types_,
            parameter=self._parameter,
            clusters=self.cluster_variable,
        )


class DDMLATE(_BinaryTreatmentEstimator):
    """DDML estimator of the average treatment effect E[y(1) - y(0)].

    Attributes:
        ate_: Estimates (C,), one per ensemble type
    """

    _parameter = "ATE"

    def __init__(self, learners: Any, **kwargs: Any) -> None:
        super().__init__(learners, **kwargs)
        self.ate_: NDArray[np.float64] | None = None

    def _fit_implementation(
        self,
        y: NDArray[np.float64],
        D: NDArray[np.float64],
        X: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> None:
        d = D[:, 0]
        g1 = self._outcome_regression(y, X, d, 1)
        g0 = self._outcome_regression(y, X, d, 0)
        m = self._propensity(d, X)

        y_ = y[:, None]
        d_ = d[:, None]
        self.psi_b_ = g1 - g0 + d_ * (y_ - g1) / m - (1 - d_) * (y_ - g0) / (1 - m)
        self.psi_a_ = -np.ones_like(self.psi_b_)
        self.ate_ = solve_moment(self.psi_a_, self.psi_b_)

        logger.info(
            "ATE estimates: %s",
            dict(zip(self.ensemble_types_, np.round(self.ate_, 4).tolist())),
        )


class DDMLATT(_BinaryTreatmentEstimator):
    """DDML estimator of the average treatment effect on the treated E[y(1) - y(0) | D=1].

    Only the control outcome regression E[y|D=0,X] is needed.

    Attributes:
        att_: Estimates (C,), one per ensemble type
    """

    _parameter = "ATT"

    def __init__(self, learners: Any, **kwargs: Any) -> None:
        super().__init__(learners, **kwargs)
        self.att_: NDArray[np.float64] | None = None

    def _fit_implementation(
        self,
        y: NDArray[np.float64],
        D: NDArray[np.float64],
        X: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> None:
        d = D[:, 0]
        g0 = self._outcome_regression(y, X, d, 0)
        m = self._propensity(d, X)
        p_hat = d.mean()

        y_ = y[:, None]
        d_ = d[:, None]
        self.psi_b_ = d_ * (y_ - g0) / p_hat - m * (1 - d_) * (y_ - g0) / (
            p_hat * (1 - m)
        )
        self.psi_a_ = np.repeat(-d_ / p_hat, self.psi_b_.shape[1], axis=1)
        self.att_ = solve_moment(self.psi_a_, self.psi_b_)

        logger.info(
            "ATT estimates: %s",
            dict(zip(self.ensemble_types_, np.round(self.att_, 4).tolist())),
        )
