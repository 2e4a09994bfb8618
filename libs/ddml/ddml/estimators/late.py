"""Local average treatment effect with a binary instrument and binary treatment.

The LATE is the ratio of the AIPW intent-to-treat effects of Z on y and of Z
on D. Nuisances: E[y|Z=z,X], E[D|Z=z,X] for z in {0, 1}, and the trimmed
instrument propensity E[Z|X].
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from shared.config import get_config

from ..core.base import BaseDDMLEstimator, DDMLError, DataValidationError
from ..inference.results import InferenceResult
from ..inference.scores import organize_moment_inf_results, solve_moment
from .propensity import trim_propensity_scores

logger = logging.getLogger(__name__)


class DDMLLATE(BaseDDMLEstimator):
    """DDML estimator of the local average treatment effect.

    Args:
        learners: Learners for E[y|Z=z,X], and the other nuisances unless overridden
        learners_DXZ: Learners for E[D|Z=z,X]
        learners_ZX: Learners for the instrument propensity E[Z|X]
        custom_ensemble_weights_DXZ: Fixed weights for the E[D|Z=z,X] learners
        custom_ensemble_weights_ZX: Fixed weights for the E[Z|X] learners
        trim: Instrument propensity trimming threshold in (0, 0.5)
        **kwargs: See :class:`~ddml.core.base.BaseDDMLEstimator`

    Attributes:
        late_: Estimates (C,), one per ensemble type
    """

    _stratify_on = "instrument"
    _requires_instrument = True
    _requires_binary_treatment = True

    def __init__(
        self,
        learners: Any,
        learners_DXZ: Any = None,
        learners_ZX: Any = None,
        custom_ensemble_weights_DXZ: NDArray[Any] | pd.DataFrame | None = None,
        custom_ensemble_weights_ZX: NDArray[Any] | pd.DataFrame | None = None,
        trim: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(learners, **kwargs)
        self.learners_DXZ = learners_DXZ if learners_DXZ is not None else learners
        self.learners_ZX = learners_ZX if learners_ZX is not None else learners
        self.custom_ensemble_weights_DXZ = (
            custom_ensemble_weights_DXZ
            if custom_ensemble_weights_DXZ is not None
            else self.custom_ensemble_weights
        )
        self.custom_ensemble_weights_ZX = (
            custom_ensemble_weights_ZX
            if custom_ensemble_weights_ZX is not None
            else self.custom_ensemble_weights
        )
        self.trim = trim if trim is not None else get_config().trim
        if not 0 < self.trim < 0.5:
            raise ValueError(f"trim must lie strictly between 0 and 0.5, got {self.trim}")

        self.late_: NDArray[np.float64] | None = None
        self.psi_a_: NDArray[np.float64] | None = None
        self.psi_b_: NDArray[np.float64] | None = None

    def _custom_weights_by_nuisance(
        self,
    ) -> dict[str, NDArray[Any] | pd.DataFrame | None]:
        return {
            "custom_ensemble_weights": self.custom_ensemble_weights,
            "custom_ensemble_weights_DXZ": self.custom_ensemble_weights_DXZ,
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
            raise DataValidationError("DDMLLATE requires instrument data")
        d = D[:, 0]
        z = Z[:, 0]

        l1, l0 = (
            self._crosspred(
                f"y_X_Z{level}",
                self.learners,
                y,
                X,
                train_mask=z == level,
                custom_ensemble_weights=self.custom_ensemble_weights,
            )
            for level in (1, 0)
        )
        p1, p0 = (
            self._crosspred(
                f"D_X_Z{level}",
                self.learners_DXZ,
                d,
                X,
                train_mask=z == level,
                custom_ensemble_weights=self.custom_ensemble_weights_DXZ,
            )
            for level in (1, 0)
        )
        r = self._crosspred(
            "Z_X",
            self.learners_ZX,
            z,
            X,
            custom_ensemble_weights=self.custom_ensemble_weights_ZX,
        )
        r = trim_propensity_scores(r, self.trim, self.ensemble_types_)

        y_ = y[:, None]
        d_ = d[:, None]
        z_ = z[:, None]
        self.psi_b_ = l1 - l0 + z_ * (y_ - l1) / r - (1 - z_) * (y_ - l0) / (1 - r)
        self.psi_a_ = -(
            p1 - p0 + z_ * (d_ - p1) / r - (1 - z_) * (d_ - p0) / (1 - r)
        )
        self.late_ = solve_moment(self.psi_a_, self.psi_b_)

        logger.info(
            "LATE estimates: %s",
            dict(zip(self.ensemble_types_, np.round(self.late_, 4).tolist())),
        )

    def _summary_implementation(self, **kwargs: Any) -> InferenceResult:
        if kwargs:
            raise DDMLError(
                f"Unsupported summary option(s) for DDMLLATE: {sorted(kwargs)}"
            )
        return organize_moment_inf_results(
            self.late_,
            self.psi_a_,
            self.psi_b_,
            self.ensemble_types_,
            parameter="LATE",
            clusters=self.cluster_variable,
        )
