"""Base classes and data models for double/debiased machine learning estimators.

This module provides the data containers, the exception hierarchy, and the
abstract estimator that every DDML target-parameter estimator builds on.
The base class owns everything that is shared across estimators: input
validation, sample splitting, construction of the cross-fitter, and caching
of the inference result.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from pydantic import BaseModel, Field, field_validator
from sklearn.utils import check_random_state

from shared.config import get_config

if TYPE_CHECKING:
    from ..inference.results import InferenceResult
    from ..ml.cross_fitting import CrossFitResult, CrossFitter, ParallelCrossFittingConfig

logger = logging.getLogger(__name__)


class TreatmentData(BaseModel):
    """Data model for treatment variables.

    The ATE/ATT/LATE estimators require ``treatment_type="binary"`` and 0/1
    values; the partially linear models also accept continuous and
    multi-column treatments.
    """

    values: pd.Series | pd.DataFrame | NDArray[Any] = Field(
        ..., description="Treatment values"
    )
    name: str = Field(default="D", description="Name of the treatment variable")
    treatment_type: str = Field(
        default="binary",
        description="Type of treatment: 'binary' or 'continuous'",
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("treatment_type")
    @classmethod
    def validate_treatment_type(cls, v: str) -> str:
        """Validate treatment type is one of allowed values."""
        allowed_types = {"binary", "continuous"}
        if v not in allowed_types:
            raise ValueError(f"treatment_type must be one of {allowed_types}")
        return v

    @field_validator("values")
    @classmethod
    def validate_values(
        cls, v: pd.Series | pd.DataFrame | NDArray[Any]
    ) -> pd.Series | pd.DataFrame | NDArray[Any]:
        """Validate treatment values are not empty."""
        if len(v) == 0:
            raise ValueError("Treatment values cannot be empty")
        return v


class OutcomeData(BaseModel):
    """Data model for the outcome variable."""

    values: pd.Series | NDArray[Any] = Field(..., description="Outcome values")
    name: str = Field(default="y", description="Name of the outcome variable")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("values")
    @classmethod
    def validate_values(cls, v: pd.Series | NDArray[Any]) -> pd.Series | NDArray[Any]:
        """Validate outcome values are not empty."""
        if len(v) == 0:
            raise ValueError("Outcome values cannot be empty")
        return v


class CovariateData(BaseModel):
    """Data model for the control variables X entering the nuisance functions."""

    values: pd.DataFrame | NDArray[Any] = Field(..., description="Covariate values")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("values")
    @classmethod
    def validate_values(
        cls, v: pd.DataFrame | NDArray[Any]
    ) -> pd.DataFrame | NDArray[Any]:
        """Validate covariate values are not empty."""
        if len(v) == 0:
            raise ValueError("Covariate values cannot be empty")
        return v


class InstrumentData(BaseModel):
    """Data model for excluded instruments (PLIV, LATE).

    LATE requires ``instrument_type="binary"``.
    """

    values: pd.Series | pd.DataFrame | NDArray[Any] = Field(
        ..., description="Instrument values"
    )
    name: str = Field(default="Z", description="Name of the instrument")
    instrument_type: str = Field(
        default="continuous",
        description="Type of instrument: 'binary' or 'continuous'",
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("instrument_type")
    @classmethod
    def validate_instrument_type(cls, v: str) -> str:
        """Validate instrument type is one of allowed values."""
        allowed_types = {"binary", "continuous"}
        if v not in allowed_types:
            raise ValueError(f"instrument_type must be one of {allowed_types}")
        return v

    @field_validator("values")
    @classmethod
    def validate_values(
        cls, v: pd.Series | pd.DataFrame | NDArray[Any]
    ) -> pd.Series | pd.DataFrame | NDArray[Any]:
        """Validate instrument values are not empty."""
        if len(v) == 0:
            raise ValueError("Instrument values cannot be empty")
        return v


class DDMLError(Exception):
    """Base exception class for ddml specific errors."""

    pass


class DataValidationError(DDMLError):
    """Raised when input data fails validation."""

    pass


class EstimationError(DDMLError):
    """Raised when estimation process fails."""

    pass


class LearnerError(EstimationError):
    """Raised when a learner fails to fit or predict on a fold."""

    pass


def as_2d(values: pd.Series | pd.DataFrame | NDArray[Any]) -> NDArray[np.float64]:
    """Convert a vector or matrix container to a float (n, p) array."""
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    return arr


def column_names(
    values: pd.Series | pd.DataFrame | NDArray[Any], default: str
) -> list[str]:
    """Column labels of a container, falling back to ``default`` (suffixed when needed)."""
    if isinstance(values, pd.DataFrame):
        return [str(c) for c in values.columns]
    n_cols = 1 if np.ndim(values) == 1 else np.shape(values)[1]
    if n_cols == 1:
        return [default]
    return [f"{default}{j + 1}" for j in range(n_cols)]


class BaseDDMLEstimator(abc.ABC):
    """Abstract base class for DDML target-parameter estimators.

    Concrete estimators implement ``_fit_implementation`` (nuisance
    cross-fitting and point estimation) and ``_summary_implementation``
    (inference). Everything else, from input validation and sample splitting to
    result caching, lives here.

    Attributes:
        is_fitted: Whether the estimator has been fitted to data
        subsamples_: List of held-out index arrays, one per cross-fitting fold
        folds_: Fold label (1..K) of every observation
        ensemble_types_: Labels of the ensemble columns of every estimate
        weights_: Stacking weights (L, C, K) per nuisance function
        mspe_: Out-of-sample mean squared prediction error per nuisance and learner
    """

    # Name of the variable whose levels define stratified folds, if any
    _stratify_on: str | None = None
    _requires_instrument: bool = False
    _requires_binary_treatment: bool = False

    def __init__(
        self,
        learners: Any,
        ensemble_type: str | list[str] | None = None,
        shortstack: bool | None = None,
        cv_folds: int | None = None,
        sample_folds: int | None = None,
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None = None,
        subsamples: list[NDArray[Any]] | None = None,
        parallel_config: ParallelCrossFittingConfig | None = None,
        random_state: int | np.random.RandomState | None = None,
        verbose: bool = False,
    ) -> None:
        """Initialize the base estimator.

        Arguments left as ``None`` are read from :class:`shared.config.DDMLConfig`.

        Args:
            learners: Learner, learner spec, scikit-learn estimator, or a list of these
            ensemble_type: Ensemble scheme(s) used to combine multiple learners
            shortstack: Whether to use short-stacking instead of nested stacking
            cv_folds: Number of inner folds for nested stacking
            sample_folds: Number of cross-fitting folds
            custom_ensemble_weights: Fixed (L, c) weight matrix adding c ensemble columns
            subsamples: Pre-computed held-out index arrays, overriding fold generation
            parallel_config: joblib settings for (fold, learner) tasks
            random_state: Seed or RandomState used for fold generation
            verbose: Whether to log progress at INFO level
        """
        from ..ml.cross_fitting import ParallelCrossFittingConfig

        config = get_config()

        self.learners = learners
        self.ensemble_type = (
            ensemble_type if ensemble_type is not None else config.ensemble_type
        )
        self.shortstack = shortstack if shortstack is not None else config.shortstack
        self.cv_folds = cv_folds if cv_folds is not None else config.cv_folds
        self.sample_folds = (
            sample_folds if sample_folds is not None else config.sample_folds
        )
        self.custom_ensemble_weights = custom_ensemble_weights
        self.subsamples = subsamples
        self.parallel_config = parallel_config or ParallelCrossFittingConfig(
            n_jobs=config.n_jobs, parallel_backend=config.parallel_backend
        )
        self.random_state = random_state
        self.verbose = verbose
        self.is_fitted = False

        # Data containers
        self.treatment_data: TreatmentData | None = None
        self.outcome_data: OutcomeData | None = None
        self.covariate_data: CovariateData | None = None
        self.instrument_data: InstrumentData | None = None
        self.cluster_variable: NDArray[Any] | None = None

        # Fitted state
        self.subsamples_: list[NDArray[np.intp]] = []
        self.folds_: NDArray[np.int_] | None = None
        self.ensemble_types_: list[str] = []
        self.weights_: dict[str, NDArray[np.float64]] = {}
        self.mspe_: dict[str, NDArray[np.float64]] = {}
        self.nuisance_: dict[str, NDArray[np.float64]] = {}
        self.treatment_names_: list[str] = []
        self.instrument_names_: list[str] = []

        # Results cache
        self._summary: InferenceResult | None = None
        self._summary_key: tuple[Any, ...] | None = None
        self._rng: np.random.RandomState | None = None

    @abc.abstractmethod
    def _fit_implementation(
        self,
        y: NDArray[np.float64],
        D: NDArray[np.float64],
        X: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> None:
        """Cross-fit the nuisance functions and compute the point estimates.

        Args:
            y: Outcome vector (n,)
            D: Treatment matrix (n, p_D)
            X: Control matrix (n, p_X)
            Z: Instrument matrix (n, p_Z) or None
        """

    @abc.abstractmethod
    def _summary_implementation(self, **kwargs: Any) -> InferenceResult:
        """Compute inference for every ensemble type."""

    def fit(
        self,
        treatment: TreatmentData,
        outcome: OutcomeData,
        covariates: CovariateData,
        instrument: InstrumentData | None = None,
        cluster_variable: pd.Series | NDArray[Any] | None = None,
    ) -> BaseDDMLEstimator:
        """Fit the estimator to data.

        Args:
            treatment: Treatment data
            outcome: Outcome data
            covariates: Controls entering the nuisance functions
            instrument: Excluded instrument(s), required by IV estimators
            cluster_variable: Cluster identifiers; folds never split a cluster
                and inference is cluster-robust

        Returns:
            self: The fitted estimator instance

        Raises:
            DataValidationError: If input data fails validation
            EstimationError: If fitting process fails
        """
        self._validate_inputs(treatment, outcome, covariates, instrument, cluster_variable)
        self.ensemble_types_ = self._resolve_ensemble_types()

        self.treatment_data = treatment
        self.outcome_data = outcome
        self.covariate_data = covariates
        self.instrument_data = instrument
        self.cluster_variable = (
            None if cluster_variable is None else np.asarray(cluster_variable)
        )

        self._summary = None
        self._summary_key = None
        self.weights_ = {}
        self.mspe_ = {}
        self.nuisance_ = {}

        y = np.asarray(outcome.values, dtype=float).ravel()
        D = as_2d(treatment.values)
        X = as_2d(covariates.values)
        Z = None if instrument is None else as_2d(instrument.values)
        self.treatment_names_ = column_names(treatment.values, treatment.name)
        self.instrument_names_ = (
            [] if instrument is None else column_names(instrument.values, instrument.name)
        )

        self._rng = check_random_state(self.random_state)
        self.subsamples_ = self._make_subsamples(len(y), D, Z)
        from ..ml.folds import subsamples_to_folds

        self.folds_ = subsamples_to_folds(self.subsamples_, len(y))

        try:
            self._fit_implementation(y, D, X, Z)
        except DDMLError:
            raise
        except Exception as e:
            raise EstimationError(
                f"Failed to fit {self.__class__.__name__}: {str(e)}"
            ) from e

        self.is_fitted = True
        log = logger.info if self.verbose else logger.debug
        log(
            "Fitted %s on %d observations with %d folds (ensemble types: %s)",
            self.__class__.__name__,
            len(y),
            len(self.subsamples_),
            ", ".join(self.ensemble_types_),
        )
        return self

    def summary(self, use_cache: bool = True, **kwargs: Any) -> InferenceResult:
        """Inference for the target parameter, one table per ensemble type.

        Args:
            use_cache: Whether to reuse a result computed with the same arguments
            **kwargs: Estimator-specific inference options (e.g. ``cov_type``)

        Returns:
            InferenceResult with estimates, standard errors, t values and p values

        Raises:
            EstimationError: If estimator is not fitted
        """
        if not self.is_fitted:
            raise EstimationError("Estimator must be fitted before computing inference")

        key = tuple(sorted(kwargs.items()))
        if use_cache and self._summary is not None and self._summary_key == key:
            return self._summary

        result = self._summary_implementation(**kwargs)
        self._summary = result
        self._summary_key = key
        return result

    def _custom_weights_by_nuisance(
        self,
    ) -> dict[str, NDArray[Any] | pd.DataFrame | None]:
        """Custom weight matrices keyed by the constructor argument holding them."""
        return {"custom_ensemble_weights": self.custom_ensemble_weights}

    def _resolve_ensemble_types(self) -> list[str]:
        """Ensemble column labels shared by every nuisance function.

        The estimates combine nuisances column by column, so every custom
        weight matrix must yield the same labels.

        Raises:
            DataValidationError: If the ensemble settings are invalid or the
                nuisances would produce differently labelled columns
        """
        from ..ml.ensemble import EnsembleCombiner

        labels_by_argument: dict[str, list[str]] = {}
        for argument, weights in self._custom_weights_by_nuisance().items():
            try:
                combiner = EnsembleCombiner(self.ensemble_type, weights)
            except ValueError as e:
                raise DataValidationError(f"Invalid ensemble settings: {e}") from e
            labels_by_argument[argument] = combiner.labels

        labels = next(iter(labels_by_argument.values()))
        if any(other != labels for other in labels_by_argument.values()):
            detail = "; ".join(f"{arg}: {lab}" for arg, lab in labels_by_argument.items())
            raise DataValidationError(
                f"Ensemble labels must be the same for every nuisance function ({detail})"
            )
        return labels

    def _make_cross_fitter(
        self,
        learners: Any,
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None,
    ) -> CrossFitter:
        """Build a cross-fitter sharing this estimator's ensemble settings."""
        from ..ml.cross_fitting import CrossFitter

        return CrossFitter(
            learners,
            ensemble_type=self.ensemble_type,
            custom_ensemble_weights=custom_ensemble_weights,
            cv_folds=self.cv_folds,
            shortstack=self.shortstack,
            parallel_config=self.parallel_config,
            random_state=self._rng,
        )

    def _crosspred(
        self,
        name: str,
        learners: Any,
        target: NDArray[np.float64],
        X: NDArray[np.float64],
        train_mask: NDArray[np.bool_] | None = None,
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None = None,
    ) -> NDArray[np.float64]:
        """Cross-fit one nuisance function and record its weights and MSPE.

        When the target is constant on the training rows (e.g. nobody takes
        up treatment when not offered it), that constant is used as the
        prediction and no learner is fit.

        Returns:
            Combined out-of-sample predictions (n, C)
        """
        fitter = self._make_cross_fitter(learners, custom_ensemble_weights)
        rows = target if train_mask is None else target[train_mask]
        if np.ptp(rows) == 0:
            logger.info(
                "%s: target is constant (%g) on the training rows, skipping learners",
                name,
                rows[0],
            )
            fitted = np.full((len(target), len(self.ensemble_types_)), float(rows[0]))
            self.nuisance_[name] = fitted
            return fitted

        result: CrossFitResult = fitter.crosspred(
            target,
            X,
            self.subsamples_,
            train_mask=train_mask,
            clusters=self.cluster_variable,
        )
        self.weights_[name] = result.weights
        self.mspe_[name] = result.mspe
        self.nuisance_[name] = result.oos_fitted
        logger.debug("Cross-fitted nuisance %s", name)
        return result.oos_fitted

    def _make_subsamples(
        self,
        n_obs: int,
        D: NDArray[np.float64],
        Z: NDArray[np.float64] | None,
    ) -> list[NDArray[np.intp]]:
        """Fold partition: user supplied, cluster-aware, stratified, or simple."""
        from ..ml.folds import (
            folds_to_subsamples,
            generate_cluster_folds,
            generate_folds,
            generate_stratified_folds,
            validate_subsamples,
        )

        if self.subsamples is not None:
            return validate_subsamples(self.subsamples, n_obs)

        if self.cluster_variable is not None:
            folds = generate_cluster_folds(
                self.cluster_variable, self.sample_folds, random_state=self._rng
            )
        elif self._stratify_on == "treatment":
            folds = generate_stratified_folds(
                D[:, 0], self.sample_folds, random_state=self._rng
            )
        elif self._stratify_on == "instrument" and Z is not None:
            folds = generate_stratified_folds(
                Z[:, 0], self.sample_folds, random_state=self._rng
            )
        else:
            folds = generate_folds(n_obs, self.sample_folds, random_state=self._rng)
        return folds_to_subsamples(folds, self.sample_folds)

    def _validate_inputs(
        self,
        treatment: TreatmentData,
        outcome: OutcomeData,
        covariates: CovariateData,
        instrument: InstrumentData | None,
        cluster_variable: pd.Series | NDArray[Any] | None,
    ) -> None:
        """Validate input data before any sample splitting.

        Raises:
            DataValidationError: If any validation checks fail
        """
        n_obs = len(outcome.values)

        if len(treatment.values) != n_obs:
            raise DataValidationError(
                f"Treatment ({len(treatment.values)}) and outcome ({n_obs}) "
                "must have the same number of observations"
            )
        if len(covariates.values) != n_obs:
            raise DataValidationError(
                f"Covariates ({len(covariates.values)}) must have the same number "
                f"of observations as outcome ({n_obs})"
            )
        if self._requires_instrument and instrument is None:
            raise DataValidationError(
                f"{self.__class__.__name__} requires instrument data"
            )
        if instrument is not None and len(instrument.values) != n_obs:
            raise DataValidationError(
                f"Instrument ({len(instrument.values)}) must have the same number "
                f"of observations as outcome ({n_obs})"
            )
        if cluster_variable is not None and len(cluster_variable) != n_obs:
            raise DataValidationError(
                f"Cluster variable ({len(cluster_variable)}) must have the same "
                f"number of observations as outcome ({n_obs})"
            )

        for label, data in (
            ("Outcome", outcome.values),
            ("Treatment", treatment.values),
            ("Covariates", covariates.values),
            ("Instrument", None if instrument is None else instrument.values),
        ):
            if data is None:
                continue
            try:
                arr = np.asarray(data, dtype=float)
            except (TypeError, ValueError) as e:
                raise DataValidationError(f"{label} values must be numeric") from e
            if np.isnan(arr).any():
                raise DataValidationError(f"{label} values cannot contain missing data")

        if self.sample_folds < 2:
            raise DataValidationError("sample_folds must be at least 2")
        if self.cv_folds < 2:
            raise DataValidationError("cv_folds must be at least 2")

        n_units = n_obs if cluster_variable is None else len(np.unique(cluster_variable))
        if self.subsamples is None and n_units < self.sample_folds:
            raise DataValidationError(
                f"Number of {'clusters' if cluster_variable is not None else 'observations'} "
                f"({n_units}) must be at least sample_folds ({self.sample_folds})"
            )

        if self._requires_binary_treatment:
            if treatment.treatment_type != "binary":
                raise DataValidationError(
                    f"{self.__class__.__name__} requires a binary treatment, "
                    f"got treatment_type={treatment.treatment_type!r}"
                )
            self._validate_binary(treatment.values, "Treatment")
        if self._stratify_on == "instrument" and instrument is not None:
            if instrument.instrument_type != "binary":
                raise DataValidationError(
                    f"Instrument must be binary for {self.__class__.__name__}, "
                    f"got instrument_type={instrument.instrument_type!r}"
                )
            self._validate_binary(instrument.values, "Instrument")

    @staticmethod
    def _validate_binary(values: Any, label: str) -> None:
        arr = np.asarray(values, dtype=float)
        if arr.ndim > 1 and arr.shape[1] != 1:
            raise DataValidationError(f"{label} must be a single binary column")
        unique_values = np.unique(arr)
        if not np.isin(unique_values, [0.0, 1.0]).all():
            raise DataValidationError(f"{label} must be binary with values 0 and 1")
        if len(unique_values) < 2:
            raise DataValidationError(
                f"{label} must contain both 0 and 1 observations"
            )

    def __repr__(self) -> str:
        status = "fitted" if self.is_fitted else "not fitted"
        return (
            f"{self.__class__.__name__}(ensemble_type={self.ensemble_type!r}, "
            f"sample_folds={self.sample_folds}, shortstack={self.shortstack}, {status})"
        )
