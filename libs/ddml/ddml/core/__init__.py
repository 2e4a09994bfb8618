"""Core data models, exceptions and the estimator base class."""

from .base import (
    BaseDDMLEstimator,
    CovariateData,
    DataValidationError,
    DDMLError,
    EstimationError,
    InstrumentData,
    LearnerError,
    OutcomeData,
    TreatmentData,
)

__all__ = [
    "BaseDDMLEstimator",
    "TreatmentData",
    "OutcomeData",
    "CovariateData",
    "InstrumentData",
    "DDMLError",
    "DataValidationError",
    "EstimationError",
    "LearnerError",
]
