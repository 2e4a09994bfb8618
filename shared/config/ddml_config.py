"""Configuration defaults for DDML estimation."""

from pydantic import Field, field_validator
from pydantic_settings import SettingsConfigDict

from .base import BaseConfiguration, Environment

_ENSEMBLE_TYPES = {"ols", "nnls", "nnls1", "singlebest", "average"}
_COV_TYPES = {"HC0", "HC1", "HC3"}


class DDMLConfig(BaseConfiguration):
    """Defaults for every estimator argument left unset.

    Each field can be overridden with a ``DDML_`` prefixed environment
    variable, e.g. ``DDML_SAMPLE_FOLDS=5``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DDML_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sample splitting
    sample_folds: int = Field(default=10, description="Number of cross-fitting folds")
    cv_folds: int = Field(
        default=10, description="Number of inner folds used to fit stacking weights"
    )

    # Stacking
    ensemble_type: str = Field(
        default="nnls", description="Default ensemble scheme for multiple learners"
    )
    shortstack: bool = Field(
        default=False, description="Use short-stacking instead of nested stacking"
    )

    # Estimation
    trim: float = Field(
        default=0.01, description="Propensity score trimming threshold"
    )
    cov_type: str = Field(
        default="HC1", description="Heteroskedasticity-consistent covariance type"
    )

    # Parallel processing
    n_jobs: int = Field(default=1, description="joblib workers for (fold, learner) tasks")
    parallel_backend: str = Field(default="threading", description="joblib backend")

    # Observability
    log_level: str | None = Field(
        default=None, description="Root log level; derived from environment when unset"
    )
    enable_metrics: bool = Field(default=False, description="Expose Prometheus metrics")
    metrics_port: int = Field(default=9090, description="Metrics endpoint port")

    @field_validator("sample_folds", "cv_folds")
    @classmethod
    def validate_folds(cls, v: int) -> int:
        if v < 2:
            raise ValueError("Fold counts must be at least 2")
        return v

    @field_validator("ensemble_type")
    @classmethod
    def validate_ensemble_type(cls, v: str) -> str:
        if v not in _ENSEMBLE_TYPES:
            raise ValueError(f"ensemble_type must be one of {sorted(_ENSEMBLE_TYPES)}")
        return v

    @field_validator("trim")
    @classmethod
    def validate_trim(cls, v: float) -> float:
        if not 0 < v < 0.5:
            raise ValueError("trim must lie strictly between 0 and 0.5")
        return v

    @field_validator("cov_type")
    @classmethod
    def validate_cov_type(cls, v: str) -> str:
        v = v.upper()
        if v not in _COV_TYPES:
            raise ValueError(f"cov_type must be one of {sorted(_COV_TYPES)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {v}")
        return v

    def validate_configuration(self) -> list[str]:
        """Flag settings that are valid but usually unintended."""
        issues = super().validate_configuration()

        if self.environment == Environment.PRODUCTION and self.n_jobs == 1:
            issues.append("Consider n_jobs > 1 for production workloads")
        if self.sample_folds < 3:
            issues.append("Two cross-fitting folds leave half the data for each fit")
        if self.trim > 0.1:
            issues.append("Trimming above 0.1 discards much of the propensity range")

        return issues


_config: DDMLConfig | None = None


def get_config() -> DDMLConfig:
    """Process-wide configuration, created from the environment on first use."""
    global _config
    if _config is None:
        _config = DDMLConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the environment is read again."""
    global _config
    _config = None
