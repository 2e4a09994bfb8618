"""Synthetic data generation for testing and examples.

Every generator draws from the generator's own RandomState, so datasets are
reproducible from ``random_state`` without touching numpy's global state.
"""
# ruff: noqa: N806

from __future__ import annotations

import numpy as np
import pandas as pd

from ..core.base import CovariateData, InstrumentData, OutcomeData, TreatmentData


def _covariates(X: np.ndarray) -> CovariateData:
    names = [f"X{i + 1}" for i in range(X.shape[1])]
    return CovariateData(values=pd.DataFrame(X, columns=names))


def _nuisance(X: np.ndarray) -> np.ndarray:
    """Nonlinear confounding function shared by the generators."""
    g = X[:, 0] + 0.5 * np.sin(X[:, 1]) if X.shape[1] > 1 else X[:, 0]
    if X.shape[1] > 2:
        g = g + 0.25 * X[:, 2] ** 2
    return g


class SyntheticDataGenerator:
    """Generator for synthetic DDML datasets with known target parameters."""

    def __init__(self, random_state: int | None = None):
        """Initialize the synthetic data generator.

        Args:
            random_state: Random seed for reproducible results
        """
        self.random_state = random_state
        self.rng = np.random.RandomState(random_state)

    def generate_plm(
        self,
        n_samples: int = 500,
        n_covariates: int = 5,
        theta: float = 1.0,
        noise_std: float = 1.0,
    ) -> tuple[TreatmentData, OutcomeData, CovariateData]:
        """Partially linear model y = theta * D + g(X) + e with continuous D.

        Args:
            n_samples: Number of observations to generate
            n_covariates: Number of control variables
            theta: True treatment coefficient
            noise_std: Standard deviation of the outcome noise

        Returns:
            Tuple of (treatment, outcome, covariates) data objects
        """
        X = self.rng.normal(size=(n_samples, n_covariates))
        D = 0.5 * _nuisance(X) + self.rng.normal(size=n_samples)
        y = theta * D + _nuisance(X) + self.rng.normal(0, noise_std, n_samples)

        return (
            TreatmentData(values=pd.Series(D, name="D"), name="D", treatment_type="continuous"),
            OutcomeData(values=pd.Series(y, name="y"), name="y"),
            _covariates(X),
        )

    def generate_binary_treatment(
        self,
        n_samples: int = 500,
        n_covariates: int = 5,
        treatment_effect: float = 2.0,
        selection_bias: float = 0.5,
        noise_std: float = 1.0,
    ) -> tuple[TreatmentData, OutcomeData, CovariateData]:
        """Binary treatment with a constant effect, so ATE = ATT = ``treatment_effect``.

        Args:
            n_samples: Number of observations to generate
            n_covariates: Number of confounders
            treatment_effect: True treatment effect
            selection_bias: Strength of selection into treatment on X
            noise_std: Standard deviation of the outcome noise

        Returns:
            Tuple of (treatment, outcome, covariates) data objects
        """
        X = self.rng.normal(size=(n_samples, n_covariates))
        propensity = 1 / (1 + np.exp(-selection_bias * X[:, 0]))
        D = self.rng.binomial(1, propensity)
        y = (
            treatment_effect * D
            + _nuisance(X)
            + self.rng.normal(0, noise_std, n_samples)
        )

        return (
            TreatmentData(values=pd.Series(D, name="D"), name="D", treatment_type="binary"),
            OutcomeData(values=pd.Series(y, name="y"), name="y"),
            _covariates(X),
        )

    def generate_iv(
        self,
        n_samples: int = 1000,
        n_covariates: int = 3,
        late: float = 1.0,
        complier_share: float = 0.6,
        one_sided: bool = False,
        noise_std: float = 1.0,
    ) -> tuple[TreatmentData, OutcomeData, CovariateData, InstrumentData]:
        """Binary instrument and treatment with unobserved confounding.

        Compliers take up treatment exactly when offered; always-takers (absent
        with ``one_sided``) always do. The effect is constant, so the LATE is
        ``late``.

        Returns:
            Tuple of (treatment, outcome, covariates, instrument) data objects
        """
        X = self.rng.normal(size=(n_samples, n_covariates))
        Z = self.rng.binomial(1, 1 / (1 + np.exp(-0.3 * X[:, 0])))

        u = self.rng.uniform(size=n_samples)
        complier = u < complier_share
        always_taker = (~complier) & (u < complier_share + (0 if one_sided else 0.2))
        D = np.where(complier, Z, always_taker.astype(int))

        # Unobserved confounder correlated with always-taker status
        confounder = always_taker.astype(float) + self.rng.normal(0, 0.5, n_samples)
        y = late * D + _nuisance(X) + confounder + self.rng.normal(0, noise_std, n_samples)

        return (
            TreatmentData(values=pd.Series(D, name="D"), name="D", treatment_type="binary"),
            OutcomeData(values=pd.Series(y, name="y"), name="y"),
            _covariates(X),
            InstrumentData(values=pd.Series(Z, name="Z"), name="Z", instrument_type="binary"),
        )

    def generate_continuous_iv(
        self,
        n_samples: int = 1000,
        n_covariates: int = 3,
        theta: float = 1.0,
        instrument_strength: float = 1.0,
    ) -> tuple[TreatmentData, OutcomeData, CovariateData, InstrumentData]:
        """Partially linear IV model with an endogenous continuous treatment.

        Returns:
            Tuple of (treatment, outcome, covariates, instrument) data objects
        """
        X = self.rng.normal(size=(n_samples, n_covariates))
        Z = 0.5 * X[:, 0] + self.rng.normal(size=n_samples)
        v = self.rng.normal(size=n_samples)
        D = instrument_strength * Z + 0.5 * _nuisance(X) + v
        y = theta * D + _nuisance(X) + 0.8 * v + self.rng.normal(size=n_samples)

        return (
            TreatmentData(values=pd.Series(D, name="D"), name="D", treatment_type="continuous"),
            OutcomeData(values=pd.Series(y, name="y"), name="y"),
            _covariates(X),
            InstrumentData(values=pd.Series(Z, name="Z"), name="Z"),
        )

    def generate_clustered_binary_treatment(
        self,
        n_clusters: int = 50,
        cluster_size: int = 10,
        n_covariates: int = 3,
        treatment_effect: float = 1.0,
        cluster_std: float = 1.0,
    ) -> tuple[TreatmentData, OutcomeData, CovariateData, np.ndarray]:
        """Binary treatment with cluster-level random effects.

        Returns:
            Tuple of (treatment, outcome, covariates, cluster ids)
        """
        n_samples = n_clusters * cluster_size
        clusters = np.repeat(np.arange(n_clusters), cluster_size)
        cluster_effect = self.rng.normal(0, cluster_std, n_clusters)[clusters]

        X = self.rng.normal(size=(n_samples, n_covariates))
        D = self.rng.binomial(1, 1 / (1 + np.exp(-0.5 * X[:, 0])))
        y = (
            treatment_effect * D
            + _nuisance(X)
            + cluster_effect
            + self.rng.normal(size=n_samples)
        )

        return (
            TreatmentData(values=pd.Series(D, name="D"), name="D", treatment_type="binary"),
            OutcomeData(values=pd.Series(y, name="y"), name="y"),
            _covariates(X),
            clusters,
        )
