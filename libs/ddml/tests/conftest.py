"""Shared test fixtures for the ddml library.

This module provides reusable data fixtures and learners for testing the
cross-fitting engine, the stacking schemes and the target-parameter
estimators.
"""

import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LinearRegression, LogisticRegression

from ddml.core.base import CovariateData, OutcomeData, TreatmentData
from ddml.data.synthetic import SyntheticDataGenerator
from ddml.ml.learners import SklearnLearner
from shared.config import reset_config


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Every test starts from the default configuration."""
    for var in ("DDML_SAMPLE_FOLDS", "DDML_CV_FOLDS", "DDML_ENSEMBLE_TYPE", "DDML_TRIM"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def random_state():
    """Provide a consistent random state for reproducible tests."""
    return 42


@pytest.fixture
def synthetic_data_generator(random_state):
    """Provide a configured synthetic data generator."""
    return SyntheticDataGenerator(random_state=random_state)


@pytest.fixture
def plm_data(synthetic_data_generator):
    """Continuous treatment with a true coefficient of 1.0."""
    treatment, outcome, covariates = synthetic_data_generator.generate_plm(
        n_samples=600, n_covariates=3, theta=1.0
    )
    return {
        "treatment": treatment,
        "outcome": outcome,
        "covariates": covariates,
        "theta": 1.0,
    }


@pytest.fixture
def binary_data(synthetic_data_generator):
    """Binary treatment with a constant effect of 2.0."""
    treatment, outcome, covariates = synthetic_data_generator.generate_binary_treatment(
        n_samples=800, n_covariates=3, treatment_effect=2.0
    )
    return {
        "treatment": treatment,
        "outcome": outcome,
        "covariates": covariates,
        "effect": 2.0,
    }


@pytest.fixture
def iv_data(synthetic_data_generator):
    """Binary instrument and treatment with a LATE of 1.0."""
    treatment, outcome, covariates, instrument = synthetic_data_generator.generate_iv(
        n_samples=1500, n_covariates=3, late=1.0
    )
    return {
        "treatment": treatment,
        "outcome": outcome,
        "covariates": covariates,
        "instrument": instrument,
        "late": 1.0,
    }


@pytest.fixture
def regression_arrays(random_state):
    """Plain arrays for engine-level tests: y = X b + noise."""
    rng = np.random.RandomState(random_state)
    X = rng.normal(size=(200, 3))
    y = X @ np.array([1.0, -0.5, 0.25]) + rng.normal(0, 0.5, 200)
    return X, y


@pytest.fixture
def linear_learner():
    return SklearnLearner(LinearRegression())


@pytest.fixture
def logistic_learner():
    return SklearnLearner(LogisticRegression(max_iter=1000), use_proba=True)


@pytest.fixture
def make_data():
    """Wrap raw arrays in the data models."""

    def _make(D, y, X, treatment_type="continuous"):
        X = np.asarray(X)
        return (
            TreatmentData(values=pd.Series(D), name="D", treatment_type=treatment_type),
            OutcomeData(values=pd.Series(y), name="y"),
            CovariateData(
                values=pd.DataFrame(X, columns=[f"X{j + 1}" for j in range(X.shape[1])])
            ),
        )

    return _make
