"""End-to-end stacking tests on simulated data.

Two identical learners make every ensemble scheme collapse to an even split,
which pins down the full cross-fit, weight and combination pipeline.
"""

import numpy as np
import pytest

from ddml import DDMLATE, DDMLPLM, CrossFitter, generate_folds, mdl_glm, ols
from ddml.data.synthetic import SyntheticDataGenerator
from ddml.ml.folds import folds_to_subsamples

pytestmark = pytest.mark.integration

N_OBS = 200
N_FOLDS = 3
ENSEMBLE_TYPES = ["ols", "nnls1", "average"]


@pytest.fixture
def stacking_data():
    rng = np.random.RandomState(2024)
    X = rng.normal(size=(N_OBS, 3))
    y = X @ np.array([1.0, 0.5, -0.75]) + rng.normal(0, 0.1, N_OBS)
    subsamples = folds_to_subsamples(generate_folds(N_OBS, N_FOLDS, random_state=0), N_FOLDS)
    return X, y, subsamples


class TestIdenticalLearners:
    """Identical learners must receive equal weights under every scheme."""

    @pytest.mark.parametrize("shortstack", [False, True])
    def test_weights_split_evenly(self, stacking_data, shortstack):
        X, y, subsamples = stacking_data
        fitter = CrossFitter(
            [ols(), ols()],
            ensemble_type=ENSEMBLE_TYPES,
            cv_folds=N_FOLDS,
            shortstack=shortstack,
            random_state=0,
        )
        result = fitter.crosspred(y, X, subsamples)

        assert result.learner_names == ["LinearRegression", "LinearRegression_2"]
        assert result.weights.shape == (2, 3, N_FOLDS)
        np.testing.assert_array_equal(result.weights[:, 2, :], np.full((2, N_FOLDS), 0.5))
        np.testing.assert_allclose(result.weights[:, 1, :], 0.5, atol=1e-5)
        # The ols weights split evenly; their sum is the calibration slope
        np.testing.assert_allclose(result.weights[0, 0, :], result.weights[1, 0, :])
        np.testing.assert_allclose(result.weights[:, 0, :], 0.5, atol=0.02)

        combined = result.oos_fitted
        np.testing.assert_allclose(combined[:, 1], combined[:, 2], atol=1e-4)
        np.testing.assert_allclose(combined[:, 0], combined[:, 2], rtol=0.05, atol=0.05)
        np.testing.assert_allclose(combined[:, 2], result.oos_fitted_bylearner[:, 0])

    def test_plm_estimates_agree_across_ensembles(self):
        generator = SyntheticDataGenerator(random_state=3)
        treatment, outcome, covariates = generator.generate_plm(n_samples=N_OBS)

        estimator = DDMLPLM(
            [ols(), ols()],
            ensemble_type=ENSEMBLE_TYPES,
            sample_folds=N_FOLDS,
            cv_folds=N_FOLDS,
            random_state=0,
        )
        estimator.fit(treatment, outcome, covariates)

        coef = estimator.coef_[1]
        assert coef.shape == (3,)
        assert coef[1] == pytest.approx(coef[2], abs=1e-4)
        assert coef[0] == pytest.approx(coef[2], abs=0.1)
        assert len(estimator.summary()) == 2 * 4 * 3


class TestEstimatorPipeline:
    """Full fit and inference runs through the public package surface."""

    def test_ate_with_mixed_ensembles(self):
        generator = SyntheticDataGenerator(random_state=5)
        treatment, outcome, covariates = generator.generate_binary_treatment(
            n_samples=1000, n_covariates=3, treatment_effect=1.0
        )

        estimator = DDMLATE(
            [ols(), ols()],
            learners_DX=mdl_glm(),
            ensemble_type=["nnls1", "average"],
            sample_folds=N_FOLDS,
            cv_folds=N_FOLDS,
            random_state=0,
        )
        estimator.fit(treatment, outcome, covariates)
        summary = estimator.summary()

        assert summary.shape == (1, 4, 2)
        ci = summary.confidence_interval(0.999)
        assert (ci["lower"] < 1.0).all()
        assert (ci["upper"] > 1.0).all()
        assert "nnls1" in str(summary)
