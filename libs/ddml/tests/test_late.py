"""Tests for the LATE estimator."""

import numpy as np
import pytest

from ddml.core.base import DataValidationError, DDMLError, InstrumentData
from ddml.estimators.late import DDMLLATE
from ddml.ml.learners import mdl_glm, ols


class TestDDMLLATE:
    """Test cases for DDMLLATE."""

    def test_recovers_effect(self, iv_data):
        estimator = DDMLLATE(
            ols(),
            learners_DXZ=mdl_glm(),
            learners_ZX=mdl_glm(),
            sample_folds=4,
            random_state=0,
        )
        estimator.fit(
            iv_data["treatment"],
            iv_data["outcome"],
            iv_data["covariates"],
            iv_data["instrument"],
        )

        assert set(estimator.nuisance_) == {"y_X_Z1", "y_X_Z0", "D_X_Z1", "D_X_Z0", "Z_X"}
        assert estimator.late_[0] == pytest.approx(iv_data["late"], abs=0.4)

        summary = estimator.summary()
        assert summary.parameter == "LATE"
        assert summary.get("LATE") == pytest.approx(estimator.late_[0])
        score = estimator.psi_a_ * estimator.late_ + estimator.psi_b_
        np.testing.assert_allclose(score.mean(axis=0), 0.0, atol=1e-10)

    def test_folds_stratified_by_instrument(self, iv_data):
        estimator = DDMLLATE(ols(), learners_DXZ=mdl_glm(), learners_ZX=mdl_glm(), sample_folds=5)
        estimator.fit(
            iv_data["treatment"],
            iv_data["outcome"],
            iv_data["covariates"],
            iv_data["instrument"],
        )

        z = np.asarray(iv_data["instrument"].values)
        for level in (0, 1):
            counts = np.bincount(estimator.folds_[z == level], minlength=6)[1:]
            assert counts.max() - counts.min() <= 1

    def test_one_sided_noncompliance(self, synthetic_data_generator):
        treatment, outcome, covariates, instrument = synthetic_data_generator.generate_iv(
            n_samples=1500, one_sided=True
        )
        estimator = DDMLLATE(
            ols(),
            learners_DXZ=mdl_glm(),
            learners_ZX=mdl_glm(),
            ensemble_type=["nnls", "average"],
            sample_folds=4,
            random_state=0,
        )
        estimator.fit(treatment, outcome, covariates, instrument)

        # Nobody is treated without the offer, so no learner is fit for E[D|Z=0,X]
        np.testing.assert_array_equal(estimator.nuisance_["D_X_Z0"], np.zeros((1500, 2)))
        assert "D_X_Z0" not in estimator.weights_
        assert "D_X_Z1" in estimator.weights_
        assert estimator.late_.shape == (2,)
        assert estimator.summary().shape == (1, 4, 2)

    def test_requires_instrument(self, iv_data):
        with pytest.raises(DataValidationError, match="requires instrument"):
            DDMLLATE(ols(), sample_folds=3).fit(
                iv_data["treatment"], iv_data["outcome"], iv_data["covariates"]
            )

    def test_rejects_continuous_instrument(self, iv_data):
        n = len(iv_data["outcome"].values)
        instrument = InstrumentData(values=np.random.RandomState(0).normal(size=n))
        with pytest.raises(DataValidationError, match="Instrument must be binary"):
            DDMLLATE(ols(), sample_folds=3).fit(
                iv_data["treatment"], iv_data["outcome"], iv_data["covariates"], instrument
            )

    def test_rejects_non_binary_values_declared_binary(self, iv_data):
        n = len(iv_data["outcome"].values)
        instrument = InstrumentData(
            values=np.random.RandomState(0).normal(size=n), instrument_type="binary"
        )
        with pytest.raises(DataValidationError, match="binary with values 0 and 1"):
            DDMLLATE(ols(), sample_folds=3).fit(
                iv_data["treatment"], iv_data["outcome"], iv_data["covariates"], instrument
            )

    def test_rejects_mismatched_custom_weight_labels(self, iv_data):
        estimator = DDMLLATE(
            [ols(), ols()],
            learners_DXZ=[mdl_glm(), mdl_glm()],
            learners_ZX=[mdl_glm(), mdl_glm()],
            ensemble_type="average",
            custom_ensemble_weights_ZX=np.array([[1.0], [0.0]]),
            sample_folds=3,
        )
        with pytest.raises(DataValidationError, match="custom_ensemble_weights_ZX"):
            estimator.fit(
                iv_data["treatment"],
                iv_data["outcome"],
                iv_data["covariates"],
                iv_data["instrument"],
            )

    def test_summary_rejects_covariance_options(self, iv_data):
        estimator = DDMLLATE(
            ols(), learners_DXZ=mdl_glm(), learners_ZX=mdl_glm(), sample_folds=3
        )
        estimator.fit(
            iv_data["treatment"],
            iv_data["outcome"],
            iv_data["covariates"],
            iv_data["instrument"],
        )
        with pytest.raises(DDMLError, match="Unsupported summary option"):
            estimator.summary(cov_type="HC3")
