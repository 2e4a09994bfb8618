"""Tests for learner adapters and learner specs."""

import numpy as np
import pytest
from pydantic import ValidationError
from sklearn.linear_model import LinearRegression, LogisticRegression

from ddml.ml.learners import (
    CallableLearner,
    LearnerAdapter,
    LearnerSpec,
    SklearnLearner,
    as_learner_specs,
    mdl_glm,
    mdl_glmnet,
    mdl_random_forest,
    ols,
)


def _lstsq_fit(X, y):
    X1 = np.column_stack([np.ones(len(X)), X])
    coef, *_ = np.linalg.lstsq(X1, y, rcond=None)
    return coef


def _lstsq_predict(coef, X):
    return np.column_stack([np.ones(len(X)), X]) @ coef


class TestAdapters:
    """Test cases for the learner adapters."""

    def setup_method(self):
        rng = np.random.RandomState(0)
        self.X = rng.normal(size=(120, 2))
        self.y = 1.0 + self.X @ np.array([2.0, -1.0])
        self.d = (self.X[:, 0] + rng.normal(size=120) > 0).astype(float)

    def test_sklearn_learner_clones(self):
        estimator = LinearRegression()
        learner = SklearnLearner(estimator)
        model = learner.fit(self.X, self.y)

        assert model is not estimator
        assert not hasattr(estimator, "coef_")
        np.testing.assert_allclose(learner.predict(model, self.X), self.y, atol=1e-8)

    def test_sklearn_learner_probabilities(self):
        learner = SklearnLearner(LogisticRegression(), use_proba=True)
        pred = learner.predict(learner.fit(self.X, self.d), self.X)

        assert pred.shape == (120,)
        assert np.all((pred > 0) & (pred < 1))

    def test_callable_learner(self):
        learner = CallableLearner(_lstsq_fit, _lstsq_predict)
        pred = learner.predict(learner.fit(self.X, self.y), self.X)

        np.testing.assert_allclose(pred, self.y, atol=1e-8)

    def test_protocol_conformance(self):
        assert isinstance(ols(), LearnerAdapter)
        assert isinstance(CallableLearner(_lstsq_fit, _lstsq_predict), LearnerAdapter)
        assert not isinstance(object(), LearnerAdapter)

    def test_factories(self):
        assert mdl_glm().use_proba
        assert mdl_glmnet(family="binomial").use_proba
        assert mdl_random_forest(classification=True, n_estimators=10).use_proba
        assert not mdl_glmnet(l1_ratio=0.5).use_proba

        with pytest.raises(ValueError, match="family"):
            mdl_glmnet(family="poisson")


class TestLearnerSpec:
    """Test cases for learner specs."""

    def test_wraps_sklearn_estimator(self):
        spec = LearnerSpec(learner=LinearRegression())
        assert isinstance(spec.learner, SklearnLearner)

    def test_rejects_non_learner(self):
        with pytest.raises(ValidationError):
            LearnerSpec(learner="not a learner")

    def test_assign_x_selects_columns(self):
        spec = LearnerSpec(learner=ols(), assign_X=[0, 2])
        X = np.arange(12.0).reshape(4, 3)

        np.testing.assert_array_equal(spec.select(X), X[:, [0, 2]])

    def test_empty_assign_x(self):
        with pytest.raises(ValidationError):
            LearnerSpec(learner=ols(), assign_X=[])

    def test_invalid_cv_folds(self):
        with pytest.raises(ValidationError):
            LearnerSpec(learner=ols(), cv_folds=1)


class TestAsLearnerSpecs:
    """Test cases for learner normalisation."""

    def test_single_learner(self):
        specs = as_learner_specs(LinearRegression())
        assert [s.name for s in specs] == ["LinearRegression"]

    def test_duplicate_names_are_suffixed(self):
        specs = as_learner_specs([LinearRegression(), LinearRegression(), ols()])
        assert [s.name for s in specs] == [
            "LinearRegression",
            "LinearRegression_2",
            "LinearRegression_3",
        ]

    def test_dict_and_spec_inputs(self):
        spec = LearnerSpec(learner=ols(), name="linear")
        specs = as_learner_specs([spec, {"learner": mdl_glm(), "name": "logit"}])

        assert [s.name for s in specs] == ["linear", "logit"]
        # Normalisation never mutates the caller's spec
        assert specs[0] is not spec

    def test_callable_default_name(self):
        specs = as_learner_specs([CallableLearner(_lstsq_fit, _lstsq_predict)])
        assert specs[0].name == "learner_1"

    def test_empty_list(self):
        with pytest.raises(ValueError, match="At least one learner"):
            as_learner_specs([])
