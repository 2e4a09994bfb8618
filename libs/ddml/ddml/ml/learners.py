"""Learner adapters for nuisance function estimation.

A learner is anything with ``fit(X, y, sample_weight=None) -> model`` and
``predict(model, X) -> predictions``. The model returned by ``fit`` is opaque
to the cross-fitting engine and only ever handed back to ``predict``.
"""
# ruff: noqa: N803

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, Field, field_validator
from sklearn.base import BaseEstimator, clone
from sklearn.ensemble import (
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from sklearn.linear_model import (
    ElasticNetCV,
    LassoCV,
    LinearRegression,
    LogisticRegression,
    LogisticRegressionCV,
)

__all__ = [
    "CallableLearner",
    "LearnerAdapter",
    "LearnerSpec",
    "SklearnLearner",
    "as_learner_specs",
    "mdl_glm",
    "mdl_glmnet",
    "mdl_gradient_boosting",
    "mdl_random_forest",
    "ols",
]


@runtime_checkable
class LearnerAdapter(Protocol):
    """Protocol for learners plugged into the cross-fitter."""

    def fit(
        self,
        X: NDArray[Any],
        y: NDArray[Any],
        sample_weight: NDArray[Any] | None = None,
    ) -> Any:
        """Fit on training rows and return an opaque model."""
        ...

    def predict(self, model: Any, X: NDArray[Any]) -> NDArray[Any]:
        """Predict one value per row of ``X`` with a model returned by ``fit``."""
        ...


class SklearnLearner:
    """Adapter around a scikit-learn estimator.

    The estimator is cloned on every ``fit`` so that folds never share state.

    Args:
        estimator: Unfitted scikit-learn estimator
        use_proba: Return ``predict_proba[:, 1]`` instead of ``predict``
            (propensity scores from classifiers)
    """

    def __init__(self, estimator: BaseEstimator, use_proba: bool = False) -> None:
        self.estimator = estimator
        self.use_proba = use_proba

    def fit(
        self,
        X: NDArray[Any],
        y: NDArray[Any],
        sample_weight: NDArray[Any] | None = None,
    ) -> BaseEstimator:
        model = clone(self.estimator)
        if sample_weight is None:
            model.fit(X, y)
        else:
            model.fit(X, y, sample_weight=sample_weight)
        return model

    def predict(self, model: BaseEstimator, X: NDArray[Any]) -> NDArray[Any]:
        if self.use_proba:
            return model.predict_proba(X)[:, 1]
        return np.asarray(model.predict(X), dtype=float).ravel()

    def __repr__(self) -> str:
        return f"SklearnLearner({self.estimator!r}, use_proba={self.use_proba})"


class CallableLearner:
    """Adapter for plain ``fit_fn(X, y, **args)`` / ``predict_fn(model, X)`` pairs."""

    def __init__(
        self,
        fit_fn: Callable[..., Any],
        predict_fn: Callable[[Any, NDArray[Any]], NDArray[Any]],
        **args: Any,
    ) -> None:
        self.fit_fn = fit_fn
        self.predict_fn = predict_fn
        self.args = args

    def fit(
        self,
        X: NDArray[Any],
        y: NDArray[Any],
        sample_weight: NDArray[Any] | None = None,
    ) -> Any:
        if sample_weight is None:
            return self.fit_fn(X, y, **self.args)
        return self.fit_fn(X, y, sample_weight=sample_weight, **self.args)

    def predict(self, model: Any, X: NDArray[Any]) -> NDArray[Any]:
        return np.asarray(self.predict_fn(model, X), dtype=float).ravel()

    def __repr__(self) -> str:
        return f"CallableLearner({getattr(self.fit_fn, '__name__', self.fit_fn)!r})"


class LearnerSpec(BaseModel):
    """A learner together with how it is applied to the data.

    Attributes:
        learner: Object conforming to :class:`LearnerAdapter`
        name: Display name used in weights, MSPE and logs
        assign_X: Column indices of X passed to this learner (all when None)
        cv_folds: Inner fold count for nested stacking (estimator default when None)
    """

    learner: Any = Field(..., description="Learner adapter")
    name: str | None = Field(default=None, description="Display name")
    assign_X: list[int] | None = Field(
        default=None, description="Subset of feature columns used by this learner"
    )
    cv_folds: int | None = Field(
        default=None, description="Inner fold count for the stacking layer"
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("learner")
    @classmethod
    def validate_learner(cls, v: Any) -> Any:
        """Wrap scikit-learn estimators and check protocol conformance."""
        if isinstance(v, BaseEstimator):
            v = SklearnLearner(v)
        if not isinstance(v, LearnerAdapter):
            raise ValueError(
                "learner must provide fit(X, y, sample_weight=None) and predict(model, X)"
            )
        return v

    @field_validator("assign_X")
    @classmethod
    def validate_assign_x(cls, v: list[int] | None) -> list[int] | None:
        """Validate the column subset is non-empty."""
        if v is not None and len(v) == 0:
            raise ValueError("assign_X cannot be empty")
        return v

    @field_validator("cv_folds")
    @classmethod
    def validate_cv_folds(cls, v: int | None) -> int | None:
        """Validate the inner fold count."""
        if v is not None and v < 2:
            raise ValueError("cv_folds must be at least 2")
        return v

    def select(self, X: NDArray[Any]) -> NDArray[Any]:
        """Columns of ``X`` this learner is trained on."""
        if self.assign_X is None:
            return X
        return X[:, self.assign_X]


def as_learner_specs(learners: Any) -> list[LearnerSpec]:
    """Normalise learners into a non-empty list of uniquely named specs.

    Accepts a single adapter, scikit-learn estimator, :class:`LearnerSpec` or
    ``dict`` of spec fields, or a sequence of any of these.

    Raises:
        ValueError: If no learner is given
    """
    if isinstance(learners, Sequence) and not isinstance(learners, (str, bytes)):
        items = list(learners)
    else:
        items = [learners]
    if not items:
        raise ValueError("At least one learner is required")

    specs: list[LearnerSpec] = []
    for item in items:
        if isinstance(item, LearnerSpec):
            spec = item.model_copy()
        elif isinstance(item, dict):
            spec = LearnerSpec(**item)
        else:
            spec = LearnerSpec(learner=item)
        specs.append(spec)

    seen: dict[str, int] = {}
    for i, spec in enumerate(specs):
        base = spec.name or _default_name(spec.learner, i)
        count = seen.get(base, 0)
        seen[base] = count + 1
        spec.name = base if count == 0 else f"{base}_{count + 1}"
    return specs


def _default_name(learner: Any, position: int) -> str:
    if isinstance(learner, SklearnLearner):
        return type(learner.estimator).__name__
    name = getattr(learner, "name", None)
    if isinstance(name, str) and name:
        return name
    return f"learner_{position + 1}"


def ols(fit_intercept: bool = True) -> SklearnLearner:
    """Ordinary least squares."""
    return SklearnLearner(LinearRegression(fit_intercept=fit_intercept))


def mdl_glm(**kwargs: Any) -> SklearnLearner:
    """Logistic regression returning predicted probabilities."""
    kwargs.setdefault("max_iter", 1000)
    return SklearnLearner(LogisticRegression(**kwargs), use_proba=True)


def mdl_glmnet(
    l1_ratio: float = 1.0,
    family: str = "gaussian",
    cv: int = 5,
    **kwargs: Any,
) -> SklearnLearner:
    """Cross-validated lasso / elastic net.

    Args:
        l1_ratio: Elastic net mixing (1.0 is the lasso)
        family: 'gaussian' for regression, 'binomial' for probabilities
        cv: Folds used by the penalty search
        **kwargs: Passed to the scikit-learn estimator
    """
    if family == "binomial":
        estimator = LogisticRegressionCV(
            cv=cv,
            penalty="elasticnet",
            solver="saga",
            l1_ratios=[l1_ratio],
            max_iter=kwargs.pop("max_iter", 5000),
            **kwargs,
        )
        return SklearnLearner(estimator, use_proba=True)
    if family != "gaussian":
        raise ValueError(f"family must be 'gaussian' or 'binomial', got {family!r}")
    if l1_ratio == 1.0:
        return SklearnLearner(LassoCV(cv=cv, **kwargs))
    return SklearnLearner(ElasticNetCV(l1_ratio=l1_ratio, cv=cv, **kwargs))


def mdl_random_forest(classification: bool = False, **kwargs: Any) -> SklearnLearner:
    """Random forest regression, or classification probabilities."""
    kwargs.setdefault("n_estimators", 200)
    if classification:
        return SklearnLearner(RandomForestClassifier(**kwargs), use_proba=True)
    return SklearnLearner(RandomForestRegressor(**kwargs))


def mdl_gradient_boosting(
    classification: bool = False, **kwargs: Any
) -> SklearnLearner:
    """Gradient boosted trees, regression or classification probabilities."""
    if classification:
        return SklearnLearner(GradientBoostingClassifier(**kwargs), use_proba=True)
    return SklearnLearner(GradientBoostingRegressor(**kwargs))
