"""Cross-fitting and stacking infrastructure for nuisance function estimation.

Every nuisance prediction is out-of-sample: the model that predicts an
observation was trained on the other folds only. Several learners can be
combined through stacking, either with a nested inner cross-validation per
outer fold (standard stacking) or by fitting the ensemble weights once on the
outer out-of-sample predictions (short-stacking).

Work is split into independent (fold, learner) tasks executed through joblib;
each task returns the predictions for its held-out rows, and the caller writes
them into disjoint cells of a pre-sized prediction matrix.
"""
# ruff: noqa: N803, N806

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import NDArray
from sklearn.utils import check_random_state

from shared.observability.metrics import get_metrics

from ..core.base import EstimationError, LearnerError
from .ensemble import EnsembleCombiner
from .folds import folds_to_subsamples, generate_cluster_folds, generate_folds
from .learners import LearnerSpec, as_learner_specs

__all__ = [
    "CrossFitResult",
    "CrossFitter",
    "CrossValResult",
    "ParallelCrossFittingConfig",
]

logger = logging.getLogger(__name__)


@dataclass
class ParallelCrossFittingConfig:
    """Configuration for parallel (fold, learner) task execution."""

    n_jobs: int = 1
    parallel_backend: str = "threading"
    verbose: int = 0


@dataclass
class CrossValResult:
    """Out-of-sample predictions of every learner.

    Attributes:
        oos_fitted: Prediction matrix (n, L)
        mspe: Out-of-sample mean squared prediction error per learner
        learner_names: Column labels of ``oos_fitted``
        subsamples: Held-out index arrays used for the predictions
    """

    oos_fitted: NDArray[np.float64]
    mspe: NDArray[np.float64]
    learner_names: list[str]
    subsamples: list[NDArray[np.intp]]


@dataclass
class CrossFitResult:
    """Cross-fitted nuisance predictions for every ensemble type.

    Attributes:
        oos_fitted: Combined predictions (n, C), one column per ensemble type
        weights: Stacking weights (L, C, K) used on each fold
        oos_fitted_bylearner: Out-of-sample predictions of each learner (n, L)
        ensemble_types: Column labels of ``oos_fitted``
        learner_names: Row labels of ``weights``
        mspe: Out-of-sample mean squared prediction error per learner
    """

    oos_fitted: NDArray[np.float64]
    weights: NDArray[np.float64]
    oos_fitted_bylearner: NDArray[np.float64]
    ensemble_types: list[str]
    learner_names: list[str]
    mspe: NDArray[np.float64] = field(default_factory=lambda: np.empty(0))

    def weights_frame(self, fold: int | None = None) -> pd.DataFrame:
        """Weights as a learner x ensemble type table.

        Args:
            fold: 1-based fold number; the across-fold mean when None
        """
        w = self.weights.mean(axis=2) if fold is None else self.weights[:, :, fold - 1]
        return pd.DataFrame(w, index=self.learner_names, columns=self.ensemble_types)


def _fit_predict(
    spec: LearnerSpec,
    X: NDArray[Any],
    y: NDArray[Any],
    train_idx: NDArray[np.intp],
    test_idx: NDArray[np.intp],
    fold: int,
) -> tuple[NDArray[np.float64], float]:
    """Fit one learner on the training rows and predict the held-out rows.

    Returns:
        Tuple of (predictions for ``test_idx``, elapsed seconds)
    """
    start = time.perf_counter()
    try:
        model = spec.learner.fit(spec.select(X[train_idx]), y[train_idx])
        pred = spec.learner.predict(model, spec.select(X[test_idx]))
    except Exception as e:
        raise LearnerError(
            f"Learner '{spec.name}' failed on fold {fold + 1}: {str(e)}"
        ) from e

    pred = np.asarray(pred, dtype=float).ravel()
    if pred.shape[0] != len(test_idx):
        raise EstimationError(
            f"Learner '{spec.name}' returned {pred.shape[0]} predictions "
            f"for {len(test_idx)} rows on fold {fold + 1}"
        )
    return pred, time.perf_counter() - start


class CrossFitter:
    """Cross-fit one nuisance function with one or several learners.

    Args:
        learners: Learner, spec, scikit-learn estimator, or a list of these
        ensemble_type: Ensemble scheme(s) combining multiple learners
        custom_ensemble_weights: Fixed (L, c) weights adding c ensemble types
        cv_folds: Inner folds used to fit stacking weights (standard stacking)
        shortstack: Fit the weights on the outer out-of-sample predictions
        parallel_config: joblib settings
        random_state: Seed or RandomState for the inner fold assignment
    """

    def __init__(
        self,
        learners: Any,
        ensemble_type: str | list[str] = "nnls",
        custom_ensemble_weights: NDArray[Any] | pd.DataFrame | None = None,
        cv_folds: int = 10,
        shortstack: bool = False,
        parallel_config: ParallelCrossFittingConfig | None = None,
        random_state: int | np.random.RandomState | None = None,
    ) -> None:
        self.learners = as_learner_specs(learners)
        self.combiner = EnsembleCombiner(ensemble_type, custom_ensemble_weights)
        self.cv_folds = cv_folds
        self.shortstack = shortstack
        self.parallel_config = parallel_config or ParallelCrossFittingConfig()
        self.random_state = random_state
        self._rng = check_random_state(random_state)

    @property
    def learner_names(self) -> list[str]:
        return [spec.name or "" for spec in self.learners]

    @property
    def ensemble_types(self) -> list[str]:
        return list(self.combiner.labels)

    def crossval(
        self,
        y: NDArray[Any],
        X: NDArray[Any],
        subsamples: list[NDArray[np.intp]],
        train_mask: NDArray[np.bool_] | None = None,
        learner_idx: list[int] | None = None,
    ) -> CrossValResult:
        """Out-of-sample predictions of every learner.

        For each fold, each learner is fit on the rows outside the fold
        (restricted to ``train_mask`` when given) and predicts every row inside
        the fold.

        Args:
            y: Target (n,)
            X: Features (n, p)
            subsamples: Held-out index arrays
            train_mask: Rows eligible for training; MSPE is computed on them too
            learner_idx: Positions of the learners to run (all when None)

        Returns:
            CrossValResult with an (n, L) prediction matrix

        Raises:
            LearnerError: If any learner fails on any fold
            EstimationError: If a fold has no training rows
        """
        y = np.asarray(y, dtype=float).ravel()
        X = np.asarray(X, dtype=float)
        n_obs = len(y)
        learner_idx = list(range(len(self.learners))) if learner_idx is None else learner_idx

        tasks = []
        for k, test_idx in enumerate(subsamples):
            train_idx = self._training_rows(n_obs, test_idx, train_mask)
            if len(train_idx) == 0:
                raise EstimationError(f"Fold {k + 1} has no training observations")
            for col, l_idx in enumerate(learner_idx):
                tasks.append((k, col, l_idx, train_idx, test_idx))

        results = self._run_tasks(tasks, y, X)

        oos_fitted = np.full((n_obs, len(learner_idx)), np.nan)
        for (_, col, _, _, test_idx), pred in zip(tasks, results):
            oos_fitted[test_idx, col] = pred

        covered = np.concatenate(subsamples)
        if np.isnan(oos_fitted[covered]).any():
            raise EstimationError("Some samples missing out-of-sample predictions")

        rows = covered if train_mask is None else covered[train_mask[covered]]
        mspe = np.mean((y[rows, None] - oos_fitted[rows]) ** 2, axis=0)

        return CrossValResult(
            oos_fitted=oos_fitted,
            mspe=mspe,
            learner_names=[self.learners[i].name or "" for i in learner_idx],
            subsamples=list(subsamples),
        )

    def crosspred(
        self,
        y: NDArray[Any],
        X: NDArray[Any],
        subsamples: list[NDArray[np.intp]],
        train_mask: NDArray[np.bool_] | None = None,
        clusters: NDArray[Any] | None = None,
    ) -> CrossFitResult:
        """Cross-fitted predictions for every ensemble type.

        Args:
            y: Target (n,)
            X: Features (n, p)
            subsamples: Outer held-out index arrays
            train_mask: Rows eligible for training and weight fitting
                (e.g. treated units for E[y|D=1,X]); predictions are still
                produced for every row
            clusters: Cluster ids, keeping inner folds cluster-aware

        Returns:
            CrossFitResult with combined predictions and per-fold weights
        """
        y = np.asarray(y, dtype=float).ravel()
        X = np.asarray(X, dtype=float)
        if train_mask is not None:
            train_mask = np.asarray(train_mask, dtype=bool)

        n_learners = len(self.learners)
        if n_learners == 1:
            scheme = "single"
            result = self._crosspred_single(y, X, subsamples, train_mask)
        elif self.shortstack:
            scheme = "shortstack"
            result = self._crosspred_shortstack(y, X, subsamples, train_mask)
        else:
            scheme = "stacking"
            result = self._crosspred_stacking(y, X, subsamples, train_mask, clusters)

        get_metrics().record_crossfit(scheme)
        logger.debug(
            "Cross-fitted %d learner(s) over %d folds (%s); MSPE: %s",
            n_learners,
            len(subsamples),
            scheme,
            ", ".join(
                f"{name}={m:.4g}" for name, m in zip(result.learner_names, result.mspe)
            ),
        )
        return result

    def _crosspred_single(
        self,
        y: NDArray[np.float64],
        X: NDArray[np.float64],
        subsamples: list[NDArray[np.intp]],
        train_mask: NDArray[np.bool_] | None,
    ) -> CrossFitResult:
        cv = self.crossval(y, X, subsamples, train_mask=train_mask)
        fold_weights = self.combiner.fit_weights(cv.oos_fitted, y)
        return self._result(cv, fold_weights, len(subsamples))

    def _crosspred_shortstack(
        self,
        y: NDArray[np.float64],
        X: NDArray[np.float64],
        subsamples: list[NDArray[np.intp]],
        train_mask: NDArray[np.bool_] | None,
    ) -> CrossFitResult:
        cv = self.crossval(y, X, subsamples, train_mask=train_mask)
        rows = slice(None) if train_mask is None else train_mask
        fold_weights = self.combiner.fit_weights(cv.oos_fitted[rows], y[rows])
        return self._result(cv, fold_weights, len(subsamples))

    def _result(
        self,
        cv: CrossValResult,
        fold_weights: NDArray[np.float64],
        n_folds: int,
    ) -> CrossFitResult:
        weights = np.repeat(fold_weights[:, :, None], n_folds, axis=2)
        return CrossFitResult(
            oos_fitted=self.combiner.combine(cv.oos_fitted, fold_weights),
            weights=weights,
            oos_fitted_bylearner=cv.oos_fitted,
            ensemble_types=self.ensemble_types,
            learner_names=cv.learner_names,
            mspe=cv.mspe,
        )

    def _crosspred_stacking(
        self,
        y: NDArray[np.float64],
        X: NDArray[np.float64],
        subsamples: list[NDArray[np.intp]],
        train_mask: NDArray[np.bool_] | None,
        clusters: NDArray[Any] | None,
    ) -> CrossFitResult:
        n_obs = len(y)
        n_learners = len(self.learners)
        n_folds = len(subsamples)

        weights = np.zeros((n_learners, self.combiner.n_types, n_folds))
        tasks = []
        for k, test_idx in enumerate(subsamples):
            train_idx = self._training_rows(n_obs, test_idx, train_mask)
            inner_oos = self._inner_oos(
                y[train_idx],
                X[train_idx],
                None if clusters is None else np.asarray(clusters)[train_idx],
                fold=k,
            )
            weights[:, :, k] = self.combiner.fit_weights(inner_oos, y[train_idx])
            logger.debug("Fold %d stacking weights:\n%s", k + 1, weights[:, :, k])
            for l_idx in range(n_learners):
                tasks.append((k, l_idx, l_idx, train_idx, test_idx))

        results = self._run_tasks(tasks, y, X)

        oos_bylearner = np.full((n_obs, n_learners), np.nan)
        for (_, col, _, _, test_idx), pred in zip(tasks, results):
            oos_bylearner[test_idx, col] = pred
        if np.isnan(oos_bylearner).any():
            raise EstimationError("Some samples missing out-of-sample predictions")

        oos_fitted = np.zeros((n_obs, self.combiner.n_types))
        for k, test_idx in enumerate(subsamples):
            oos_fitted[test_idx] = self.combiner.combine(
                oos_bylearner[test_idx], weights[:, :, k]
            )

        rows = slice(None) if train_mask is None else train_mask
        mspe = np.mean((y[rows, None] - oos_bylearner[rows]) ** 2, axis=0)

        return CrossFitResult(
            oos_fitted=oos_fitted,
            weights=weights,
            oos_fitted_bylearner=oos_bylearner,
            ensemble_types=self.ensemble_types,
            learner_names=self.learner_names,
            mspe=mspe,
        )

    def _inner_oos(
        self,
        y: NDArray[np.float64],
        X: NDArray[np.float64],
        clusters: NDArray[Any] | None,
        fold: int,
    ) -> NDArray[np.float64]:
        """Inner out-of-sample predictions on one outer training sample.

        Learners sharing an inner fold count share the inner partition.
        """
        n_obs = len(y)
        inner_oos = np.full((n_obs, len(self.learners)), np.nan)

        groups: dict[int, list[int]] = {}
        for l_idx, spec in enumerate(self.learners):
            groups.setdefault(spec.cv_folds or self.cv_folds, []).append(l_idx)

        for n_inner, learner_idx in groups.items():
            n_units = n_obs if clusters is None else len(np.unique(clusters))
            if n_units < n_inner:
                raise EstimationError(
                    f"Training sample of fold {fold + 1} has {n_units} units, "
                    f"fewer than cv_folds={n_inner}"
                )
            if clusters is None:
                inner_folds = generate_folds(n_obs, n_inner, random_state=self._rng)
            else:
                inner_folds = generate_cluster_folds(
                    clusters, n_inner, random_state=self._rng
                )
            cv = self.crossval(
                y,
                X,
                folds_to_subsamples(inner_folds, n_inner),
                learner_idx=learner_idx,
            )
            inner_oos[:, learner_idx] = cv.oos_fitted
        return inner_oos

    @staticmethod
    def _training_rows(
        n_obs: int,
        test_idx: NDArray[np.intp],
        train_mask: NDArray[np.bool_] | None,
    ) -> NDArray[np.intp]:
        train = np.ones(n_obs, dtype=bool)
        train[test_idx] = False
        if train_mask is not None:
            train &= train_mask
        return np.flatnonzero(train)

    def _run_tasks(
        self,
        tasks: list[tuple[int, int, int, NDArray[np.intp], NDArray[np.intp]]],
        y: NDArray[np.float64],
        X: NDArray[np.float64],
    ) -> list[NDArray[np.float64]]:
        """Execute (fold, learner) tasks; results come back in task order."""
        parallel = Parallel(
            n_jobs=self.parallel_config.n_jobs,
            backend=self.parallel_config.parallel_backend,
            verbose=self.parallel_config.verbose,
        )
        metrics = get_metrics()
        try:
            outputs = parallel(
                delayed(_fit_predict)(
                    self.learners[l_idx], X, y, train_idx, test_idx, k
                )
                for k, _, l_idx, train_idx, test_idx in tasks
            )
        except EstimationError as e:
            metrics.record_error(type(e).__name__, "cross_fitting")
            raise

        predictions = []
        for (_, _, l_idx, _, _), (pred, duration) in zip(tasks, outputs):
            metrics.record_learner_fit(self.learners[l_idx].name or "", duration)
            predictions.append(pred)
        return predictions
