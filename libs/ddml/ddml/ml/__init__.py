"""Machine learning infrastructure: folds, learners, stacking and cross-fitting."""

from .cross_fitting import (
    CrossFitResult,
    CrossFitter,
    CrossValResult,
    ParallelCrossFittingConfig,
)
from .ensemble import ENSEMBLE_TYPES, EnsembleCombiner
from .folds import (
    folds_to_subsamples,
    generate_cluster_folds,
    generate_folds,
    generate_stratified_folds,
    subsamples_to_folds,
)
from .learners import (
    CallableLearner,
    LearnerAdapter,
    LearnerSpec,
    SklearnLearner,
    mdl_glm,
    mdl_glmnet,
    mdl_gradient_boosting,
    mdl_random_forest,
    ols,
)

__all__ = [
    "CallableLearner",
    "CrossFitResult",
    "CrossFitter",
    "CrossValResult",
    "ENSEMBLE_TYPES",
    "EnsembleCombiner",
    "LearnerAdapter",
    "LearnerSpec",
    "ParallelCrossFittingConfig",
    "SklearnLearner",
    "folds_to_subsamples",
    "generate_cluster_folds",
    "generate_folds",
    "generate_stratified_folds",
    "mdl_glm",
    "mdl_glmnet",
    "mdl_gradient_boosting",
    "mdl_random_forest",
    "ols",
    "subsamples_to_folds",
]
