"""ddml: double/debiased machine learning with cross-fitting and stacking.

Nuisance functions are cross-fitted with one or several learners, combined
through (short-)stacking, and plugged into Neyman-orthogonal estimators of
partially linear, IV and treatment effect parameters.
"""

__version__ = "0.1.0"

from .core import *
from .estimators import (
    DDMLATE,
    DDMLATT,
    DDMLLATE,
    DDMLPLIV,
    DDMLPLM,
    PropensityTrimmingWarning,
    trim_propensity_scores,
)
from .inference import InferenceResult
from .ml import (
    CrossFitResult,
    CrossFitter,
    EnsembleCombiner,
    ParallelCrossFittingConfig,
    generate_cluster_folds,
    generate_folds,
    mdl_glm,
    mdl_glmnet,
    mdl_gradient_boosting,
    mdl_random_forest,
    ols,
)

__all__ = [
    "__version__",
    "CrossFitResult",
    "CrossFitter",
    "DDMLATE",
    "DDMLATT",
    "DDMLLATE",
    "DDMLPLIV",
    "DDMLPLM",
    "EnsembleCombiner",
    "InferenceResult",
    "ParallelCrossFittingConfig",
    "PropensityTrimmingWarning",
    "generate_cluster_folds",
    "generate_folds",
    "mdl_glm",
    "mdl_glmnet",
    "mdl_gradient_boosting",
    "mdl_random_forest",
    "ols",
    "trim_propensity_scores",
]
