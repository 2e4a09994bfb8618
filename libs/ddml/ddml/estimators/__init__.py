"""DDML target-parameter estimators."""

from .ate import DDMLATE, DDMLATT
from .late import DDMLLATE
from .pliv import DDMLPLIV
from .plm import DDMLPLM
from .propensity import PropensityTrimmingWarning, trim_propensity_scores

__all__ = [
    "DDMLATE",
    "DDMLATT",
    "DDMLLATE",
    "DDMLPLIV",
    "DDMLPLM",
    "PropensityTrimmingWarning",
    "trim_propensity_scores",
]
