"""Logging and metrics for ddml."""

from .logging import setup_logging
from .metrics import DDMLMetrics, get_metrics, setup_metrics

__all__ = [
    "DDMLMetrics",
    "get_metrics",
    "setup_logging",
    "setup_metrics",
]
