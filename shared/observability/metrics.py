"""Prometheus metrics for cross-fitting and estimation."""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from shared.config import DDMLConfig, get_config


class DDMLMetrics:
    """Metrics collection for DDML estimation."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        # Learner metrics
        self.learner_fit_duration = Histogram(
            "ddml_learner_fit_duration_seconds",
            "Duration of a single learner fit and predict on one fold",
            ["learner"],
            registry=self.registry,
        )

        self.crossfit_passes = Counter(
            "ddml_crossfit_passes_total",
            "Total number of nuisance cross-fitting passes",
            ["scheme"],
            registry=self.registry,
        )

        # Propensity metrics
        self.trimmed_scores = Counter(
            "ddml_trimmed_propensity_scores_total",
            "Total number of trimmed propensity scores",
            ["ensemble_type"],
            registry=self.registry,
        )

        # Error metrics
        self.errors = Counter(
            "ddml_errors_total",
            "Total errors",
            ["error_type", "component"],
            registry=self.registry,
        )

    def record_learner_fit(self, learner: str, duration: float) -> None:
        """Record one (fold, learner) task."""
        self.learner_fit_duration.labels(learner=learner).observe(duration)

    def record_crossfit(self, scheme: str) -> None:
        """Record a cross-fitting pass ('single', 'shortstack' or 'stacking')."""
        self.crossfit_passes.labels(scheme=scheme).inc()

    def record_trimming(self, ensemble_type: str, count: int) -> None:
        """Record trimmed propensity scores."""
        self.trimmed_scores.labels(ensemble_type=ensemble_type).inc(count)

    def record_error(self, error_type: str, component: str) -> None:
        """Record an error."""
        self.errors.labels(error_type=error_type, component=component).inc()


# Global metrics instance
_metrics: DDMLMetrics | None = None


def get_metrics() -> DDMLMetrics:
    """Get the global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = DDMLMetrics()
    return _metrics


def setup_metrics(config: DDMLConfig | None = None) -> None:
    """Set up metrics collection."""
    if config is None:
        config = get_config()

    if config.enable_metrics:
        # Serve the global registry, not the process default one
        start_http_server(config.metrics_port, registry=get_metrics().registry)
