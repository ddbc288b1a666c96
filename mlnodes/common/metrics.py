"""Metrics collection for the model node packages.

Provides a thin convenience wrapper around ``prometheus_client`` so the
factory, registry and nodes record model loads, cache usage and predictions
consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for tests)
- ``time_operation`` gives quick timing for call sites without a collector
"""

import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
import structlog

logger = structlog.get_logger("metrics")


class MetricsCollector:
    """Centralized metrics collection for model nodes.

    Parameters
    - service_name: Logical name used for scoping
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.model_loads = Counter(
            'ml_model_loads_total',
            'Total model archive loads',
            ['model_kind', 'status'],
            registry=self.registry
        )

        self.skipped_model_files = Counter(
            'ml_skipped_model_files_total',
            'Model files skipped during directory scans',
            ['reason'],
            registry=self.registry
        )

        self.bound_predictors = Gauge(
            'ml_bound_predictors',
            'Number of live bound predictors',
            registry=self.registry
        )

        self.predictions = Counter(
            'ml_predictions_total',
            'Total predictions run by model nodes',
            ['model_name', 'status'],
            registry=self.registry
        )

        self.prediction_duration = Histogram(
            'ml_prediction_duration_seconds',
            'Prediction duration including marshaling',
            ['model_name'],
            registry=self.registry
        )

        self.cache_hits = Counter(
            'ml_cache_hits_total',
            'Total cache hits',
            ['cache_type'],
            registry=self.registry
        )

        self.cache_misses = Counter(
            'ml_cache_misses_total',
            'Total cache misses',
            ['cache_type'],
            registry=self.registry
        )

    def record_model_load(self, model_kind: str, status: str) -> None:
        """Record the outcome of a model load (``success`` or ``error``)."""
        self.model_loads.labels(model_kind=model_kind, status=status).inc()

    def record_skipped_file(self, reason: str) -> None:
        """Record a model file skipped by the factory."""
        self.skipped_model_files.labels(reason=reason).inc()

    def record_prediction(self, model_name: str, duration: float, status: str = "success") -> None:
        """Record a prediction; duration is in seconds."""
        self.predictions.labels(model_name=model_name, status=status).inc()
        self.prediction_duration.labels(model_name=model_name).observe(duration)

    def set_bound_predictors(self, count: int) -> None:
        """Set the number of live bound predictors."""
        self.bound_predictors.set(count)

    def record_cache_hit(self, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses.labels(cache_type=cache_type).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "ml-model-nodes") -> MetricsCollector:
    """Get or create the process-wide metrics collector.

    Returns a singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector


@contextmanager
def time_operation(operation: str, **labels: Any) -> Iterator[None]:
    """Measure a block and emit a structured log line.

    Example
    >>> with time_operation("bind", model="Sentiment"):
    ...     ...
    """
    start_time = time.perf_counter()
    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.error(
            f"Operation {operation} failed",
            operation=operation,
            duration_ms=duration * 1000,
            error=str(e),
            **labels
        )
        raise
    duration = time.perf_counter() - start_time
    logger.debug(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=duration * 1000,
        **labels
    )
