"""Tracing configuration for the model node packages.

Wraps OpenTelemetry setup with a console exporter and provides small
conveniences for the spans used around model loading, binding and
prediction. When tracing is not configured the global no-op provider is
used, so spans cost next to nothing.
"""

import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
import structlog

from mlnodes import __version__

logger = structlog.get_logger("tracing")


def configure_tracing(
    service_name: str,
    exporter: str = "console",
) -> Optional[trace.Tracer]:
    """Configure tracing for a process.

    Parameters
    - service_name: Logical service identifier used in trace resources
    - exporter: ``console`` to print finished spans, ``none`` to keep the
      provider without exporting

    Returns
    - A tracer instance for ad-hoc span creation, or ``None`` on failure
    """

    try:
        tracer_provider = TracerProvider(
            resource=Resource.create({
                "service.name": service_name,
                "service.version": __version__,
                "deployment.environment": os.getenv("ML_ENV", "local")
            })
        )

        if exporter == "console":
            tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        elif exporter != "none":
            raise ValueError(f"Unsupported span exporter: {exporter}")

        trace.set_tracer_provider(tracer_provider)
        tracer = trace.get_tracer(service_name)

        logger.info("Tracing configured", service_name=service_name, exporter=exporter)
        return tracer

    except Exception as e:
        logger.error("Failed to configure tracing", error=str(e))
        return None


class TracingContext:
    """Context manager for tracing operations.

    Starts a span on entry and ensures it ends, recording success or error.
    """

    def __init__(self, tracer: trace.Tracer, operation_name: str, **attributes):
        self.tracer = tracer
        self.operation_name = operation_name
        self.attributes = attributes
        self.span: Optional[trace.Span] = None

    def __enter__(self) -> trace.Span:
        self.span = self.tracer.start_span(self.operation_name)
        for key, value in self.attributes.items():
            self.span.set_attribute(key, str(value))
        return self.span

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.span:
            if exc_type is not None:
                self.span.set_status(
                    trace.Status(trace.StatusCode.ERROR, f"{exc_type.__name__}: {exc_val}")
                )
            else:
                self.span.set_status(trace.Status(trace.StatusCode.OK))
            self.span.end()


class ModelTracer:
    """Model-node tracing helpers.

    Keeps span names and attributes consistent across the load, bind and
    predict steps.
    """

    def __init__(self, name: str):
        self.name = name
        self.tracer = trace.get_tracer(name)

    def trace_model_load(self, model_path: str, **attributes) -> TracingContext:
        """Trace loading a model archive."""
        return TracingContext(self.tracer, "model.load", model_path=model_path, **attributes)

    def trace_bind(self, model_path: str, **attributes) -> TracingContext:
        """Trace shape synthesis and engine resolution."""
        return TracingContext(self.tracer, "model.bind", model_path=model_path, **attributes)

    def trace_prediction(self, model_name: str, **attributes) -> TracingContext:
        """Trace one prediction tick."""
        return TracingContext(self.tracer, "model.predict", model_name=model_name, **attributes)


def get_model_tracer(name: str) -> ModelTracer:
    """Get a model-node tracer."""
    return ModelTracer(name)
