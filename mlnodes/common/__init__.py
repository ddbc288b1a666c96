"""Common utilities shared across the model node packages.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics for model loads, caches and predictions.
- ``tracing``: OpenTelemetry tracer setup and span helpers.

Import pattern:
- from mlnodes.common.config import ModelNodesConfig
- from mlnodes.common.logging import configure_logging
"""
