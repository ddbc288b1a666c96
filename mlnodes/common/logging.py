"""Structured logging configuration for the model node packages.

Standardizes logging using ``structlog``. It produces either JSON (for
machines) or a pretty console format (for humans) and binds the package and
host context so model node logs can be told apart inside the host's output.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
  (``Initialization.register_services`` does this from ``ModelNodesConfig``)
- Acquire loggers via ``structlog.get_logger(name)`` or ``get_logger``
"""

import logging
import os
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

from mlnodes import __version__


def add_model_file(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Add the archive file name next to a full ``model_path``."""
    model_path = event_dict.get("model_path")
    if isinstance(model_path, str) and "model_file" not in event_dict:
        event_dict["model_file"] = os.path.basename(model_path)
    return event_dict


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    host: Optional[str] = None,
    **kwargs: Any
) -> None:
    """Configure structured logging for the model nodes.

    Parameters
    - service_name: Logical identifier bound to each log line
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive)
    - log_format: ``json`` for aggregation; ``console`` when running inside
      an interactive host
    - host: Name of the dataflow host that loaded the package, if known
    - kwargs: Extra context bound to every log line (e.g. ``environment="local"``)

    Calling it again replaces the previous configuration; the host may
    register the package more than once per process.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
        add_model_file,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        # Tick failures are logged with logger.exception; render the traceback into the event.
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    context = {"service": service_name, "package": "mlnodes", "version": __version__}
    if host is not None:
        context["host"] = host
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context, **kwargs)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_performance(operation: str, duration_ms: float, **kwargs: Any) -> None:
    """Log timing of a model operation at debug level."""
    get_logger("performance").debug(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=round(duration_ms, 3),
        **kwargs
    )
