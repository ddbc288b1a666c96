"""Configuration management for the model node packages.

Centralizes environment-driven configuration for the node factory, the model
runtime and the ambient logging/tracing/metrics setup. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- Field names double as environment variable names (``ml_log_level`` is read
  from ``ML_LOG_LEVEL``; matching is case-insensitive)
- A small subclass per concern to keep settings discoverable

Usage
- ``config = ModelNodesConfig()``
- Or select dynamically: ``config = get_config("model-nodes")``
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every entry point.

    Notes
    - Add new shared settings here so downstream configs inherit them.
    - Prefer a typed field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ml_env: str = Field(default="local")

    # Logging
    ml_log_level: str = Field(default="INFO")
    ml_log_format: str = Field(default="json")

    # Observability
    ml_tracing_enabled: bool = Field(default=False)
    ml_tracing_exporter: str = Field(default="console")
    ml_otel_service_name: str = Field(default="ml-model-nodes")
    ml_metrics_enabled: bool = Field(default=True)


class ModelNodesConfig(BaseConfig):
    """Configuration for the model node factory.

    Extends ``BaseConfig`` with the directory convention, node presentation
    and the model runtime selection.
    """

    ml_models_subdir: str = Field(default="ml-models")
    ml_model_archive_pattern: str = Field(default="*.zip")
    ml_node_category: str = Field(default="ML.Models")
    ml_factory_identifier: str = Field(default="MLModels-Factory")
    ml_runtime: str = Field(default="joblib-archive")
    ml_watch_poll_interval: float = Field(default=1.0)


def get_config(name: str) -> BaseConfig:
    """Get configuration for a named entry point.

    Parameters
    - name: ``model-nodes`` or anything else for the shared ``BaseConfig``
    """
    config_map = {
        "model-nodes": ModelNodesConfig,
    }

    # Default to ``BaseConfig`` to avoid surprising crashes for unknown names.
    config_class = config_map.get(name, BaseConfig)
    return config_class()
