"""Host bootstrap.

The host calls ``Initialization().register_services(host)`` once when it
loads this package. Logging and tracing are configured from
``ModelNodesConfig`` and a default node factory is registered; per-document
factories are then obtained through ``factory.for_path``.
"""

from typing import Optional, Protocol

import structlog

from mlnodes.common.config import ModelNodesConfig
from mlnodes.common.logging import configure_logging
from mlnodes.common.tracing import configure_tracing
from mlnodes.nodes.factory import ModelNodeFactory

logger = structlog.get_logger("initialization")


class NodeHost(Protocol):
    """What the package needs from the dataflow host."""

    def register_node_factory(self, factory: ModelNodeFactory) -> None:
        ...


class Initialization:
    """Registers the model node factory with a host."""

    def __init__(
        self,
        factory: Optional[ModelNodeFactory] = None,
        config: Optional[ModelNodesConfig] = None,
    ):
        self.config = config or ModelNodesConfig()
        self.factory = factory

    def register_services(self, host: NodeHost) -> ModelNodeFactory:
        configure_logging(
            self.config.ml_otel_service_name,
            self.config.ml_log_level,
            self.config.ml_log_format,
            host=type(host).__name__,
            environment=self.config.ml_env,
        )
        if self.config.ml_tracing_enabled:
            configure_tracing(self.config.ml_otel_service_name, self.config.ml_tracing_exporter)

        if self.factory is None:
            self.factory = ModelNodeFactory(config=self.config)

        host.register_node_factory(self.factory)
        logger.info("Registered model node factory", identifier=self.factory.identifier)
        return self.factory
