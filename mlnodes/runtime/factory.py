"""Model runtime factory.

Centralizes creation of concrete ``ModelRuntime`` implementations so the
node factory does not depend on a specific inference library. New runtimes
are added as ``RuntimeType`` members without changing call sites.
"""

from enum import Enum

import structlog

from mlnodes.runtime.base import ModelRuntime
from mlnodes.runtime.joblib_archive import JoblibArchiveRuntime

logger = structlog.get_logger("runtime.factory")


class RuntimeType(Enum):
    """Supported model runtimes."""
    JOBLIB_ARCHIVE = "joblib-archive"


class ModelRuntimeFactory:
    """Factory for creating model runtime instances."""

    @staticmethod
    def create(runtime_type: RuntimeType) -> ModelRuntime:
        """Create a runtime for ``runtime_type``."""
        if runtime_type == RuntimeType.JOBLIB_ARCHIVE:
            return JoblibArchiveRuntime()

        raise ValueError(f"Unsupported model runtime: {runtime_type}")


def create_model_runtime(runtime_type: str) -> ModelRuntime:
    """Convenience function to create a runtime from its configured name."""
    try:
        runtime_enum = RuntimeType(runtime_type)
    except ValueError:
        raise ValueError(f"Unsupported model runtime: {runtime_type}") from None

    logger.debug("Creating model runtime", runtime=runtime_enum.value)
    return ModelRuntimeFactory.create(runtime_enum)
