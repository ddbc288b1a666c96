"""Model node factory.

Scans a directory for model archives named ``<FriendlyName>_<ModelKind>.zip``
and provides one node description per valid file. A factory owns the
predictor registry shared by every node it creates, and the runtime used to
load its models.

``for_path`` serves the host's per-document lookups: a document directory
with an ``ml-models`` subdirectory gets a factory over that subdirectory;
otherwise an empty factory watches the document directory and switches to
the subdirectory once it is created.

Watcher notifications keep descriptions current: a modified or removed
archive drops its predictor and resets its description, and added or removed
archives trigger a rescan that keeps the descriptions of unchanged files.
"""

import glob
import os
import threading
from typing import Dict, Optional, Tuple

import structlog

from mlnodes.common.config import ModelNodesConfig
from mlnodes.common.metrics import MetricsCollector, get_metrics_collector
from mlnodes.errors import UnsupportedModelKindError
from mlnodes.nodes.base import ModelKind
from mlnodes.nodes.description import ModelNodeDescription
from mlnodes.nodes.registry import PredictorRegistry
from mlnodes.nodes.watcher import DirectoryChange, DirectoryWatcher
from mlnodes.runtime.base import ModelRuntime
from mlnodes.runtime.factory import create_model_runtime

logger = structlog.get_logger("nodes.factory")


def parse_model_file_name(path: str) -> Tuple[str, ModelKind]:
    """Split a model file name into its friendly name and model kind.

    Whitespace is removed from the stem before splitting on ``_``; the kind
    token must match a ``ModelKind`` value exactly.

    Raises ``UnsupportedModelKindError`` when the name does not follow the
    convention or names an unknown kind.
    """
    stem = os.path.splitext(os.path.basename(path))[0]
    parts = "".join(stem.split()).split("_")
    if len(parts) < 2 or not parts[0]:
        raise UnsupportedModelKindError(
            f"Model file name '{os.path.basename(path)}' does not follow <FriendlyName>_<ModelKind>"
        )

    friendly_name, kind_token = parts[0], parts[1]
    try:
        model_kind = ModelKind(kind_token)
    except ValueError:
        raise UnsupportedModelKindError(
            f"Unsupported model kind '{kind_token}' in '{os.path.basename(path)}'"
        ) from None
    return friendly_name, model_kind


class ModelNodeFactory:
    """Provides node descriptions for the model archives of one directory.

    Parameters
    - directory: Directory holding model archives; scanned once on creation
    - directory_to_watch: Directory watched for a models subdirectory to
      appear, used when ``directory`` is not given
    - runtime: Model runtime; built from ``config.ml_runtime`` when omitted
    - config: ``ModelNodesConfig``; read from the environment when omitted
    - metrics: Metrics collector; the process singleton when omitted
    """

    def __init__(
        self,
        directory: Optional[str] = None,
        directory_to_watch: Optional[str] = None,
        runtime: Optional[ModelRuntime] = None,
        config: Optional[ModelNodesConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.directory = directory
        self.directory_to_watch = directory_to_watch
        self.config = config or ModelNodesConfig()
        self.runtime = runtime or create_model_runtime(self.config.ml_runtime)
        self.metrics = metrics or get_metrics_collector()
        self.registry = PredictorRegistry(metrics=self.metrics)

        self._factory_cache: Dict[str, "ModelNodeFactory"] = {}
        self._cache_lock = threading.Lock()
        self._watcher: Optional[DirectoryWatcher] = None

        self._node_descriptions: Tuple[ModelNodeDescription, ...] = self._scan()

    def _scan(
        self, existing: Optional[Dict[str, ModelNodeDescription]] = None
    ) -> Tuple[ModelNodeDescription, ...]:
        """Enumerate archives; descriptions in ``existing`` are kept for their paths."""
        if self.directory is None:
            return ()
        if not os.path.isdir(self.directory):
            logger.warning("Could not find ML subdirectory", directory=self.directory)
            return ()

        descriptions = []
        pattern = os.path.join(self.directory, self.config.ml_model_archive_pattern)
        for path in sorted(glob.glob(pattern)):
            try:
                friendly_name, model_kind = parse_model_file_name(path)
            except UnsupportedModelKindError as e:
                logger.warning("Skipping model file", model_path=path, error=str(e))
                self.metrics.record_skipped_file("unsupported_model_kind")
                continue

            if existing and path in existing:
                descriptions.append(existing[path])
                continue

            descriptions.append(ModelNodeDescription(
                self,
                path,
                friendly_name,
                model_kind,
                runtime=self.runtime,
                registry=self.registry,
                category=self.config.ml_node_category,
                metrics=self.metrics,
            ))

        logger.info(
            "Scanned model directory",
            directory=self.directory,
            models=[d.name for d in descriptions],
        )
        return tuple(descriptions)

    @property
    def node_descriptions(self) -> Tuple[ModelNodeDescription, ...]:
        return self._node_descriptions

    def _identifier_for_path(self, path: str) -> str:
        return f"{self.config.ml_factory_identifier} ({path})"

    @property
    def identifier(self) -> str:
        if self.directory is not None:
            return self._identifier_for_path(self.directory)
        return self.config.ml_factory_identifier

    def for_path(self, path: str) -> "ModelNodeFactory":
        """Factory for a document directory, cached per identifier."""
        identifier = self._identifier_for_path(path)
        models_dir = os.path.join(path, self.config.ml_models_subdir)
        has_models_dir = os.path.isdir(models_dir)

        with self._cache_lock:
            factory = self._factory_cache.get(identifier)
            # A cached factory is stale once the models subdirectory appeared or vanished.
            if factory is not None and (factory.directory is not None) != has_models_dir:
                logger.info("Replacing cached factory", path=path, has_models_dir=has_models_dir)
                self._factory_cache.pop(identifier)
                factory.close()
                factory = None

            if factory is None:
                if has_models_dir:
                    factory = ModelNodeFactory(
                        models_dir, runtime=self.runtime, config=self.config, metrics=self.metrics
                    )
                else:
                    factory = ModelNodeFactory(
                        directory_to_watch=path, runtime=self.runtime, config=self.config, metrics=self.metrics
                    )
                self._factory_cache[identifier] = factory
            return factory

    @property
    def invalidated(self) -> Optional[DirectoryWatcher]:
        """Watcher whose notifications mean this factory is out of date.

        ``None`` when the factory has nothing to watch. Subscribing to the
        watcher does not start it; call ``start`` or ``poll``.
        """
        if self._watcher is None:
            if self.directory is not None:
                self._watcher = DirectoryWatcher(
                    self.directory,
                    pattern=self.config.ml_model_archive_pattern,
                    poll_interval=self.config.ml_watch_poll_interval,
                )
            elif self.directory_to_watch is not None:
                self._watcher = DirectoryWatcher(
                    self.directory_to_watch,
                    pattern=self.config.ml_models_subdir,
                    poll_interval=self.config.ml_watch_poll_interval,
                )
            else:
                return None
            self._watcher.subscribe(self._on_directory_change)
        return self._watcher

    def _on_directory_change(self, change: DirectoryChange) -> None:
        if self.directory is None:
            # Watching a document directory: the models subdirectory came or went.
            self.refresh()
            return

        by_path = {d.model_path: d for d in self._node_descriptions}
        for name in change.removed + change.modified:
            path = os.path.join(self.directory, name)
            self.registry.invalidate(path)
            description = by_path.get(path)
            if description is not None:
                description.reset()

        if change.added or change.removed:
            self._node_descriptions = self._scan(existing=by_path)

    def _adopt_models_directory(self) -> None:
        models_dir = os.path.join(self.directory_to_watch, self.config.ml_models_subdir)
        if not os.path.isdir(models_dir):
            return
        logger.info("Found ML subdirectory", directory=models_dir)
        self.directory = models_dir
        # The next ``invalidated`` access watches the archives instead.
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def refresh(self) -> Tuple[ModelNodeDescription, ...]:
        """Drop every bound predictor and rescan the directory.

        A factory that only watches a document directory switches over to
        its models subdirectory once that exists.
        """
        if self.directory is None and self.directory_to_watch is not None:
            self._adopt_models_directory()
        self.registry.invalidate()
        self._node_descriptions = self._scan()
        return self._node_descriptions

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
        with self._cache_lock:
            factories = list(self._factory_cache.values())
        for factory in factories:
            factory.close()

    def __repr__(self) -> str:
        return f"ModelNodeFactory({self.identifier!r}, models={len(self._node_descriptions)})"
