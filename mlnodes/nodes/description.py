"""Node description for one model file.

The description loads the model lazily, the first time the host asks for
its pins, and translates the schema into pin descriptions. Any failure in
that step (or later, while binding) is caught here: the description flips
into an error state, exposes no pins and reports a warning message. The
host never sees the exception.
"""

import threading
from typing import TYPE_CHECKING, List, Optional, Tuple

import structlog

from mlnodes.common.metrics import MetricsCollector, get_metrics_collector
from mlnodes.nodes.base import Message, MessageType, ModelKind, PinSpec
from mlnodes.nodes.binder import BoundPredictor, build_predictor
from mlnodes.nodes.registry import PredictorRegistry
from mlnodes.nodes.schema import translate
from mlnodes.runtime.base import LoadedModel, ModelRuntime

if TYPE_CHECKING:
    from mlnodes.nodes.node import ModelNode

logger = structlog.get_logger("nodes.description")


class ModelNodeDescription:
    """Describes the node built from one model file."""

    def __init__(
        self,
        factory,
        path: str,
        friendly_name: str,
        model_kind: ModelKind,
        runtime: ModelRuntime,
        registry: PredictorRegistry,
        category: str = "ML.Models",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.factory = factory
        self.model_path = path
        self.friendly_name = friendly_name
        self.model_kind = model_kind
        self.runtime = runtime
        self.registry = registry
        self.category = category
        self.metrics = metrics or get_metrics_collector()

        self._initialized = False
        self._error: Optional[str] = None
        self._summary = ""
        self._inputs: Tuple[PinSpec, ...] = ()
        self._outputs: Tuple[PinSpec, ...] = ()
        self._messages: List[Message] = []
        self._loaded: Optional[LoadedModel] = None
        self._lock = threading.RLock()

        # Bumped by reset; nodes compare it to notice that their pins are out of date.
        self.generation = 0

    @property
    def name(self) -> str:
        return self.friendly_name

    def _init(self) -> None:
        """Load the model and derive pins, once per generation."""
        with self._lock:
            if self._initialized or self._error is not None:
                return
            self._load()

    def _load(self) -> None:
        try:
            loaded = self.runtime.load_model(self.model_path)
            output_schema = self.runtime.get_output_schema(loaded.trained_model, loaded.schema)
            translation = translate(loaded.schema, output_schema, self.model_kind)
        except Exception as e:
            self._fail("Error loading ML model", e)
            self.metrics.record_model_load(self.model_kind.value, "error")
            return

        if translation.error is not None:
            self._fail(translation.error)
            self.metrics.record_model_load(self.model_kind.value, "error")
            return

        for column in translation.skipped_columns:
            self._messages.append(Message(
                MessageType.INFO,
                f"Column '{column.name}' has an unsupported type and is not exposed",
            ))

        self._loaded = loaded
        self._inputs = tuple(translation.input_pins)
        self._outputs = tuple(translation.output_pins)
        self._summary = f"Runs the {self.friendly_name} {self.model_kind.value} pre-trained model"
        self._initialized = True
        self.metrics.record_model_load(self.model_kind.value, "success")

        logger.info(
            "Initialized model node description",
            model_path=self.model_path,
            model_kind=self.model_kind.value,
            inputs=[p.name for p in self._inputs],
            outputs=[p.name for p in self._outputs],
        )

    def reset(self) -> None:
        """Forget pins, messages and errors; the next access reloads the model.

        Called when the model file changed on disk. Nodes created from this
        description rebuild their pins on their next tick.
        """
        with self._lock:
            self._initialized = False
            self._error = None
            self._summary = ""
            self._inputs = ()
            self._outputs = ()
            self._messages = []
            self._loaded = None
            self.generation += 1
        logger.info("Reset model node description", model_path=self.model_path, generation=self.generation)

    def _fail(self, message: str, error: Optional[BaseException] = None) -> None:
        text = f"{message}: {error}" if error is not None else message
        self._error = text
        self._inputs = ()
        self._outputs = ()
        self._loaded = None
        self._messages.append(Message(MessageType.WARNING, text))
        logger.error(
            message,
            model_path=self.model_path,
            model_kind=self.model_kind.value,
            error=str(error) if error is not None else None,
        )

    @property
    def inputs(self) -> Tuple[PinSpec, ...]:
        self._init()
        return self._inputs

    @property
    def outputs(self) -> Tuple[PinSpec, ...]:
        self._init()
        return self._outputs

    @property
    def summary(self) -> str:
        self._init()
        return self._summary

    @property
    def remarks(self) -> str:
        return ""

    @property
    def messages(self) -> List[Message]:
        self._init()
        return list(self._messages)

    @property
    def has_error(self) -> bool:
        self._init()
        return self._error is not None

    def acquire_predictor(self) -> Optional[BoundPredictor]:
        """Get the shared predictor for this model, building it if needed.

        Returns ``None`` when the description is in error; a failed build
        puts it in error.
        """
        if self.has_error:
            return None
        try:
            return self.registry.acquire(self.model_path, self._build_predictor)
        except Exception as e:
            self._fail("Error binding ML model", e)
            return None

    def release_predictor(self, predictor: BoundPredictor) -> None:
        self.registry.release(predictor)

    def _build_predictor(self) -> BoundPredictor:
        # The model loaded for the pins is handed over once; rebuilds reload.
        with self._lock:
            loaded, self._loaded = self._loaded, None
        return build_predictor(
            self.model_path,
            self.model_kind,
            self.runtime,
            loaded=loaded,
            shape_name=self.friendly_name,
        )

    def create_instance(self) -> "ModelNode":
        from mlnodes.nodes.node import ModelNode

        return ModelNode(self)

    def __repr__(self) -> str:
        return f"ModelNodeDescription({self.friendly_name!r}, {self.model_kind.value}, {self.model_path!r})"
