"""Model binding.

``bind`` resolves the runtime's prediction engine for a pair of synthesized
shapes and packages it, together with the marshaling plan, into a
``BoundPredictor``. ``build_predictor`` runs the whole chain for a model
file: load, translate, synthesize, bind.

A ``BoundPredictor`` is built once per model file and then only invoked.
Calls are serialized with a per-predictor lock since engines are not assumed
to be safe for concurrent use.
"""

import threading
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import structlog

from mlnodes.common.metrics import time_operation
from mlnodes.common.tracing import get_model_tracer
from mlnodes.errors import BindingError, FieldNotFoundError, UnsupportedModelKindError
from mlnodes.nodes.base import ModelKind, PinSpec
from mlnodes.nodes.marshaling import ValueMarshaler
from mlnodes.nodes.schema import translate
from mlnodes.nodes.shapes import Instance, Shape, synthesize
from mlnodes.nodes.strategies import ModelKindStrategy
from mlnodes.runtime.base import SLOT_NAMES_ANNOTATION, LoadedModel, ModelRuntime, PredictionEngine, Schema

logger = structlog.get_logger("nodes.binder")
tracer = get_model_tracer("nodes.binder")

SCORE_COLUMN = "Score"


class BoundPredictor:
    """A loaded model, its two shapes and a resolved prediction engine."""

    def __init__(
        self,
        model_path: str,
        model_kind: ModelKind,
        input_shape: Shape,
        output_shape: Shape,
        engine: PredictionEngine,
        marshaler: ValueMarshaler,
    ):
        self.model_path = model_path
        self.model_kind = model_kind
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.engine = engine
        self.marshaler = marshaler

        self._lock = threading.Lock()
        self._labels: Optional[Tuple[str, ...]] = None
        self.closed = False

        # Maintained by PredictorRegistry.
        self.stale = False
        self.refcount = 0

    def predict(self, instance: Instance) -> Instance:
        """Run the engine on one input instance."""
        with self._lock:
            if self.closed:
                raise BindingError(f"Predictor for {self.model_path} is closed")
            return self.engine.predict(instance)

    def slot_labels(self) -> Tuple[str, ...]:
        """Score slot names, looked up once and cached."""
        with self._lock:
            if self._labels is None:
                try:
                    raw = self.engine.get_annotation(SCORE_COLUMN, SLOT_NAMES_ANNOTATION)
                except KeyError:
                    logger.warning(
                        "Model has no score slot names",
                        model_path=self.model_path,
                        column=SCORE_COLUMN,
                    )
                    raw = ()
                self._labels = tuple(str(label) for label in raw)
            return self._labels

    def run(self, pins: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
        """Marshal pins in, predict, and marshal output pin values out."""
        instance = self.input_shape.new_instance()
        self.marshaler.fill_input(instance, pins)
        result = self.predict(instance)
        return self.marshaler.drain_output(result, self.slot_labels)

    def close(self) -> None:
        """Release the engine. Waits for an in-flight prediction."""
        with self._lock:
            if self.closed:
                return
            self.engine.close()
            self.closed = True
        logger.debug("Closed bound predictor", model_path=self.model_path)

    def __repr__(self) -> str:
        return (
            f"BoundPredictor({self.model_path!r}, {self.model_kind.value}, "
            f"input={self.input_shape.name!r}, output={self.output_shape.name!r})"
        )


def bind(
    input_shape: Shape,
    output_shape: Shape,
    trained_model: Any,
    pipeline_schema: Schema,
    *,
    runtime: ModelRuntime,
    strategy: ModelKindStrategy,
    input_pins: Sequence[PinSpec],
    output_pins: Sequence[PinSpec],
    model_path: str,
    model_kind: ModelKind,
) -> BoundPredictor:
    """Resolve an engine for the shapes and return a reusable predictor.

    Raises ``BindingError`` when the runtime cannot produce an engine or a
    pin has no matching shape field.
    """
    try:
        engine = runtime.create_prediction_engine(
            trained_model, pipeline_schema, input_shape, output_shape
        )
    except Exception as e:
        raise BindingError(f"Cannot create prediction engine for {model_path}: {e}") from e

    try:
        marshaler = ValueMarshaler(
            input_shape,
            output_shape,
            input_pins,
            output_pins,
            strategy.output_bindings(),
        )
    except FieldNotFoundError as e:
        engine.close()
        raise BindingError(f"Pins do not match shapes for {model_path}: {e}") from e

    return BoundPredictor(model_path, model_kind, input_shape, output_shape, engine, marshaler)


def build_predictor(
    model_path: str,
    model_kind: ModelKind,
    runtime: ModelRuntime,
    loaded: Optional[LoadedModel] = None,
    shape_name: Optional[str] = None,
) -> BoundPredictor:
    """Load (unless ``loaded`` is given), translate, synthesize and bind."""
    with tracer.trace_bind(model_path, model_kind=model_kind.value), \
            time_operation("bind", model_path=model_path):
        if loaded is None:
            loaded = runtime.load_model(model_path)

        output_schema = runtime.get_output_schema(loaded.trained_model, loaded.schema)
        translation = translate(loaded.schema, output_schema, model_kind)
        if translation.strategy is None:
            raise UnsupportedModelKindError(translation.error)

        prefix = shape_name or "Model"
        input_shape = synthesize(translation.input_fields, name=f"{prefix}Input")
        output_shape = synthesize(translation.output_fields, name=f"{prefix}Output")

        predictor = bind(
            input_shape,
            output_shape,
            loaded.trained_model,
            loaded.schema,
            runtime=runtime,
            strategy=translation.strategy,
            input_pins=translation.input_pins,
            output_pins=translation.output_pins,
            model_path=model_path,
            model_kind=model_kind,
        )

    logger.info(
        "Bound predictor",
        model_path=model_path,
        model_kind=model_kind.value,
        input_fields=list(input_shape.field_names),
        output_fields=list(output_shape.field_names),
    )
    return predictor
