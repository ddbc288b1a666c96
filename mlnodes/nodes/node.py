"""Running model node.

A node owns live pins created from its description. It acquires the shared
bound predictor on the first tick that runs a prediction and releases it on
``dispose``.
"""

import time
from enum import Enum
from typing import Dict, List, Optional

import structlog

from mlnodes.common.logging import log_performance
from mlnodes.common.tracing import get_model_tracer
from mlnodes.errors import FieldNotFoundError
from mlnodes.nodes.base import TRIGGER_PIN_NAME, Pin, PinSpec
from mlnodes.nodes.binder import BoundPredictor

logger = structlog.get_logger("nodes.node")
tracer = get_model_tracer("nodes.node")


class NodeState(Enum):
    IDLE = "idle"
    PREDICTING = "predicting"


class ModelNode:
    """One instance of a model node placed in a patch."""

    def __init__(self, description):
        self.description = description
        self.inputs: List[Pin] = []
        self.outputs: List[Pin] = []
        self._outputs_by_name: Dict[str, Pin] = {}
        self._generation: Optional[int] = None
        self._sync_pins()
        self.state = NodeState.IDLE
        self._predictor: Optional[BoundPredictor] = None
        self._disposed = False

    @property
    def node_description(self):
        return self.description

    @property
    def trigger(self) -> Optional[Pin]:
        """The ``Run`` pin, always the last input."""
        if self.inputs and self.inputs[-1].name == TRIGGER_PIN_NAME:
            return self.inputs[-1]
        return None

    @staticmethod
    def _carry_over(previous: Dict[str, Pin], spec: PinSpec) -> Pin:
        pin = previous.get(spec.name)
        if pin is not None and pin.semantic_type == spec.semantic_type:
            return pin
        return Pin.from_spec(spec)

    def _sync_pins(self) -> bool:
        """Rebuild pins after the description was reset.

        Pins whose name and type survive keep their object and value.
        Returns whether anything was rebuilt.
        """
        generation = self.description.generation
        if generation == self._generation:
            return False

        previous_inputs = {pin.name: pin for pin in self.inputs}
        self.inputs = [self._carry_over(previous_inputs, spec) for spec in self.description.inputs]
        self.outputs = [self._carry_over(self._outputs_by_name, spec) for spec in self.description.outputs]
        self._outputs_by_name = {pin.name: pin for pin in self.outputs}
        self._generation = generation
        return True

    def input(self, name: str) -> Pin:
        for pin in self.inputs:
            if pin.name == name:
                return pin
        raise KeyError(name)

    def output(self, name: str) -> Pin:
        return self._outputs_by_name[name]

    def _current_predictor(self) -> Optional[BoundPredictor]:
        predictor = self._predictor
        if predictor is not None and (predictor.stale or predictor.closed):
            logger.info(
                "Predictor was invalidated, rebinding",
                model_path=self.description.model_path,
            )
            self._drop_predictor()
        if self._predictor is None:
            self._predictor = self.description.acquire_predictor()
        return self._predictor

    def _drop_predictor(self) -> None:
        predictor, self._predictor = self._predictor, None
        if predictor is not None:
            self.description.release_predictor(predictor)

    def update(self) -> None:
        """Run one tick.

        Does nothing without inputs or while ``Run`` is false; outputs keep
        their previous values.
        """
        if self._disposed:
            return
        if self._sync_pins():
            logger.info(
                "Model changed, rebuilt pins",
                model_path=self.description.model_path,
                inputs=[pin.name for pin in self.inputs],
            )
            self._drop_predictor()
        if not self.inputs:
            return
        trigger = self.trigger
        if trigger is None or not trigger.value:
            return

        predictor = self._current_predictor()
        if predictor is None:
            return

        model_name = self.description.name
        start_time = time.perf_counter()
        self.state = NodeState.PREDICTING
        try:
            with tracer.trace_prediction(model_name, model_path=self.description.model_path):
                values = predictor.run((pin.name, pin.value) for pin in self.inputs)
        except FieldNotFoundError as e:
            logger.error(
                "Input pin does not match the bound model",
                model_name=model_name,
                model_path=self.description.model_path,
                field=e.field_name,
                shape=e.shape_name,
                pins=[pin.name for pin in self.inputs],
                error=str(e),
            )
            # Next tick rebuilds pins and predictor from the model file.
            self.description.registry.invalidate(self.description.model_path)
            self.description.reset()
            self._drop_predictor()
            self.description.metrics.record_prediction(
                model_name, time.perf_counter() - start_time, status="error"
            )
            raise
        except Exception:
            logger.exception(
                "Prediction failed",
                model_name=model_name,
                model_path=self.description.model_path,
            )
            self.description.metrics.record_prediction(
                model_name, time.perf_counter() - start_time, status="error"
            )
            raise
        finally:
            self.state = NodeState.IDLE

        for name, value in values.items():
            self._outputs_by_name[name].value = value

        duration = time.perf_counter() - start_time
        self.description.metrics.record_prediction(model_name, duration)
        log_performance("predict", duration * 1000, model_name=model_name)

    def dispose(self) -> None:
        """Release the shared predictor; the node does nothing afterwards."""
        if self._disposed:
            return
        self._disposed = True
        self._drop_predictor()

    def __enter__(self) -> "ModelNode":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()
