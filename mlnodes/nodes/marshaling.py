"""Value marshaling between pins and shape instances.

Pin names are resolved to slot indices once, when the marshaler is built
for a bound predictor. A pin that has no field fails at that point instead
of on every tick; at tick time only index-based reads and writes happen.
"""

from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from mlnodes.errors import FieldNotFoundError
from mlnodes.nodes.base import TRIGGER_PIN_NAME, PinSpec
from mlnodes.nodes.shapes import Instance, Shape


class ValueMarshaler:
    """Copies pin values into input instances and output fields back to pins.

    Parameters
    - input_shape / output_shape: the bound predictor's shapes
    - input_pins: input pin descriptions; the trigger pin is ignored
    - output_pins: output pin descriptions
    - bindings: output pin name to output field name, ``None`` for pins
      filled from slot labels
    """

    def __init__(
        self,
        input_shape: Shape,
        output_shape: Shape,
        input_pins: Sequence[PinSpec],
        output_pins: Sequence[PinSpec],
        bindings: Dict[str, Optional[str]],
    ):
        self.input_shape = input_shape
        self.output_shape = output_shape

        self._input_index: Dict[str, int] = {
            pin.name: input_shape.index_of(pin.name)
            for pin in input_pins
            if pin.name != TRIGGER_PIN_NAME
        }

        output_slots = []
        for pin in output_pins:
            if pin.name not in bindings:
                raise FieldNotFoundError(pin.name, output_shape.name)
            field_name = bindings[pin.name]
            index = None if field_name is None else output_shape.index_of(field_name)
            output_slots.append((pin.name, index))
        self._output_slots: Tuple[Tuple[str, Optional[int]], ...] = tuple(output_slots)

    @property
    def input_pin_names(self) -> Tuple[str, ...]:
        return tuple(self._input_index)

    @property
    def output_pin_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self._output_slots)

    def fill_input(self, instance: Instance, pins: Iterable[Tuple[str, Any]]) -> None:
        """Write every non-trigger ``(pin_name, value)`` into ``instance``.

        Raises ``FieldNotFoundError`` for a pin the shape does not know,
        which means the node and its predictor disagree.
        """
        for name, value in pins:
            if name == TRIGGER_PIN_NAME:
                continue
            index = self._input_index.get(name)
            if index is None:
                raise FieldNotFoundError(name, instance.shape.name)
            instance.set_at(index, value)

    def drain_output(
        self,
        instance: Instance,
        labels: Callable[[], Sequence[str]] = tuple,
    ) -> Dict[str, Any]:
        """Read every output pin value from ``instance``.

        ``labels`` is only called when a slot-label pin is present.
        """
        values: Dict[str, Any] = {}
        for name, index in self._output_slots:
            if index is None:
                values[name] = tuple(labels())
            else:
                values[name] = instance.get_at(index)
        return values
