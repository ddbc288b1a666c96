"""Per model kind output handling.

Each ``ModelKind`` maps to one strategy that decides which output columns
become shape fields, which pins the node exposes, and how pins are filled
from an output instance. Supporting a new kind means adding a strategy and
registering it in ``STRATEGIES``.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from mlnodes.errors import MissingOutputColumnError
from mlnodes.nodes.base import FieldSpec, ModelKind, PinSpec, SemanticType
from mlnodes.nodes.columns import field_for_column, pin_for_column
from mlnodes.runtime.base import Column, Schema

LABELS_PIN_NAME = "Labels"
LABELS_PIN_DESCRIPTION = "Score labels"


class ModelKindStrategy(ABC):
    """Output handling for one family of model kinds."""

    name: str = ""

    @abstractmethod
    def output_columns(self) -> List[Tuple[str, Optional[str]]]:
        """``(column_name, pin_name)`` pairs; ``None`` keeps the column name."""
        pass

    def extra_pins(self) -> List[PinSpec]:
        """Output pins that are not backed by a model column."""
        return []

    def _column(self, output_schema: Schema, column_name: str) -> Column:
        column = output_schema.get(column_name)
        if column is None:
            raise MissingOutputColumnError(column_name, self.name)
        return column

    def output_fields(self, output_schema: Schema) -> List[FieldSpec]:
        return [
            field_for_column(self._column(output_schema, column_name))
            for column_name, _ in self.output_columns()
        ]

    def output_pins(self, output_schema: Schema) -> List[PinSpec]:
        pins = [
            pin_for_column(self._column(output_schema, column_name), pin_name)
            for column_name, pin_name in self.output_columns()
        ]
        return pins + self.extra_pins()

    def output_bindings(self) -> Dict[str, Optional[str]]:
        """Map output pin names to output field names.

        ``None`` marks a pin filled from the predictor's slot labels rather
        than from the output instance.
        """
        bindings: Dict[str, Optional[str]] = {
            pin_name or column_name: column_name
            for column_name, pin_name in self.output_columns()
        }
        for pin in self.extra_pins():
            bindings[pin.name] = None
        return bindings


class ClassificationStrategy(ModelKindStrategy):
    """Predicted label, per-class scores and the class labels."""

    name = "classification"

    def output_columns(self) -> List[Tuple[str, Optional[str]]]:
        return [("PredictedLabel", "Predicted Label"), ("Score", "Score")]

    def extra_pins(self) -> List[PinSpec]:
        return [PinSpec(
            name=LABELS_PIN_NAME,
            semantic_type=SemanticType.STRING_VECTOR,
            default_value=(),
            description=LABELS_PIN_DESCRIPTION,
        )]


class RegressionStrategy(ModelKindStrategy):
    """A single score pin named after the score column."""

    name = "regression"

    def output_columns(self) -> List[Tuple[str, Optional[str]]]:
        return [("Score", None)]


# Image classification shares the text classification outputs.
STRATEGIES: Dict[ModelKind, ModelKindStrategy] = {
    ModelKind.TEXT_CLASSIFICATION: ClassificationStrategy(),
    ModelKind.IMAGE_CLASSIFICATION: ClassificationStrategy(),
    ModelKind.REGRESSION: RegressionStrategy(),
}


def get_strategy(model_kind: ModelKind) -> Optional[ModelKindStrategy]:
    return STRATEGIES.get(model_kind)
