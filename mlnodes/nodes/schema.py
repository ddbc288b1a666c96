"""Schema translation.

Turns a model's input and output schemas into the field lists used to
synthesize shapes and the pin descriptions exposed to the host.

Rules
- The ``Label`` input column is never exposed.
- Columns of an unknown storage kind are skipped and logged; the remaining
  columns are still exposed.
- Output fields and pins come from the model kind's strategy. A kind without
  a strategy yields no outputs and an ``error`` instead of raising.
- The boolean ``Run`` trigger is always the last input pin.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from mlnodes.errors import UnsupportedColumnTypeError
from mlnodes.nodes.base import (
    LABEL_COLUMN_NAME,
    TRIGGER_PIN_DESCRIPTION,
    TRIGGER_PIN_NAME,
    ColumnSpec,
    FieldSpec,
    ModelKind,
    PinSpec,
    SemanticType,
)
from mlnodes.nodes.columns import classify, field_for_column, pin_for_column
from mlnodes.nodes.strategies import ModelKindStrategy, get_strategy
from mlnodes.runtime.base import Schema

logger = structlog.get_logger("nodes.schema")

TRIGGER_PIN = PinSpec(
    name=TRIGGER_PIN_NAME,
    semantic_type=SemanticType.BOOL,
    default_value=False,
    description=TRIGGER_PIN_DESCRIPTION,
)


@dataclass
class Translation:
    """Result of translating a model schema."""
    input_fields: List[FieldSpec] = field(default_factory=list)
    input_pins: List[PinSpec] = field(default_factory=list)
    output_fields: List[FieldSpec] = field(default_factory=list)
    output_pins: List[PinSpec] = field(default_factory=list)
    skipped_columns: List[ColumnSpec] = field(default_factory=list)
    strategy: Optional[ModelKindStrategy] = None
    error: Optional[str] = None


def translate(
    input_schema: Schema,
    output_schema: Optional[Schema],
    model_kind: ModelKind,
) -> Translation:
    """Translate model schemas into fields and pins for ``model_kind``.

    Raises ``MissingOutputColumnError`` when the output schema lacks a
    column the kind requires.
    """
    result = Translation()

    for column in input_schema:
        if column.name == LABEL_COLUMN_NAME:
            continue

        try:
            result.input_fields.append(field_for_column(column))
            result.input_pins.append(pin_for_column(column))
        except UnsupportedColumnTypeError as e:
            logger.warning(
                "Skipping column with unsupported type",
                column=column.name,
                type_name=column.type_name,
                error=str(e),
            )
            result.skipped_columns.append(classify(column))

    strategy = get_strategy(model_kind)
    if strategy is None:
        result.error = f"Unsupported model kind: {model_kind}"
        logger.error("No output strategy for model kind", model_kind=str(model_kind))
    else:
        result.strategy = strategy
        result.output_fields = strategy.output_fields(output_schema)
        result.output_pins = strategy.output_pins(output_schema)

    result.input_pins.append(TRIGGER_PIN)
    return result
