"""Tests for value marshaling between pins and instances."""

import pytest

from mlnodes.errors import FieldNotFoundError
from mlnodes.nodes.base import ModelKind
from mlnodes.nodes.marshaling import ValueMarshaler
from mlnodes.nodes.schema import translate
from mlnodes.nodes.shapes import synthesize
from mlnodes.nodes.strategies import get_strategy
from mlnodes.runtime.base import Column, Schema


@pytest.fixture
def classification():
    schema = Schema([Column("Text", "String"), Column("Weight", "Single")])
    output_schema = schema.extend([
        Column("PredictedLabel", "String"),
        Column("Score", "Vector<Single>", is_vector=True, item_type_name="Single"),
    ])
    result = translate(schema, output_schema, ModelKind.TEXT_CLASSIFICATION)
    input_shape = synthesize(result.input_fields)
    output_shape = synthesize(result.output_fields)
    marshaler = ValueMarshaler(
        input_shape,
        output_shape,
        result.input_pins,
        result.output_pins,
        get_strategy(ModelKind.TEXT_CLASSIFICATION).output_bindings(),
    )
    return marshaler, input_shape, output_shape


def test_fill_input_skips_trigger(classification):
    marshaler, input_shape, _ = classification
    instance = input_shape.new_instance()

    marshaler.fill_input(instance, [("Text", "nice"), ("Weight", 2), ("Run", True)])

    assert instance.to_dict() == {"Text": "nice", "Weight": 2.0}
    assert marshaler.input_pin_names == ("Text", "Weight")


def test_fill_input_unknown_pin(classification):
    marshaler, input_shape, _ = classification
    with pytest.raises(FieldNotFoundError) as excinfo:
        marshaler.fill_input(input_shape.new_instance(), [("Other", "x")])
    assert excinfo.value.field_name == "Other"


def test_drain_output(classification):
    marshaler, _, output_shape = classification
    instance = output_shape.new_instance()
    instance.set("PredictedLabel", "positive")
    instance.set("Score", [0.25, 0.75])

    values = marshaler.drain_output(instance, lambda: ["negative", "positive"])

    assert values == {
        "Predicted Label": "positive",
        "Score": (0.25, 0.75),
        "Labels": ("negative", "positive"),
    }
    assert marshaler.output_pin_names == ("Predicted Label", "Score", "Labels")


def test_drain_output_labels_not_read_without_pin():
    """A regression plan never asks for slot labels."""
    schema = Schema([Column("Age", "Single")])
    result = translate(schema, schema.extend([Column("Score", "Single")]), ModelKind.REGRESSION)
    output_shape = synthesize(result.output_fields)
    marshaler = ValueMarshaler(
        synthesize(result.input_fields),
        output_shape,
        result.input_pins,
        result.output_pins,
        get_strategy(ModelKind.REGRESSION).output_bindings(),
    )

    def labels():
        raise AssertionError("labels requested")

    instance = output_shape.new_instance()
    instance.set("Score", 1.5)
    assert marshaler.drain_output(instance, labels) == {"Score": 1.5}


def test_plan_rejects_unbound_output_pin(classification):
    _, input_shape, output_shape = classification
    schema = Schema([Column("Text", "String")])
    result = translate(schema, schema.extend([Column("Score", "Single")]), ModelKind.REGRESSION)

    with pytest.raises(FieldNotFoundError):
        ValueMarshaler(input_shape, output_shape, [], result.output_pins, {})
