"""Tests for shape synthesis and instances."""

import numpy as np
import pytest

from mlnodes.errors import FieldNotFoundError, UnsupportedTypeError
from mlnodes.nodes.base import FieldSpec, SemanticType
from mlnodes.nodes.shapes import synthesize


@pytest.fixture
def fields():
    return [
        FieldSpec("Text", SemanticType.STRING),
        FieldSpec("Age", SemanticType.FLOAT32),
        FieldSpec("Pixels", SemanticType.FLOAT32_VECTOR),
        FieldSpec("Enabled", SemanticType.BOOL),
    ]


def test_round_trip_per_type(fields):
    """Values read back equal the values written, per supported type."""
    instance = synthesize(fields).new_instance()

    instance.set("Text", "hello")
    instance.set("Age", 42.5)
    instance.set("Pixels", [0.5, 1.0, 0.25])
    instance.set("Enabled", True)

    assert instance.get("Text") == "hello"
    assert instance.get("Age") == 42.5
    assert instance.get("Pixels") == (0.5, 1.0, 0.25)
    assert instance.get("Enabled") is True


def test_defaults(fields):
    instance = synthesize(fields).new_instance()
    assert instance.to_dict() == {"Text": "", "Age": 0.0, "Pixels": (), "Enabled": False}


def test_numeric_widening(fields):
    """Ints and numpy scalars are stored as Python floats."""
    instance = synthesize(fields).new_instance()
    instance.set("Age", 3)
    instance.set("Pixels", np.array([1, 2], dtype=np.float32))
    instance.set("Enabled", np.bool_(True))

    assert isinstance(instance.get("Age"), float)
    assert instance.get("Pixels") == (1.0, 2.0)
    assert instance.get("Enabled") is True


@pytest.mark.parametrize("name,value", [
    ("Text", 1.0),
    ("Age", True),
    ("Age", "3"),
    ("Pixels", "abc"),
    ("Pixels", [1.0, "x"]),
    ("Enabled", 1),
])
def test_wrong_value_kind_rejected(fields, name, value):
    instance = synthesize(fields).new_instance()
    with pytest.raises(TypeError, match=name):
        instance.set(name, value)


def test_shapes_are_unique(fields):
    """Identical field lists still produce distinct shapes."""
    first = synthesize(fields, name="ModelInput")
    second = synthesize(fields, name="ModelInput")

    assert first.name != second.name
    assert first.name.startswith("ModelInput_")
    assert first.field_names == second.field_names


def test_index_resolution(fields):
    shape = synthesize(fields)
    assert shape.index_of("Pixels") == 2
    assert "Age" in shape
    assert len(shape) == 4

    with pytest.raises(FieldNotFoundError):
        shape.index_of("Missing")


def test_unsupported_type_rejected():
    with pytest.raises(UnsupportedTypeError):
        synthesize([FieldSpec("Labels", SemanticType.STRING_VECTOR)])


def test_duplicate_field_rejected():
    with pytest.raises(ValueError):
        synthesize([FieldSpec("A", SemanticType.STRING), FieldSpec("A", SemanticType.FLOAT32)])


def test_instances_are_independent(fields):
    shape = synthesize(fields)
    first, second = shape.new_instance(), shape.new_instance()
    first.set("Text", "a")
    assert second.get("Text") == ""
