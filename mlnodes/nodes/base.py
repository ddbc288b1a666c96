"""Core value types shared by the node packages.

Defines the closed enumerations (semantic types, column kinds, model kinds),
the pin description/state pair and the diagnostic message surfaced by a node
description.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

TRIGGER_PIN_NAME = "Run"
TRIGGER_PIN_DESCRIPTION = "Runs a prediction every frame as long as enabled"
LABEL_COLUMN_NAME = "Label"


class SemanticType(Enum):
    """Value types understood by shapes and pins."""
    STRING = "String"
    FLOAT32 = "Float32"
    FLOAT32_VECTOR = "Float32Vector"
    BOOL = "Bool"
    STRING_VECTOR = "StringVector"


class ColumnKind(Enum):
    """Storage kind of a model schema column."""
    SCALAR_STRING = "ScalarString"
    SCALAR_FLOAT32 = "ScalarFloat32"
    VECTOR_FLOAT32 = "VectorFloat32"
    UNKNOWN = "Unknown"


class ModelKind(Enum):
    """Supported model kinds.

    Values are the tokens used in model file names
    (``<FriendlyName>_<ModelKind>.zip``) and are matched case-sensitively.
    """
    TEXT_CLASSIFICATION = "TextClassification"
    IMAGE_CLASSIFICATION = "ImageClassification"
    REGRESSION = "Regression"


class MessageType(Enum):
    """Severity of a diagnostic message."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


COLUMN_KIND_TYPES = {
    ColumnKind.SCALAR_STRING: SemanticType.STRING,
    ColumnKind.SCALAR_FLOAT32: SemanticType.FLOAT32,
    ColumnKind.VECTOR_FLOAT32: SemanticType.FLOAT32_VECTOR,
}


def default_value(semantic_type: SemanticType) -> Any:
    """Default pin/slot value for a semantic type."""
    if semantic_type == SemanticType.STRING:
        return ""
    if semantic_type == SemanticType.FLOAT32:
        return 0.0
    if semantic_type == SemanticType.BOOL:
        return False
    return ()


@dataclass(frozen=True)
class ColumnSpec:
    """One classified column of a model schema."""
    name: str
    kind: ColumnKind


@dataclass(frozen=True)
class FieldSpec:
    """A named, typed slot requested from the type synthesizer."""
    name: str
    semantic_type: SemanticType


@dataclass(frozen=True)
class PinSpec:
    """Description of an input or output pin exposed to the host."""
    name: str
    semantic_type: SemanticType
    default_value: Any
    description: str = ""


@dataclass
class Pin:
    """Live value behind a ``PinSpec``, owned by a running node."""
    name: str
    semantic_type: SemanticType
    value: Any

    @classmethod
    def from_spec(cls, spec: PinSpec) -> "Pin":
        return cls(name=spec.name, semantic_type=spec.semantic_type, value=spec.default_value)


@dataclass(frozen=True)
class Message:
    """Diagnostic shown on a node in the host editor."""
    type: MessageType
    text: str
