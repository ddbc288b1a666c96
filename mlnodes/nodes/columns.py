"""Classification of runtime schema columns into semantic types and pins."""

from typing import Optional

from mlnodes.errors import UnsupportedColumnTypeError
from mlnodes.nodes.base import (
    COLUMN_KIND_TYPES,
    ColumnKind,
    ColumnSpec,
    FieldSpec,
    PinSpec,
    SemanticType,
    default_value,
)
from mlnodes.runtime.base import Column

STRING_TYPE_NAME = "String"
FLOAT32_TYPE_NAME = "Single"


def column_kind(column: Column) -> ColumnKind:
    """Classify a column by its declared storage type."""
    if column.type_name == STRING_TYPE_NAME:
        return ColumnKind.SCALAR_STRING
    if column.type_name == FLOAT32_TYPE_NAME:
        return ColumnKind.SCALAR_FLOAT32
    if column.is_vector and column.item_type_name == FLOAT32_TYPE_NAME:
        return ColumnKind.VECTOR_FLOAT32
    return ColumnKind.UNKNOWN


def classify(column: Column) -> ColumnSpec:
    return ColumnSpec(name=column.name, kind=column_kind(column))


def semantic_type_for(column: Column) -> SemanticType:
    """Semantic type of a column; raises for unknown storage kinds."""
    kind = column_kind(column)
    if kind == ColumnKind.UNKNOWN:
        raise UnsupportedColumnTypeError(column.name, column.type_name)
    return COLUMN_KIND_TYPES[kind]


def field_for_column(column: Column) -> FieldSpec:
    return FieldSpec(name=column.name, semantic_type=semantic_type_for(column))


def pin_for_column(column: Column, pin_name: Optional[str] = None) -> PinSpec:
    """Pin description for a column; the description is the column name."""
    semantic_type = semantic_type_for(column)
    return PinSpec(
        name=pin_name or column.name,
        semantic_type=semantic_type,
        default_value=default_value(semantic_type),
        description=column.name,
    )
