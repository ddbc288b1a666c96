"""Record shapes synthesized from a load-time field list.

A ``Shape`` is an ordered set of typed slots with a name-to-index map; an
``Instance`` is a flat list of values conforming to one shape. Shapes are
built once per bound model and are immutable; instances are created per
prediction and thrown away afterwards.

Every ``synthesize`` call returns a new, uniquely named shape even when the
field list matches an earlier one, so callers never share structure by
accident.
"""

import numbers
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from mlnodes.errors import FieldNotFoundError, UnsupportedTypeError
from mlnodes.nodes.base import FieldSpec, SemanticType, default_value

SUPPORTED_FIELD_TYPES = frozenset({
    SemanticType.STRING,
    SemanticType.FLOAT32,
    SemanticType.FLOAT32_VECTOR,
    SemanticType.BOOL,
})


def _coerce(field: FieldSpec, value: Any) -> Any:
    """Normalize ``value`` to the slot representation of ``field``."""
    semantic_type = field.semantic_type

    if semantic_type == SemanticType.STRING:
        if isinstance(value, str):
            return str(value)

    elif semantic_type == SemanticType.FLOAT32:
        if isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_)):
            return float(value)

    elif semantic_type == SemanticType.BOOL:
        if isinstance(value, (bool, np.bool_)):
            return bool(value)

    elif semantic_type == SemanticType.FLOAT32_VECTOR:
        if not isinstance(value, (str, bytes)) and hasattr(value, "__iter__"):
            items = tuple(value)
            if all(isinstance(x, numbers.Real) and not isinstance(x, (bool, np.bool_)) for x in items):
                return tuple(float(x) for x in items)

    raise TypeError(
        f"Field '{field.name}' expects {semantic_type.value}, got {type(value).__name__}"
    )


class Shape:
    """Immutable, uniquely named record layout."""

    __slots__ = ("_name", "_fields", "_index")

    def __init__(self, name: str, fields: Sequence[FieldSpec]):
        self._name = name
        self._fields: Tuple[FieldSpec, ...] = tuple(fields)
        self._index: Dict[str, int] = {f.name: i for i, f in enumerate(self._fields)}

    @property
    def name(self) -> str:
        return self._name

    @property
    def fields(self) -> Tuple[FieldSpec, ...]:
        return self._fields

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_name: str) -> bool:
        return field_name in self._index

    def index_of(self, field_name: str) -> int:
        """Resolve a field name to its slot index."""
        try:
            return self._index[field_name]
        except KeyError:
            raise FieldNotFoundError(field_name, self._name) from None

    def new_instance(self) -> "Instance":
        """Create an instance holding the default value of every field."""
        return Instance(self, [default_value(f.semantic_type) for f in self._fields])

    def __repr__(self) -> str:
        return f"Shape({self._name!r}, fields={list(self.field_names)!r})"


class Instance:
    """Mutable value conforming to a ``Shape``."""

    __slots__ = ("shape", "_values")

    def __init__(self, shape: Shape, values: List[Any]):
        self.shape = shape
        self._values = values

    def get(self, field_name: str) -> Any:
        return self._values[self.shape.index_of(field_name)]

    def set(self, field_name: str, value: Any) -> None:
        self.set_at(self.shape.index_of(field_name), value)

    def get_at(self, index: int) -> Any:
        return self._values[index]

    def set_at(self, index: int, value: Any) -> None:
        self._values[index] = _coerce(self.shape.fields[index], value)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: v for f, v in zip(self.shape.fields, self._values)}

    def __repr__(self) -> str:
        return f"Instance({self.shape.name!r}, {self.to_dict()!r})"


def synthesize(fields: Iterable[FieldSpec], name: Optional[str] = None) -> Shape:
    """Build a new shape from an ordered field list.

    Parameters
    - fields: ``FieldSpec`` entries in slot order
    - name: Optional readable prefix for the generated shape name

    Raises
    - ``UnsupportedTypeError`` for a semantic type that cannot be a slot
    - ``ValueError`` when two fields share a name
    """
    fields = list(fields)
    seen = set()
    for f in fields:
        if f.semantic_type not in SUPPORTED_FIELD_TYPES:
            raise UnsupportedTypeError(
                f"Field '{f.name}' has unsupported type {f.semantic_type!r}"
            )
        if f.name in seen:
            raise ValueError(f"Duplicate field name '{f.name}'")
        seen.add(f.name)

    shape_name = f"{name or 'Shape'}_{uuid.uuid4().hex}"
    return Shape(shape_name, fields)
