"""Base model runtime interface.

Defines the contract the node packages depend on, independent of the
backing inference library: load a serialized model and report its column
schema, compute the post-transform output schema, and resolve a prediction
engine for a pair of synthesized shapes.

Engines accept and return the uniform ``Instance`` values from
``mlnodes.nodes.shapes``; mapping them onto the library's concrete layout is
each implementation's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from mlnodes.nodes.shapes import Instance, Shape

SLOT_NAMES_ANNOTATION = "SlotNames"


@dataclass(frozen=True)
class Column:
    """One column of a model schema.

    ``type_name`` is the declared storage type (``String``, ``Single``, ...);
    vector columns set ``is_vector`` and carry their element type in
    ``item_type_name``.
    """
    name: str
    type_name: str
    is_vector: bool = False
    item_type_name: Optional[str] = None
    size: Optional[int] = None
    annotations: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)


class Schema:
    """Ordered, name-indexable collection of columns."""

    def __init__(self, columns: Iterable[Column] = ()):
        self._columns: List[Column] = list(columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, key: Union[int, str]) -> Column:
        if isinstance(key, int):
            return self._columns[key]
        column = self.get(key)
        if column is None:
            raise KeyError(key)
        return column

    def get(self, name: str) -> Optional[Column]:
        """Return the first column called ``name``, if any."""
        return next((c for c in self._columns if c.name == name), None)

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._columns]

    def extend(self, columns: Iterable[Column]) -> "Schema":
        """Return a new schema with ``columns`` appended."""
        return Schema([*self._columns, *columns])

    def __repr__(self) -> str:
        return f"Schema({self.names!r})"


@dataclass
class LoadedModel:
    """A trained model together with the input schema it was saved with."""
    schema: Schema
    trained_model: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


class PredictionEngine(ABC):
    """Inference callable bound to one (input shape, output shape) pair.

    Implementations are not required to be safe for concurrent calls;
    callers serialize access.
    """

    @property
    @abstractmethod
    def output_schema(self) -> Schema:
        """Schema of the columns the engine produces."""
        pass

    @abstractmethod
    def predict(self, instance: Instance) -> Instance:
        """Run inference for one input instance and return an output instance."""
        pass

    def get_annotation(self, column_name: str, annotation: str) -> Any:
        """Return annotation metadata attached to an output column.

        Raises ``KeyError`` when the column or the annotation is missing.
        """
        return self.output_schema[column_name].annotations[annotation]

    def close(self) -> None:
        """Release resources held by the engine."""
        pass


class ModelRuntime(ABC):
    """Abstract model runtime."""

    @abstractmethod
    def load_model(self, path: str) -> LoadedModel:
        """Load a serialized model.

        Raises ``ModelLoadError`` when the file is missing, corrupt or
        unreadable.
        """
        pass

    @abstractmethod
    def get_output_schema(self, trained_model: Any, schema: Schema) -> Schema:
        """Schema after the model's transforms have been applied."""
        pass

    @abstractmethod
    def create_prediction_engine(
        self,
        trained_model: Any,
        schema: Schema,
        input_shape: Shape,
        output_shape: Shape,
    ) -> PredictionEngine:
        """Resolve an engine that maps ``input_shape`` instances to ``output_shape`` instances."""
        pass


class ModelRuntimeError(Exception):
    """Base exception raised by runtime implementations."""
    pass


class ShapeMismatchError(ModelRuntimeError):
    """Shapes do not match the model's columns."""
    pass
