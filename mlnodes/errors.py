"""Exception hierarchy for model nodes.

Load, translate and bind failures are caught at the node description
boundary and turned into diagnostics. Per-tick failures propagate.
"""


class ModelNodeError(Exception):
    """Base exception for model node operations."""
    pass


class ModelLoadError(ModelNodeError):
    """Model archive missing, corrupt or unreadable."""
    pass


class MissingOutputColumnError(ModelLoadError):
    """Model output schema lacks a column the model kind requires."""

    def __init__(self, column_name: str, model_kind: str):
        super().__init__(f"Output schema has no '{column_name}' column for a {model_kind} model")
        self.column_name = column_name
        self.model_kind = model_kind


class UnsupportedColumnTypeError(ModelNodeError):
    """Column storage kind is not one of the supported primitives."""

    def __init__(self, column_name: str, type_name: str):
        super().__init__(f"Column '{column_name}' has unsupported type '{type_name}'")
        self.column_name = column_name
        self.type_name = type_name


class UnsupportedModelKindError(ModelNodeError):
    """Model kind is not in the supported set."""
    pass


class UnsupportedTypeError(ModelNodeError):
    """Semantic type cannot be used as a shape field."""
    pass


class BindingError(ModelNodeError):
    """Prediction engine could not be resolved for the synthesized shapes."""
    pass


class FieldNotFoundError(ModelNodeError):
    """A pin or column name has no matching field in a shape."""

    def __init__(self, field_name: str, shape_name: str):
        super().__init__(f"Shape '{shape_name}' has no field '{field_name}'")
        self.field_name = field_name
        self.shape_name = shape_name
