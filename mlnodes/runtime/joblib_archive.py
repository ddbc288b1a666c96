"""Joblib archive model runtime.

Loads ``.zip`` model archives containing:
- ``schema.json``: ``{"columns": [{"name": ..., "type": ...}], "metadata": {...}}``
  where ``type`` is a storage type name (``String``, ``Single``,
  ``Boolean``, ...) or ``Vector<Single>`` / ``Vector<Single, N>``
- ``model.joblib``: a fitted scikit-learn estimator or pipeline

The engine turns an input ``Instance`` into a one-row ``pandas.DataFrame``
(vector fields expanded to ``<name>_<i>`` columns) and fills the output
instance from ``predict`` / ``predict_proba``.
"""

import io
import json
import re
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import joblib
import numpy as np
import pandas as pd
import structlog
from sklearn.base import is_classifier

from mlnodes.common.tracing import get_model_tracer
from mlnodes.errors import ModelLoadError
from mlnodes.nodes.base import SemanticType
from mlnodes.nodes.shapes import Instance, Shape
from mlnodes.runtime.base import (
    SLOT_NAMES_ANNOTATION,
    Column,
    LoadedModel,
    ModelRuntime,
    PredictionEngine,
    Schema,
    ShapeMismatchError,
)

logger = structlog.get_logger("runtime.joblib_archive")

SCHEMA_ENTRY = "schema.json"
MODEL_ENTRY = "model.joblib"

PREDICTED_LABEL_COLUMN = "PredictedLabel"
SCORE_COLUMN = "Score"

_VECTOR_TYPE = re.compile(r"^Vector<\s*(\w+)\s*(?:,\s*(\d+)\s*)?>$")


def parse_column(entry: Dict[str, Any]) -> Column:
    """Build a ``Column`` from a ``schema.json`` entry."""
    name = entry["name"]
    type_name = entry["type"]
    match = _VECTOR_TYPE.match(type_name)
    if match:
        size = entry.get("size")
        if size is None and match.group(2):
            size = int(match.group(2))
        return Column(
            name=name,
            type_name=type_name,
            is_vector=True,
            item_type_name=match.group(1),
            size=size,
        )
    return Column(name=name, type_name=type_name)


def column_to_entry(column: Column) -> Dict[str, Any]:
    """Inverse of ``parse_column``."""
    entry: Dict[str, Any] = {"name": column.name, "type": column.type_name}
    if column.size is not None:
        entry["size"] = column.size
    return entry


def columns_from_frame(frame: pd.DataFrame, label_column: Optional[str] = None) -> List[Column]:
    """Derive schema columns from a training frame.

    Numeric columns map to ``Single``, booleans to ``Boolean`` and everything
    else to ``String``. The label column, when given, is stored as ``Label``
    so the node layer excludes it from the inputs.
    """
    columns = []
    for name, dtype in frame.dtypes.items():
        if pd.api.types.is_bool_dtype(dtype):
            type_name = "Boolean"
        elif pd.api.types.is_numeric_dtype(dtype):
            type_name = "Single"
        else:
            type_name = "String"
        columns.append(Column(name="Label" if name == label_column else str(name), type_name=type_name))
    return columns


def write_model_archive(
    path: str,
    estimator: Any,
    columns: Sequence[Column],
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """Write a fitted estimator and its input columns as a model archive."""
    archive_path = Path(path)
    archive_path.parent.mkdir(parents=True, exist_ok=True)

    buffer = io.BytesIO()
    joblib.dump(estimator, buffer)

    manifest = {
        "columns": [column_to_entry(c) for c in columns],
        "metadata": metadata or {},
    }

    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(SCHEMA_ENTRY, json.dumps(manifest, indent=2))
        archive.writestr(MODEL_ENTRY, buffer.getvalue())

    logger.info("Wrote model archive", path=str(archive_path), columns=len(columns))
    return archive_path


class SklearnPredictionEngine(PredictionEngine):
    """Prediction engine over a fitted scikit-learn estimator."""

    def __init__(
        self,
        estimator: Any,
        output_schema: Schema,
        input_shape: Shape,
        output_shape: Shape,
    ):
        self.estimator = estimator
        self._output_schema = output_schema
        self.input_shape = input_shape
        self.output_shape = output_shape
        self._classifier = is_classifier(estimator)

        # Slot indices resolved once; predict never looks names up.
        self._vector_slots = [
            f.semantic_type == SemanticType.FLOAT32_VECTOR for f in input_shape.fields
        ]
        self._label_slot = (
            output_shape.index_of(PREDICTED_LABEL_COLUMN)
            if PREDICTED_LABEL_COLUMN in output_shape else None
        )
        self._score_slot = (
            output_shape.index_of(SCORE_COLUMN)
            if SCORE_COLUMN in output_shape else None
        )

    @property
    def output_schema(self) -> Schema:
        return self._output_schema

    def _to_frame(self, instance: Instance) -> pd.DataFrame:
        row: Dict[str, Any] = {}
        for index, field in enumerate(self.input_shape.fields):
            value = instance.get_at(index)
            if self._vector_slots[index]:
                for position, item in enumerate(value):
                    row[f"{field.name}_{position}"] = item
            else:
                row[field.name] = value
        return pd.DataFrame([row])

    def predict(self, instance: Instance) -> Instance:
        frame = self._to_frame(instance)
        output = self.output_shape.new_instance()

        if self._classifier:
            if self._score_slot is not None:
                scores = np.asarray(self.estimator.predict_proba(frame)[0], dtype=np.float32)
                output.set_at(self._score_slot, scores.tolist())
                if self._label_slot is not None:
                    label = self.estimator.classes_[int(np.argmax(scores))]
                    output.set_at(self._label_slot, str(label))
            elif self._label_slot is not None:
                output.set_at(self._label_slot, str(self.estimator.predict(frame)[0]))
        elif self._score_slot is not None:
            output.set_at(self._score_slot, float(self.estimator.predict(frame)[0]))

        return output

    def close(self) -> None:
        self.estimator = None


class JoblibArchiveRuntime(ModelRuntime):
    """Model runtime for joblib model archives."""

    def __init__(self):
        self.tracer = get_model_tracer("runtime.joblib_archive")

    def load_model(self, path: str) -> LoadedModel:
        archive_path = Path(path)
        with self.tracer.trace_model_load(str(archive_path)):
            if not archive_path.is_file():
                raise ModelLoadError(f"Model archive not found: {archive_path}")

            try:
                with zipfile.ZipFile(archive_path) as archive:
                    manifest = json.loads(archive.read(SCHEMA_ENTRY).decode("utf-8"))
                    estimator = joblib.load(io.BytesIO(archive.read(MODEL_ENTRY)))
                columns = [parse_column(entry) for entry in manifest["columns"]]
            except Exception as e:
                logger.error("Failed to read model archive", path=str(archive_path), error=str(e))
                raise ModelLoadError(f"Cannot read model archive {archive_path}: {e}") from e

            logger.info("Loaded model archive", path=str(archive_path), columns=len(columns))
            return LoadedModel(
                schema=Schema(columns),
                trained_model=estimator,
                metadata=manifest.get("metadata", {}),
            )

    def get_output_schema(self, trained_model: Any, schema: Schema) -> Schema:
        if is_classifier(trained_model):
            labels = [str(c) for c in getattr(trained_model, "classes_", [])]
            return schema.extend([
                Column(name=PREDICTED_LABEL_COLUMN, type_name="String"),
                Column(
                    name=SCORE_COLUMN,
                    type_name="Vector<Single>",
                    is_vector=True,
                    item_type_name="Single",
                    size=len(labels),
                    annotations={SLOT_NAMES_ANNOTATION: labels},
                ),
            ])
        return schema.extend([Column(name=SCORE_COLUMN, type_name="Single")])

    def create_prediction_engine(
        self,
        trained_model: Any,
        schema: Schema,
        input_shape: Shape,
        output_shape: Shape,
    ) -> PredictionEngine:
        missing_inputs = [n for n in input_shape.field_names if schema.get(n) is None]
        if missing_inputs:
            raise ShapeMismatchError(f"Input fields not in model schema: {missing_inputs}")

        output_schema = self.get_output_schema(trained_model, schema)
        produced = {PREDICTED_LABEL_COLUMN, SCORE_COLUMN} & set(output_schema.names)
        missing_outputs = [n for n in output_shape.field_names if n not in produced]
        if missing_outputs:
            raise ShapeMismatchError(f"Output fields not produced by model: {missing_outputs}")

        if (
            is_classifier(trained_model)
            and SCORE_COLUMN in output_shape
            and not hasattr(trained_model, "predict_proba")
        ):
            raise ShapeMismatchError(
                f"{type(trained_model).__name__} has no predict_proba for the {SCORE_COLUMN} column"
            )

        return SklearnPredictionEngine(trained_model, output_schema, input_shape, output_shape)
