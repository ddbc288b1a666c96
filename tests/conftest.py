"""Shared fixtures: an in-memory model runtime and model directories."""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from mlnodes.common.config import ModelNodesConfig
from mlnodes.common.metrics import MetricsCollector
from mlnodes.errors import ModelLoadError
from mlnodes.nodes.shapes import Instance, Shape
from mlnodes.runtime.base import (
    SLOT_NAMES_ANNOTATION,
    Column,
    LoadedModel,
    ModelRuntime,
    PredictionEngine,
    Schema,
)


@dataclass
class StubModel:
    """Trained model stand-in.

    ``classes`` set means a classifier; ``fn`` maps the input instance as a
    dict to the output field values.
    """
    columns: List[Column]
    fn: Callable[[Dict[str, Any]], Dict[str, Any]]
    classes: Optional[List[str]] = None


class StubEngine(PredictionEngine):
    def __init__(self, model: StubModel, output_schema: Schema, output_shape: Shape):
        self.model = model
        self._output_schema = output_schema
        self.output_shape = output_shape
        self.predict_calls = 0
        self.annotation_calls = 0
        self.closed = False

    @property
    def output_schema(self) -> Schema:
        return self._output_schema

    def predict(self, instance: Instance) -> Instance:
        self.predict_calls += 1
        output = self.output_shape.new_instance()
        for name, value in self.model.fn(instance.to_dict()).items():
            output.set(name, value)
        return output

    def get_annotation(self, column_name: str, annotation: str) -> Any:
        self.annotation_calls += 1
        return super().get_annotation(column_name, annotation)

    def close(self) -> None:
        self.closed = True


@dataclass
class StubRuntime(ModelRuntime):
    """Serves ``StubModel`` objects keyed by model file name."""
    models: Dict[str, StubModel] = field(default_factory=dict)
    loads: Dict[str, int] = field(default_factory=dict)
    engines: List[StubEngine] = field(default_factory=list)
    fail_engine: bool = False

    def load_model(self, path: str) -> LoadedModel:
        name = os.path.basename(path)
        if name not in self.models:
            raise ModelLoadError(f"Model archive not found: {path}")
        self.loads[name] = self.loads.get(name, 0) + 1
        model = self.models[name]
        return LoadedModel(schema=Schema(model.columns), trained_model=model)

    def get_output_schema(self, trained_model: StubModel, schema: Schema) -> Schema:
        if trained_model.classes is not None:
            return schema.extend([
                Column(name="PredictedLabel", type_name="String"),
                Column(
                    name="Score",
                    type_name="Vector<Single>",
                    is_vector=True,
                    item_type_name="Single",
                    annotations={SLOT_NAMES_ANNOTATION: list(trained_model.classes)},
                ),
            ])
        return schema.extend([Column(name="Score", type_name="Single")])

    def create_prediction_engine(self, trained_model, schema, input_shape, output_shape):
        if self.fail_engine:
            raise RuntimeError("engine unavailable")
        engine = StubEngine(
            trained_model, self.get_output_schema(trained_model, schema), output_shape
        )
        self.engines.append(engine)
        return engine


def regression_model() -> StubModel:
    return StubModel(
        columns=[
            Column("Label", "Single"),
            Column("Age", "Single"),
            Column("Income", "Single"),
        ],
        fn=lambda row: {"Score": row["Age"] * 2.0 + row.get("Income", 0.0)},
    )


def sentiment_model() -> StubModel:
    def classify(row):
        positive = "good" in row["Text"]
        return {
            "PredictedLabel": "positive" if positive else "negative",
            "Score": (0.2, 0.8) if positive else (0.9, 0.1),
        }

    return StubModel(
        columns=[Column("Text", "String"), Column("Label", "String")],
        fn=classify,
        classes=["negative", "positive"],
    )


@pytest.fixture
def metrics():
    """Metrics collector with an isolated registry."""
    return MetricsCollector("test-service", registry=CollectorRegistry())


@pytest.fixture
def config():
    return ModelNodesConfig()


@pytest.fixture
def stub_runtime():
    return StubRuntime(models={
        "HousePrices_Regression.zip": regression_model(),
        "Sentiment_TextClassification.zip": sentiment_model(),
    })


@pytest.fixture
def models_dir(tmp_path, stub_runtime):
    """A document directory with an ``ml-models`` subdirectory.

    Archive contents are irrelevant to the stub runtime, so files are empty.
    """
    directory = tmp_path / "ml-models"
    directory.mkdir()
    for name in stub_runtime.models:
        (directory / name).write_bytes(b"")
    return directory
