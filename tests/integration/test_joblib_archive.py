"""Integration tests for the joblib archive runtime through the node stack."""

import json
import zipfile

import numpy as np
import pandas as pd
import pytest
from prometheus_client import CollectorRegistry
from sklearn.compose import ColumnTransformer
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.pipeline import Pipeline
from sklearn.svm import LinearSVC

from mlnodes.common.config import ModelNodesConfig
from mlnodes.common.metrics import MetricsCollector
from mlnodes.errors import BindingError, ModelLoadError
from mlnodes.nodes.base import ModelKind
from mlnodes.nodes.binder import build_predictor
from mlnodes.nodes.factory import ModelNodeFactory
from mlnodes.runtime.base import Column, LoadedModel, Schema
from mlnodes.runtime.joblib_archive import (
    JoblibArchiveRuntime,
    columns_from_frame,
    parse_column,
    write_model_archive,
)


@pytest.mark.integration
class TestJoblibArchiveNodes:
    """Train, archive, discover and run real scikit-learn models."""

    @pytest.fixture(scope="class")
    def document_dir(self, tmp_path_factory):
        """Document directory with an ``ml-models`` folder of archives."""
        root = tmp_path_factory.mktemp("document")
        models = root / "ml-models"
        rng = np.random.default_rng(7)

        texts = ["good fun", "very good", "good acting", "bad plot", "very bad", "bad acting"] * 10
        frame = pd.DataFrame({
            "Text": texts,
            "Sentiment": ["positive" if "good" in t else "negative" for t in texts],
        })
        classifier = Pipeline([
            ("features", ColumnTransformer([("text", TfidfVectorizer(), "Text")])),
            ("classifier", LogisticRegression()),
        ])
        classifier.fit(frame[["Text"]], frame["Sentiment"])
        write_model_archive(
            str(models / "Sentiment_TextClassification.zip"),
            classifier,
            columns_from_frame(frame, label_column="Sentiment"),
        )

        size = rng.uniform(10.0, 100.0, 50)
        rooms = rng.integers(1, 5, 50).astype(float)
        prices = pd.DataFrame({"Size": size, "Rooms": rooms, "Price": 3.0 * size + 2.0 * rooms})
        regressor = LinearRegression().fit(prices[["Size", "Rooms"]], prices["Price"])
        write_model_archive(
            str(models / "HousePrices_Regression.zip"),
            regressor,
            columns_from_frame(prices, label_column="Price"),
        )

        pixels = pd.DataFrame(
            [[1.0, 1.0, 0.0, 0.0], [0.0, 0.0, 1.0, 1.0]] * 10,
            columns=[f"Pixels_{i}" for i in range(4)],
        )
        image_classifier = LogisticRegression().fit(pixels, ["left", "right"] * 10)
        write_model_archive(
            str(models / "Halves_ImageClassification.zip"),
            image_classifier,
            [
                Column("Pixels", "Vector<Single, 4>", is_vector=True, item_type_name="Single", size=4),
                Column("Label", "String"),
            ],
        )

        (models / "Broken_Regression.zip").write_bytes(b"not a zip")
        return root

    @pytest.fixture
    def factory(self, document_dir):
        root = ModelNodeFactory(
            config=ModelNodesConfig(),
            metrics=MetricsCollector("test-service", registry=CollectorRegistry()),
        )
        return root.for_path(str(document_dir))

    def description(self, factory, name):
        return next(d for d in factory.node_descriptions if d.name == name)

    def test_discovers_models(self, factory):
        assert [d.name for d in factory.node_descriptions] == [
            "Broken", "Halves", "HousePrices", "Sentiment",
        ]

    def test_archive_layout(self, document_dir):
        with zipfile.ZipFile(document_dir / "ml-models" / "HousePrices_Regression.zip") as archive:
            manifest = json.loads(archive.read("schema.json"))
        assert [c["name"] for c in manifest["columns"]] == ["Size", "Rooms", "Label"]
        assert all(c["type"] == "Single" for c in manifest["columns"])

    def test_text_classification(self, factory):
        description = self.description(factory, "Sentiment")
        assert [p.name for p in description.inputs] == ["Text", "Run"]
        assert [p.name for p in description.outputs] == ["Predicted Label", "Score", "Labels"]

        node = description.create_instance()
        node.input("Text").value = "good fun"
        node.input("Run").value = True
        node.update()

        assert node.output("Predicted Label").value == "positive"
        assert node.output("Labels").value == ("negative", "positive")
        score = node.output("Score").value
        assert len(score) == 2
        assert score[1] > score[0]
        node.dispose()

    def test_regression(self, factory):
        description = self.description(factory, "HousePrices")
        assert [p.name for p in description.inputs] == ["Size", "Rooms", "Run"]

        node = description.create_instance()
        node.input("Size").value = 50.0
        node.input("Rooms").value = 2
        node.input("Run").value = True
        node.update()

        assert node.output("Score").value == pytest.approx(154.0, rel=1e-3)
        node.dispose()

    def test_image_classification_with_vector_input(self, factory):
        description = self.description(factory, "Halves")
        assert [p.name for p in description.inputs] == ["Pixels", "Run"]

        node = description.create_instance()
        node.input("Pixels").value = [0.0, 0.0, 1.0, 1.0]
        node.input("Run").value = True
        node.update()

        assert node.output("Predicted Label").value == "right"
        assert node.output("Labels").value == ("left", "right")
        node.dispose()

    def test_broken_archive_is_error_state(self, factory):
        description = self.description(factory, "Broken")
        assert description.inputs == ()
        assert description.has_error
        assert "Error loading ML model" in description.messages[0].text


def test_parse_vector_column():
    column = parse_column({"name": "Pixels", "type": "Vector<Single, 16>"})
    assert column.is_vector
    assert column.item_type_name == "Single"
    assert column.size == 16

    assert not parse_column({"name": "Age", "type": "Single"}).is_vector


def test_columns_from_frame():
    frame = pd.DataFrame({"Text": ["a"], "Flag": [True], "Age": [1], "y": [0.5]})
    columns = columns_from_frame(frame, label_column="y")
    assert [(c.name, c.type_name) for c in columns] == [
        ("Text", "String"), ("Flag", "Boolean"), ("Age", "Single"), ("Label", "Single"),
    ]


def test_load_missing_archive(tmp_path):
    with pytest.raises(ModelLoadError):
        JoblibArchiveRuntime().load_model(str(tmp_path / "Missing_Regression.zip"))


SIDES = pd.DataFrame({"Left": [1.0, 0.0] * 10, "Right": [0.0, 1.0] * 10})
SIDE_LABELS = ["left", "right"] * 10
SIDE_COLUMNS = [Column("Left", "Single"), Column("Right", "Single"), Column("Label", "String")]


class ProbabilityOnlyClassifier(LogisticRegression):
    """Fails if the engine asks for labels separately from the scores."""

    def predict(self, X):
        raise AssertionError("predict called alongside predict_proba")


def test_classifier_without_probabilities_fails_at_bind(tmp_path):
    path = tmp_path / "ml-models" / "Sides_TextClassification.zip"
    write_model_archive(str(path), LinearSVC().fit(SIDES, SIDE_LABELS), SIDE_COLUMNS)

    with pytest.raises(BindingError, match="predict_proba"):
        build_predictor(str(path), ModelKind.TEXT_CLASSIFICATION, JoblibArchiveRuntime())

    factory = ModelNodeFactory(
        str(path.parent),
        config=ModelNodesConfig(),
        metrics=MetricsCollector("test-service", registry=CollectorRegistry()),
    )
    description = factory.node_descriptions[0]
    assert [p.name for p in description.outputs] == ["Predicted Label", "Score", "Labels"]

    node = description.create_instance()
    node.input("Left").value = 1.0
    node.input("Run").value = True
    node.update()

    assert description.has_error
    assert any("Error binding ML model" in m.text for m in description.messages)
    assert node.output("Predicted Label").value == ""


def test_predicted_label_comes_from_scores():
    estimator = ProbabilityOnlyClassifier().fit(SIDES, SIDE_LABELS)
    predictor = build_predictor(
        "Sides_TextClassification.zip",
        ModelKind.TEXT_CLASSIFICATION,
        JoblibArchiveRuntime(),
        loaded=LoadedModel(schema=Schema(SIDE_COLUMNS), trained_model=estimator),
    )

    values = predictor.run([("Left", 0.0), ("Right", 1.0)])

    expected = estimator.predict_proba(pd.DataFrame({"Left": [0.0], "Right": [1.0]}))[0]
    assert values["Predicted Label"] == "right"
    assert tuple(values["Score"]) == pytest.approx(tuple(expected), rel=1e-5)
    assert values["Labels"] == ("left", "right")
    predictor.close()
