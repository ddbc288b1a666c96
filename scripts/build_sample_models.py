#!/usr/bin/env python3
"""Script to build sample model archives for the model nodes.

Trains small scikit-learn models on synthetic data and writes them as
``<FriendlyName>_<ModelKind>.zip`` archives into a models directory, e.g.
``<document>/ml-models``.
"""

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import structlog
from sklearn.compose import ColumnTransformer
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.pipeline import Pipeline

from mlnodes.common.config import ModelNodesConfig
from mlnodes.common.logging import configure_logging
from mlnodes.runtime.base import Column
from mlnodes.runtime.joblib_archive import columns_from_frame, write_model_archive

logger = structlog.get_logger("build_sample_models")

POSITIVE = ["great", "wonderful", "loved it", "excellent", "fantastic", "very good"]
NEGATIVE = ["terrible", "awful", "hated it", "boring", "very bad", "waste of time"]


def build_sentiment_model(output_dir: Path, samples: int, rng: np.random.Generator) -> Path:
    """Text classifier over a single ``Text`` column."""
    texts, labels = [], []
    for _ in range(samples):
        positive = rng.random() < 0.5
        words = rng.choice(POSITIVE if positive else NEGATIVE, size=2)
        texts.append(f"The movie was {words[0]} and {words[1]}")
        labels.append("positive" if positive else "negative")
    frame = pd.DataFrame({"Text": texts, "Sentiment": labels})

    model = Pipeline([
        ("features", ColumnTransformer([("text", TfidfVectorizer(), "Text")])),
        ("classifier", LogisticRegression(max_iter=1000)),
    ])
    model.fit(frame[["Text"]], frame["Sentiment"])

    return write_model_archive(
        str(output_dir / "Sentiment_TextClassification.zip"),
        model,
        columns_from_frame(frame, label_column="Sentiment"),
        metadata={"samples": samples},
    )


def build_house_price_model(output_dir: Path, samples: int, rng: np.random.Generator) -> Path:
    """Linear regression over two numeric columns."""
    size = rng.uniform(30.0, 200.0, samples)
    rooms = rng.integers(1, 7, samples).astype(float)
    price = 1500.0 * size + 10000.0 * rooms + rng.normal(0.0, 5000.0, samples)
    frame = pd.DataFrame({"Size": size, "Rooms": rooms, "Price": price})

    model = LinearRegression()
    model.fit(frame[["Size", "Rooms"]], frame["Price"])

    return write_model_archive(
        str(output_dir / "HousePrices_Regression.zip"),
        model,
        columns_from_frame(frame, label_column="Price"),
        metadata={"samples": samples},
    )


def build_pattern_model(output_dir: Path, samples: int, rng: np.random.Generator) -> Path:
    """Classifier over a 4x4 grayscale patch stored as a vector column."""
    pixels = rng.random((samples, 16))
    labels = np.where(pixels[:, :8].mean(axis=1) > pixels[:, 8:].mean(axis=1), "top", "bottom")
    frame = pd.DataFrame(pixels, columns=[f"Pixels_{i}" for i in range(16)])

    model = LogisticRegression(max_iter=1000)
    model.fit(frame, labels)

    columns = [
        Column(name="Pixels", type_name="Vector<Single>", is_vector=True, item_type_name="Single", size=16),
        Column(name="Label", type_name="String"),
    ]
    return write_model_archive(
        str(output_dir / "Patterns_ImageClassification.zip"),
        model,
        columns,
        metadata={"samples": samples},
    )


def main():
    """Main function."""
    config = ModelNodesConfig()

    parser = argparse.ArgumentParser(description="Build sample model archives")
    parser.add_argument("output_dir", help="Directory to write the archives into")
    parser.add_argument("--samples", type=int, default=500, help="Training rows per model")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--log-level", default=config.ml_log_level, help="Log level")

    args = parser.parse_args()

    configure_logging("build-sample-models", args.log_level, "console")

    output_dir = Path(args.output_dir)
    rng = np.random.default_rng(args.seed)

    try:
        paths = [
            build_sentiment_model(output_dir, args.samples, rng),
            build_house_price_model(output_dir, args.samples, rng),
            build_pattern_model(output_dir, args.samples, rng),
        ]
    except Exception as e:
        logger.error("Failed to build sample models", error=str(e))
        sys.exit(1)

    logger.info("Built sample models", output_dir=str(output_dir), models=[p.name for p in paths])


if __name__ == "__main__":
    main()
