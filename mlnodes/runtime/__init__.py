"""Model runtime capability and implementations.

Primary components:
- ``base``: abstract ``ModelRuntime`` / ``PredictionEngine`` and the
  ``Schema`` / ``Column`` types they report.
- ``joblib_archive``: scikit-learn models stored in zip archives.
- ``factory``: helpers to construct a runtime from its configured name.

Guidance:
- Prefer ``factory.create_model_runtime`` so callers remain decoupled from
  specific runtimes.
"""
