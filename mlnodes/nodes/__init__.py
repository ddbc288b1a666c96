"""Model nodes exposed to the dataflow host.

Primary components:
- ``shapes``: synthesized record shapes and their per-call instances.
- ``schema``: translation of a model column schema into fields and pins.
- ``strategies``: per model kind output fields, pins and pin mapping.
- ``binder``: engine resolution into a reusable ``BoundPredictor``.
- ``marshaling``: pins to instances and back, resolved to slot indices.
- ``registry``: path-keyed, refcounted predictor memo owned by a factory.
- ``description`` / ``node`` / ``factory``: the host-facing surface.

Guidance:
- Hosts construct a ``factory.ModelNodeFactory`` (or call ``for_path``) and
  never build predictors directly.
"""
