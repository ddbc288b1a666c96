"""Utility scripts for the model nodes.

Scripts include:
- ``build_sample_models.py``: train small scikit-learn models and write them
  as model archives for a ``ml-models`` directory.
"""
