"""Integration test suite for end-to-end flows.

Trains small scikit-learn models, writes them as model archives and runs
them through factory, description, node and predictor registry.
"""
