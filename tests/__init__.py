"""Tests for the model node packages.

Unit tests run against an in-memory stub runtime (see ``conftest.py``).
The integration suite trains real scikit-learn models and drives them through
the joblib archive runtime and the full node stack.
"""
