"""Predictor registry.

Memoizes bound predictors by model file path for the lifetime of one node
factory.

Design
- Keyed by absolute model path; each path is built at most once, under a
  per-path lock, and concurrent callers get the same instance
- Entries are refcounted by the nodes holding them; the engine is closed
  when the last holder releases it
- ``invalidate`` evicts entries and marks them stale. A stale predictor keeps
  working for whoever holds it; holders notice at their next tick and
  re-acquire, which rebuilds from the model file
"""

import os
import threading
from typing import Callable, Dict, List, Optional

import structlog

from mlnodes.common.metrics import MetricsCollector, get_metrics_collector
from mlnodes.nodes.binder import BoundPredictor

logger = structlog.get_logger("nodes.registry")

CACHE_TYPE = "bound_predictor"


def _key(path: str) -> str:
    return os.path.abspath(path)


class PredictorRegistry:
    """Path-keyed, refcounted store of bound predictors."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics or get_metrics_collector()
        self._entries: Dict[str, BoundPredictor] = {}
        self._path_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def _path_lock(self, key: str) -> threading.Lock:
        with self._lock:
            return self._path_locks.setdefault(key, threading.Lock())

    def _update_gauge(self) -> None:
        self.metrics.set_bound_predictors(len(self._entries))

    def acquire(self, path: str, build: Callable[[], BoundPredictor]) -> BoundPredictor:
        """Return the predictor for ``path``, building it on first use.

        The caller owns one reference and must hand it back with ``release``.
        Exceptions from ``build`` propagate and leave no entry behind.
        """
        key = _key(path)
        with self._path_lock(key):
            with self._lock:
                predictor = self._entries.get(key)
                if predictor is not None:
                    predictor.refcount += 1
                    self.metrics.record_cache_hit(CACHE_TYPE)
                    return predictor

            self.metrics.record_cache_miss(CACHE_TYPE)
            predictor = build()

            with self._lock:
                self._entries[key] = predictor
                predictor.refcount += 1
                self._update_gauge()

        logger.debug("Registered bound predictor", model_path=key)
        return predictor

    def release(self, predictor: BoundPredictor) -> None:
        """Drop one reference; closes the predictor when none remain."""
        key = _key(predictor.model_path)
        with self._lock:
            predictor.refcount = max(0, predictor.refcount - 1)
            if predictor.refcount > 0:
                return
            if self._entries.get(key) is predictor:
                del self._entries[key]
                self._update_gauge()

        predictor.close()

    def invalidate(self, path: Optional[str] = None) -> int:
        """Evict the entry for ``path`` (or every entry) and mark it stale.

        Returns the number of evicted entries.
        """
        with self._lock:
            keys = [_key(path)] if path is not None else list(self._entries)
            evicted: List[BoundPredictor] = []
            for key in keys:
                predictor = self._entries.pop(key, None)
                if predictor is not None:
                    predictor.stale = True
                    evicted.append(predictor)
            self._update_gauge()

        for predictor in evicted:
            if predictor.refcount == 0:
                predictor.close()

        if evicted:
            logger.info("Invalidated bound predictors", count=len(evicted), path=path)
        return len(evicted)

    def get(self, path: str) -> Optional[BoundPredictor]:
        """Peek at the current entry without taking a reference."""
        with self._lock:
            return self._entries.get(_key(path))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
