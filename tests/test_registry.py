"""Tests for the predictor registry."""

import threading

from mlnodes.nodes.base import ModelKind
from mlnodes.nodes.binder import build_predictor
from mlnodes.nodes.registry import PredictorRegistry

PATH = "HousePrices_Regression.zip"


def builder(runtime, counter=None):
    def build():
        if counter is not None:
            counter.append(1)
        return build_predictor(PATH, ModelKind.REGRESSION, runtime)
    return build


def test_same_path_same_predictor(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    builds = []

    first = registry.acquire(PATH, builder(stub_runtime, builds))
    second = registry.acquire(PATH, builder(stub_runtime, builds))

    assert first is second
    assert first.refcount == 2
    assert len(builds) == 1
    assert len(registry) == 1


def test_concurrent_acquire_builds_once(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    builds = []
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(registry.acquire(PATH, builder(stub_runtime, builds)))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(builds) == 1
    assert all(p is results[0] for p in results)
    assert results[0].refcount == 8


def test_last_release_closes(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    predictor = registry.acquire(PATH, builder(stub_runtime))
    registry.acquire(PATH, builder(stub_runtime))

    registry.release(predictor)
    assert not predictor.closed
    assert registry.get(PATH) is predictor

    registry.release(predictor)
    assert predictor.closed
    assert registry.get(PATH) is None


def test_invalidate_marks_stale_and_rebuilds(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    old = registry.acquire(PATH, builder(stub_runtime))

    assert registry.invalidate(PATH) == 1
    assert old.stale
    # Still held, so still usable.
    assert not old.closed

    new = registry.acquire(PATH, builder(stub_runtime))
    assert new is not old
    assert new.input_shape.name != old.input_shape.name

    registry.release(old)
    assert old.closed
    assert registry.get(PATH) is new


def test_invalidate_all_closes_unheld(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    predictor = registry.acquire(PATH, builder(stub_runtime))
    predictor.refcount = 0

    assert registry.invalidate() == 1
    assert predictor.closed
    assert len(registry) == 0


def test_failed_build_leaves_no_entry(stub_runtime, metrics):
    registry = PredictorRegistry(metrics=metrics)
    stub_runtime.fail_engine = True

    try:
        registry.acquire(PATH, builder(stub_runtime))
    except Exception:
        pass
    assert registry.get(PATH) is None
