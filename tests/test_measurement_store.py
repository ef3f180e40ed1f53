from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from models.records import GeneratorConfig
from services.generator import TelemetryGenerator
from storage.measurement_store import MeasurementStore


def _ticking_generator() -> TelemetryGenerator:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = iter(range(10_000))
    return TelemetryGenerator(
        config=GeneratorConfig(),
        rng=random.Random(1),
        clock=lambda: start + timedelta(seconds=next(counter)),
    )


def test_empty_store_has_no_current_measurement() -> None:
    store = MeasurementStore()

    assert store.current() is None
    assert store.history() == ()


def test_history_keeps_newest_hundred_in_order() -> None:
    store = MeasurementStore()
    generator = _ticking_generator()
    produced = [generator.tick(float(i)) for i in range(150)]

    for measurement in produced:
        store.record(measurement)

    history = store.history()
    assert len(history) == 100
    assert list(history) == produced[50:]
    assert store.current() == produced[-1]
    assert all(a.timestamp < b.timestamp for a, b in zip(history, history[1:]))


def test_history_is_a_snapshot() -> None:
    store = MeasurementStore(capacity=3)
    generator = _ticking_generator()
    store.record(generator.tick(0.0))

    snapshot = store.history()
    store.record(generator.tick(1.0))

    assert len(snapshot) == 1
    assert len(store.history()) == 2


def test_clear_history_keeps_current() -> None:
    store = MeasurementStore()
    measurement = _ticking_generator().tick(0.0)
    store.record(measurement)

    store.clear_history()

    assert store.history() == ()
    assert store.current() == measurement
