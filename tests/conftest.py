"""Shared fixtures for the LAMA weights test suite."""

import sys
import itertools
from pathlib import Path

import pytest

# Ensure src/ is importable
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from dataset_records import DatasetManifest, DatasetRecord, ManifestEntry


# ── Helper factories ─────────────────────────────────────

def make_record(counts, population=None, **kwargs):
    """Shorthand for a DatasetRecord; population defaults to the count keys."""
    if population is None:
        population = list(counts)
    full = {item_id: 0 for item_id in population}
    full.update(counts)
    return DatasetRecord(population=tuple(population), counts=full, **kwargs)


def make_manifest(*filenames, last_updated="2026-01-16T20:24:21.045Z"):
    """Manifest numbering datasets 1..n in the order given."""
    if not filenames:
        filenames = ("dataset1.json",)
    return DatasetManifest(
        last_updated=last_updated,
        datasets=tuple(ManifestEntry(number=i + 1, filename=f)
                       for i, f in enumerate(filenames)),
    )


class StepClock:
    """Deterministic clock: every call advances one second."""

    def __init__(self, start=1_700_000_000.0):
        self._counter = itertools.count()
        self._start = start

    def __call__(self):
        return self._start + next(self._counter)


# ── Fixtures ─────────────────────────────────────────────

@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def memory_storage():
    from cache_storage import MemoryStorage
    return MemoryStorage()


@pytest.fixture
def cache(memory_storage, clock):
    from weight_cache import WeightCache
    return WeightCache(memory_storage, clock=clock)


@pytest.fixture
def scenario_a():
    """Two datasets each reporting {a: 10, b: 0} over population {a, b}."""
    return [make_record({"a": 10, "b": 0}), make_record({"a": 10, "b": 0})]
