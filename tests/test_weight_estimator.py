"""Tests for weight_estimator — smoothed maximum-likelihood weights."""

import math
import random

import pytest

from tests.conftest import make_record
from errors import InsufficientDataError
from weight_estimator import combine_counts, estimate_weights_mle


# ── Helpers ──────────────────────────────────────────────────

def _random_datasets(seed, n_items=8, n_datasets=4, zero_chance=0.3):
    rng = random.Random(seed)
    items = [f"item-{i}" for i in range(n_items)]
    datasets = []
    for _ in range(n_datasets):
        counts = {
            i: 0 if rng.random() < zero_chance else rng.randint(1, 500)
            for i in items
        }
        datasets.append(make_record(counts))
    return datasets


# ── Scenario A ───────────────────────────────────────────────

class TestScenarioA:

    def test_weights(self, scenario_a):
        w = estimate_weights_mle(scenario_a, epsilon=1.0)
        assert w["a"] == pytest.approx(21 / 22)
        assert w["b"] == pytest.approx(1 / 22)

    def test_unobserved_is_nonzero(self, scenario_a):
        w = estimate_weights_mle(scenario_a, epsilon=1.0)
        assert w["b"] > 0
        assert math.fsum(w.values()) == pytest.approx(1.0)


# ── Properties ───────────────────────────────────────────────

class TestProperties:

    @pytest.mark.parametrize("seed", range(10))
    def test_sums_to_one(self, seed):
        w = estimate_weights_mle(_random_datasets(seed))
        assert math.fsum(w.values()) == pytest.approx(1.0, abs=1e-12)

    def test_never_zero_without_observations(self):
        datasets = [make_record({"a": 0, "b": 0, "c": 0})]
        w = estimate_weights_mle(datasets)
        assert all(v > 0 for v in w.values())
        assert w["a"] == pytest.approx(1 / 3)

    def test_tiny_epsilon_still_positive(self):
        datasets = [make_record({"a": 1_000_000, "b": 0})]
        w = estimate_weights_mle(datasets, epsilon=1e-9)
        assert w["b"] > 0

    @pytest.mark.parametrize("seed", range(5))
    def test_monotonic_in_own_count(self, seed):
        base = _random_datasets(seed)
        before = estimate_weights_mle(base)

        bumped = list(base)
        bumped[0] = make_record({**base[0].counts,
                                 "item-3": base[0].counts["item-3"] + 5})
        after = estimate_weights_mle(bumped)

        assert after["item-3"] > before["item-3"]
        for item_id in before:
            if item_id != "item-3":
                assert after[item_id] < before[item_id]

    def test_deterministic(self):
        datasets = _random_datasets(3)
        assert estimate_weights_mle(datasets) == estimate_weights_mle(datasets)


# ── Populations ──────────────────────────────────────────────

class TestPopulations:

    def test_union_of_populations(self):
        datasets = [
            make_record({"a": 5, "b": 5}),
            make_record({"b": 2, "c": 8}),
        ]
        order, totals = combine_counts(datasets)
        assert order == ["a", "b", "c"]
        assert totals == {"a": 5, "b": 7, "c": 8}

        w = estimate_weights_mle(datasets, epsilon=1.0)
        assert set(w) == {"a", "b", "c"}
        assert w["c"] == pytest.approx(9 / 23)

    def test_population_item_without_counts(self):
        datasets = [make_record({"a": 4}, population=["a", "b"])]
        w = estimate_weights_mle(datasets, epsilon=1.0)
        assert w == pytest.approx({"a": 5 / 6, "b": 1 / 6})

    def test_single_item(self):
        assert estimate_weights_mle([make_record({"only": 42})]) == {"only": 1.0}

    def test_single_item_zero_count(self):
        assert estimate_weights_mle([make_record({"only": 0})]) == {"only": 1.0}


# ── Errors ───────────────────────────────────────────────────

class TestErrors:

    def test_no_datasets(self):
        with pytest.raises(InsufficientDataError):
            estimate_weights_mle([])

    def test_empty_population(self):
        with pytest.raises(InsufficientDataError):
            estimate_weights_mle([make_record({})])

    def test_non_positive_epsilon(self):
        with pytest.raises(ValueError):
            estimate_weights_mle([make_record({"a": 1})], epsilon=0)
