"""Tests for dataset_records — validation at the loading boundary."""

import json

import pytest

from dataset_records import (
    DatasetManifest,
    ManifestEntry,
    load_category,
    load_dataset_file,
    parse_dataset,
    parse_manifest,
)
from errors import InvalidDatasetError


class TestParseDataset:

    def test_items_layout(self):
        rec = parse_dataset({
            "name": "Delve run",
            "date": "2025-07-01",
            "patch": "3.26.0",
            "items": [
                {"id": "abrasive-catalyst", "count": 12},
                {"id": "fertile-catalyst", "count": 3},
            ],
            "inputItems": [{"id": "chaos-orb"}],
        })
        assert rec.population == ("abrasive-catalyst", "fertile-catalyst")
        assert rec.count("abrasive-catalyst") == 12
        assert rec.count("missing") == 0
        assert rec.total == 15
        assert rec.name == "Delve run"
        assert rec.patch == "3.26.0"
        assert rec.input_items == ("chaos-orb",)

    def test_population_layout(self):
        rec = parse_dataset({
            "populationItemIds": ["a", "b", "c"],
            "counts": {"a": 10},
        })
        assert rec.population == ("a", "b", "c")
        assert rec.counts == {"a": 10, "b": 0, "c": 0}

    def test_duplicate_items_are_summed(self):
        rec = parse_dataset({"items": [{"id": "a", "count": 2}, {"id": "a", "count": 3}]})
        assert rec.population == ("a",)
        assert rec.count("a") == 5

    def test_zero_count_allowed(self):
        rec = parse_dataset({"items": [{"id": "a", "count": 0}]})
        assert rec.count("a") == 0

    def test_records_are_immutable(self):
        rec = parse_dataset({"items": [{"id": "a", "count": 1}]})
        with pytest.raises(AttributeError):
            rec.population = ("b",)

    @pytest.mark.parametrize("data", [
        [],
        {},
        {"items": []},
        {"items": [{"count": 1}]},
        {"items": [{"id": "", "count": 1}]},
        {"items": [{"id": "a"}]},
        {"items": [{"id": "a", "count": -1}]},
        {"items": [{"id": "a", "count": 1.5}]},
        {"items": [{"id": "a", "count": True}]},
        {"items": [{"id": "a", "count": "3"}]},
        {"items": [{"id": "a", "count": 1}], "date": "01/07/2025"},
        {"items": [{"id": "a", "count": 1}], "patch": "3.26"},
        {"items": [{"id": "a", "count": 1}], "name": "   "},
        {"items": [{"id": "a", "count": 1}], "name": "x" * 201},
        {"items": [{"id": "a", "count": 1}], "inputItems": "chaos"},
        {"populationItemIds": [], "counts": {}},
        {"populationItemIds": ["a"], "counts": {"b": 1}},
    ])
    def test_invalid(self, data):
        with pytest.raises(InvalidDatasetError):
            parse_dataset(data)

    def test_invalid_is_value_error(self):
        with pytest.raises(ValueError):
            parse_dataset({"items": "nope"})


class TestParseManifest:

    def test_valid(self):
        m = parse_manifest({
            "lastUpdated": "2026-01-16T20:24:21.045Z",
            "datasets": [{"number": 2, "filename": "dataset2.json"},
                         {"number": 1, "filename": "dataset1.json"}],
        })
        assert m.last_updated == "2026-01-16T20:24:21.045Z"
        assert m.datasets == (ManifestEntry(2, "dataset2.json"),
                              ManifestEntry(1, "dataset1.json"))

    def test_to_dict_round_trip(self):
        m = DatasetManifest("t", (ManifestEntry(1, "a.json"),))
        assert parse_manifest(m.to_dict()) == m

    @pytest.mark.parametrize("data", [
        None,
        {"datasets": []},
        {"lastUpdated": "", "datasets": []},
        {"lastUpdated": "t"},
        {"lastUpdated": "t", "datasets": [{"number": "1", "filename": "a"}]},
        {"lastUpdated": "t", "datasets": [{"number": 1}]},
    ])
    def test_invalid(self, data):
        with pytest.raises(InvalidDatasetError):
            parse_manifest(data)


class TestLoadCategory:

    def _write(self, path, data):
        path.write_text(json.dumps(data), encoding="utf-8")

    def test_loads_listed_datasets(self, tmp_path):
        self._write(tmp_path / "index.json", {
            "lastUpdated": "2026-01-01T00:00:00Z",
            "datasets": [{"number": 1, "filename": "dataset1.json"},
                         {"number": 2, "filename": "dataset2.json"},
                         {"number": 3, "filename": "missing.json"}],
        })
        self._write(tmp_path / "dataset1.json", {"items": [{"id": "a", "count": 1}]})
        self._write(tmp_path / "dataset2.json", {"items": [{"id": "b", "count": 2}]})

        manifest, records = load_category(tmp_path)
        assert len(manifest.datasets) == 3
        assert [r.population for r in records] == [("a",), ("b",)]

    def test_bad_json_names_file(self, tmp_path):
        (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidDatasetError, match="broken.json"):
            load_dataset_file(tmp_path / "broken.json")

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_category(tmp_path)
