"""
LAMA Drop Weights - Dataset records and manifests.

Raw dataset JSON is validated exactly once here and turned into frozen
records. Estimators trust these types and never re-check shape.

Two dataset layouts are accepted:
    {"items": [{"id": "...", "count": 3}, ...], "inputItems": [...], ...}
    {"populationItemIds": [...], "counts": {"id": 3, ...}}

A manifest (index.json) lists the datasets that currently exist:
    {"lastUpdated": "2026-01-16T20:24:21.045Z",
     "datasets": [{"number": 1, "filename": "dataset1.json"}, ...]}
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from config import DATASET_NAME_MAX_LENGTH, MANIFEST_FILENAME
from errors import InvalidDatasetError

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_PATCH_RE = re.compile(r"^\d+\.\d+\.\d+(\.\d+)?$")


@dataclass(frozen=True)
class DatasetRecord:
    """Observed drop counts contributed by one dataset."""

    population: Tuple[str, ...]
    counts: Dict[str, int] = field(default_factory=dict, hash=False)
    name: Optional[str] = None
    date: Optional[str] = None
    patch: Optional[str] = None
    input_items: Tuple[str, ...] = ()

    def count(self, item_id: str) -> int:
        return self.counts.get(item_id, 0)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class ManifestEntry:
    number: int
    filename: str


@dataclass(frozen=True)
class DatasetManifest:
    """Ordered dataset listing plus one collection-wide timestamp."""

    last_updated: str
    datasets: Tuple[ManifestEntry, ...] = ()

    def to_dict(self) -> dict:
        return {
            "lastUpdated": self.last_updated,
            "datasets": [
                {"number": e.number, "filename": e.filename}
                for e in self.datasets
            ],
        }


# ── Validation ──────────────────────────────────────────────

def _check_count(item_id: str, count, where: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(count, bool) or not isinstance(count, (int, float)):
        raise InvalidDatasetError(f"{where}: count for {item_id!r} must be a number")
    if count < 0 or count != int(count):
        raise InvalidDatasetError(
            f"{where}: count for {item_id!r} must be a non-negative integer"
        )
    return int(count)


def _check_id(item_id, where: str) -> str:
    if not isinstance(item_id, str) or not item_id.strip():
        raise InvalidDatasetError(f"{where}: missing required field \"id\" "
                                  f"(must be non-empty string)")
    return item_id


def _parse_metadata(data: dict) -> dict:
    meta = {}

    name = data.get("name")
    if name is not None:
        if not isinstance(name, str):
            raise InvalidDatasetError('Field "name" must be a string')
        if not name.strip():
            raise InvalidDatasetError('Field "name" cannot be empty')
        if len(name) > DATASET_NAME_MAX_LENGTH:
            raise InvalidDatasetError(
                f'Field "name" exceeds maximum length of {DATASET_NAME_MAX_LENGTH} characters'
            )
        meta["name"] = name

    date = data.get("date")
    if date is not None:
        if not isinstance(date, str) or not _DATE_RE.match(date):
            raise InvalidDatasetError('Field "date" must be in ISO format (YYYY-MM-DD)')
        meta["date"] = date

    patch = data.get("patch")
    if patch is not None:
        if not isinstance(patch, str) or not _PATCH_RE.match(patch):
            raise InvalidDatasetError(
                'Field "patch" must match version pattern (e.g., "3.26.0" or "3.26.0.1")'
            )
        meta["patch"] = patch

    inputs = data.get("inputItems")
    if inputs is not None:
        if not isinstance(inputs, list):
            raise InvalidDatasetError('Field "inputItems" must be an array')
        ids = []
        for i, inp in enumerate(inputs):
            if not isinstance(inp, dict):
                raise InvalidDatasetError(f"Invalid inputItem at index {i}: must be an object")
            ids.append(_check_id(inp.get("id"), f"Invalid inputItem at index {i}"))
        meta["input_items"] = tuple(ids)

    return meta


def parse_dataset(data: dict) -> DatasetRecord:
    """Validate one dataset dict and build a DatasetRecord.

    Raises InvalidDatasetError describing the first problem found.
    """
    if not isinstance(data, dict):
        raise InvalidDatasetError("Dataset must be an object")

    population: List[str] = []
    counts: Dict[str, int] = {}

    if "populationItemIds" in data:
        ids = data["populationItemIds"]
        if not isinstance(ids, list) or not ids:
            raise InvalidDatasetError(
                'Field "populationItemIds" must be a non-empty array'
            )
        raw_counts = data.get("counts", {})
        if not isinstance(raw_counts, dict):
            raise InvalidDatasetError('Field "counts" must be an object')
        for i, item_id in enumerate(ids):
            item_id = _check_id(item_id, f"Invalid population id at index {i}")
            if item_id in counts:
                continue
            population.append(item_id)
            counts[item_id] = 0
        for item_id, count in raw_counts.items():
            if item_id not in counts:
                raise InvalidDatasetError(
                    f"Count given for {item_id!r} which is not in the population"
                )
            counts[item_id] = _check_count(item_id, count, "counts")
    else:
        items = data.get("items")
        if not isinstance(items, list):
            raise InvalidDatasetError("Missing required field: items (must be an array)")
        if not items:
            raise InvalidDatasetError('Field "items" must contain at least one item')
        for i, item in enumerate(items):
            where = f"Invalid item at index {i}"
            if not isinstance(item, dict):
                raise InvalidDatasetError(f"{where}: must be an object")
            item_id = _check_id(item.get("id"), where)
            if "count" not in item:
                raise InvalidDatasetError(
                    f'{where}: missing required field "count" (must be a number)'
                )
            count = _check_count(item_id, item["count"], where)
            if item_id not in counts:
                population.append(item_id)
                counts[item_id] = 0
            counts[item_id] += count

    return DatasetRecord(population=tuple(population), counts=counts,
                         **_parse_metadata(data))


def parse_manifest(data: dict) -> DatasetManifest:
    """Validate an index.json dict and build a DatasetManifest."""
    if not isinstance(data, dict):
        raise InvalidDatasetError("Manifest must be an object")
    last_updated = data.get("lastUpdated")
    if not isinstance(last_updated, str) or not last_updated:
        raise InvalidDatasetError('Manifest field "lastUpdated" must be a non-empty string')
    raw = data.get("datasets")
    if not isinstance(raw, list):
        raise InvalidDatasetError('Manifest field "datasets" must be an array')

    entries = []
    for i, d in enumerate(raw):
        if not isinstance(d, dict):
            raise InvalidDatasetError(f"Invalid manifest entry at index {i}: must be an object")
        number = d.get("number")
        filename = d.get("filename")
        if isinstance(number, bool) or not isinstance(number, int):
            raise InvalidDatasetError(f"Invalid manifest entry at index {i}: number must be an integer")
        if not isinstance(filename, str) or not filename:
            raise InvalidDatasetError(f"Invalid manifest entry at index {i}: filename must be a string")
        entries.append(ManifestEntry(number=number, filename=filename))

    return DatasetManifest(last_updated=last_updated, datasets=tuple(entries))


# ── Local loading ───────────────────────────────────────────

def _read_json(path: Path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidDatasetError(f"invalid JSON: {e}") from e


def load_dataset_file(path: Path) -> DatasetRecord:
    path = Path(path)
    try:
        return parse_dataset(_read_json(path))
    except InvalidDatasetError as e:
        raise InvalidDatasetError(f"{path.name}: {e}") from e


def load_manifest(path: Path) -> DatasetManifest:
    return parse_manifest(_read_json(Path(path)))


def load_category(directory: Path) -> Tuple[DatasetManifest, List[DatasetRecord]]:
    """Load index.json and every dataset it lists from a category directory.

    Files listed in the manifest but missing on disk are skipped with a
    warning; the manifest itself is still returned unchanged so the cache
    signature reflects what the index claims exists.
    """
    directory = Path(directory)
    manifest = load_manifest(directory / MANIFEST_FILENAME)
    records = []
    for entry in manifest.datasets:
        path = directory / entry.filename
        if not path.exists():
            logger.warning(f"Dataset {entry.number} listed in manifest but missing: {path}")
            continue
        records.append(load_dataset_file(path))
    logger.debug(f"Loaded {len(records)}/{len(manifest.datasets)} datasets from {directory}")
    return manifest, records
