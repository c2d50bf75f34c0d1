"""
LAMA - Weight Result Cache

Persists MLE weight maps and Bayesian results keyed by
(category, dataset signature, mode) so a category's weights are computed
once per dataset collection rather than once per view.

Validation is strict: the signature is a hash over the manifest's ordered
(number, filename) pairs and its lastUpdated timestamp. Any change to the
dataset collection changes the signature, and a stored entry whose
signature no longer matches the live manifest is deleted on sight.

Caching is only an optimization. Nothing here raises to the caller:
get() answers CacheHit / CacheMiss / CacheError, put() answers a
PutOutcome, and every storage failure is logged and absorbed.
"""

import enum
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from bayesian_estimator import BayesianResult
from cache_storage import CacheStorage, entry_bytes
from config import CACHE_KEY_PREFIX, DOWNSAMPLE_TARGET
from dataset_records import DatasetManifest, ManifestEntry
from errors import CorruptCacheEntryError, StorageQuotaError

logger = logging.getLogger(__name__)

MODE_MLE = "mle"
MODE_BAYESIAN = "bayesian"
VALID_MODES = (MODE_MLE, MODE_BAYESIAN)

# Cached payload: MLE weight map or full Bayesian result
CachedValue = Union[Dict[str, float], BayesianResult]


# ── Result types ────────────────────────────────────────────

@dataclass
class CacheMetadata:
    category: str
    mode: str
    signature: str
    created_at: float
    last_accessed: float
    size_estimate: int = 0
    dataset_count: int = 0
    manifest_last_updated: str = ""
    has_posterior_samples: bool = False
    original_sample_count: int = 0
    downsampled: bool = False
    model: str = ""

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "mode": self.mode,
            "signature": self.signature,
            "createdAt": self.created_at,
            "lastAccessed": self.last_accessed,
            "sizeEstimate": self.size_estimate,
            "datasetCount": self.dataset_count,
            "manifestLastUpdated": self.manifest_last_updated,
            "hasPosteriorSamples": self.has_posterior_samples,
            "originalSampleCount": self.original_sample_count,
            "downsampled": self.downsampled,
            "model": self.model,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheMetadata":
        return cls(
            category=str(data["category"]),
            mode=str(data["mode"]),
            signature=str(data["signature"]),
            created_at=float(data["createdAt"]),
            last_accessed=float(data["lastAccessed"]),
            size_estimate=int(data.get("sizeEstimate", 0)),
            dataset_count=int(data.get("datasetCount", 0)),
            manifest_last_updated=str(data.get("manifestLastUpdated", "")),
            has_posterior_samples=bool(data.get("hasPosteriorSamples", False)),
            original_sample_count=int(data.get("originalSampleCount", 0)),
            downsampled=bool(data.get("downsampled", False)),
            model=str(data.get("model", "")),
        )


@dataclass(frozen=True)
class CacheHit:
    value: CachedValue
    metadata: CacheMetadata


@dataclass(frozen=True)
class CacheMiss:
    reason: str = "not_found"


@dataclass(frozen=True)
class CacheError:
    reason: str


CacheResult = Union[CacheHit, CacheMiss, CacheError]


class PutOutcome(enum.Enum):
    STORED = "stored"
    DEGRADED = "degraded"     # Bayesian summary only, no raw samples
    FAILED = "failed"


@dataclass
class CacheStats:
    total_entries: int = 0
    total_size: int = 0
    entries_by_category: Dict[str, int] = field(default_factory=dict)
    entries_by_mode: Dict[str, int] = field(
        default_factory=lambda: {MODE_MLE: 0, MODE_BAYESIAN: 0}
    )
    oldest_entry: Optional[float] = None
    newest_entry: Optional[float] = None


# ── Key material ────────────────────────────────────────────

def generate_signature(datasets: Sequence[ManifestEntry], last_updated: str) -> str:
    """Order-sensitive fingerprint of a dataset collection."""
    material = json.dumps(
        {"datasets": [[d.number, d.filename] for d in datasets],
         "lastUpdated": last_updated},
        separators=(",", ":"),
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:32]


def manifest_signature(manifest: DatasetManifest) -> str:
    return generate_signature(manifest.datasets, manifest.last_updated)


def generate_cache_key(category: str, signature: str, mode: str,
                       prefix: str = CACHE_KEY_PREFIX, model: str = "") -> str:
    """Storage key. A non-empty `model` description adds a short digest so
    results computed under different model parameters never share a key."""
    key = f"{prefix}{category}:{signature}:{mode}"
    if model:
        key += ":" + hashlib.sha256(model.encode("utf-8")).hexdigest()[:12]
    return key


def _split_key(key: str, prefix: str, category: str) -> Optional[List[str]]:
    """[signature, mode, (model digest)] for a key of `category`, else None."""
    head = f"{prefix}{category}:"
    if not key.startswith(head):
        return None
    parts = key[len(head):].split(":")
    return parts if len(parts) in (2, 3) else None


def downsample_samples(samples: Sequence[float], target: int) -> List[float]:
    """Fixed-stride selection: keeps the distribution shape, unlike random picks."""
    n = len(samples)
    if n <= target:
        return list(samples)
    step = n / target
    return [samples[int(i * step)] for i in range(target)]


def _wrap_entry(metadata: "CacheMetadata", payload_json: str) -> str:
    # Same text json.dumps({"metadata": ..., "payload": ...}) would produce
    return f'{{"metadata": {json.dumps(metadata.to_dict())}, "payload": {payload_json}}}'


def _manifest_usable(manifest: Optional[DatasetManifest]) -> bool:
    return (
        manifest is not None
        and isinstance(manifest.last_updated, str)
        and bool(manifest.last_updated)
        and manifest.datasets is not None
    )


# ── Cache ───────────────────────────────────────────────────

class WeightCache:
    """Validated, quota-aware cache of weight estimation results.

    One instance per process is typical; the storage backend is injected
    so tests can swap in MemoryStorage.
    """

    def __init__(self, storage: CacheStorage,
                 downsample_target: int = DOWNSAMPLE_TARGET,
                 key_prefix: str = CACHE_KEY_PREFIX,
                 clock: Callable[[], float] = time.time):
        if downsample_target < 1:
            raise ValueError("downsample_target must be at least 1")
        self.storage = storage
        self.downsample_target = downsample_target
        self.key_prefix = key_prefix
        self._clock = clock

    def _key(self, category: str, signature: str, mode: str, model: str = "") -> str:
        return generate_cache_key(category, signature, mode, self.key_prefix, model)

    # ── Lookup ──────────────────────────────────────────────

    async def get(self, category: str,
                  datasets: Optional[Sequence[ManifestEntry]],
                  manifest: Optional[DatasetManifest],
                  mode: str, model: str = "") -> CacheResult:
        """Cached result for this category/collection/mode, validated
        against the live manifest.

        `datasets` is the dataset list the caller computed (or would
        compute) from; None means "whatever the manifest lists".
        `model` describes the estimator parameters; an entry stored under
        a different description is never returned.
        """
        if mode not in VALID_MODES:
            return CacheError(f"invalid_mode:{mode}")
        if not _manifest_usable(manifest):
            # Fail closed: without the live manifest nothing can be trusted
            logger.warning(f"Manifest unavailable for {category}, treating cache as invalid")
            return CacheMiss("manifest_unavailable")

        if datasets is None:
            datasets = manifest.datasets
        key = self._key(category, generate_signature(datasets, manifest.last_updated),
                        mode, model)

        try:
            raw = await self.storage.get(key)
            if raw is None:
                return CacheMiss("not_found")
            metadata, value = self._decode(key, raw, category, mode)
        except CorruptCacheEntryError as e:
            logger.warning(f"Corrupted cache entry {e.key} ({e.reason}), deleting")
            await self._safe_delete(key)
            return CacheMiss("corrupt_entry")
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return CacheError(f"storage_read_failed: {e}")

        if metadata.model != model:
            logger.info(f"Cache invalid for {key}: model_mismatch")
            await self._safe_delete(key)
            return CacheMiss("model_mismatch")

        current = manifest_signature(manifest)
        if metadata.signature != current:
            logger.info(f"Cache invalid for {key}: dataset_signature_mismatch")
            await self._safe_delete(key)
            return CacheMiss("dataset_signature_mismatch")

        metadata.last_accessed = self._clock()
        await self._touch(key, raw, metadata)
        return CacheHit(value=value, metadata=metadata)

    def _decode(self, key: str, raw: str, category: str, mode: str):
        try:
            entry = json.loads(raw)
        except (ValueError, TypeError, RecursionError) as e:
            # ValueError also covers over-long integer literals
            raise CorruptCacheEntryError(key, f"invalid JSON: {e}") from e
        if not isinstance(entry, dict) or "metadata" not in entry or "payload" not in entry:
            raise CorruptCacheEntryError(key, "invalid entry structure")

        try:
            metadata = CacheMetadata.from_dict(entry["metadata"])
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptCacheEntryError(key, f"bad metadata: {e}") from e
        if metadata.category != category or metadata.mode != mode:
            raise CorruptCacheEntryError(key, "metadata does not match key")

        payload = entry["payload"]
        try:
            if mode == MODE_BAYESIAN:
                value = BayesianResult.from_dict(payload)
            else:
                value = {str(k): float(v) for k, v in payload["weights"].items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CorruptCacheEntryError(key, f"bad payload: {e}") from e
        return metadata, value

    async def _touch(self, key: str, raw: str, metadata: CacheMetadata) -> None:
        """Rewrite the entry with a fresh last-accessed time. Best-effort."""
        try:
            entry = json.loads(raw)
            entry["metadata"] = metadata.to_dict()
            await self.storage.set(key, json.dumps(entry))
        except Exception as e:
            logger.warning(f"Failed to update lastAccessed for {key}: {e}")

    # ── Store ───────────────────────────────────────────────

    async def put(self, category: str,
                  datasets: Optional[Sequence[ManifestEntry]],
                  manifest: Optional[DatasetManifest],
                  mode: str, result: Any, model: str = "") -> PutOutcome:
        """Persist a freshly computed result. Best-effort; never raises.

        Entries for the same category and mode stored under an older
        dataset signature are deleted first.
        """
        try:
            return await self._put(category, datasets, manifest, mode, result, model)
        except Exception as e:
            logger.error(f"Error storing cached weights for {category}: {e}", exc_info=True)
            return PutOutcome.FAILED

    async def _put(self, category, datasets, manifest, mode, result, model) -> PutOutcome:
        if mode not in VALID_MODES:
            logger.error(f"Refusing to cache unknown mode {mode!r}")
            return PutOutcome.FAILED
        if not _manifest_usable(manifest):
            logger.warning(f"Manifest unavailable for {category}, not caching")
            return PutOutcome.FAILED
        if mode == MODE_BAYESIAN and not isinstance(result, BayesianResult):
            logger.error(f"Bayesian cache entry for {category} needs a BayesianResult")
            return PutOutcome.FAILED
        if mode == MODE_MLE and not isinstance(result, Mapping):
            logger.error(f"MLE cache entry for {category} needs a weight map")
            return PutOutcome.FAILED

        if datasets is None:
            datasets = manifest.datasets
        # Stored signature always describes the manifest it was validated against
        signature = generate_signature(datasets, manifest.last_updated)
        key = self._key(category, signature, mode, model)
        now = self._clock()
        metadata = CacheMetadata(
            category=category,
            mode=mode,
            signature=manifest_signature(manifest),
            created_at=now,
            last_accessed=now,
            dataset_count=len(datasets),
            manifest_last_updated=manifest.last_updated,
            model=model,
        )
        await self._prune_superseded(category, mode, signature)

        if mode == MODE_BAYESIAN:
            payload = result.to_dict()
            metadata.original_sample_count = result.sample_count
            metadata.has_posterior_samples = bool(result.posterior_samples)
            payload["posteriorSamples"] = {
                item_id: downsample_samples(samples, self.downsample_target)
                for item_id, samples in result.posterior_samples.items()
            }
            metadata.downsampled = result.sample_count > self.downsample_target
        else:
            payload = {"weights": {str(k): float(v) for k, v in result.items()}}

        value, size = self._serialize(key, payload, metadata)
        if await self._try_set(key, value):
            return PutOutcome.STORED

        freed = await self.evict_oldest(size * 2)
        if freed > 0 and await self._try_set(key, value):
            logger.info(f"Stored {key} after evicting {freed} bytes")
            return PutOutcome.STORED

        if mode == MODE_BAYESIAN and metadata.has_posterior_samples:
            logger.warning(f"Full Bayesian result too large for {key}, "
                           f"storing without posterior samples")
            payload.pop("posteriorSamples", None)
            metadata.has_posterior_samples = False
            metadata.downsampled = False
            value, size = self._serialize(key, payload, metadata)
            if await self._try_set(key, value):
                return PutOutcome.DEGRADED
            freed = await self.evict_oldest(size * 2)
            if freed > 0 and await self._try_set(key, value):
                return PutOutcome.DEGRADED

        logger.warning(f"Failed to store cache entry for {key} after eviction and fallback")
        return PutOutcome.FAILED

    def _serialize(self, key: str, payload: dict, metadata: CacheMetadata):
        """JSON for the whole entry plus its size in bytes.

        The payload is encoded once; size_estimate excludes its own digits.
        """
        body = json.dumps(payload)
        metadata.size_estimate = 0
        metadata.size_estimate = entry_bytes(key, _wrap_entry(metadata, body))
        value = _wrap_entry(metadata, body)
        return value, entry_bytes(key, value)

    async def _prune_superseded(self, category: str, mode: str, signature: str) -> int:
        """Delete this category/mode's entries keyed by another signature."""
        count = 0
        try:
            for key in await self.storage.keys(f"{self.key_prefix}{category}:"):
                parts = _split_key(key, self.key_prefix, category)
                if parts is None or parts[1] != mode or parts[0] == signature:
                    continue
                if await self._safe_delete(key):
                    count += 1
        except Exception as e:
            logger.warning(f"Error pruning superseded entries for {category}: {e}")
        if count:
            logger.info(f"Pruned {count} superseded {mode} entries for {category}")
        return count

    async def _try_set(self, key: str, value: str) -> bool:
        try:
            await self.storage.set(key, value)
            return True
        except StorageQuotaError as e:
            logger.warning(f"Storage quota exceeded: {e}")
            return False

    async def _safe_delete(self, key: str) -> bool:
        try:
            return await self.storage.delete(key)
        except Exception as e:
            logger.warning(f"Failed to delete cache entry {key}: {e}")
            return False

    # ── Maintenance ─────────────────────────────────────────

    async def _scan(self) -> List[tuple]:
        """(key, metadata, raw size) for every readable entry.

        Unreadable entries are deleted along the way.
        """
        out = []
        for key in await self.storage.keys(self.key_prefix):
            try:
                raw = await self.storage.get(key)
                if raw is None:
                    continue
                entry = json.loads(raw)
                metadata = CacheMetadata.from_dict(entry["metadata"])
            except (CorruptCacheEntryError, KeyError, TypeError,
                    ValueError, RecursionError) as e:
                logger.warning(f"Skipping corrupted cache entry {key}: {e}")
                await self._safe_delete(key)
                continue
            except OSError as e:
                logger.warning(f"Skipping unreadable cache entry {key}: {e}")
                continue
            out.append((key, metadata, entry_bytes(key, raw)))
        return out

    async def evict_oldest(self, required_bytes: int) -> int:
        """Delete least-recently-accessed entries until `required_bytes` are
        freed or the cache is empty. Returns bytes freed."""
        freed = 0
        try:
            entries = await self._scan()
            entries.sort(key=lambda e: e[1].last_accessed)
            for key, metadata, size in entries:
                if freed >= required_bytes:
                    break
                if await self._safe_delete(key):
                    freed += size
                    logger.debug(f"Evicted {key} (last accessed {metadata.last_accessed:.0f})")
        except Exception as e:
            logger.warning(f"Error evicting cache entries: {e}")
        return freed

    async def stats(self) -> CacheStats:
        stats = CacheStats()
        try:
            for _, metadata, size in await self._scan():
                stats.total_entries += 1
                stats.total_size += size
                cat = metadata.category
                stats.entries_by_category[cat] = stats.entries_by_category.get(cat, 0) + 1
                if metadata.mode in stats.entries_by_mode:
                    stats.entries_by_mode[metadata.mode] += 1
                ts = metadata.last_accessed
                if stats.oldest_entry is None or ts < stats.oldest_entry:
                    stats.oldest_entry = ts
                if stats.newest_entry is None or ts > stats.newest_entry:
                    stats.newest_entry = ts
        except Exception as e:
            logger.error(f"Error getting cache stats: {e}")
            return CacheStats()
        return stats

    async def invalidate(self, category: str, mode: Optional[str] = None) -> int:
        """Delete every entry for `category` (optionally one mode only)."""
        count = 0
        try:
            for key, metadata, _ in await self._scan():
                if metadata.category != category:
                    continue
                if mode is not None and metadata.mode != mode:
                    continue
                if await self._safe_delete(key):
                    count += 1
        except Exception as e:
            logger.error(f"Error invalidating cache: {e}")
        if count:
            logger.info(f"Invalidated {count} cache entries for {category}")
        return count

    async def clear(self) -> int:
        count = 0
        try:
            for key in await self.storage.keys(self.key_prefix):
                if await self._safe_delete(key):
                    count += 1
        except Exception as e:
            logger.error(f"Error clearing cache: {e}")
        return count
