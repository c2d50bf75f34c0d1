"""
LAMA Drop Weights - Error taxonomy.

InsufficientDataError is the only error callers ever see from the
estimators. The cache-layer errors are raised by storage backends and
never leave weight_cache: a corrupt entry is deleted and a quota failure
triggers eviction and degradation.
"""


class WeightEstimationError(Exception):
    """Base class for every error raised by this package."""


class InsufficientDataError(WeightEstimationError):
    """No datasets, or an empty combined item population."""


class InvalidDatasetError(WeightEstimationError, ValueError):
    """A dataset or manifest failed validation at the loading boundary."""


class CorruptCacheEntryError(WeightEstimationError):
    """A stored cache entry could not be decoded or has the wrong shape."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class StorageQuotaError(WeightEstimationError):
    """The backing store rejected a write because its quota is exhausted."""

    def __init__(self, key: str, size: int, available: int):
        super().__init__(
            f"quota exceeded writing {key} ({size} bytes, {available} available)"
        )
        self.key = key
        self.size = size
        self.available = available
