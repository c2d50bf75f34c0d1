"""Tests for cache_storage backends."""

import asyncio

import pytest

from cache_storage import DiskStorage, MemoryStorage, entry_bytes
from errors import CorruptCacheEntryError, StorageQuotaError

run = asyncio.run


@pytest.fixture(params=["memory", "disk"])
def storage(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    return DiskStorage(tmp_path / "cache")


class TestBasicOperations:

    def test_get_missing(self, storage):
        assert run(storage.get("nope")) is None

    def test_set_get(self, storage):
        run(storage.set("k", "value"))
        assert run(storage.get("k")) == "value"

    def test_overwrite(self, storage):
        run(storage.set("k", "one"))
        run(storage.set("k", "two"))
        assert run(storage.get("k")) == "two"

    def test_delete(self, storage):
        run(storage.set("k", "v"))
        assert run(storage.delete("k")) is True
        assert run(storage.delete("k")) is False
        assert run(storage.get("k")) is None

    def test_keys_by_prefix(self, storage):
        run(storage.set("lama:weightCache:a", "1"))
        run(storage.set("lama:weightCache:b", "2"))
        run(storage.set("other", "3"))
        assert sorted(run(storage.keys("lama:weightCache:"))) == [
            "lama:weightCache:a", "lama:weightCache:b",
        ]
        assert len(run(storage.keys())) == 3

    def test_used_bytes(self, storage):
        run(storage.set("key", "välue"))
        assert run(storage.used_bytes()) == entry_bytes("key", "välue")


class TestQuota:

    def test_rejects_oversized_write(self):
        storage = MemoryStorage(quota_bytes=10)
        with pytest.raises(StorageQuotaError) as exc:
            run(storage.set("key", "x" * 20))
        assert exc.value.key == "key"
        assert run(storage.get("key")) is None

    def test_overwrite_counts_replaced_bytes(self):
        storage = MemoryStorage(quota_bytes=entry_bytes("k", "abcd"))
        run(storage.set("k", "abcd"))
        run(storage.set("k", "wxyz"))
        assert run(storage.get("k")) == "wxyz"

    def test_failed_write_keeps_old_value(self, tmp_path):
        storage = DiskStorage(tmp_path, quota_bytes=entry_bytes("k", "small"))
        run(storage.set("k", "small"))
        with pytest.raises(StorageQuotaError):
            run(storage.set("k", "much larger value"))
        assert run(storage.get("k")) == "small"


class TestDiskStorage:

    def test_keys_with_separators_round_trip(self, tmp_path):
        storage = DiskStorage(tmp_path)
        key = "lama:weightCache:scarabs:abc123:bayesian"
        run(storage.set(key, "{}"))
        assert run(storage.keys("lama:")) == [key]
        assert all(":" not in p.name for p in tmp_path.iterdir())

    def test_no_temp_files_left_behind(self, tmp_path):
        storage = DiskStorage(tmp_path)
        run(storage.set("a", "1"))
        run(storage.set("a", "2"))
        assert [p.name for p in tmp_path.iterdir()] == ["a.json"]

    def test_persists_across_instances(self, tmp_path):
        run(DiskStorage(tmp_path).set("k", "kept"))
        assert run(DiskStorage(tmp_path).get("k")) == "kept"

    def test_creates_directory(self, tmp_path):
        target = tmp_path / "nested" / "cache"
        DiskStorage(target)
        assert target.is_dir()

    def test_undecodable_file_is_corrupt(self, tmp_path):
        storage = DiskStorage(tmp_path)
        storage._path("k").write_bytes(b"\xff\xfe garbage")
        with pytest.raises(CorruptCacheEntryError):
            run(storage.get("k"))

    def test_overwrite_undecodable_file(self, tmp_path):
        storage = DiskStorage(tmp_path, quota_bytes=1000)
        storage._path("k").write_bytes(b"\xff\xfe garbage")
        run(storage.set("k", "fresh"))
        assert run(storage.get("k")) == "fresh"
        assert run(storage.used_bytes()) == entry_bytes("k", "fresh")
