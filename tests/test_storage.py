"""
Tests for the storage backends.
"""
import pytest

from securevault.exceptions import FormatError
from securevault.vault import FileStorage, MemoryStorage, RedisStorage


class FakeRedis:
    """Minimal async stand-in for redis.asyncio.Redis."""

    def __init__(self):
        self.data = {}

    async def get(self, name):
        return self.data.get(name)

    async def mset(self, mapping):
        self.data.update(mapping)

    async def delete(self, *names):
        for name in names:
            self.data.pop(name, None)


@pytest.fixture(params=["memory", "file", "redis"])
def backend(request, tmp_path):
    if request.param == "memory":
        return MemoryStorage()
    if request.param == "file":
        return FileStorage(tmp_path / "vault" / "vault.json")
    return RedisStorage(FakeRedis())


class TestStorageContract:
    """Behaviour shared by every backend."""

    async def test_missing_key(self, backend):
        assert await backend.get("nope") is None

    async def test_set_get(self, backend):
        await backend.set("a", b"\x00\x01")
        assert await backend.get("a") == b"\x00\x01"

    async def test_set_many(self, backend):
        await backend.set_many({"a": b"1", "b": b"2"})
        assert await backend.get("a") == b"1"
        assert await backend.get("b") == b"2"

    async def test_delete_is_idempotent(self, backend):
        await backend.set("a", b"1")
        await backend.delete("a")
        await backend.delete("a")
        assert await backend.get("a") is None

    async def test_delete_many(self, backend):
        await backend.set_many({"a": b"1", "b": b"2", "c": b"3"})
        await backend.delete_many(["a", "b"])
        assert await backend.get("a") is None
        assert await backend.get("c") == b"3"


class TestFileStorage:
    """FileStorage specifics."""

    async def test_survives_new_instance(self, tmp_path):
        path = tmp_path / "vault.json"
        await FileStorage(path).set("a", b"value")
        assert await FileStorage(path).get("a") == b"value"

    async def test_file_removed_when_empty(self, tmp_path):
        path = tmp_path / "vault.json"
        storage = FileStorage(path)
        await storage.set("a", b"value")
        await storage.delete("a")
        assert not path.exists()

    async def test_no_temp_files_left(self, tmp_path):
        storage = FileStorage(tmp_path / "vault.json")
        await storage.set_many({"a": b"1", "b": b"2"})
        assert [p.name for p in tmp_path.iterdir()] == ["vault.json"]

    async def test_corrupted_file(self, tmp_path):
        path = tmp_path / "vault.json"
        path.write_bytes(b"{not json")
        with pytest.raises(FormatError):
            await FileStorage(path).get("a")


class TestRedisStorage:
    """RedisStorage specifics."""

    async def test_prefix(self):
        redis = FakeRedis()
        await RedisStorage(redis, prefix="v:").set("a", b"1")
        assert redis.data == {"v:a": b"1"}

    async def test_str_values_are_encoded(self):
        redis = FakeRedis()
        redis.data["securevault:a"] = "text"
        assert await RedisStorage(redis).get("a") == b"text"
