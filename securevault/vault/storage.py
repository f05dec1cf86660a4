"""
Vault Storage — Durable key-value surfaces used by the vault.

Only two logical keys are ever written: the passphrase commitment and the
encrypted record collection. ``set_many``/``delete_many`` must apply all
keys or none, so a crash never leaves one without the other.
"""
import os
import abc
import base64
import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any, Optional, Union
from collections.abc import Iterable, Mapping

import orjson

from ..exceptions import FormatError

logger = logging.getLogger("securevault.vault")


class Storage(abc.ABC):
    """Async key-value surface."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        ...

    @abc.abstractmethod
    async def set_many(self, items: Mapping[str, bytes]) -> None:
        """Write every item atomically."""

    @abc.abstractmethod
    async def delete_many(self, keys: Iterable[str]) -> None:
        """Remove every key atomically. Missing keys are ignored."""

    async def set(self, key: str, value: bytes) -> None:
        await self.set_many({key: value})

    async def delete(self, key: str) -> None:
        await self.delete_many([key])


class MemoryStorage(Storage):
    """Process-local storage, mainly for tests."""

    def __init__(self, data: Optional[dict[str, bytes]] = None):
        self._data: dict[str, bytes] = dict(data or {})

    def __repr__(self) -> str:
        return f"<MemoryStorage keys={sorted(self._data)}>"

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set_many(self, items: Mapping[str, bytes]) -> None:
        self._data.update({k: bytes(v) for k, v in items.items()})

    async def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)


class FileStorage(Storage):
    """All keys in one JSON document, replaced atomically on every write.

    Values are base64-encoded. Writes go to a temporary file in the same
    directory followed by ``os.replace``.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<FileStorage path={self.path}>"

    def _read(self) -> dict[str, bytes]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        if not raw:
            return {}
        try:
            doc = orjson.loads(raw)
            return {k: base64.b64decode(v) for k, v in doc.items()}
        except (orjson.JSONDecodeError, AttributeError, TypeError, ValueError) as err:
            raise FormatError(f"Corrupted vault file: {self.path}") from err

    def _write(self, data: dict[str, bytes]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(
            {k: base64.b64encode(v).decode("ascii") for k, v in data.items()}
        )
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.path.name}.", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    async def get(self, key: str) -> Optional[bytes]:
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set_many(self, items: Mapping[str, bytes]) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data.update({k: bytes(v) for k, v in items.items()})
            await asyncio.to_thread(self._write, data)

    async def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if not any(k in data for k in keys):
                return
            for key in keys:
                data.pop(key, None)
            if data:
                await asyncio.to_thread(self._write, data)
            else:
                await asyncio.to_thread(self.path.unlink, True)
        logger.debug("Removed %d key(s) from %s", len(keys), self.path)


class RedisStorage(Storage):
    """Storage on an async Redis client (``redis.asyncio.Redis`` compatible).

    ``MSET`` and multi-key ``DEL`` are atomic on the server.
    """

    def __init__(self, redis: Any, prefix: str = "securevault:"):
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[bytes]:
        value = await self._redis.get(self._key(key))
        if isinstance(value, str):
            value = value.encode("utf-8")
        return value

    async def set_many(self, items: Mapping[str, bytes]) -> None:
        await self._redis.mset({self._key(k): v for k, v in items.items()})

    async def delete_many(self, keys: Iterable[str]) -> None:
        names = [self._key(k) for k in keys]
        if names:
            await self._redis.delete(*names)
