import time
from typing import Awaitable, Callable, Protocol, cast

from redis.asyncio import Redis

from config.app_settings import settings
from core.cache.base import RedisClientBase
from core.exceptions import StorageCapacityExceeded
from core.schemas import StorageUsage


def entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueStore(Protocol):
    name: str
    quota: int

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, prefix: str = "") -> list[str]: ...

    async def usage(self) -> StorageUsage: ...


class MemoryStore:
    """Byte-quota key/value store; with a ttl it behaves like a short-lived session store."""

    def __init__(
        self,
        name: str,
        quota: int,
        *,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.quota = quota
        self.ttl = ttl
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._data[key]

    def _used(self, *, exclude: str | None = None) -> int:
        return sum(entry_size(key, value) for key, (value, _) in self._data.items() if key != exclude)

    async def get(self, key: str) -> str | None:
        self._purge()
        entry = self._data.get(key)
        return entry[0] if entry else None

    async def set(self, key: str, value: str) -> None:
        self._purge()
        size = entry_size(key, value)
        available = self.quota - self._used(exclude=key)
        if size > available:
            raise StorageCapacityExceeded(key, size, max(available, 0))
        expires_at = self._clock() + self.ttl if self.ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        self._purge()
        return sorted(key for key in self._data if key.startswith(prefix))

    async def usage(self) -> StorageUsage:
        self._purge()
        used = self._used()
        return StorageUsage(used=used, quota=self.quota, available=max(self.quota - used, 0))


class RedisStore(RedisClientBase):
    """Redis hash per namespace, with the same byte quota semantics as ``MemoryStore``."""

    def __init__(
        self,
        name: str,
        quota: int,
        *,
        ttl: int | None = None,
        client: Redis | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(url or settings.redis_url_for(settings.REDIS_STORAGE_DB), client)
        self.name = name
        self.quota = quota
        self.ttl = ttl

    @property
    def _label(self) -> str:
        return f"store:{self.name}"

    @property
    def _hash_key(self) -> str:
        return f"app:store:{self.name}"

    async def _entries(self) -> dict[str, str]:
        return await self._with_client(lambda c: cast(Awaitable[dict[str, str]], c.hgetall(self._hash_key))) or {}

    async def get(self, key: str) -> str | None:
        return await self._with_client(lambda c: cast(Awaitable[str | None], c.hget(self._hash_key, key)))

    async def set(self, key: str, value: str) -> None:
        entries = await self._entries()
        used = sum(entry_size(k, v) for k, v in entries.items() if k != key)
        size = entry_size(key, value)
        available = self.quota - used
        if size > available:
            raise StorageCapacityExceeded(key, size, max(available, 0))

        async def _op(client: Redis) -> None:
            await cast(Awaitable[int], client.hset(self._hash_key, key, value))
            if self.ttl:
                await client.expire(self._hash_key, self.ttl)

        await self._with_client(_op)

    async def delete(self, key: str) -> None:
        await self._with_client(lambda c: cast(Awaitable[int], c.hdel(self._hash_key, key)))

    async def keys(self, prefix: str = "") -> list[str]:
        fields = await self._with_client(lambda c: cast(Awaitable[list[str]], c.hkeys(self._hash_key))) or []
        return sorted(field for field in fields if field.startswith(prefix))

    async def usage(self) -> StorageUsage:
        entries = await self._entries()
        used = sum(entry_size(k, v) for k, v in entries.items())
        return StorageUsage(used=used, quota=self.quota, available=max(self.quota - used, 0))

    async def close(self) -> None:
        await self._reset_client()


def build_stores(namespace: str) -> tuple[KeyValueStore, KeyValueStore]:
    """Primary (durable) and secondary (session) stores for one owner."""
    if settings.STORAGE_BACKEND == "redis":
        return (
            RedisStore(f"{namespace}:primary", settings.STORAGE_PRIMARY_QUOTA),
            RedisStore(f"{namespace}:secondary", settings.STORAGE_SECONDARY_QUOTA, ttl=settings.STORAGE_SECONDARY_TTL),
        )
    return (
        MemoryStore(f"{namespace}:primary", settings.STORAGE_PRIMARY_QUOTA),
        MemoryStore(f"{namespace}:secondary", settings.STORAGE_SECONDARY_QUOTA, ttl=settings.STORAGE_SECONDARY_TTL),
    )


__all__ = ["KeyValueStore", "MemoryStore", "RedisStore", "build_stores", "entry_size"]
