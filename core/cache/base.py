from typing import Any, Awaitable, Callable, ClassVar

from loguru import logger
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError


class RedisClientBase:
    """Lazily created async Redis client with a reconnect-once retry."""

    _socket_timeout: ClassVar[float] = 5.0
    _socket_connect_timeout: ClassVar[float] = 3.0

    def __init__(self, url: str, client: Redis | None = None) -> None:
        self._url = url
        self._redis = client

    @property
    def _label(self) -> str:
        return type(self).__name__

    def _create_client(self) -> Redis:
        return from_url(
            url=self._url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_connect_timeout,
        )

    def _client(self) -> Redis:
        if self._redis is None:
            self._redis = self._create_client()
        return self._redis

    async def _reset_client(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Redis client close failed: {exc}")
        finally:
            self._redis = None

    async def _with_client(self, func: Callable[[Redis], Awaitable[Any]]) -> Any:
        for attempt in (1, 2):
            client = self._client()
            try:
                return await func(client)
            except RedisError as exc:
                logger.warning(f"Redis operation failed target={self._label} attempt={attempt}: {exc}")
                await self._reset_client()
                if attempt >= 2:
                    raise
        return None


__all__ = ["RedisClientBase"]
