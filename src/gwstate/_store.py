"""Shared store adapter: typed key/hash/pub-sub access to Redis."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, Protocol, TypeVar

import redis.asyncio as redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from gwstate.exceptions import StoreError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Protocol):
    """Live channel subscription yielding ``(channel, payload)`` pairs.

    Iteration raises :class:`StoreError` when the connection is lost.
    """

    def __aiter__(self) -> Subscription: ...

    async def __anext__(self) -> tuple[str, str]: ...

    async def aclose(self) -> None: ...


class StateStore(Protocol):
    """Structural store interface used by the state cache and notifier.

    Having a protocol here makes it easy to pass in-memory test doubles
    while keeping the production implementation (`RedisStateStore`)
    concrete. Implementations raise :class:`StoreError` on any failure.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def hdel(self, key: str, field: str) -> None: ...

    async def publish(self, channel: str, message: str) -> None: ...

    async def subscribe(self, *channels: str) -> Subscription: ...

    async def close(self) -> None: ...


def encode_field(value: Any) -> str:
    """Serialize one hash field value."""
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise StoreError(f"Value is not JSON serializable: {exc}") from exc


def decode_hash(key: str, raw: Mapping[str, str]) -> dict[str, Any]:
    """Decode every field of a hash whose values are individually JSON-encoded."""
    decoded: dict[str, Any] = {}
    for field, text in raw.items():
        try:
            decoded[field] = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise StoreError(f"Field {field!r} of {key} is not JSON: {str(text)[:64]}", key=key) from exc
    return decoded


class RedisStateStore:
    """`StateStore` backed by ``redis.asyncio``.

    Every :meth:`subscribe` opens its own connection, since a
    connection in subscribe mode cannot issue regular commands.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: redis.Redis | None = None,
    ) -> None:
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)

    async def _call(self, key: str, op: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as exc:
            raise StoreError(f"{op} {key} failed: {exc}", key=key) from exc

    async def get(self, key: str) -> str | None:
        value = await self._call(key, "GET", self._client.get(key))
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        await self._call(key, "SET", self._client.set(key, value))

    async def hgetall(self, key: str) -> dict[str, str]:
        result = await self._call(key, "HGETALL", self._client.hgetall(key))
        return {str(k): str(v) for k, v in (result or {}).items()}

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._call(key, "HSET", self._client.hset(key, field, value))

    async def hdel(self, key: str, field: str) -> None:
        await self._call(key, "HDEL", self._client.hdel(key, field))

    async def publish(self, channel: str, message: str) -> None:
        await self._call(channel, "PUBLISH", self._client.publish(channel, message))

    async def subscribe(self, *channels: str) -> Subscription:
        """Subscribe to *channels* and return the live subscription.

        The ``SUBSCRIBE`` has completed by the time this returns, so no
        message published afterwards is missed.
        """
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(*channels)
        except RedisError as exc:
            await pubsub.aclose()
            raise StoreError(f"SUBSCRIBE {', '.join(channels)} failed: {exc}") from exc
        _logger.debug("Subscribed channels=%s", channels)
        return _RedisSubscription(pubsub, channels)

    async def close(self) -> None:
        await self._client.aclose()


class _RedisSubscription:
    def __init__(self, pubsub: PubSub, channels: tuple[str, ...]) -> None:
        self._pubsub = pubsub
        self._channels = channels
        self._messages = pubsub.listen()

    def __aiter__(self) -> _RedisSubscription:
        return self

    async def __anext__(self) -> tuple[str, str]:
        while True:
            try:
                message = await anext(self._messages)
            except RedisError as exc:
                raise StoreError(f"Subscription to {', '.join(self._channels)} lost: {exc}") from exc
            # Skip subscribe/unsubscribe confirmations.
            if message.get("type") == "message":
                return str(message["channel"]), str(message["data"])

    async def aclose(self) -> None:
        await self._pubsub.aclose()
