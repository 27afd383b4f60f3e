"""Lazily recomputed values with an explicit expiry."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class ExpiringValue(Generic[T]):
    """A single cached value that expires ``ttl`` seconds after it was loaded.

    Nothing runs in the background: the value is recomputed by the next
    :meth:`get` call made after expiry.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[T]],
        *,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._entry: _Entry[T] | None = None

    async def get(self) -> T:
        """Return the cached value, loading it first when missing or expired."""
        entry = self._entry
        if entry is not None and self._clock() < entry.expires_at:
            return entry.value
        value = await self._loader()
        self._entry = _Entry(value=value, expires_at=self._clock() + self._ttl)
        return value
