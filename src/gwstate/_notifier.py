"""Internal pub/sub listener for cross-process state changes.

Owns:
- the subscription to the change channels, re-established with backoff
  whenever the store connection is lost
- translating raw messages into :class:`RemoteChange` events
- handing them to the cache (including changes this process published)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from gwstate._store import StateStore
from gwstate.exceptions import StoreError
from gwstate.state.events import ChangeChannel, RemoteChange


class ChangeNotifier:
    def __init__(
        self,
        *,
        store: StateStore,
        on_change: Callable[[RemoteChange], None],
        on_resubscribe: Callable[[], Awaitable[None]] | None = None,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._on_resubscribe = on_resubscribe
        self._retry_delay = retry_delay
        self._max_retry_delay = max_retry_delay
        self._logger = logger or logging.getLogger(__name__)
        self._task: asyncio.Task[None] | None = None
        self._first_attempt = asyncio.Event()
        self._subscribed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    def start(self) -> None:
        """Start listening on every change channel. Must run inside a loop."""
        if self.is_running:
            return
        self._first_attempt.clear()
        self._task = asyncio.get_running_loop().create_task(self._listen(), name="gwstate-change-notifier")

    async def wait_started(self) -> bool:
        """Wait for the first subscription attempt; return whether it worked.

        Once this returns ``True``, every later publish is delivered.
        """
        if self._task is None:
            return False
        await self._first_attempt.wait()
        return self._subscribed

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _listen(self) -> None:
        channels = [channel.value for channel in ChangeChannel]
        delay = self._retry_delay
        resync = False
        try:
            while True:
                try:
                    subscription = await self._store.subscribe(*channels)
                except StoreError:
                    self._logger.warning("Change subscription failed, retrying in %.1fs", delay, exc_info=True)
                else:
                    self._subscribed = True
                    self._first_attempt.set()
                    delay = self._retry_delay
                    try:
                        if resync:
                            await self._resync()
                        async for channel, payload in subscription:
                            self.dispatch(channel, payload)
                        self._logger.warning("Change subscription closed, resubscribing")
                    except StoreError:
                        self._logger.warning("Change subscription lost, resubscribing", exc_info=True)
                    finally:
                        self._subscribed = False
                        await subscription.aclose()
                # Changes published while unsubscribed are picked up by a reload.
                resync = True
                self._first_attempt.set()
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_retry_delay)
        finally:
            self._subscribed = False
            self._first_attempt.set()

    async def _resync(self) -> None:
        if self._on_resubscribe is None:
            return
        try:
            await self._on_resubscribe()
        except StoreError:
            self._logger.error("Reload after resubscribing failed", exc_info=True)

    def dispatch(self, channel: str, payload: str) -> None:
        """Parse one raw message and apply it; bad messages are logged and dropped."""
        try:
            change = RemoteChange(channel=channel, payload=payload)
        except ValidationError:
            self._logger.debug("Ignoring message on unknown channel %s", channel)
            return
        try:
            self._on_change(change)
        except Exception:
            self._logger.error("Failed to apply change on %s", channel, exc_info=True)
