from __future__ import annotations

import asyncio

import pytest

from conftest import FakeStore
from gwstate._notifier import ChangeNotifier
from gwstate.state.events import ChangeChannel, RemoteChange


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_notifier_delivers_messages_from_any_publisher(store: FakeStore) -> None:
    received: list[RemoteChange] = []
    notifier = ChangeNotifier(store=store, on_change=received.append)

    notifier.start()
    await _wait_for(lambda: store.subscriber_count == 1)
    await store.publish("System:DebugChange", "1")
    await store.publish("System:TimezoneChange", "UTC")
    await _wait_for(lambda: len(received) == 2)
    await notifier.stop()

    assert received == [
        RemoteChange(channel=ChangeChannel.DEBUG, payload="1"),
        RemoteChange(channel=ChangeChannel.TIMEZONE, payload="UTC"),
    ]
    assert store.subscriber_count == 0
    assert not notifier.is_running


@pytest.mark.asyncio
async def test_notifier_start_is_idempotent(store: FakeStore) -> None:
    notifier = ChangeNotifier(store=store, on_change=lambda change: None)
    notifier.start()
    notifier.start()
    await _wait_for(lambda: store.subscriber_count == 1)
    assert notifier.is_running
    await notifier.stop()
    await notifier.stop()


@pytest.mark.asyncio
async def test_notifier_retries_until_subscribed(store: FakeStore) -> None:
    received: list[RemoteChange] = []
    store.fail_once.add("subscribe")
    notifier = ChangeNotifier(store=store, on_change=received.append, retry_delay=0.0)

    notifier.start()
    await notifier.wait_started()
    await _wait_for(lambda: store.subscriber_count == 1)
    assert notifier.is_running
    assert notifier.is_subscribed

    await store.publish("System:DebugChange", "1")
    await _wait_for(lambda: len(received) == 1)
    await notifier.stop()

    assert store.calls.count("subscribe") == 2
    assert received == [RemoteChange(channel=ChangeChannel.DEBUG, payload="1")]


@pytest.mark.asyncio
async def test_notifier_keeps_retrying_while_store_is_down(store: FakeStore) -> None:
    store.fail.add("subscribe")
    notifier = ChangeNotifier(store=store, on_change=lambda change: None, retry_delay=0.0)
    notifier.start()

    await _wait_for(lambda: store.calls.count("subscribe") >= 3)
    assert notifier.is_running
    assert not notifier.is_subscribed

    await notifier.stop()
    assert not notifier.is_running


@pytest.mark.asyncio
async def test_notifier_resubscribes_and_reloads_after_connection_loss(store: FakeStore) -> None:
    received: list[RemoteChange] = []
    reloads: list[int] = []

    async def reload() -> None:
        reloads.append(1)

    notifier = ChangeNotifier(store=store, on_change=received.append, on_resubscribe=reload, retry_delay=0.0)
    notifier.start()
    assert await notifier.wait_started() is True
    assert reloads == []

    store.disconnect()
    await _wait_for(lambda: len(reloads) == 1 and store.subscriber_count == 1)

    await store.publish("System:LanguageChange", "zh")
    await _wait_for(lambda: len(received) == 1)
    await notifier.stop()

    assert received == [RemoteChange(channel=ChangeChannel.LANGUAGE, payload="zh")]
    assert store.subscriber_count == 0


@pytest.mark.asyncio
async def test_wait_started_without_start(store: FakeStore) -> None:
    notifier = ChangeNotifier(store=store, on_change=lambda change: None)
    assert await notifier.wait_started() is False


def test_dispatch_ignores_unknown_channel(store: FakeStore) -> None:
    received: list[RemoteChange] = []
    notifier = ChangeNotifier(store=store, on_change=received.append)
    notifier.dispatch("System:Unknown", "1")
    assert received == []


def test_dispatch_survives_handler_errors(store: FakeStore) -> None:
    def boom(change: RemoteChange) -> None:
        raise RuntimeError("handler failed")

    notifier = ChangeNotifier(store=store, on_change=boom)
    notifier.dispatch("System:LanguageChange", "zh")
