from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from gwstate.exceptions import StoreError


class FakeSubscription:
    def __init__(self, store: FakeStore, channels: frozenset[str]) -> None:
        self.store = store
        self.channels = channels
        self.queue: asyncio.Queue[tuple[str, str] | StoreError] = asyncio.Queue()

    def __aiter__(self) -> FakeSubscription:
        return self

    async def __anext__(self) -> tuple[str, str]:
        item = await self.queue.get()
        if isinstance(item, StoreError):
            raise item
        return item

    async def aclose(self) -> None:
        if self in self.store._subscribers:
            self.store._subscribers.remove(self)


class FakeStore:
    """In-memory `StateStore` with broadcast pub/sub.

    Operations listed in ``fail`` raise :class:`StoreError`, so tests can
    drive every failure path; those in ``fail_once`` raise on their next
    call only.
    """

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.published: list[tuple[str, str]] = []
        self.fail: set[str] = set()
        self.fail_once: set[str] = set()
        self.closed = False
        self.calls: list[str] = []
        self._subscribers: list[FakeSubscription] = []

    def _check(self, op: str, key: str) -> None:
        self.calls.append(op)
        if op in self.fail_once:
            self.fail_once.discard(op)
            raise StoreError(f"{op} {key} failed", key=key)
        if op in self.fail:
            raise StoreError(f"{op} {key} failed", key=key)

    async def get(self, key: str) -> str | None:
        self._check("get", key)
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check("set", key)
        self.values[key] = value

    async def hgetall(self, key: str) -> dict[str, str]:
        self._check("hgetall", key)
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, field: str, value: str) -> None:
        self._check("hset", key)
        self.hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, field: str) -> None:
        self._check("hdel", key)
        self.hashes.get(key, {}).pop(field, None)

    async def publish(self, channel: str, message: str) -> None:
        self._check("publish", channel)
        self.published.append((channel, message))
        for subscription in self._subscribers:
            if channel in subscription.channels:
                subscription.queue.put_nowait((channel, message))

    async def subscribe(self, *channels: str) -> FakeSubscription:
        self._check("subscribe", ",".join(channels))
        subscription = FakeSubscription(self, frozenset(channels))
        self._subscribers.append(subscription)
        return subscription

    def disconnect(self) -> None:
        """Drop every live subscription, as a store restart would."""
        for subscription in list(self._subscribers):
            subscription.queue.put_nowait(StoreError("connection reset"))

    async def close(self) -> None:
        self.closed = True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class FakeProbe:
    def __init__(self) -> None:
        self.password = "s3cret"
        self.rebooted = False
        self.reset_calls = 0

    def read_serial(self) -> str | None:
        return "0x1234abcd"

    def read_repo_info(self) -> tuple[str | None, str | None, str | None]:
        return "release_6_0", "0f1e2d3c", "1.2.3"

    def read_ssh_password(self) -> str | None:
        return self.password

    def memory_stats(self) -> dict[str, Any]:
        return {"total": 1024, "available": 512}

    def rebooted_due_to_issue(self, reset: bool = False) -> bool:
        if reset:
            self.reset_calls += 1
        return self.rebooted


ETH0: dict[str, Any] = {
    "name": "eth0",
    "ip_address": "192.168.1.10",
    "netmask": "Mask:255.255.255.0",
    "mac_address": "aa:bb:cc:dd:ee:ff",
    "gateway": "192.168.1.1",
    "subnet": "192.168.1.0/24",
    "dns": ["192.168.1.1", "2001:4860:4860::8888", "8.8.8.8"],
    "ip6_addresses": ["2001:db8:1::10", "fd00:1::10"],
    "ip6_masks": [64, 64],
}

ETH0_ALIAS: dict[str, Any] = {
    "name": "eth0:0",
    "ip_address": "192.168.218.1",
    "subnet": "192.168.218.0/24",
}

GATEWAY_CONFIG: dict[str, Any] = {
    "version": "1.17",
    "monitoringInterface": "eth0",
    "monitoringInterface2": "eth0:0",
}


def seed(store: FakeStore, *, oper: dict[str, Any] | None = None) -> None:
    """Populate *store* the way the network discovery service does."""
    network = {
        "config": GATEWAY_CONFIG,
        "eth0": ETH0,
        "eth0:0": ETH0_ALIAS,
        "ddns": "abcd.d.firewalla.com",
        "publicIp": "203.0.113.5",
    }
    if oper is not None:
        network["oper"] = oper
    store.hashes["sys:network:info"] = {field: json.dumps(value) for field, value in network.items()}
    store.hashes["sys:config"] = {"language": "en", "timezone": "America/Los_Angeles"}
    store.values["system:debug"] = "0"


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def seeded_store(store: FakeStore) -> FakeStore:
    seed(store)
    return store


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def seeder():
    return seed
