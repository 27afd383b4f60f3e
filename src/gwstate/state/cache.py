"""In-memory snapshot of the gateway state and its store sync protocol.

The cache is written in exactly three ways:

- :meth:`StateCache.reload` replaces the store-backed fields wholesale;
- local setters write through to the store first and only then touch the
  cache (and announce the change on the matching channel);
- :meth:`StateCache.apply_remote_change` applies a value announced by any
  process, without writing back to the store.

Operational state is merged with a read-modify-write
(:meth:`StateCache.set_operational_state`) that is not atomic across
processes: two processes updating different names at the same time can
lose one of the updates. Last writer wins.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from gwstate._constants import (
    CONFIG_FIELD,
    DDNS_FIELD,
    DEBUG_KEY,
    LANGUAGE_FIELD,
    NETWORK_INFO_KEY,
    OPER_FIELD,
    PUBLIC_IP_FIELD,
    RESERVED_NETWORK_FIELDS,
    SYS_CONFIG_KEY,
    TIMEZONE_FIELD,
)
from gwstate._store import StateStore, decode_hash, encode_field
from gwstate.exceptions import StoreError
from gwstate.models.network import GatewayConfig, NetworkInterfaceInfo
from gwstate.state.events import ChangeChannel, DdnsUpdated, PublicIpUpdated, RemoteChange

_logger = logging.getLogger(__name__)

_DEBUG_PAYLOADS: dict[str, bool] = {"1": True, "0": False}


def always_licensed() -> bool:
    return True


def _parse_interfaces(network: dict[str, Any]) -> dict[str, NetworkInterfaceInfo]:
    interfaces: dict[str, NetworkInterfaceInfo] = {}
    for name, value in network.items():
        if name in RESERVED_NETWORK_FIELDS or not isinstance(value, dict):
            continue
        try:
            interfaces[name] = NetworkInterfaceInfo.model_validate(value)
        except ValidationError:
            _logger.warning("Ignoring malformed interface entry %s", name, exc_info=True)
    return interfaces


def _parse_config(network: dict[str, Any]) -> GatewayConfig | None:
    raw = network.get(CONFIG_FIELD)
    if raw is None:
        return None
    try:
        return GatewayConfig.model_validate(raw)
    except ValidationError as exc:
        raise StoreError(f"Invalid {CONFIG_FIELD} field in {NETWORK_INFO_KEY}: {exc}", key=NETWORK_INFO_KEY) from exc


class StateCache:
    """Process-local view of the shared gateway state."""

    def __init__(
        self,
        store: StateStore,
        *,
        has_license: Callable[[], bool] = always_licensed,
        on_language: Callable[[str], None] | None = None,
    ) -> None:
        self._store = store
        self._has_license = has_license
        self._on_language = on_language

        self.interfaces: dict[str, NetworkInterfaceInfo] = {}
        self.config: GatewayConfig | None = None
        self.operational: dict[str, Any] = {}
        self.ddns: Any = None
        self.public_ip: str | None = None
        self.language: str | None = None
        self.timezone: str | None = None
        self.learned_neighbors: set[str] = set()
        # Bumped whenever the interface map or config may have changed, so
        # derived lookups (the classifier's subnet) know to recompute.
        self.revision = 0
        self._debug = False
        self._set_debug(False)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def debug(self) -> bool:
        return self._debug

    def _set_debug(self, value: bool) -> None:
        # Unlicensed devices always run with debug on.
        self._debug = True if not self._has_license() else value

    def interface(self, name: str | None) -> NetworkInterfaceInfo | None:
        if name is None:
            return None
        return self.interfaces.get(name)

    def monitoring_interface(self) -> NetworkInterfaceInfo | None:
        if self.config is None:
            return None
        return self.interfaces.get(self.config.monitoring_interface)

    def secondary_interface_name(self) -> str | None:
        if self.config is None:
            return None
        return self.config.monitoring_interface2

    def is_ready(self) -> bool:
        """Config loaded and the monitoring interface discovered."""
        return self.config is not None and self.monitoring_interface() is not None

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of every cached field, for inspection and comparison."""
        return {
            "interfaces": {name: info.model_dump() for name, info in self.interfaces.items()},
            "config": self.config.model_dump(by_alias=True) if self.config is not None else None,
            "operational": copy.deepcopy(self.operational),
            "ddns": copy.deepcopy(self.ddns),
            "public_ip": self.public_ip,
            "language": self.language,
            "timezone": self.timezone,
            "debug": self._debug,
            "learned_neighbors": sorted(self.learned_neighbors),
        }

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def reload(self) -> None:
        """Reload locale, debug flag and network info from the store.

        The three fetches run concurrently and the cache is only updated
        once all of them have succeeded. :class:`StoreError` propagates and
        leaves every cached field at its prior value.
        """
        _logger.debug("Loading system state from store")
        sys_config, debug_raw, network_raw = await asyncio.gather(
            self._store.hgetall(SYS_CONFIG_KEY),
            self._store.get(DEBUG_KEY),
            self._store.hgetall(NETWORK_INFO_KEY),
        )

        network: dict[str, Any] | None = None
        config: GatewayConfig | None = None
        interfaces: dict[str, NetworkInterfaceInfo] = {}
        if network_raw:
            network = decode_hash(NETWORK_INFO_KEY, network_raw)
            config = _parse_config(network)
            interfaces = _parse_interfaces(network)

        language = sys_config.get(LANGUAGE_FIELD)
        if language:
            self.language = language
            self._notify_language(language)
        timezone = sys_config.get(TIMEZONE_FIELD)
        if timezone:
            self.timezone = timezone

        # An absent key means debug off.
        self._set_debug(debug_raw == "1")

        # A missing network-info hash leaves the network view as it was.
        if network is None:
            return

        if config is not None:
            self.config = config
        self.interfaces = interfaces
        oper = network.get(OPER_FIELD)
        self.operational = oper if isinstance(oper, dict) else {}
        self.ddns = network.get(DDNS_FIELD)
        self.public_ip = network.get(PUBLIC_IP_FIELD)
        self.revision += 1

    # ------------------------------------------------------------------
    # Local writes
    # ------------------------------------------------------------------

    async def set_config(self, config: GatewayConfig) -> StoreError | None:
        """Persist *config*, then adopt it locally.

        Failures are logged and returned, never raised; the cached config
        is left unchanged.
        """
        try:
            await self._store.hset(NETWORK_INFO_KEY, CONFIG_FIELD, encode_field(config.to_store()))
        except StoreError as exc:
            _logger.error("Failed to set %s in store: %s", NETWORK_INFO_KEY, exc)
            return exc
        self.config = config
        self.revision += 1
        return None

    async def set_operational_state(self, name: str, value: Any) -> None:
        """Reload, set ``operational[name]`` and persist the whole map.

        Not atomic across processes; see the module docstring.
        Raises :class:`StoreError` when either the reload or the write fails.
        """
        await self.reload()
        operational = dict(self.operational)
        operational[name] = value
        try:
            await self._store.hset(NETWORK_INFO_KEY, OPER_FIELD, encode_field(operational))
        except StoreError:
            _logger.error("Failed to persist operational state %s", name, exc_info=True)
            raise
        self.operational = operational
        _logger.debug("Operational state %s changed", name)

    async def set_language(self, language: str) -> StoreError | None:
        self.language = language
        self._notify_language(language)
        try:
            await self._store.hset(SYS_CONFIG_KEY, LANGUAGE_FIELD, language)
        except StoreError as exc:
            _logger.error("Failed to set language %s: %s", language, exc)
            return exc
        return await self._publish(ChangeChannel.LANGUAGE, language)

    async def set_timezone(self, timezone: str) -> StoreError | None:
        self.timezone = timezone
        try:
            await self._store.hset(SYS_CONFIG_KEY, TIMEZONE_FIELD, timezone)
        except StoreError as exc:
            _logger.error("Failed to set timezone %s: %s", timezone, exc)
            return exc
        return await self._publish(ChangeChannel.TIMEZONE, timezone)

    async def set_debug(self, enabled: bool) -> StoreError | None:
        payload = "1" if enabled else "0"
        try:
            await self._store.set(DEBUG_KEY, payload)
        except StoreError as exc:
            _logger.error("Failed to set %s to %s: %s", DEBUG_KEY, payload, exc)
            return exc
        self._set_debug(enabled)
        return await self._publish(ChangeChannel.DEBUG, payload)

    async def clear_operational_state(self) -> None:
        await self._store.hdel(NETWORK_INFO_KEY, OPER_FIELD)
        self.operational = {}

    async def _publish(self, channel: ChangeChannel, payload: str) -> StoreError | None:
        try:
            await self._store.publish(channel.value, payload)
        except StoreError as exc:
            _logger.error("Failed to publish %s on %s: %s", payload, channel.value, exc)
            return exc
        return None

    def _notify_language(self, language: str) -> None:
        if self._on_language is not None:
            self._on_language(language)

    # ------------------------------------------------------------------
    # Remote and collaborator updates
    # ------------------------------------------------------------------

    def apply_remote_change(self, change: RemoteChange) -> None:
        """Apply a value announced on a change channel (no store write)."""
        if change.channel is ChangeChannel.DEBUG:
            enabled = _DEBUG_PAYLOADS.get(change.payload)
            if enabled is None:
                _logger.error("Invalid message for channel %s: %r", change.channel.value, change.payload)
                return
            self._set_debug(enabled)
            _logger.info("[pubsub] System debug changed to %s", change.payload)
        elif change.channel is ChangeChannel.LANGUAGE:
            self.language = change.payload
            self._notify_language(change.payload)
            _logger.info("[pubsub] Language changed to %s", change.payload)
        elif change.channel is ChangeChannel.TIMEZONE:
            self.timezone = change.payload
            _logger.info("[pubsub] Timezone changed to %s", change.payload)

    def apply_public_ip_updated(self, event: PublicIpUpdated) -> None:
        if event.ip:
            self.public_ip = event.ip

    def apply_ddns_updated(self, event: DdnsUpdated) -> None:
        _logger.info("Updating DDNS: ddns=%s publicIp=%s", event.ddns, event.public_ip)
        if event.ddns:
            self.ddns = event.ddns
        if event.public_ip:
            self.public_ip = event.public_ip

    def register_neighbor(self, ip: str) -> None:
        self.learned_neighbors.add(ip)
        _logger.debug("Learned local neighbor %s", ip)
