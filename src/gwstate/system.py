"""Process-wide gateway system state service."""

from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import logging
import socket
from collections.abc import Callable
from typing import Any

import aiohttp
from aiohttp.abc import AbstractResolver

from gwstate._cache import ExpiringValue
from gwstate._constants import HASH_DEBUG_COMPONENT
from gwstate._notifier import ChangeNotifier
from gwstate._probes import DeviceProbe, FileDeviceProbe
from gwstate._store import RedisStateStore, StateStore
from gwstate.classify import IPClassifier, parse_ip
from gwstate.config import GwStateConfig
from gwstate.exceptions import ConfigNotReadyError, StoreError
from gwstate.models.identity import DeviceIdentity
from gwstate.models.network import GatewayConfig, NetworkInterfaceInfo
from gwstate.state.cache import StateCache, always_licensed
from gwstate.state.events import DdnsUpdated, PublicIpUpdated, RemoteChange

_logger = logging.getLogger(__name__)


class SystemState:
    """Owner of the cached gateway state and its store connections.

    Usage::

        async with SystemState(GwStateConfig.from_env()) as system:
            if system.is_local_ip(ip):
                ...

    One instance per process; :func:`get_system_state` hands out the
    shared one.
    """

    def __init__(
        self,
        config: GwStateConfig | None = None,
        *,
        store: StateStore | None = None,
        probe: DeviceProbe | None = None,
        has_license: Callable[[], bool] = always_licensed,
        on_language: Callable[[str], None] | None = None,
        resolver: AbstractResolver | None = None,
    ) -> None:
        self._config = config or GwStateConfig()
        self._external_store = store is not None
        self._store: StateStore = store if store is not None else RedisStateStore(self._config.redis_url)
        self._probe: DeviceProbe = probe or FileDeviceProbe(self._config.paths)
        self._resolver = resolver
        self.cache = StateCache(self._store, has_license=has_license, on_language=on_language)
        self.classifier = IPClassifier(
            self.cache,
            dns_servers=self._config.dns_servers,
            operator_domain=self._config.operator_domain,
        )
        self._notifier = ChangeNotifier(
            store=self._store,
            on_change=self.apply_remote_change,
            on_resubscribe=self.cache.reload,
            retry_delay=self._config.resubscribe_delay,
            logger=_logger,
        )
        self._server_ips: ExpiringValue[frozenset[str]] = ExpiringValue(
            self._resolve_server_ips,
            ttl=self._config.server_cache_ttl,
        )
        self._ssh_password: str | None = None
        self._password_task: asyncio.Task[None] | None = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SystemState:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.release()

    @property
    def config(self) -> GwStateConfig:
        return self._config

    async def initialize(self) -> None:
        """Subscribe to change channels and load the initial snapshot.

        Store failures are logged; the service then starts with an empty
        cache and :meth:`is_ready` stays false until a later reload works.
        """
        if self._initialized:
            return
        self._initialized = True

        if self._config.clear_oper_on_start:
            try:
                await self.cache.clear_operational_state()
            except StoreError:
                _logger.error("Failed to clear stale operational state", exc_info=True)

        # Subscribe before loading so no change lands between the two.
        self._notifier.start()
        if not await self._notifier.wait_started():
            _logger.warning("Change channels unavailable, retrying in the background")
        self._password_task = asyncio.get_running_loop().create_task(
            self._delayed_password_fetch(),
            name="gwstate-ssh-password",
        )
        try:
            await self.cache.reload()
        except StoreError:
            _logger.error("Initial system state load failed", exc_info=True)
        _logger.info("System state initialized ready=%s", self.is_ready())

    async def release(self) -> None:
        """Only call when the instance is no longer needed."""
        await self._notifier.stop()
        task = self._password_task
        self._password_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if not self._external_store:
            await self._store.close()
        self._initialized = False
        _logger.info("System state released")

    async def _delayed_password_fetch(self) -> None:
        await asyncio.sleep(self._config.password_delay)
        loop = asyncio.get_running_loop()
        self._ssh_password = await loop.run_in_executor(None, self._probe.read_ssh_password)

    # ------------------------------------------------------------------
    # Store-backed state
    # ------------------------------------------------------------------

    async def reload(self) -> None:
        await self.cache.reload()

    def is_ready(self) -> bool:
        return self.cache.is_ready()

    def require_ready(self) -> NetworkInterfaceInfo:
        """Return the monitoring interface or raise :class:`ConfigNotReadyError`."""
        if self.cache.config is None:
            raise ConfigNotReadyError("Gateway config not loaded")
        info = self.cache.monitoring_interface()
        if info is None:
            raise ConfigNotReadyError(
                f"Monitoring interface {self.cache.config.monitoring_interface} not discovered"
            )
        return info

    async def set_config(self, config: GatewayConfig) -> StoreError | None:
        return await self.cache.set_config(config)

    async def set_operational_state(self, name: str, value: Any) -> None:
        await self.cache.set_operational_state(name, value)

    def operational_state(self) -> dict[str, Any]:
        return dict(self.cache.operational)

    async def set_language(self, language: str) -> StoreError | None:
        return await self.cache.set_language(language)

    async def set_timezone(self, timezone: str) -> StoreError | None:
        return await self.cache.set_timezone(timezone)

    async def debug_on(self) -> StoreError | None:
        return await self.cache.set_debug(True)

    async def debug_off(self) -> StoreError | None:
        return await self.cache.set_debug(False)

    def is_system_debug_on(self) -> bool:
        return self.cache.debug

    def debug_state(self, component: str) -> bool:
        return component == HASH_DEBUG_COMPONENT

    @property
    def language(self) -> str | None:
        return self.cache.language

    @property
    def timezone(self) -> str | None:
        return self.cache.timezone

    # ------------------------------------------------------------------
    # Remote and collaborator updates
    # ------------------------------------------------------------------

    def apply_remote_change(self, change: RemoteChange) -> None:
        self.cache.apply_remote_change(change)

    def apply_public_ip_updated(self, event: PublicIpUpdated) -> None:
        self.cache.apply_public_ip_updated(event)

    def apply_ddns_updated(self, event: DdnsUpdated) -> None:
        self.cache.apply_ddns_updated(event)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def version(self) -> str:
        config = self.cache.config
        if config is not None and config.version is not None:
            return config.version
        return "unknown"

    def monitoring_interface(self) -> NetworkInterfaceInfo | None:
        return self.cache.monitoring_interface()

    def my_ip(self) -> str | None:
        info = self.cache.monitoring_interface()
        return info.ip_address if info is not None else None

    def my_ip_mask(self) -> str | None:
        info = self.cache.monitoring_interface()
        return info.netmask if info is not None else None

    def my_mac(self) -> str | None:
        info = self.cache.monitoring_interface()
        return info.mac_address if info is not None else None

    def my_gateway(self) -> str | None:
        info = self.cache.monitoring_interface()
        return info.gateway if info is not None else None

    def my_subnet(self) -> str | None:
        info = self.cache.monitoring_interface()
        return info.subnet if info is not None else None

    def my_subnet_no_slash(self) -> str | None:
        subnet = self.my_subnet()
        if subnet is None:
            return None
        return subnet.partition("/")[0]

    def my_dns(self) -> list[str]:
        """IPv4 resolvers of the monitoring interface."""
        info = self.cache.monitoring_interface()
        if info is None:
            return []
        return [dns for dns in info.dns if isinstance(parse_ip(dns), ipaddress.IPv4Address)]

    def my_dns_any(self) -> list[str]:
        info = self.cache.monitoring_interface()
        return list(info.dns) if info is not None else []

    def my_ddns(self) -> Any:
        return self.cache.ddns

    def my_public_ip(self) -> str | None:
        return self.cache.public_ip

    def my_ssh_password(self) -> str | None:
        return self._ssh_password

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_multicast_ip(self, ip: str) -> bool:
        return self.classifier.is_multicast_ip(ip)

    def is_dns_server(self, ip: str) -> bool:
        return self.classifier.is_dns_server(ip)

    def is_local_ipv4(self, interface: str | None, ip: str) -> bool:
        return self.classifier.is_local_ipv4(interface, ip)

    def is_local_ip(self, ip: str) -> bool:
        return self.classifier.is_local_ip(ip)

    def should_ignore(self, ip: str) -> bool:
        return self.classifier.should_ignore(ip)

    def is_operator_domain(self, name_or_ip: str) -> bool:
        return self.classifier.is_operator_domain(name_or_ip)

    def register_neighbor(self, ip: str) -> None:
        self.cache.register_neighbor(ip)

    def is_learned_neighbor(self, ip: str) -> bool:
        return self.classifier.is_learned_neighbor(ip)

    async def is_my_server(self, ip: str) -> bool:
        """True if *ip* is one of the operator API host's IPv4 addresses.

        Resolution results are reused until they expire; a failed lookup
        answers ``False`` and is retried on the next call.
        """
        try:
            addresses = await self._server_ips.get()
        except OSError:
            _logger.error("Unable to resolve %s", self._config.server_host, exc_info=True)
            return False
        return ip in addresses

    async def _resolve_server_ips(self) -> frozenset[str]:
        resolver = self._resolver
        owned = resolver is None
        if resolver is None:
            resolver = aiohttp.ThreadedResolver()
        try:
            hosts = await resolver.resolve(self._config.server_host, 0, socket.AF_INET)
        finally:
            if owned:
                await resolver.close()
        return frozenset(str(host["host"]) for host in hosts)

    # ------------------------------------------------------------------
    # Device identity
    # ------------------------------------------------------------------

    def system_rebooted_due_to_issue(self, reset: bool = False) -> bool:
        return self._probe.rebooted_due_to_issue(reset)

    async def get_sys_info(self) -> DeviceIdentity:
        loop = asyncio.get_running_loop()
        serial = await loop.run_in_executor(None, self._probe.read_serial)
        branch, head, tag = await loop.run_in_executor(None, self._probe.read_repo_info)
        memory = await loop.run_in_executor(None, self._probe.memory_stats)
        return DeviceIdentity(
            ip=self.my_ip(),
            mac=self.my_mac(),
            serial=serial,
            repo_branch=branch,
            repo_head=head,
            repo_tag=tag,
            memory=memory,
        )


_instance: SystemState | None = None


def get_system_state(config: GwStateConfig | None = None, **kwargs: Any) -> SystemState:
    """Return the process-wide instance, creating it on first use."""
    global _instance
    if _instance is None:
        _instance = SystemState(config, **kwargs)
    return _instance


async def reset_system_state() -> None:
    """Release and forget the process-wide instance."""
    global _instance
    instance = _instance
    _instance = None
    if instance is not None:
        await instance.release()
