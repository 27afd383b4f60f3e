"""Runtime configuration for gwstate."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from gwstate._constants import (
    DEFAULT_DNS_SERVERS,
    DEFAULT_OPERATOR_DOMAIN,
    DEFAULT_SERVER_CACHE_TTL,
    DEFAULT_SERVER_HOST,
)
from gwstate.exceptions import GwConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise GwConfigError(f"{name} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class DevicePaths:
    """Filesystem locations read by the default device probe."""

    serial_path: str = "/sys/block/mmcblk0/device/serial"
    repo_info_dir: str = "/tmp"
    password_path: str = "/home/pi/.firewalla/.sshpasswd"
    reboot_marker: str = "/home/pi/.firewalla/managed_reboot"


@dataclasses.dataclass(frozen=True)
class GwStateConfig:
    """System state configuration.

    Parameters
    ----------
    redis_url : str
        URL of the shared store.
    operator_domain : str
        Root domain of the vendor's cloud backend. Matched as a plain
        substring by ``is_operator_domain``.
    server_host : str
        Host name whose IPv4 addresses are treated as "my server".
    server_cache_ttl : float
        Seconds a resolved server address list is reused before it is
        resolved again.
    password_delay : float
        Seconds to wait after ``initialize()`` before reading the SSH
        password.
    resubscribe_delay : float
        Initial backoff in seconds before re-subscribing to the change
        channels after the store connection drops. Doubles per failed
        attempt, up to 30 seconds.
    dns_servers : frozenset of str
        Operator resolvers recognised by ``is_dns_server``.
    clear_oper_on_start : bool
        Delete the persisted operational state on first initialize.
    paths : DevicePaths
        Device probe file locations.
    """

    redis_url: str = "redis://localhost:6379/0"
    operator_domain: str = DEFAULT_OPERATOR_DOMAIN
    server_host: str = DEFAULT_SERVER_HOST
    server_cache_ttl: float = DEFAULT_SERVER_CACHE_TTL
    password_delay: float = 2.0
    resubscribe_delay: float = 1.0
    dns_servers: frozenset[str] = DEFAULT_DNS_SERVERS
    clear_oper_on_start: bool = True
    paths: DevicePaths = dataclasses.field(default_factory=DevicePaths)

    @classmethod
    def from_env(cls, **overrides: Any) -> GwStateConfig:
        """Create configuration from ``GW_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        path_kwargs: dict[str, str] = {}
        _ENV_PATH_MAP = {
            "GW_SERIAL_PATH": "serial_path",
            "GW_REPO_INFO_DIR": "repo_info_dir",
            "GW_PASSWORD_PATH": "password_path",
            "GW_REBOOT_MARKER": "reboot_marker",
        }
        for env_key, field_name in _ENV_PATH_MAP.items():
            val = env.get(env_key)
            if val is not None:
                path_kwargs[field_name] = val

        path_overrides = overrides.pop("paths", None)
        if isinstance(path_overrides, dict):
            path_kwargs.update(path_overrides)
        elif isinstance(path_overrides, DevicePaths):
            path_kwargs = dataclasses.asdict(path_overrides)

        config_kwargs: dict[str, Any] = {"paths": DevicePaths(**path_kwargs)}

        _ENV_CONFIG_MAP = {
            "GW_REDIS_URL": "redis_url",
            "GW_OPERATOR_DOMAIN": "operator_domain",
            "GW_SERVER_HOST": "server_host",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        ttl_env = env.get("GW_SERVER_CACHE_TTL")
        if ttl_env is not None and "server_cache_ttl" not in overrides:
            config_kwargs["server_cache_ttl"] = _env_float("GW_SERVER_CACHE_TTL", ttl_env)

        delay_env = env.get("GW_PASSWORD_DELAY")
        if delay_env is not None and "password_delay" not in overrides:
            config_kwargs["password_delay"] = _env_float("GW_PASSWORD_DELAY", delay_env)

        resubscribe_env = env.get("GW_RESUBSCRIBE_DELAY")
        if resubscribe_env is not None and "resubscribe_delay" not in overrides:
            config_kwargs["resubscribe_delay"] = _env_float("GW_RESUBSCRIBE_DELAY", resubscribe_env)

        dns_env = env.get("GW_DNS_SERVERS")
        if dns_env is not None and "dns_servers" not in overrides:
            config_kwargs["dns_servers"] = frozenset(s.strip() for s in dns_env.split(",") if s.strip())

        if "clear_oper_on_start" not in overrides:
            config_kwargs["clear_oper_on_start"] = _env_bool(env.get("GW_CLEAR_OPER_ON_START"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
