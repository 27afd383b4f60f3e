"""gwstate - Process-wide network gateway state and IP classification."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gwstate")
except PackageNotFoundError:
    __version__ = "0+local"
from gwstate._store import RedisStateStore, StateStore
from gwstate.classify import IPClassifier
from gwstate.config import DevicePaths, GwStateConfig
from gwstate.exceptions import (
    ConfigNotReadyError,
    GwConfigError,
    GwStateError,
    StoreError,
)
from gwstate.models import DeviceIdentity, GatewayConfig, NetworkInterfaceInfo
from gwstate.state.cache import StateCache
from gwstate.state.events import ChangeChannel, DdnsUpdated, PublicIpUpdated, RemoteChange
from gwstate.system import SystemState, get_system_state, reset_system_state

__all__ = [
    "__version__",
    "ChangeChannel",
    "ConfigNotReadyError",
    "DdnsUpdated",
    "DeviceIdentity",
    "DevicePaths",
    "GatewayConfig",
    "GwConfigError",
    "GwStateConfig",
    "GwStateError",
    "IPClassifier",
    "NetworkInterfaceInfo",
    "PublicIpUpdated",
    "RedisStateStore",
    "RemoteChange",
    "StateCache",
    "StateStore",
    "StoreError",
    "SystemState",
    "get_system_state",
    "reset_system_state",
]
