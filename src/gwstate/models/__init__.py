"""Data models for shared-store structures."""

from gwstate.models._base import GwBaseModel
from gwstate.models.identity import DeviceIdentity
from gwstate.models.network import GatewayConfig, NetworkInterfaceInfo

__all__ = [
    "DeviceIdentity",
    "GatewayConfig",
    "GwBaseModel",
    "NetworkInterfaceInfo",
]
