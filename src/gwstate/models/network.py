"""Network interface and gateway config models."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from gwstate.models._base import GwBaseModel


class NetworkInterfaceInfo(GwBaseModel):
    """One entry of the network-info hash, keyed by interface name.

    Parameters
    ----------
    name : str or None
        Interface name, when the producer includes it.
    ip_address, netmask, mac_address, gateway : str or None
        IPv4 settings. ``netmask`` has any ``"Mask:"`` prefix removed.
    subnet : str or None
        IPv4 subnet in CIDR notation (``"192.168.1.0/24"``).
    dns : list of str
        Configured resolvers, IPv4 and IPv6 mixed, in order.
    ip6_addresses, ip6_masks : list
        Index-parallel IPv6 addresses and prefix lengths. Lengths are not
        guaranteed to match.
    """

    name: str | None = None
    ip_address: str | None = None
    netmask: str | None = None
    mac_address: str | None = None
    gateway: str | None = None
    subnet: str | None = None
    dns: list[str] = Field(default_factory=list)
    ip6_addresses: list[str] = Field(default_factory=list)
    ip6_masks: list[int | str] = Field(default_factory=list)

    @field_validator("netmask")
    @classmethod
    def _strip_mask_prefix(cls, value: str | None) -> str | None:
        if value is not None and value.startswith("Mask:"):
            return value[5:]
        return value

    @field_validator("dns", "ip6_addresses", "ip6_masks", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            return [value]
        return value

    def ip6_pairs(self) -> list[tuple[str, int | str]]:
        """Return (address, prefix) pairs, truncated to the shorter list."""
        return list(zip(self.ip6_addresses, self.ip6_masks))


class GatewayConfig(GwBaseModel):
    """Active gateway config, stored under the ``config`` field.

    Unknown keys are kept so that a store round trip preserves fields
    written by other components.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    version: str | None = None
    monitoring_interface: str
    monitoring_interface2: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value
