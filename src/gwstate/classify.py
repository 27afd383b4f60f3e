"""IP classification over the cached gateway state.

Every predicate is read-only with respect to the cache and never raises
for bad input. Where an address cannot be classified confidently the
predicate falls back to a fixed default and logs it: ``is_local_ip``
fails open (``True``), the multicast predicates fail safe (``False``).
"""

from __future__ import annotations

import ipaddress
import logging
import re
from collections.abc import Iterable

from gwstate._constants import (
    BROADCAST_IPV4,
    DEFAULT_DNS_SERVERS,
    DEFAULT_OPERATOR_DOMAIN,
    MULTICAST_IPV4_HIGH,
    MULTICAST_IPV4_LOW,
)
from gwstate.state.cache import StateCache

_logger = logging.getLogger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_DOTTED_QUAD = re.compile(r"^[0-9]{1,3}(\.[0-9]{1,3}){3}$")


def parse_ip(ip: str) -> IPAddress | None:
    """Parse *ip*, returning ``None`` for anything that is not an address.

    Zero-padded dotted quads are read as decimal, so ``"010.0.0.5"`` is
    ``10.0.0.5``.
    """
    try:
        text = ip.strip()
        if _DOTTED_QUAD.match(text):
            text = ".".join(str(int(part)) for part in text.split("."))
        return ipaddress.ip_address(text)
    except (AttributeError, ValueError):
        return None


def _ipv6_mask_bits(mask: int | str) -> int:
    """Integer mask from a prefix length (``64``/``"64"``) or a mask address."""
    if isinstance(mask, int) or str(mask).isdigit():
        prefix = int(mask)
        if not 0 <= prefix <= 128:
            raise ValueError(f"IPv6 prefix length out of range: {prefix}")
        return ((1 << prefix) - 1) << (128 - prefix)
    return int(ipaddress.IPv6Address(str(mask)))


def _ipv4_network(subnet: str) -> ipaddress.IPv4Network:
    network = ipaddress.ip_network(subnet, strict=False)
    if not isinstance(network, ipaddress.IPv4Network):
        raise ValueError(f"not an IPv4 subnet: {subnet}")
    return network


class IPClassifier:
    """Answers "is this address local/multicast/DNS/mine" questions."""

    def __init__(
        self,
        cache: StateCache,
        *,
        dns_servers: Iterable[str] = DEFAULT_DNS_SERVERS,
        operator_domain: str = DEFAULT_OPERATOR_DOMAIN,
    ) -> None:
        self._cache = cache
        self._dns_servers = frozenset(dns_servers)
        self._operator_domain = operator_domain
        # (cache revision, subnet) of the monitoring interface.
        self._my_subnet: tuple[int, str] | None = None

    # ------------------------------------------------------------------
    # Multicast
    # ------------------------------------------------------------------

    def is_multicast_ipv4(self, ip: str) -> bool:
        if ip == BROADCAST_IPV4:
            return True
        addr = parse_ip(ip)
        if not isinstance(addr, ipaddress.IPv4Address):
            return False
        return MULTICAST_IPV4_LOW <= int(addr) <= MULTICAST_IPV4_HIGH

    def is_multicast_ipv6(self, ip: str) -> bool:
        return ip.startswith("ff")

    def is_multicast_ip(self, ip: str) -> bool:
        try:
            if isinstance(parse_ip(ip), ipaddress.IPv4Address):
                return self.is_multicast_ipv4(ip)
            return self.is_multicast_ipv6(ip)
        except Exception:
            _logger.error("Unable to classify multicast for %r", ip, exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Operator resolvers and domains
    # ------------------------------------------------------------------

    def is_dns_server(self, ip: str) -> bool:
        return ip in self._dns_servers

    def should_ignore(self, ip: str) -> bool:
        """Traffic to the operator's own resolvers is not tracked."""
        return self.is_dns_server(ip)

    def is_operator_domain(self, name_or_ip: str) -> bool:
        """Plain substring match, so ``"x.encipher.io.evil"`` matches too."""
        return self._operator_domain in name_or_ip

    # ------------------------------------------------------------------
    # Local membership
    # ------------------------------------------------------------------

    def is_learned_neighbor(self, ip: str) -> bool:
        return ip in self._cache.learned_neighbors

    def is_local_ipv4(self, interface: str | None, ip: str) -> bool:
        info = self._cache.interface(interface)
        if info is None or info.subnet is None:
            return False
        if self.is_multicast_ip(ip):
            return True
        addr = parse_ip(ip)
        if not isinstance(addr, ipaddress.IPv4Address):
            return False
        try:
            return addr in _ipv4_network(info.subnet)
        except ValueError:
            _logger.error("Interface %s has an invalid subnet %r", interface, info.subnet)
            return False

    def my_subnet(self) -> str | None:
        """Subnet of the monitoring interface, cached until the cache changes."""
        revision = self._cache.revision
        if self._my_subnet is not None and self._my_subnet[0] == revision:
            return self._my_subnet[1]
        info = self._cache.monitoring_interface()
        subnet = info.subnet if info is not None else None
        if subnet is not None:
            self._my_subnet = (revision, subnet)
        return subnet

    def in_my_subnet6(self, ip: str) -> bool:
        """True if *ip* shares a prefix with any of my IPv6 address/mask pairs."""
        info = self._cache.monitoring_interface()
        if info is None or not info.ip6_masks:
            return False
        addr = parse_ip(ip)
        if not isinstance(addr, ipaddress.IPv6Address):
            return False
        if len(info.ip6_addresses) != len(info.ip6_masks):
            _logger.debug(
                "IPv6 address/mask count mismatch (%d/%d)",
                len(info.ip6_addresses),
                len(info.ip6_masks),
            )
        for own, mask in info.ip6_pairs():
            try:
                bits = _ipv6_mask_bits(mask)
                own_addr = ipaddress.IPv6Address(own)
            except ValueError:
                _logger.debug("Skipping invalid IPv6 pair %s/%s", own, mask)
                continue
            if int(own_addr) & bits == int(addr) & bits:
                _logger.info("Found %s in subnet of %s/%s", ip, own, mask)
                return True
        return False

    def is_local_ip(self, ip: str) -> bool:
        addr = parse_ip(ip)
        if isinstance(addr, ipaddress.IPv4Address):
            return self._is_local_ipv4_mine(ip, addr)
        if isinstance(addr, ipaddress.IPv6Address):
            return self._is_local_ipv6(ip)
        _logger.debug("Unable to classify %r, treating as local", ip)
        return True

    def _is_local_ipv4_mine(self, ip: str, addr: ipaddress.IPv4Address) -> bool:
        subnet = self.my_subnet()
        if subnet is None:
            _logger.error("Error getting subnet of the monitoring interface")
            return True
        if self.is_multicast_ip(ip):
            return True
        try:
            network = _ipv4_network(subnet)
        except ValueError:
            _logger.error("Monitoring interface has an invalid subnet %r", subnet)
            return True
        return addr in network or self.is_local_ipv4(self._cache.secondary_interface_name(), ip)

    def _is_local_ipv6(self, ip: str) -> bool:
        if ip.startswith("::"):
            return True
        if self.is_multicast_ipv6(ip):
            return True
        if ip.startswith("fe80"):
            return True
        if self.is_learned_neighbor(ip):
            return True
        return self.in_my_subnet6(ip)
