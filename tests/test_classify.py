from __future__ import annotations

import pytest

from conftest import ETH0, ETH0_ALIAS, GATEWAY_CONFIG, FakeStore
from gwstate.classify import IPClassifier, parse_ip
from gwstate.models.network import GatewayConfig, NetworkInterfaceInfo
from gwstate.state.cache import StateCache


def _classifier(
    *,
    config: dict | None = GATEWAY_CONFIG,
    interfaces: dict[str, dict] | None = None,
) -> IPClassifier:
    cache = StateCache(FakeStore())
    if interfaces is None:
        interfaces = {"eth0": ETH0, "eth0:0": ETH0_ALIAS}
    cache.interfaces = {name: NetworkInterfaceInfo.model_validate(data) for name, data in interfaces.items()}
    cache.config = GatewayConfig.model_validate(config) if config is not None else None
    cache.revision += 1
    return IPClassifier(cache)


# ------------------------------------------------------------------
# Multicast
# ------------------------------------------------------------------


@pytest.mark.parametrize("ip", ["224.0.0.0", "224.0.0.251", "239.255.255.250", "239.255.255.255", "255.255.255.255"])
def test_ipv4_multicast_range_and_broadcast(ip: str) -> None:
    assert _classifier().is_multicast_ip(ip) is True


@pytest.mark.parametrize("ip", ["223.255.255.255", "240.0.0.0", "192.168.1.1", "999.1.1.1"])
def test_ipv4_outside_multicast_range(ip: str) -> None:
    assert _classifier().is_multicast_ip(ip) is False


def test_ipv6_multicast_is_lowercase_ff_prefix() -> None:
    classifier = _classifier()
    assert classifier.is_multicast_ip("ff02::1") is True
    assert classifier.is_multicast_ip("ff05::1:3") is True
    assert classifier.is_multicast_ip("FF02::1") is False
    assert classifier.is_multicast_ip("2001:db8::1") is False


def test_multicast_never_raises_on_garbage() -> None:
    classifier = _classifier()
    assert classifier.is_multicast_ipv4("not-an-ip") is False
    assert classifier.is_multicast_ip("") is False


# ------------------------------------------------------------------
# Operator resolvers and domains
# ------------------------------------------------------------------


def test_dns_servers() -> None:
    classifier = _classifier()
    assert classifier.is_dns_server("8.8.8.8") is True
    assert classifier.is_dns_server("75.75.75.76") is True
    assert classifier.is_dns_server("1.1.1.1") is False
    assert classifier.should_ignore("75.75.75.75") is True
    assert classifier.should_ignore("1.1.1.1") is False


def test_dns_servers_are_configurable() -> None:
    classifier = IPClassifier(StateCache(FakeStore()), dns_servers={"9.9.9.9"})
    assert classifier.is_dns_server("9.9.9.9") is True
    assert classifier.is_dns_server("8.8.8.8") is False


def test_operator_domain_is_plain_substring() -> None:
    classifier = _classifier()
    assert classifier.is_operator_domain("firewalla.encipher.io") is True
    assert classifier.is_operator_domain("encipher.io.example.com") is True
    assert classifier.is_operator_domain("example.com") is False


# ------------------------------------------------------------------
# IPv4 locality
# ------------------------------------------------------------------


def test_ipv4_in_monitoring_subnet_is_local() -> None:
    classifier = _classifier()
    assert classifier.is_local_ip("192.168.1.50") is True
    assert classifier.is_local_ip("10.0.0.5") is False


def test_ipv4_in_secondary_subnet_is_local() -> None:
    classifier = _classifier()
    assert classifier.is_local_ip("192.168.218.7") is True


def test_ipv4_without_secondary_interface() -> None:
    classifier = _classifier(config={"monitoringInterface": "eth0"})
    assert classifier.is_local_ip("192.168.218.7") is False
    assert classifier.is_local_ip("192.168.1.7") is True


def test_ipv4_multicast_is_local() -> None:
    assert _classifier().is_local_ip("224.0.0.251") is True


def test_ipv4_fails_open_without_config() -> None:
    assert _classifier(config=None).is_local_ip("10.0.0.5") is True


def test_ipv4_fails_open_when_monitoring_interface_missing() -> None:
    assert _classifier(interfaces={}).is_local_ip("10.0.0.5") is True


def test_is_local_ipv4_unknown_interface_or_missing_subnet() -> None:
    classifier = _classifier(interfaces={"eth0": ETH0, "wlan0": {"ip_address": "10.1.1.1"}})
    assert classifier.is_local_ipv4("eth9", "192.168.1.5") is False
    assert classifier.is_local_ipv4(None, "192.168.1.5") is False
    assert classifier.is_local_ipv4("wlan0", "224.0.0.1") is False
    assert classifier.is_local_ipv4("eth0", "224.0.0.1") is True
    assert classifier.is_local_ipv4("eth0", "192.168.1.5") is True
    assert classifier.is_local_ipv4("eth0", "192.168.2.5") is False


def test_my_subnet_recomputed_after_cache_change() -> None:
    classifier = _classifier(
        interfaces={"eth0": ETH0, "eth1": {"ip_address": "10.0.0.1", "subnet": "10.0.0.0/8"}},
    )
    assert classifier.is_local_ip("10.0.0.5") is False

    cache = classifier._cache  # noqa: SLF001
    cache.config = GatewayConfig(monitoring_interface="eth1")
    cache.revision += 1

    assert classifier.my_subnet() == "10.0.0.0/8"
    assert classifier.is_local_ip("10.0.0.5") is True


# ------------------------------------------------------------------
# IPv6 locality
# ------------------------------------------------------------------


@pytest.mark.parametrize("ip", ["::1", "::ffff:10.0.0.1", "fe80::1", "fe80::1ff:fe23:4567:890a", "ff02::fb"])
def test_ipv6_always_local(ip: str) -> None:
    assert _classifier(config=None, interfaces={}).is_local_ip(ip) is True


def test_ipv6_in_my_prefix() -> None:
    classifier = _classifier()
    assert classifier.is_local_ip("2001:db8:1::99") is True
    assert classifier.is_local_ip("fd00:1::beef") is True
    assert classifier.is_local_ip("2001:db8:2::1") is False


def test_ipv6_mask_given_as_address() -> None:
    eth0 = dict(ETH0, ip6_addresses=["2001:db8:1::10"], ip6_masks=["ffff:ffff:ffff:ffff::"])
    classifier = _classifier(interfaces={"eth0": eth0})
    assert classifier.in_my_subnet6("2001:db8:1::abcd") is True
    assert classifier.in_my_subnet6("2001:db8:9::abcd") is False


def test_ipv6_mismatched_address_mask_lengths() -> None:
    eth0 = dict(ETH0, ip6_addresses=["2001:db8:1::10"], ip6_masks=[64, 48])
    classifier = _classifier(interfaces={"eth0": eth0})
    assert classifier.in_my_subnet6("2001:db8:1::5") is True
    assert classifier.in_my_subnet6("2001:db8:7::5") is False


def test_ipv6_without_masks_is_not_in_subnet() -> None:
    eth0 = dict(ETH0, ip6_masks=[])
    assert _classifier(interfaces={"eth0": eth0}).in_my_subnet6("2001:db8:1::5") is False


def test_learned_neighbor_is_local() -> None:
    classifier = _classifier()
    assert classifier.is_local_ip("fd00::9") is False
    assert classifier.is_learned_neighbor("fd00::9") is False

    classifier._cache.register_neighbor("fd00::9")  # noqa: SLF001

    assert classifier.is_local_ip("fd00::9") is True
    assert classifier.is_learned_neighbor("fd00::9") is True


# ------------------------------------------------------------------
# Malformed input
# ------------------------------------------------------------------


@pytest.mark.parametrize("ip", ["not-an-ip", "", "192.168.1", "1.2.3.4.5"])
def test_malformed_input_fails_open(ip: str) -> None:
    assert _classifier().is_local_ip(ip) is True


def test_parse_ip() -> None:
    assert parse_ip("192.168.1.1") is not None
    assert parse_ip(" 2001:db8::1 ") is not None
    assert parse_ip("nope") is None


def test_parse_ip_reads_zero_padded_quads_as_decimal() -> None:
    assert str(parse_ip("010.0.0.5")) == "10.0.0.5"
    assert str(parse_ip("192.168.001.050")) == "192.168.1.50"
    assert parse_ip("256.0.0.1") is None


def test_zero_padded_ipv4_is_classified() -> None:
    classifier = _classifier()
    assert classifier.is_local_ip("010.0.0.5") is False
    assert classifier.is_local_ip("192.168.001.050") is True
    assert classifier.is_multicast_ip("239.001.001.001") is True
