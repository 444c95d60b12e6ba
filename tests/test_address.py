from types import SimpleNamespace

import pytest

from metricstore.address import (
    DEFAULT_ADDRESS_TYPE_PRIORITY,
    NodeAddress,
    NodeAddressError,
    NodeAddressType,
    PriorityNodeAddressResolver,
)


def node(*pairs):
    return SimpleNamespace(addresses=[NodeAddress(t, a) for t, a in pairs])


def test_default_prefers_hostname_over_ips():
    n = node(
        (NodeAddressType.EXTERNAL_IP, "203.0.113.5"),
        (NodeAddressType.INTERNAL_IP, "10.0.0.1"),
        (NodeAddressType.HOSTNAME, "node1"),
    )
    assert PriorityNodeAddressResolver().node_address(n) == "node1"


def test_internal_preferred_over_external():
    n = node(
        (NodeAddressType.EXTERNAL_DNS, "node1.example.com"),
        (NodeAddressType.INTERNAL_IP, "10.0.0.1"),
    )
    assert PriorityNodeAddressResolver().node_address(n) == "10.0.0.1"


def test_first_address_of_type_wins():
    n = node(
        (NodeAddressType.INTERNAL_IP, "10.0.0.1"),
        (NodeAddressType.INTERNAL_IP, "10.0.0.2"),
    )
    assert PriorityNodeAddressResolver().node_address(n) == "10.0.0.1"


def test_custom_priority():
    resolver = PriorityNodeAddressResolver(
        [NodeAddressType.EXTERNAL_IP, NodeAddressType.INTERNAL_IP]
    )
    n = node(
        (NodeAddressType.INTERNAL_IP, "10.0.0.1"),
        (NodeAddressType.EXTERNAL_IP, "203.0.113.5"),
    )
    assert resolver.node_address(n) == "203.0.113.5"


def test_no_match_raises():
    resolver = PriorityNodeAddressResolver([NodeAddressType.HOSTNAME])
    n = node((NodeAddressType.INTERNAL_IP, "10.0.0.1"))
    with pytest.raises(NodeAddressError, match="Hostname"):
        resolver.node_address(n)


def test_empty_node_raises():
    with pytest.raises(NodeAddressError):
        PriorityNodeAddressResolver().node_address(node())


def test_default_priority_order():
    assert DEFAULT_ADDRESS_TYPE_PRIORITY[0] is NodeAddressType.HOSTNAME
    assert DEFAULT_ADDRESS_TYPE_PRIORITY[-1] is NodeAddressType.EXTERNAL_IP
    assert NodeAddressType("InternalDNS") is NodeAddressType.INTERNAL_DNS