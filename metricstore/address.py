"""Choosing the address to reach a node by."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any


class NodeAddressType(str, enum.Enum):
    """Kinds of addresses a node reports."""

    HOSTNAME = "Hostname"
    INTERNAL_DNS = "InternalDNS"
    INTERNAL_IP = "InternalIP"
    EXTERNAL_DNS = "ExternalDNS"
    EXTERNAL_IP = "ExternalIP"


DEFAULT_ADDRESS_TYPE_PRIORITY: tuple[NodeAddressType, ...] = (
    NodeAddressType.HOSTNAME,
    NodeAddressType.INTERNAL_DNS,
    NodeAddressType.INTERNAL_IP,
    NodeAddressType.EXTERNAL_DNS,
    NodeAddressType.EXTERNAL_IP,
)


@dataclass(frozen=True)
class NodeAddress:
    """One address reported by a node."""

    type: NodeAddressType
    address: str


class NodeAddressError(LookupError):
    """No reported address matches any preferred type."""


@dataclass(frozen=True)
class PriorityNodeAddressResolver:
    """Picks a node address by type priority, then by reported order."""

    type_priority: Sequence[NodeAddressType] = DEFAULT_ADDRESS_TYPE_PRIORITY

    def node_address(self, node: Any) -> str:
        """Return the preferred address of ``node``.

        ``node`` is any object whose ``addresses`` attribute holds
        :class:`NodeAddress` values.
        """
        addresses: Iterable[NodeAddress] = list(node.addresses)
        for addr_type in self.type_priority:
            match = next((a.address for a in addresses if a.type == addr_type), None)
            if match is not None:
                return match
        types = [t.value for t in self.type_priority]
        raise NodeAddressError(f"no address matched types {types}")