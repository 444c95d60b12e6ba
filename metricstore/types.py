"""Metric point types and the usage calculation between two points."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)

MAX_INT64 = 2**63 - 1
MAX_UINT64 = 2**64 - 1

RESOURCE_CPU = "cpu"
RESOURCE_MEMORY = "memory"


class Format(enum.Enum):
    """How a quantity is meant to be rendered."""

    DECIMAL_EXPONENT = "DecimalExponent"
    BINARY_SI = "BinarySI"
    DECIMAL_SI = "DecimalSI"


@dataclass(frozen=True)
class Quantity:
    """A resource amount equal to ``value * 10**scale``."""

    value: int
    scale: int = 0
    format: Format = Format.DECIMAL_SI


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Reference to an object by namespace and name."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class TimeInfo:
    """When a usage value was measured and over which window."""

    timestamp: datetime
    window: timedelta


@dataclass(frozen=True)
class MetricsPoint:
    """Metrics of a node or container at one moment.

    ``start_time`` is ``None`` when the start time is unknown; it then sorts
    before every real moment. ``cumulative_cpu_used`` is in nanocore-seconds,
    ``memory_usage`` is the working set in bytes.
    """

    start_time: datetime | None
    timestamp: datetime
    cumulative_cpu_used: int = 0
    memory_usage: int = 0


@dataclass
class PodMetricsPoint:
    """Metric points of a pod's containers, by container name."""

    containers: dict[str, MetricsPoint] = field(default_factory=dict)


@dataclass
class MetricsBatch:
    """One scrape's worth of node and pod metric points."""

    nodes: dict[str, MetricsPoint] = field(default_factory=dict)
    pods: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)


class ResourceUsageError(ValueError):
    """Two metric points cannot be turned into a usage value."""


def _earlier(a: datetime | None, b: datetime | None) -> bool:
    """True when ``a`` is strictly before ``b``; ``None`` is the earliest moment."""
    if a is None:
        return b is not None
    if b is None:
        return False
    return a < b


def uint64_quantity(val: int, fmt: Format, scale: int) -> Quantity:
    """Build a quantity from an unsigned 64-bit value.

    Values above the signed 64-bit range lose one decimal digit of precision.
    """
    if not 0 <= val <= MAX_UINT64:
        raise ValueError(f"value {val} is outside the unsigned 64-bit range")
    if val > MAX_INT64:
        logger.debug(
            "Found unexpectedly large resource value, losing precision "
            "to fit in scaled quantity: %d",
            val,
        )
        return Quantity(val // 10, scale + 1, fmt)
    return Quantity(val, scale, fmt)


def resource_usage(
    last: MetricsPoint, prev: MetricsPoint
) -> tuple[dict[str, Quantity], TimeInfo]:
    """Compute CPU and memory usage between two points of the same object."""
    if _earlier(last.start_time, prev.start_time):
        raise ResourceUsageError("unexpected decrease in startTime of node/container")
    if last.cumulative_cpu_used < prev.cumulative_cpu_used:
        raise ResourceUsageError("unexpected decrease in cumulative CPU usage value")
    window = last.timestamp - prev.timestamp
    window_us = window // timedelta(microseconds=1)
    if window_us <= 0:
        raise ResourceUsageError("time window between metric points is not positive")
    cpu_delta = last.cumulative_cpu_used - prev.cumulative_cpu_used
    cpu_usage = cpu_delta * 1_000_000 // window_us
    usage = {
        RESOURCE_CPU: uint64_quantity(cpu_usage, Format.DECIMAL_SI, -9),
        RESOURCE_MEMORY: uint64_quantity(last.memory_usage, Format.BINARY_SI, 0),
    }
    return usage, TimeInfo(timestamp=last.timestamp, window=window)