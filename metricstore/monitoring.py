"""Self-monitoring metrics: labelled gauges and histograms."""

from __future__ import annotations

import bisect
import math
import threading
from collections.abc import Callable, Iterable
from typing import Any


def _fq_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


def _format_value(value: float) -> str:
    if math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return repr(float(value))


class GaugeVec:
    """A gauge with one label, holding one value per label value."""

    def __init__(
        self,
        *,
        namespace: str = "",
        subsystem: str = "",
        name: str,
        help_text: str = "",
        label_name: str,
        stability: str = "ALPHA",
    ) -> None:
        self.fq_name = _fq_name(namespace, subsystem, name)
        self.help_text = help_text
        self.label_name = label_name
        self.stability = stability
        self._values: dict[str, float] = {}
        self._lock = threading.Lock()

    def set(self, label_value: str, value: float) -> None:
        """Set the gauge for ``label_value``."""
        with self._lock:
            self._values[label_value] = float(value)

    def get(self, label_value: str) -> float:
        """Return the gauge for ``label_value``; KeyError if never set."""
        with self._lock:
            return self._values[label_value]

    def reset(self) -> None:
        """Drop every series."""
        with self._lock:
            self._values.clear()

    def collect(self) -> str:
        """Render all series in the text exposition format, sorted by label."""
        with self._lock:
            items = sorted(self._values.items())
        if not items:
            return ""
        lines = [
            f"# HELP {self.fq_name} [{self.stability}] {self.help_text}",
            f"# TYPE {self.fq_name} gauge",
        ]
        lines.extend(
            f'{self.fq_name}{{{self.label_name}="{label}"}} {_format_value(value)}'
            for label, value in items
        )
        return "\n".join(lines) + "\n"


class Histogram:
    """A cumulative histogram over fixed upper bounds."""

    def __init__(
        self,
        *,
        namespace: str = "",
        subsystem: str = "",
        name: str = "",
        help_text: str = "",
        buckets: Iterable[float] = (),
    ) -> None:
        bounds = [float(b) for b in buckets]
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError("histogram buckets must be strictly increasing")
        self.fq_name = _fq_name(namespace, subsystem, name)
        self.help_text = help_text
        self.buckets = tuple(bounds)
        self._counts = [0] * len(bounds)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            index = bisect.bisect_left(self.buckets, value)
            if index < len(self._counts):
                self._counts[index] += 1
            self.count += 1
            self.sum += value

    def bucket_counts(self) -> list[tuple[float, int]]:
        """Cumulative counts per upper bound, ending with ``+inf``."""
        with self._lock:
            result = []
            running = 0
            for bound, count in zip(self.buckets, self._counts):
                running += count
                result.append((bound, running))
            result.append((math.inf, self.count))
            return result


points_stored = GaugeVec(
    namespace="metrics_server",
    subsystem="storage",
    name="points",
    help_text="Number of metrics points stored.",
    label_name="type",
)


def register_storage_metrics(registration_func: Callable[[Any], Any]) -> Any:
    """Register the gauge counting stored metric points."""
    return registration_func(points_stored)