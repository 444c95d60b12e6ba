"""Thread-safe storage of the last two metric batches for nodes and pods."""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from metricstore.monitoring import points_stored
from metricstore.types import (
    MetricsBatch,
    MetricsPoint,
    NamespacedName,
    PodMetricsPoint,
    Quantity,
    ResourceUsageError,
    TimeInfo,
    resource_usage,
)

logger = logging.getLogger(__name__)

# A fresh container needs at least this long between start and measurement
# before its start time can stand in for a previous point.
FRESH_CONTAINER_MIN_METRICS_RESOLUTION = timedelta(seconds=10)


def _before(a: datetime | None, b: datetime | None) -> bool:
    """True when ``a`` is strictly before ``b``; ``None`` is the earliest moment."""
    if a is None:
        return b is not None
    if b is None:
        return False
    return a < b


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ObjectRef:
    """The identifying metadata of a node or pod asked about."""

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerMetrics:
    """Usage of one container."""

    name: str
    usage: dict[str, Quantity]


@dataclass
class NodeMetrics:
    """Usage of one node over a window ending at ``timestamp``."""

    name: str
    labels: dict[str, str]
    creation_timestamp: datetime
    timestamp: datetime
    window: timedelta
    usage: dict[str, Quantity]


@dataclass
class PodMetrics:
    """Usage of a pod's containers; ``timestamp`` is the earliest among them."""

    name: str
    namespace: str
    labels: dict[str, str]
    creation_timestamp: datetime
    timestamp: datetime | None
    window: timedelta
    containers: list[ContainerMetrics]


@dataclass
class NodeStorage:
    """Keeps the last two node points and derives usage from them."""

    last: dict[str, MetricsPoint] = field(default_factory=dict)
    prev: dict[str, MetricsPoint] = field(default_factory=dict)

    def get_metrics(self, *args: ObjectRef) -> list[NodeMetrics]:
        """Return metrics for the given nodes that have two usable points."""
        results = []
        for node in args:
            last = self.last.get(node.name)
            prev = self.prev.get(node.name)
            if last is None or prev is None:
                continue
            try:
                usage, info = resource_usage(last, prev)
            except ResourceUsageError as err:
                logger.error("Skipping node usage metric for %s: %s", node.name, err)
                continue
            results.append(
                NodeMetrics(
                    name=node.name,
                    labels=node.labels,
                    creation_timestamp=_now(),
                    timestamp=info.timestamp,
                    window=info.window,
                    usage=usage,
                )
            )
        return results

    def store(self, batch: MetricsBatch) -> None:
        """Replace the stored points with ``batch``, keeping usable previous points."""
        last_nodes: dict[str, MetricsPoint] = {}
        prev_nodes: dict[str, MetricsPoint] = {}
        for node_name, new_point in batch.nodes.items():
            last_nodes[node_name] = new_point
            stored = self.last.get(node_name)
            if stored is None:
                continue
            if new_point.timestamp > stored.timestamp:
                prev_nodes[node_name] = stored
                continue
            prev_point = self.prev.get(node_name)
            if prev_point is None:
                continue
            if prev_point.timestamp < new_point.timestamp:
                prev_nodes[node_name] = prev_point
            else:
                logger.debug(
                    "New metrics point of node %s (%s) is older than stored "
                    "previous (%s), dropping previous",
                    node_name,
                    new_point.timestamp,
                    prev_point.timestamp,
                )
        self.last = last_nodes
        self.prev = prev_nodes
        points_stored.set("node", len(prev_nodes))


@dataclass
class PodStorage:
    """Keeps the last two points per container and derives pod usage."""

    metric_resolution: timedelta = timedelta(seconds=60)
    last: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)
    prev: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)

    def get_metrics(self, *args: ObjectRef) -> list[PodMetrics]:
        """Return metrics for the given pods whose every container has two points."""
        results = []
        for pod in args:
            ref = NamespacedName(namespace=pod.namespace, name=pod.name)
            last_pod = self.last.get(ref)
            prev_pod = self.prev.get(ref)
            if last_pod is None or prev_pod is None:
                continue
            containers: list[ContainerMetrics] = []
            earliest: TimeInfo | None = None
            all_present = True
            for name, last_container in last_pod.containers.items():
                prev_container = prev_pod.containers.get(name)
                if prev_container is None:
                    all_present = False
                    break
                try:
                    usage, info = resource_usage(last_container, prev_container)
                except ResourceUsageError as err:
                    logger.error(
                        "Skipping container usage metric for %s in pod %s: %s",
                        name,
                        ref,
                        err,
                    )
                    continue
                containers.append(ContainerMetrics(name=name, usage=usage))
                if earliest is None or earliest.timestamp > info.timestamp:
                    earliest = info
            if not all_present:
                continue
            results.append(
                PodMetrics(
                    name=pod.name,
                    namespace=pod.namespace,
                    labels=pod.labels,
                    creation_timestamp=_now(),
                    timestamp=earliest.timestamp if earliest else None,
                    window=earliest.window if earliest else timedelta(0),
                    containers=containers,
                )
            )
        return results

    def _is_fresh(self, point: MetricsPoint) -> bool:
        if point.start_time is None or not point.start_time < point.timestamp:
            return False
        age = point.timestamp - point.start_time
        return FRESH_CONTAINER_MIN_METRICS_RESOLUTION <= age < self.metric_resolution

    def _previous_point(
        self, ref: NamespacedName, name: str, new_point: MetricsPoint
    ) -> MetricsPoint | None:
        if self._is_fresh(new_point):
            return dataclasses.replace(
                new_point, timestamp=new_point.start_time, cumulative_cpu_used=0
            )
        last_pod = self.last.get(ref)
        if last_pod is None:
            return None
        last_container = last_pod.containers.get(name)
        # A start time after the stored timestamp means the container restarted.
        if last_container is None or not _before(
            new_point.start_time, last_container.timestamp
        ):
            return None
        if new_point.timestamp > last_container.timestamp:
            return last_container
        prev_pod = self.prev.get(ref)
        if prev_pod is None:
            return None
        prev_container = prev_pod.containers.get(name)
        if prev_container is not None and prev_container.timestamp < new_point.timestamp:
            return prev_container
        logger.debug(
            "New metrics point of container %s in pod %s is older than stored "
            "previous, dropping previous",
            name,
            ref,
        )
        return None

    def store(self, batch: MetricsBatch) -> None:
        """Replace the stored points with ``batch``, keeping usable previous points."""
        last_pods: dict[NamespacedName, PodMetricsPoint] = {}
        prev_pods: dict[NamespacedName, PodMetricsPoint] = {}
        container_count = 0
        for ref, new_pod in batch.pods.items():
            new_last = PodMetricsPoint(containers=dict(new_pod.containers))
            new_prev = PodMetricsPoint()
            for name, new_point in new_pod.containers.items():
                previous = self._previous_point(ref, name, new_point)
                if previous is not None:
                    new_prev.containers[name] = previous
            if new_prev.containers:
                prev_pods[ref] = new_prev
            last_pods[ref] = new_last
            container_count += len(new_prev.containers)
        self.last = last_pods
        self.prev = prev_pods
        points_stored.set("container", container_count)


class Storage:
    """Thread-safe storage for node and pod metrics."""

    def __init__(self, metric_resolution: timedelta = timedelta(seconds=60)) -> None:
        self._lock = threading.Lock()
        self.nodes = NodeStorage()
        self.pods = PodStorage(metric_resolution=metric_resolution)

    def ready(self) -> bool:
        """True once enough points are stored to serve any metrics."""
        with self._lock:
            return bool(self.nodes.prev) or bool(self.pods.prev)

    def get_node_metrics(self, *args: ObjectRef) -> list[NodeMetrics]:
        """Return metrics for the given nodes."""
        with self._lock:
            return self.nodes.get_metrics(*args)

    def get_pod_metrics(self, *args: ObjectRef) -> list[PodMetrics]:
        """Return metrics for the given pods."""
        with self._lock:
            return self.pods.get_metrics(*args)

    def store(self, batch: MetricsBatch) -> None:
        """Store a new batch of node and pod points."""
        with self._lock:
            self.nodes.store(batch)
            self.pods.store(batch)