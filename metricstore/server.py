"""Periodic scraping into storage, plus the health probes around it."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from metricstore.buckets import buckets_for_scrape_duration
from metricstore.monitoring import Histogram
from metricstore.storage import Storage
from metricstore.types import MetricsBatch

logger = logging.getLogger(__name__)

_SYNC_POLL_INTERVAL = 0.1

# Replaced by register_server_metrics; until then observations go to an
# unregistered histogram without buckets.
tick_duration = Histogram()


def register_server_metrics(
    registration_func: Callable[[Any], Any], resolution: timedelta
) -> Any:
    """Create the tick duration histogram and register it."""
    global tick_duration
    tick_duration = Histogram(
        namespace="metrics_server",
        subsystem="manager",
        name="tick_duration_seconds",
        help_text="The total time spent collecting and storing metrics in seconds.",
        buckets=buckets_for_scrape_duration(resolution),
    )
    return registration_func(tick_duration)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HealthCheckError(Exception):
    """A health probe failed."""


class Controller(Protocol):
    def run(self, stop_event: threading.Event) -> Any: ...

    def has_synced(self) -> bool: ...


class Scraper(Protocol):
    def scrape(self, timeout: timedelta) -> MetricsBatch: ...


class CacheSyncWaiter(Protocol):
    def wait_for_cache_sync(self, stop_event: threading.Event) -> Mapping[Any, bool]: ...


class NamedCheck:
    """A health check made of a name and a function that raises on failure."""

    def __init__(self, name: str, func: Callable[[], None]) -> None:
        self.name = name
        self._func = func

    def check(self) -> None:
        """Run the check; raises HealthCheckError when it fails."""
        self._func()


class MetadataInformerSync:
    """Passes only once every informer of the waiter has synced."""

    def __init__(self, name: str, cache_sync_waiter: CacheSyncWaiter) -> None:
        self.name = name
        self.cache_sync_waiter = cache_sync_waiter

    def check(self) -> None:
        """Raise HealthCheckError if any informer has not started yet."""
        stop_event = threading.Event()
        # Already set, so the waiter reports the current state without blocking.
        stop_event.set()
        synced = self.cache_sync_waiter.wait_for_cache_sync(stop_event)
        not_started = [str(kind) for kind, started in synced.items() if not started]
        if not_started:
            raise HealthCheckError(
                f"{len(not_started)} informers not started yet: {not_started}"
            )


def _wait_for_sync(stop_event: threading.Event, controller: Controller) -> bool:
    while not controller.has_synced():
        if stop_event.wait(_SYNC_POLL_INTERVAL):
            return False
    return True


class Server:
    """Scrapes metrics on a fixed period and stores them."""

    def __init__(
        self,
        nodes: Controller | None,
        pods: Controller | None,
        storage: Storage | Any,
        scraper: Scraper,
        resolution: timedelta,
        apiserver: Any = None,
    ) -> None:
        self.nodes = nodes
        self.pods = pods
        self.storage = storage
        self.scraper = scraper
        self.resolution = resolution
        self.apiserver = apiserver
        self.readyz_checks: list[Any] = []
        self.livez_checks: list[Any] = []
        self.health_checks: list[Any] = []
        self._tick_lock = threading.Lock()
        self._tick_last_start: datetime | None = None

    @property
    def tick_last_start(self) -> datetime | None:
        """Start time of the most recent tick, or None before the first."""
        with self._tick_lock:
            return self._tick_last_start

    def run_until(self, stop_event: threading.Event) -> Any:
        """Start informers, wait for their caches, then scrape and serve until stopped."""
        for controller in (self.nodes, self.pods):
            threading.Thread(target=controller.run, args=(stop_event,), daemon=True).start()

        if not _wait_for_sync(stop_event, self.nodes):
            return None
        if not _wait_for_sync(stop_event, self.pods):
            return None

        scrape_stop = threading.Event()
        scrape_thread = threading.Thread(
            target=self.run_scrape, args=(scrape_stop,), daemon=True
        )
        scrape_thread.start()
        try:
            if self.apiserver is not None:
                return self.apiserver.run(stop_event)
            stop_event.wait()
            return None
        finally:
            scrape_stop.set()
            scrape_thread.join()

    def run_scrape(self, stop_event: threading.Event) -> None:
        """Tick now and then once per resolution until ``stop_event`` is set."""
        period = self.resolution.total_seconds()
        start = _now()
        self.tick(start)
        next_tick = start + self.resolution
        while True:
            delay = max(0.0, (next_tick - _now()).total_seconds())
            if stop_event.wait(delay):
                return
            start = _now()
            self.tick(start)
            next_tick += self.resolution
            # Skip ticks missed while a slow scrape was running.
            while next_tick <= _now():
                next_tick += timedelta(seconds=period)

    def tick(self, start_time: datetime) -> None:
        """Scrape once and store the result."""
        with self._tick_lock:
            self._tick_last_start = start_time

        logger.debug("Scraping metrics")
        data = self.scraper.scrape(self.resolution)

        logger.debug("Storing metrics")
        self.storage.store(data)

        collect_time = _now() - start_time
        tick_duration.observe(collect_time.total_seconds())
        logger.debug("Scraping cycle complete")

    @staticmethod
    def _add(checks: list[Any], new: Any) -> None:
        if any(existing.name == new.name for existing in checks):
            raise ValueError(f"health check {new.name!r} is already registered")
        checks.append(new)

    def register_probes(self, waiter: CacheSyncWaiter) -> None:
        """Install the readiness, liveness and health probes."""
        self._add(self.readyz_checks, self.probe_metric_storage_ready("metric-storage-ready"))
        self._add(self.readyz_checks, self.probe_metric_cache_has_synced("metric-informer-sync"))
        self._add(
            self.livez_checks, self.probe_metric_collection_timely("metric-collection-timely")
        )
        health = MetadataInformerSync("metadata-informer-sync", waiter)
        for checks in (self.health_checks, self.livez_checks, self.readyz_checks):
            self._add(checks, health)

    def probe_metric_collection_timely(self, name: str) -> NamedCheck:
        """Fails when the last tick started more than 1.5 resolutions ago."""

        def check() -> None:
            last_start = self.tick_last_start
            max_wait = self.resolution * 1.5
            if last_start is None:
                return
            waited = _now() - last_start
            if waited > max_wait:
                err = HealthCheckError("metric collection didn't finish on time")
                logger.info(
                    "Failed probe %s: %s (duration %s, max %s)", name, err, waited, max_wait
                )
                raise err

        return NamedCheck(name, check)

    def probe_metric_storage_ready(self, name: str) -> NamedCheck:
        """Fails until storage has metrics to serve."""

        def check() -> None:
            if not self.storage.ready():
                err = HealthCheckError("no metrics to serve")
                logger.info("Failed probe %s: %s", name, err)
                raise err

        return NamedCheck(name, check)

    def probe_metric_cache_has_synced(self, name: str) -> NamedCheck:
        """Fails until both node and pod informer caches have synced."""

        def check() -> None:
            if not self.nodes.has_synced():
                err = HealthCheckError("cache for node informer has not synced")
                logger.info("Failed probe %s: %s", name, err)
                raise err
            if not self.pods.has_synced():
                err = HealthCheckError("cache for pod informer has not synced")
                logger.info("Failed probe %s: %s", name, err)
                raise err

        return NamedCheck(name, check)