# metricstore

An in-memory store for node and container resource metrics. You feed it
batches of cumulative CPU and memory readings. For each node and container it
keeps the latest reading and one earlier reading. From the pair it works out
CPU usage as a rate, the memory in use, and the window those figures cover.

## Modules

### `metricstore.types`

Value types and the usage calculation.

- `MetricsPoint(start_time, timestamp, cumulative_cpu_used, memory_usage)`
  - CPU is given in nanocore-seconds and memory in bytes.
  - A `start_time` of `None` means the start time is unknown. It counts as
    earlier than any real moment.
- `PodMetricsPoint` holds a pod's container points, keyed by container name.
- `MetricsBatch` holds `nodes`, keyed by node name, and `pods`, keyed by
  `NamespacedName`.
- `Quantity(value, scale, format)` stands for `value * 10**scale`. `format` is
  a `Format`.
- `uint64_quantity(val, fmt, scale)` builds a `Quantity` from an unsigned
  64-bit value.
  - Values above the signed 64-bit range drop one decimal digit of precision.
  - Values outside the unsigned range raise `ValueError`.
- `resource_usage(last, prev)` returns a pair:
  - a dict with `"cpu"` and `"memory"` quantities. CPU is in nanocores, with
    scale -9.
  - a `TimeInfo(timestamp, window)`.

  It raises `ResourceUsageError` when:
  - the start time goes backwards,
  - the cumulative CPU goes backwards, or
  - the window is not positive.

### `metricstore.storage`

The store.

- `Storage(metric_resolution)` is thread-safe and wraps a `NodeStorage` and a
  `PodStorage`. It has these methods:
  - `store(batch)` stores a new batch.
  - `ready()` is true once any node or container has an earlier reading to
    compare against.
  - `get_node_metrics(*refs)` returns a `NodeMetrics` for each asked-for node
    that has usable metrics. Nodes are asked for by `ObjectRef`.
  - `get_pod_metrics(*refs)` returns a `PodMetrics` for each asked-for pod
    that has usable metrics. Pods are asked for by `ObjectRef`.
- Each `PodMetrics` lists one `ContainerMetrics` per container.
- A pod is left out unless every container in its latest reading also has an
  earlier reading.
- A container whose readings cannot be compared is left out of its pod's list.
- A pod's timestamp and window come from its container with the earliest
  timestamp.

### `metricstore.monitoring`

Small self-monitoring metrics.

- `GaugeVec` is a gauge with one label. It has `set`, `get`, `reset` and
  `collect`. `collect` renders the series in text exposition format.
- `Histogram` has `observe` and `bucket_counts`.
- `points_stored` is the gauge of stored points. It is labelled `node` or
  `container`, and the store updates it on every `store`.
- `register_storage_metrics(func)` passes `points_stored` to `func`.

### `metricstore.buckets`

`buckets_for_scrape_duration(timeout)` starts from the default histogram
buckets and adds buckets around a scrape timeout. The timeout is a `timedelta`
or a number of seconds.

### `metricstore.address`

`PriorityNodeAddressResolver(type_priority)` picks an address to reach a node
by.

- Its `node_address(node)` method reads `node.addresses`, a list of
  `NodeAddress` values.
- It returns the first address of the highest-priority `NodeAddressType`
  present.
- It raises `NodeAddressError` if no address matches.
- By default the priority is:
  1. hostname
  2. internal DNS
  3. internal IP
  4. external DNS
  5. external IP

### `metricstore.server`

The scrape loop and health probes.

- `Server(nodes, pods, storage, scraper, resolution, apiserver=None)` takes:
  - `scraper`: any object with `scrape(timeout) -> MetricsBatch`.
  - `nodes` and `pods`: objects with `run(stop_event)` and `has_synced()`.
- `tick(start_time)` scrapes once, stores the result, and records the time the
  cycle took in the tick-duration histogram.
- `run_scrape(stop_event)` ticks at once, then once per resolution, until the
  event is set.
- `run_until(stop_event)` does the following:
  1. Starts the `nodes` and `pods` controllers.
  2. Waits for both to sync.
  3. Runs the scrape loop. While the loop runs, it either calls
     `apiserver.run(stop_event)` or simply waits for the event.
- The probe factories return `NamedCheck` objects. Their `check()` raises
  `HealthCheckError` on failure.
  - `probe_metric_collection_timely` fails once the last tick started more
    than 1.5 resolutions ago.
  - `probe_metric_storage_ready` fails until storage is ready.
  - `probe_metric_cache_has_synced` fails until both controllers have synced.
- `MetadataInformerSync(name, waiter)` fails while any informer reported by
  `waiter.wait_for_cache_sync(event)` has not started.
- `register_probes(waiter)` puts the probes into the server's
  `readyz_checks`, `livez_checks` and `health_checks` lists.
- `register_server_metrics(func, resolution)` creates the tick-duration
  histogram, with buckets from `buckets_for_scrape_duration`, and passes it to
  `func`.

## Example

```python
from datetime import datetime, timedelta, timezone

from metricstore.storage import ObjectRef, Storage
from metricstore.types import MetricsBatch, MetricsPoint

store = Storage(timedelta(seconds=60))
start = datetime.now(timezone.utc)

store.store(MetricsBatch(nodes={
    "node1": MetricsPoint(start, start + timedelta(seconds=10), 10 * 10**9, 2 * 2**20),
}))
store.store(MetricsBatch(nodes={
    "node1": MetricsPoint(start, start + timedelta(seconds=20), 20 * 10**9, 3 * 2**20),
}))

assert store.ready()
(metrics,) = store.get_node_metrics(ObjectRef(name="node1"))
print(metrics.window, metrics.usage)
```

A single batch does not make the store ready, because a CPU rate needs two
readings. The exception is a fresh container. If the container started at
least ten seconds before its reading, and less than one metric resolution
before it, its start time counts as the earlier reading, with zero CPU used.

## What it does not do

- It has no command-line program.
- It has no HTTP server.
  - The probes are plain Python objects, and nothing serves them over HTTP.
  - `Server` only calls `run(stop_event)` on an `apiserver` object you supply.
- It does not contact nodes or collect readings itself. The scraper you pass
  to `Server` has to produce the `MetricsBatch` values.
- It does not watch a cluster. The node and pod controllers, and the
  cache-sync waiter, come from the caller.

## Installing and testing

```
pip install .
pip install ".[test]"
pytest
```