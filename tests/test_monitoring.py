import math

import pytest

from metricstore.monitoring import (
    GaugeVec,
    Histogram,
    points_stored,
    register_storage_metrics,
)


@pytest.fixture
def gauge():
    return GaugeVec(
        namespace="metrics_server",
        subsystem="storage",
        name="points",
        help_text="Number of metrics points stored.",
        label_name="type",
    )


def test_gauge_set_get_round_trip(gauge):
    gauge.set("node", 3)
    assert gauge.get("node") == 3.0


def test_gauge_missing_label_raises(gauge):
    with pytest.raises(KeyError):
        gauge.get("container")


def test_gauge_reset_drops_series(gauge):
    gauge.set("node", 1)
    gauge.reset()
    assert gauge.collect() == ""
    with pytest.raises(KeyError):
        gauge.get("node")


def test_gauge_collect_exposition(gauge):
    gauge.set("node", 1)
    gauge.set("container", 0)
    assert gauge.collect() == (
        "# HELP metrics_server_storage_points [ALPHA] Number of metrics points stored.\n"
        "# TYPE metrics_server_storage_points gauge\n"
        'metrics_server_storage_points{type="container"} 0\n'
        'metrics_server_storage_points{type="node"} 1\n'
    )


def test_gauge_collect_fractional_value(gauge):
    gauge.set("node", 0.5)
    assert gauge.collect().splitlines()[-1].endswith(" 0.5")


def test_histogram_counts_are_cumulative():
    hist = Histogram(name="h", buckets=[1.0, 2.0])
    for value in (0.5, 1.5, 3.0, 1.0):
        hist.observe(value)
    counts = hist.bucket_counts()
    assert [bound for bound, _ in counts] == [1.0, 2.0, math.inf]
    assert counts[-1][1] == hist.count == 4
    assert all(a[1] <= b[1] for a, b in zip(counts, counts[1:]))
    assert counts[0][1] == 2
    assert hist.sum == pytest.approx(6.0)


def test_histogram_rejects_unsorted_buckets():
    with pytest.raises(ValueError):
        Histogram(name="h", buckets=[2.0, 1.0])


def test_register_storage_metrics_passes_gauge():
    registered = []
    register_storage_metrics(registered.append)
    assert registered == [points_stored]
    assert points_stored.fq_name == "metrics_server_storage_points"