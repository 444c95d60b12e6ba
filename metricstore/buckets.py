"""Histogram bucket layout for scrape durations."""

from __future__ import annotations

from datetime import timedelta

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def buckets_for_scrape_duration(scrape_timeout: timedelta | float) -> list[float]:
    """Default buckets extended with buckets around the scrape timeout.

    ``scrape_timeout`` is a timedelta or a number of seconds.
    """
    if isinstance(scrape_timeout, timedelta):
        timeout = scrape_timeout.total_seconds()
    else:
        timeout = float(scrape_timeout)
    buckets = list(DEFAULT_BUCKETS)
    max_bucket = buckets[-1]
    smallest = buckets[0]

    if timeout > max_bucket:
        halfway = max_bucket + (timeout - max_bucket) / 2
        buckets.extend((halfway, timeout, timeout * 1.5, timeout * 2.0))
    elif timeout < max_bucket:
        index = next(i for i, bucket in enumerate(buckets) if bucket > timeout)
        too_close_above = buckets[index] - timeout < smallest
        too_close_below = index > 0 and timeout - buckets[index - 1] < smallest
        if too_close_above or too_close_below:
            return buckets
        buckets.insert(index, timeout)
    return buckets