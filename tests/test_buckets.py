from datetime import timedelta

import pytest

from metricstore.buckets import DEFAULT_BUCKETS, buckets_for_scrape_duration


def assert_strictly_increasing(buckets):
    last = 0.0
    for bucket in buckets:
        assert bucket > last
        last = bucket


@pytest.mark.parametrize("seconds", [15, 5, DEFAULT_BUCKETS[-1], 0.3, 0.001])
def test_buckets_strictly_increasing(seconds):
    assert_strictly_increasing(buckets_for_scrape_duration(timedelta(seconds=seconds)))


def test_long_timeout_includes_surrounding_buckets():
    buckets = buckets_for_scrape_duration(timedelta(seconds=15))
    assert 15.0 in buckets
    assert 30.0 in buckets


def test_short_timeout_includes_bucket():
    assert 5.0 in buckets_for_scrape_duration(timedelta(seconds=5))


def test_timeout_equal_to_max_bucket():
    max_bucket = DEFAULT_BUCKETS[-1]
    buckets = buckets_for_scrape_duration(timedelta(seconds=max_bucket))
    assert max_bucket in buckets
    assert buckets == list(DEFAULT_BUCKETS)


def test_timeout_between_buckets_is_inserted():
    buckets = buckets_for_scrape_duration(timedelta(milliseconds=300))
    assert 0.3 in buckets
    assert len(buckets) == len(DEFAULT_BUCKETS) + 1


def test_timeout_close_to_existing_bucket_is_skipped():
    buckets = buckets_for_scrape_duration(timedelta(milliseconds=251))
    assert buckets == list(DEFAULT_BUCKETS)


def test_seconds_as_number_accepted():
    assert buckets_for_scrape_duration(15) == buckets_for_scrape_duration(
        timedelta(seconds=15)
    )


def test_defaults_not_mutated():
    buckets_for_scrape_duration(timedelta(seconds=15)).append(1000.0)
    assert buckets_for_scrape_duration(timedelta(seconds=10)) == list(DEFAULT_BUCKETS)