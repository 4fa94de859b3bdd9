from __future__ import annotations

import threading
from collections import Counter
from datetime import timedelta

import pytest

from pgcrfinder.domain.models import Record
from pgcrfinder.domain.search.cache import InMemoryRecordCache, SharedRecordCache
from pgcrfinder.domain.search.resolver import SearchResolver
from pgcrfinder.domain.search.retry import RetryPolicy


@pytest.mark.parametrize("cache_cls", [InMemoryRecordCache, SharedRecordCache])
def test_put_never_overwrites(cache_cls, t):
    cache = cache_cls()
    first = Record(7, t(7), "inst-7")
    second = Record(7, t(8), "other")

    assert cache.put(7, first) is first
    assert cache.put(7, second) is first
    assert cache.get(7) is first
    assert 7 in cache
    assert len(cache) == 1
    assert cache.get(8) is None


def test_record_payload_is_ignored_in_equality(t):
    a = Record(1, t(1), "inst-1", payload={"Response": {}})
    b = Record(1, t(1), "inst-1")

    assert a == b
    assert hash(a) == hash(b)


def test_concurrent_resolves_fetch_each_identifier_once(make_fetcher, t):
    fetcher = make_fetcher(last_id=1000, delay=0.005)
    resolver = SearchResolver(fetcher, SharedRecordCache(), max_identifier=1000)
    targets = [t(500), t(500) + timedelta(seconds=1), t(250), t(500)] * 3
    results = []
    errors = []

    def worker(target):
        try:
            results.append(resolver.resolve(target))
        except Exception as exc:  # surfaced via the errors list
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(target,)) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == len(targets)
    assert all(count == 1 for count in Counter(fetcher.calls).values())


def test_retry_policy_delay_grows_and_is_capped():
    policy = RetryPolicy(retries=5, backoff_seconds=1.0, max_backoff_seconds=5.0)

    assert [policy.delay(a) for a in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert policy.should_retry(4) is True
    assert policy.should_retry(5) is False


def test_retry_policy_zero_backoff_does_not_sleep():
    sleeps: list[float] = []
    policy = RetryPolicy(retries=1, backoff_seconds=0, sleep=sleeps.append)

    policy.wait(0)

    assert sleeps == []


@pytest.mark.parametrize("kwargs", [{"retries": -1}, {"backoff_seconds": -0.1}])
def test_retry_policy_rejects_negative_values(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
