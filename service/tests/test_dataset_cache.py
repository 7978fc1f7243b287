import time

import pytest

from dataset_cache import DatasetCache


def test_get_or_load_uses_cached_value():
    cache = DatasetCache(ttl_seconds=300)
    calls = []

    def loader():
        calls.append(1)
        return [len(calls)]

    assert cache.get_or_load("orders", loader) == [1]
    assert cache.get_or_load("orders", loader) == [1]
    assert len(calls) == 1


def test_get_or_load_reloads_after_ttl_expires():
    """Entries expire on whole-second boundaries, so wait past two of them."""
    cache = DatasetCache(ttl_seconds=1)
    calls = []

    def loader():
        calls.append(1)
        return [len(calls)]

    assert cache.get_or_load("orders", loader) == [1]
    time.sleep(2.1)
    assert cache.get_or_load("orders", loader) == [2]


def test_empty_dataset_is_cached(make_order):
    cache = DatasetCache(ttl_seconds=300)
    cache.put("orders", [])
    cache.put("settlements", [make_order()])

    assert cache.get("orders") == []
    assert cache.get("settlements")[0].order_id == "1"


def test_invalidate_single_and_all():
    cache = DatasetCache(ttl_seconds=300)
    cache.put("orders", [1])
    cache.put("settlements", [2])

    cache.invalidate("orders")
    assert cache.get("orders") is None
    assert cache.get("settlements") == [2]

    cache.invalidate()
    assert cache.get("settlements") is None


def test_loader_errors_are_not_cached():
    cache = DatasetCache(ttl_seconds=300)

    def failing():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.get_or_load("orders", failing)
    assert cache.get("orders") is None
