"""Unit tests for the TTL key-value cache and the current-value store."""

from __future__ import annotations

import threading

import pytest

from app.schemas import Component, Datatype, Instance
from models.errors import TransientStoreError
from storage.window_cache import CurrentValueStore, WindowCache


def test_set_and_get_return_independent_copies() -> None:
    cache = WindowCache()
    value = {"count": 1, "values": {"gas": 2.0}}

    cache.set("device:a:minute", value)
    fetched = cache.get("device:a:minute")
    fetched["values"]["gas"] = 99.0

    assert cache.get("device:a:minute") == {"count": 1, "values": {"gas": 2.0}}
    assert cache.get("missing") is None


def test_entries_expire_after_ttl() -> None:
    now = [100.0]
    cache = WindowCache(clock=lambda: now[0])

    cache.set("short", 1, ttl=10)
    cache.set("forever", 2)
    assert cache.ttl("short") == pytest.approx(10)
    assert cache.ttl("forever") is None

    now[0] += 10
    assert cache.get("short") is None
    assert cache.get("forever") == 2


def test_keys_and_purge_expired() -> None:
    now = [0.0]
    cache = WindowCache(clock=lambda: now[0])
    cache.set("device:a:minute", 1, ttl=5)
    cache.set("device:a:hour", 1, ttl=50)
    cache.set("device:b:minute", 1, ttl=5)

    assert cache.keys("device:*:minute") == ["device:a:minute", "device:b:minute"]

    now[0] += 6
    assert cache.purge_expired() == 2
    assert cache.keys() == ["device:a:hour"]


def test_delete_reports_whether_key_existed() -> None:
    cache = WindowCache()
    cache.set("k", 1)

    assert cache.delete("k") is True
    assert cache.delete("k") is False


def test_transaction_only_exposes_its_keys() -> None:
    cache = WindowCache()

    with cache.transaction("a", "b") as tx:
        tx.setex("a", None, {"count": 1})
        assert tx.get("a") == {"count": 1}
        assert tx.delete("b") is False
        with pytest.raises(KeyError):
            tx.get("c")


def test_transaction_times_out_when_key_is_held() -> None:
    cache = WindowCache()
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with cache.transaction("device:a:minute"):
            held.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert held.wait(timeout=5)
        with pytest.raises(TransientStoreError):
            with cache.transaction("device:a:minute", timeout=0.05):
                pass
        with cache.transaction("device:b:minute", timeout=0.05) as tx:
            tx.setex("device:b:minute", None, 1)
    finally:
        release.set()
        thread.join(timeout=5)

    assert cache.get("device:b:minute") == 1


def test_concurrent_increments_are_not_lost() -> None:
    cache = WindowCache()
    barrier = threading.Barrier(8)

    def bump() -> None:
        barrier.wait(timeout=5)
        for _ in range(50):
            with cache.transaction("counter") as tx:
                tx.setex("counter", None, (tx.get("counter") or 0) + 1)

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert cache.get("counter") == 400


def test_current_value_store_round_trip() -> None:
    store = CurrentValueStore(WindowCache())
    value = [
        Component(
            component_id="gas",
            datatype=Datatype.number,
            unit="ppm",
            instances=[Instance(index="sensor_01", value=650)],
        )
    ]

    assert store.get("dev-1") is None
    store.put("dev-1", value)

    assert store.get("dev-1") == value
    assert store.cache.keys() == ["device:dev-1:current_value"]
