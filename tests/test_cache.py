from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from partialdb.db.cache import CollectionCache


class FakeCollection:
    def __init__(self, session: "FakeSession", name: str) -> None:
        self.session = session
        self.name = name

    def exists(self) -> bool:
        with self.session.lock:
            self.session.exists_calls += 1
        # widen the window in which concurrent callers could race
        time.sleep(self.session.delay)
        return self.name in self.session.tables


class FakeSession:
    def __init__(self, tables=(), delay: float = 0.0) -> None:
        self.tables = set(tables)
        self.delay = delay
        self.lock = threading.Lock()
        self.lookups = 0
        self.exists_calls = 0
        self.cache_clears = 0

    def collection(self, name: str) -> FakeCollection:
        with self.lock:
            self.lookups += 1
        return FakeCollection(self, name)

    def clear_cache(self) -> None:
        self.cache_clears += 1


def test_hit_returns_cached_handle_without_existence_check() -> None:
    cache = CollectionCache()
    session = FakeSession(tables={"resources"})

    first = cache.ensure_collection(session, "resources")
    second = cache.ensure_collection(session, "resources")

    assert first is second
    assert session.lookups == 1
    assert session.exists_calls == 1
    assert "resources" in cache


def test_missing_table_clears_everything_and_returns_unverified_handle() -> None:
    cache = CollectionCache()
    session = FakeSession(tables={"resources"})
    cache.ensure_collection(session, "resources")

    handle = cache.ensure_collection(session, "missing")

    assert handle.name == "missing"
    assert len(cache) == 0
    assert session.cache_clears == 1


def test_missing_table_is_looked_up_again() -> None:
    cache = CollectionCache()
    session = FakeSession()

    cache.ensure_collection(session, "resources")
    session.tables.add("resources")
    cache.ensure_collection(session, "resources")

    assert session.exists_calls == 2
    assert "resources" in cache


def test_clear_retriggers_existence_check() -> None:
    cache = CollectionCache()
    session = FakeSession(tables={"resources"})

    cache.ensure_collection(session, "resources")
    cache.clear()
    cache.ensure_collection(session, "resources")

    assert session.exists_calls == 2


def test_ensure_is_lazy() -> None:
    cache = CollectionCache()
    session = FakeSession(tables={"resources"})

    provider = cache.ensure(session, "resources")
    assert session.lookups == 0

    assert provider() is provider()
    assert session.lookups == 1


def test_concurrent_misses_share_one_lookup() -> None:
    cache = CollectionCache()
    session = FakeSession(tables={"resources"}, delay=0.05)
    start = threading.Barrier(16)

    def worker(_: int):
        start.wait()
        return cache.ensure_collection(session, "resources")

    with ThreadPoolExecutor(max_workers=16) as pool:
        handles = list(pool.map(worker, range(16)))

    assert session.lookups == 1
    assert session.exists_calls == 1
    assert all(h is handles[0] for h in handles)


def test_concurrent_misses_for_different_names_do_not_serialize() -> None:
    cache = CollectionCache()
    names = [f"t{i}" for i in range(8)]
    session = FakeSession(tables=names, delay=0.1)

    started = time.monotonic()
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda n: cache.ensure_collection(session, n), names))
    elapsed = time.monotonic() - started

    assert session.lookups == 8
    assert len(cache) == 8
    assert elapsed < 0.1 * 8
