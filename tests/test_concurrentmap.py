import gc
import threading
import weakref

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from gtunnel.concurrentmap import ConcurrentMap


class _ReferenceMap:
    """A plain mutex-guarded dictionary used as the expected model."""

    def __init__(self):
        self._lock = threading.Lock()
        self._dirty = {}

    def load(self, key):
        with self._lock:
            if key in self._dirty:
                return self._dirty[key], True
            return None, False

    def store(self, key, value):
        with self._lock:
            self._dirty[key] = value

    def load_or_store(self, key, value):
        with self._lock:
            if key in self._dirty:
                return self._dirty[key], True
            self._dirty[key] = value
            return value, False

    def load_and_delete(self, key):
        with self._lock:
            if key in self._dirty:
                return self._dirty.pop(key), True
            return None, False

    def delete(self, key):
        with self._lock:
            self._dirty.pop(key, None)

    def range(self, fn):
        with self._lock:
            keys = list(self._dirty)
        for key in keys:
            value, ok = self.load(key)
            if not ok:
                continue
            if not fn(key, value):
                break


_small_text = st.text(alphabet="abcdefghijklmnopqrstuvwxyz", max_size=3)
_calls = st.lists(
    st.tuples(
        st.sampled_from(["load", "store", "load_or_store", "load_and_delete", "delete"]),
        _small_text,
        _small_text,
    ),
    max_size=60,
)


def _apply(m, calls):
    results = []
    for op, key, value in calls:
        if op == "load":
            results.append(m.load(key))
        elif op == "store":
            m.store(key, value)
            results.append((None, False))
        elif op == "load_or_store":
            results.append(m.load_or_store(key, value))
        elif op == "load_and_delete":
            results.append(m.load_and_delete(key))
        else:
            m.delete(key)
            results.append((None, False))
    final = {}

    def collect(k, v):
        final[k] = v
        return True

    m.range(collect)
    return results, final


@settings(max_examples=200)
@given(_calls)
def test_map_matches_reference(calls):
    assert _apply(ConcurrentMap(), calls) == _apply(_ReferenceMap(), calls)


def test_load_missing():
    m = ConcurrentMap()
    assert m.load("x") == (None, False)


def test_store_and_load():
    m = ConcurrentMap()
    m.store("a", 1)
    m.store("a", 2)
    assert m.load("a") == (2, True)
    assert len(m) == 1
    assert "a" in m


def test_load_or_store():
    m = ConcurrentMap()
    assert m.load_or_store("k", "first") == ("first", False)
    assert m.load_or_store("k", "second") == ("first", True)
    assert m.load("k") == ("first", True)


def test_load_or_create_calls_factory_only_when_absent():
    m = ConcurrentMap()
    calls = []

    def create():
        calls.append(1)
        return object()

    value, loaded = m.load_or_create("id", create)
    assert loaded is False
    again, loaded_again = m.load_or_create("id", create)
    assert loaded_again is True
    assert again is value
    assert len(calls) == 1


def test_load_or_create_concurrent_single_winner():
    m = ConcurrentMap()
    results = []
    lock = threading.Lock()

    def worker():
        value, loaded = m.load_or_create("shared", object)
        with lock:
            results.append((value, loaded))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sum(1 for _, loaded in results if not loaded) == 1
    assert len({id(v) for v, _ in results}) == 1
    stored, found = m.load("shared")
    assert found is True
    assert stored is results[0][0]
    assert len(m) == 1


def test_range_stops_early():
    m = ConcurrentMap()
    for i in range(10):
        m.store(i, i)
    seen = []

    def visit(k, v):
        seen.append(k)
        return len(seen) < 3

    m.range(visit)
    assert len(seen) == 3
    assert len(m) == 10
    assert m.load(seen[0]) == (seen[0], True)


def test_range_allows_deletion_during_walk():
    m = ConcurrentMap()
    for i in range(8):
        m.store(i, i)
    seen = []

    def visit(k, v):
        seen.append(k)
        m.delete(k + 1)
        return True

    m.range(visit)
    assert len(seen) == len(set(seen))
    assert seen[0] == 0
    assert 1 not in seen
    assert m.load(1) == (None, False)
    assert m.load(0) == (0, True)


def test_items_snapshot():
    m = ConcurrentMap()
    m.store("x", 1)
    m.store("y", 2)
    assert dict(m.items()) == {"x": 1, "y": 2}


def test_concurrent_range():
    map_size = 1 << 10
    m = ConcurrentMap()
    for n in range(1, map_size + 1):
        m.store(n, n)

    done = threading.Event()

    def writer(g):
        i = 0
        while not done.is_set():
            for n in range(1, map_size, 37):
                m.store(n, n * i * g)
                m.load(n)
            i += 1

    threads = [threading.Thread(target=writer, args=(g,)) for g in range(1, 5)]
    for t in threads:
        t.start()
    try:
        for _ in range(16):
            seen = set()
            problems = []

            def visit(k, v):
                if v % k != 0:
                    problems.append((k, v))
                if k in seen:
                    problems.append(("twice", k))
                seen.add(k)
                return True

            m.range(visit)
            assert problems == []
            assert len(seen) == map_size
    finally:
        done.set()
        for t in threads:
            t.join()
    assert len(m) == map_size
    assert m.load(map_size) == (map_size, True)


def test_deleted_keys_are_not_retained():
    class Key:
        pass

    m = ConcurrentMap()
    m.store(None, object())
    refs = []
    for _ in range(5):
        key = Key()
        refs.append(weakref.ref(key))
        m.store(key, object())
        m.delete(key)
        del key
    gc.collect()
    assert all(r() is None for r in refs)
    assert len(m) == 1


@pytest.mark.parametrize("key", ["a", 1, (1, 2), None])
def test_delete_missing_key_is_harmless(key):
    m = ConcurrentMap()
    m.store("keep", True)
    m.delete(key if key != "a" else "absent")
    assert m.load("keep") == (True, True)