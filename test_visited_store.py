"""
Test Visited-Region Store
=========================

Set semantics, persistence format and reload behaviour of the visited set,
plus the JSON file backend.

Usage:
    pytest test_visited_store.py
"""

import json
import os

import pytest

from statetrack_store import (
    VISITED_KEY,
    JsonFileStorage,
    MemoryStorage,
    VisitedRegionStore,
)


def test_add_is_idempotent():
    store = VisitedRegionStore(MemoryStorage())

    assert store.add("Colorado")
    assert not store.add("Colorado")
    assert store.add("Utah")
    assert store.snapshot() == ("Colorado", "Utah")
    assert len(store) == 2
    assert "Utah" in store
    assert store.last_added() == "Utah"


def test_persisted_as_json_array_string():
    storage = MemoryStorage()
    store = VisitedRegionStore(storage)
    store.add("Colorado")
    store.add("Utah")

    assert json.loads(storage.get(VISITED_KEY)) == ["Colorado", "Utah"]


def test_add_all_writes_only_new_regions():
    store = VisitedRegionStore(MemoryStorage())
    store.add("Colorado")

    added = store.add_all(["Utah", "Colorado", "Nevada", "Utah"])
    assert added == ("Utah", "Nevada")
    assert store.snapshot() == ("Colorado", "Utah", "Nevada")
    assert store.add_all(["Utah"]) == ()


def test_remove_and_replace():
    store = VisitedRegionStore(MemoryStorage())
    store.add_all(["Colorado", "Utah"])

    assert store.remove("Colorado")
    assert not store.remove("Colorado")
    assert store.snapshot() == ("Utah",)

    store.replace(["Hawaii", "Nevada", "Hawaii"])
    assert store.snapshot() == ("Hawaii", "Nevada")


class FailingStorage(MemoryStorage):
    """Memory storage whose writes raise while `failing` is set."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.failing = False

    def set(self, key, value):
        if self.failing:
            raise OSError("disk full")
        super().set(key, value)


def test_failed_write_leaves_set_unchanged():
    storage = FailingStorage()
    store = VisitedRegionStore(storage)
    store.add("Colorado")
    storage.failing = True

    with pytest.raises(OSError):
        store.add("Utah")
    with pytest.raises(OSError):
        store.add_all(["Utah", "Nevada"])
    with pytest.raises(OSError):
        store.remove("Colorado")
    with pytest.raises(OSError):
        store.replace(["Hawaii"])

    assert store.snapshot() == ("Colorado",)
    assert "Utah" not in store
    assert json.loads(storage.get(VISITED_KEY)) == ["Colorado"]


def test_add_after_failed_write_is_retried():
    storage = FailingStorage()
    store = VisitedRegionStore(storage)
    storage.failing = True
    with pytest.raises(OSError):
        store.add("Utah")

    storage.failing = False
    assert store.add("Utah")
    assert json.loads(storage.get(VISITED_KEY)) == ["Utah"]


def test_empty_region_rejected():
    with pytest.raises(ValueError):
        VisitedRegionStore(MemoryStorage()).add("")


def test_empty_store():
    store = VisitedRegionStore(MemoryStorage())
    assert store.snapshot() == ()
    assert store.last_added() is None


def test_reload_drops_duplicates():
    storage = MemoryStorage({VISITED_KEY: json.dumps(["Utah", "Nevada", "Utah"])})
    assert VisitedRegionStore(storage).snapshot() == ("Utah", "Nevada")


@pytest.mark.parametrize("raw", [
    "not json",
    json.dumps({"Utah": True}),
    json.dumps(["Utah", 3]),
    json.dumps(["Utah", ""]),
    42,
])
def test_malformed_value_loads_as_empty(raw):
    store = VisitedRegionStore(MemoryStorage({VISITED_KEY: raw}))
    assert store.snapshot() == ()

    # Next write replaces the malformed value
    store.add("Utah")
    assert store.snapshot() == ("Utah",)


def test_round_trip_through_file(tmp_path):
    path = tmp_path / "state" / "tracker.json"
    store = VisitedRegionStore(JsonFileStorage(path))
    store.add_all(["Colorado", "Utah", "Hawaii"])

    reloaded = VisitedRegionStore(JsonFileStorage(path))
    assert reloaded.snapshot() == ("Colorado", "Utah", "Hawaii")
    assert reloaded.last_added() == "Hawaii"


def test_file_storage_leaves_no_temp_files(tmp_path):
    path = tmp_path / "tracker.json"
    storage = JsonFileStorage(path)
    storage.set("a", 1)
    storage.set("b", [1, 2])
    storage.delete("a")
    storage.delete("missing")

    assert [p.name for p in tmp_path.iterdir()] == ["tracker.json"]
    assert json.loads(path.read_text(encoding="utf-8")) == {"b": [1, 2]}


def test_file_storage_keys_by_prefix(tmp_path):
    storage = JsonFileStorage(tmp_path / "tracker.json")
    storage.set("lastNotified_Utah", 1.0)
    storage.set("lastNotified_Nevada", 2.0)
    storage.set("visitedStates", "[]")

    assert sorted(storage.keys("lastNotified_")) == ["lastNotified_Nevada", "lastNotified_Utah"]


@pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
def test_file_storage_rejects_bad_file(tmp_path, content):
    path = tmp_path / "tracker.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        JsonFileStorage(path)


def test_file_storage_failed_replace_keeps_previous_state(tmp_path, monkeypatch):
    path = tmp_path / "tracker.json"
    storage = JsonFileStorage(path)
    storage.set("a", 1)

    def broken_replace(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(OSError):
        storage.set("k", 1)
    with pytest.raises(OSError):
        storage.delete("a")
    monkeypatch.undo()

    assert storage.get("k") is None
    assert storage.get("a") == 1
    assert [p.name for p in tmp_path.iterdir()] == ["tracker.json"]

    # A later unrelated write must not carry the failed value along
    storage.set("b", 2)
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1, "b": 2}
