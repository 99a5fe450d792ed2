# tests/test_local_storage.py
from datetime import date

import pytest

from habit_store import HabitStore
from local_storage import LocalFileStorage, MemoryStorage, StorageError


def test_missing_key_reads_none(tmp_path):
    storage = LocalFileStorage(tmp_path / "data")
    assert storage.read("habit-tracker:v1") is None


def test_write_then_read(tmp_path):
    storage = LocalFileStorage(tmp_path / "data")
    storage.write("habit-tracker:v1", '{"habits": []}')
    assert storage.read("habit-tracker:v1") == '{"habits": []}'
    # key is percent-encoded and no temp files are left behind
    assert [p.name for p in (tmp_path / "data").iterdir()] == ["habit-tracker%3Av1.json"]


def test_write_replaces_previous_document(tmp_path):
    storage = LocalFileStorage(tmp_path)
    storage.write("k", "first")
    storage.write("k", "second")
    assert storage.read("k") == "second"


def test_unwritable_location_raises_storage_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    storage = LocalFileStorage(blocker)
    with pytest.raises(StorageError):
        storage.write("k", "value")


def test_store_round_trip_through_files(tmp_path):
    today = date(2025, 3, 10)
    store = HabitStore(LocalFileStorage(tmp_path), clock=lambda: today)
    habit = store.add_habit("Drink water")
    store.set_completion(habit.id, today, True)

    reloaded = HabitStore(LocalFileStorage(tmp_path), clock=lambda: today)
    assert reloaded.snapshot() == store.snapshot()
    assert reloaded.is_completed(habit.id, "2025-03-10")


def test_memory_storage_quota():
    storage = MemoryStorage(quota=5)
    storage.write("k", "12345")
    with pytest.raises(StorageError):
        storage.write("k", "123456")
    assert storage.read("k") == "12345"
    assert storage.writes == 1


def test_keys_differing_only_in_punctuation_stay_separate(tmp_path):
    storage = LocalFileStorage(tmp_path)
    storage.write("a:b", "colon")
    storage.write("a_b", "underscore")
    storage.write("a/b", "slash")
    assert storage.read("a:b") == "colon"
    assert storage.read("a_b") == "underscore"
    assert storage.read("a/b") == "slash"
    assert len(list(tmp_path.iterdir())) == 3


def test_memory_storage_quota_counts_utf8_bytes():
    storage = MemoryStorage(quota=4)
    storage.write("k", "éé")  # 2 characters, 4 bytes
    with pytest.raises(StorageError, match=r"\(6 > 4 bytes\)"):
        storage.write("k", "ééé")
    assert storage.read("k") == "éé"
