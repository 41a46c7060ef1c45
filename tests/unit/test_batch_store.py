import os

import pytest

from ruuvitag_upload.batch_store import BatchStore, PendingEntry, default_data_dir
from ruuvitag_upload.exceptions import BatchStoreError

from helpers import make_batch


def test_lists_only_batch_records_in_order(tmp_path):
    for name in ["1236.json", "1233.cmd", "1234.json", "1235.json", "1238.md", "1237.txt"]:
        (tmp_path / name).touch()

    entries = BatchStore(tmp_path).list_pending()

    assert [entry.path.name for entry in entries] == ["1234.json", "1235.json", "1236.json"]
    assert [entry.identifier for entry in entries] == [1234, 1235, 1236]


def test_orders_numerically_not_lexically(tmp_path):
    for name in ["999.json", "1000.json", "10.json"]:
        (tmp_path / name).touch()
    names = [entry.path.name for entry in BatchStore(tmp_path).list_pending()]
    assert names == ["10.json", "999.json", "1000.json"]


def test_ignores_directories_temp_files_and_foreign_json(tmp_path):
    (tmp_path / "1.json").mkdir()
    (tmp_path / "2.tmp").touch()
    (tmp_path / "settings.json").touch()
    (tmp_path / "3.json").touch()
    names = [entry.path.name for entry in BatchStore(tmp_path).list_pending()]
    assert names == ["3.json"]


def test_ignores_non_ascii_digit_names(tmp_path):
    (tmp_path / "².json").touch()
    (tmp_path / "١٢.json").touch()
    (tmp_path / "7.json").touch()
    names = [entry.path.name for entry in BatchStore(tmp_path).list_pending()]
    assert names == ["7.json"]


def test_missing_directory_is_empty(tmp_path):
    assert BatchStore(tmp_path / "does-not-exist").list_pending() == []


def test_unreadable_location_is_an_error(tmp_path):
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("x")
    with pytest.raises(BatchStoreError):
        BatchStore(not_a_dir).list_pending()


def test_persist_creates_directory_and_round_trips(store_dir):
    store = BatchStore(store_dir)
    batch = make_batch(alias="sauna")

    entry = store.persist(batch)

    assert store_dir.is_dir()
    assert entry.path.parent == store_dir
    assert entry.path.suffix == ".json"
    assert store.list_pending() == [entry]
    assert store.load(entry) == batch
    assert not list(store_dir.glob("*.tmp"))


def test_persist_never_reorders_within_one_clock_tick(store_dir, monkeypatch):
    monkeypatch.setattr("ruuvitag_upload.batch_store.time.time_ns", lambda: 5000)
    store = BatchStore(store_dir)

    first = store.persist(make_batch(temperature=1.0))
    second = store.persist(make_batch(temperature=2.0))
    third = store.persist(make_batch(temperature=3.0))

    assert [e.identifier for e in store.list_pending()] == [5000, 5001, 5002]
    assert [store.load(e)["sauna"].temperature for e in (first, second, third)] == [1.0, 2.0, 3.0]


def test_persist_sorts_after_existing_entries_from_a_fast_clock(store_dir, monkeypatch):
    store_dir.mkdir()
    (store_dir / "9000.json").write_text(make_batch().to_json())
    monkeypatch.setattr("ruuvitag_upload.batch_store.time.time_ns", lambda: 100)

    entry = BatchStore(store_dir).persist(make_batch())

    assert entry.identifier == 9001


def test_persist_failure_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    with pytest.raises(BatchStoreError):
        BatchStore(blocker / "cache").persist(make_batch())


def test_persist_failure_leaves_no_temp_file(store_dir, monkeypatch):
    def full_disk(fd):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("ruuvitag_upload.batch_store.os.fsync", full_disk)

    with pytest.raises(BatchStoreError):
        BatchStore(store_dir).persist(make_batch())
    assert list(store_dir.iterdir()) == []


def test_remove_deletes_and_is_idempotent(store_dir):
    store = BatchStore(store_dir)
    entry = store.persist(make_batch())

    store.remove(entry)
    store.remove(entry)

    assert not entry.path.exists()
    assert store.list_pending() == []


def test_load_corrupt_record_raises(store_dir):
    store_dir.mkdir()
    path = store_dir / "42.json"
    path.write_text("{not json")
    with pytest.raises(BatchStoreError, match="Corrupt"):
        BatchStore(store_dir).load(PendingEntry(identifier=42, path=path))


def test_load_missing_record_raises(store_dir):
    with pytest.raises(BatchStoreError):
        BatchStore(store_dir).load(PendingEntry(identifier=1, path=store_dir / "1.json"))


def test_default_data_dir_is_not_created(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    path = default_data_dir()
    assert path.name == "ruuvitag-upload"
    assert not path.exists()
