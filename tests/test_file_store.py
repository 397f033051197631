"""Unit tests for the file-backed counter store."""

from pathlib import Path

import pytest

from route_limits.adapters.counter_store.base import CounterKey
from route_limits.adapters.counter_store.file_store import (
    FileCounterStore,
    encode_counter_name,
    parse_counter_expiry,
)
from route_limits.core.errors import StorageAppError

KEY = CounterKey(key_type="ip", key_value="1.2.3.4", path="_a")


def test_counter_file_name_layout() -> None:
    assert encode_counter_name(KEY, 1060) == "ip:1.2.3.4:_a:1060"
    assert parse_counter_expiry("ip:1.2.3.4:_a:1060") == 1060
    assert parse_counter_expiry("ip:1.2.3.4:_a:") is None
    assert parse_counter_expiry("garbage") is None


def test_directory_created_on_first_use(file_store: FileCounterStore, counter_dir: Path) -> None:
    assert not counter_dir.exists()

    assert file_store.find_active(KEY, now=1000) is None

    assert counter_dir.is_dir()


def test_window_is_written_only_on_save(file_store: FileCounterStore, counter_dir: Path) -> None:
    record = file_store.open_window(KEY, expires=1060, now=1000)
    assert record.current == 0
    assert list(counter_dir.iterdir()) == []

    record.current = 1
    file_store.save(record)

    counter_file = counter_dir / "ip:1.2.3.4:_a:1060"
    assert counter_file.read_text() == "1"

    found = file_store.find_active(KEY, now=1000)
    assert found is not None
    assert found.expires == 1060
    assert found.current == 1


def test_expired_file_is_ignored(file_store: FileCounterStore, counter_dir: Path) -> None:
    counter_dir.mkdir()
    (counter_dir / "ip:1.2.3.4:_a:1000").write_text("7")

    assert file_store.find_active(KEY, now=1000) is None
    assert file_store.find_active(KEY, now=999).current == 7


def test_active_file_wins_over_stale_one(file_store: FileCounterStore, counter_dir: Path) -> None:
    counter_dir.mkdir()
    (counter_dir / "ip:1.2.3.4:_a:900").write_text("9")
    (counter_dir / "ip:1.2.3.4:_a:1100").write_text("2")

    found = file_store.find_active(KEY, now=1000)

    assert found.expires == 1100
    assert found.current == 2


def test_lookup_does_not_match_longer_paths(file_store: FileCounterStore, counter_dir: Path) -> None:
    counter_dir.mkdir()
    (counter_dir / "ip:1.2.3.4:_ab:1100").write_text("5")
    (counter_dir / "ip:1.2.3.45:_a:1100").write_text("5")

    assert file_store.find_active(KEY, now=1000) is None


def test_ipv6_key_values_round_trip(file_store: FileCounterStore) -> None:
    key = CounterKey(key_type="ip", key_value="2001:db8::1", path="_default_")
    record = file_store.open_window(key, expires=1060, now=1000)
    record.current = 3
    file_store.save(record)

    found = file_store.find_active(key, now=1000)

    assert found.current == 3
    assert found.expires == 1060


def test_cleanup_removes_all_and_only_expired(file_store: FileCounterStore, counter_dir: Path) -> None:
    counter_dir.mkdir()
    (counter_dir / "ip:1.2.3.4:_a:999").write_text("1")
    (counter_dir / "ip:5.6.7.8:_a:1000").write_text("1")
    (counter_dir / "ip:1.2.3.4:_b:1001").write_text("1")
    (counter_dir / "not-a-counter").write_text("x")

    removed = file_store.delete_expired(now=1000)

    assert removed == 3
    assert sorted(p.name for p in counter_dir.iterdir()) == ["ip:1.2.3.4:_b:1001"]


def test_cleanup_without_directory_is_noop(file_store: FileCounterStore) -> None:
    assert file_store.delete_expired(now=1000) == 0


def test_uncreatable_directory_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = FileCounterStore(blocker / "counters")

    with pytest.raises(StorageAppError) as exc_info:
        store.find_active(KEY, now=1000)

    assert exc_info.value.code == "rate_limit_storage_unavailable"


def test_long_segments_are_hashed_into_bounded_names(file_store: FileCounterStore) -> None:
    long_key = CounterKey(key_type="ip", key_value="v" * 300, path="_" + "a" * 300)
    other_key = CounterKey(key_type="ip", key_value="v" * 300, path="_" + "b" * 300)

    record = file_store.open_window(long_key, expires=1060, now=1000)
    record.current = 1
    file_store.save(record)

    assert len(record.ref.name.encode("utf-8")) < 255
    assert file_store.find_active(long_key, now=1000).current == 1
    assert file_store.find_active(other_key, now=1000) is None


def test_write_failure_raises_storage_error(file_store: FileCounterStore, counter_dir: Path) -> None:
    record = file_store.open_window(KEY, expires=1060, now=1000)
    record.ref.mkdir(parents=True)
    record.current = 1

    with pytest.raises(StorageAppError) as exc_info:
        file_store.save(record)

    assert exc_info.value.code == "rate_limit_storage_unavailable"
