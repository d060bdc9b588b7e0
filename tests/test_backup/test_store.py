"""
Тесты BackupStore.

Проверяем:
- запись и чтение снапшота с контрольной суммой
- манифест как точка фиксации
- селекторы точки восстановления
- audit() без исправлений
- параллельная запись
"""

import json
import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from network_deployer.backup import BackupStore
from network_deployer.backup.store import CHECKSUM_FILE, MANIFEST_FILE
from network_deployer.core.device import Device
from network_deployer.core.exceptions import (
    BackupError,
    CommandError,
    IntegrityViolationError,
    NoSuchBackupError,
    UnreachableError,
)
from network_deployer.core.models import SnapshotKind, SnapshotPurpose, sha256_hex

from ..conftest import FakeDriver, default_config

CONFIG = "hostname sw1\n!\ninterface Gi0/1\n description uplink\n!\n"


def save_at(store, device, content, *args, purpose=SnapshotPurpose.MANUAL):
    return store.save(
        device, SnapshotKind.RUNNING, content, purpose=purpose, timestamp=datetime(*args)
    )


class TestBackupStoreSave:
    """Запись снапшотов."""

    def test_round_trip(self, store):
        saved = store.save("sw1", SnapshotKind.RUNNING, CONFIG)

        loaded = store.load(saved.ref)

        assert loaded.content == CONFIG
        assert loaded.checksum == sha256_hex(CONFIG)
        assert loaded.kind == SnapshotKind.RUNNING

    def test_layout_on_disk(self, store):
        saved = save_at(store, "sw1", CONFIG, 2024, 1, 1, 10, 30, 15)

        day_dir = store.root / "2024-01-01"
        assert saved.path == "2024-01-01/sw1.running.103015000000.cfg"
        assert (day_dir / "sw1.running.103015000000.cfg").read_text(encoding="utf-8") == CONFIG

        sums = (day_dir / CHECKSUM_FILE).read_text(encoding="utf-8")
        assert sums == f"{saved.checksum}  sw1.running.103015000000.cfg\n"

        entry = json.loads((day_dir / MANIFEST_FILE).read_text(encoding="utf-8"))
        assert entry["device"] == "sw1"
        assert entry["checksum"] == saved.checksum
        assert entry["purpose"] == "manual"

    def test_crlf_content_preserved(self, store):
        content = "hostname sw1\r\n!\r\n"
        saved = store.save("sw1", SnapshotKind.RUNNING, content)

        assert store.load(saved.ref).content == content
        assert store.verify_integrity(saved)

    def test_timestamps_unique_per_device(self, store):
        ts = datetime(2024, 1, 1, 12, 0, 0)
        first = store.save("sw1", SnapshotKind.RUNNING, CONFIG, timestamp=ts)
        second = store.save("sw1", SnapshotKind.RUNNING, CONFIG + "!\n", timestamp=ts)

        assert second.timestamp > first.timestamp
        assert first.path != second.path
        assert len(store.list("sw1")) == 2

    def test_unsafe_device_name(self, store):
        saved = store.save("sw/1 core", SnapshotKind.RUNNING, CONFIG)

        assert "/" not in saved.path.split("/", 1)[1]
        assert store.resolve("sw/1 core").content == CONFIG

    def test_concurrent_saves(self, store):
        errors = []

        def worker(index):
            try:
                for j in range(5):
                    store.save(f"sw{index}", SnapshotKind.RUNNING, f"hostname sw{index}\n! {j}\n")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        refs = store.list()
        assert len(refs) == 40
        assert store.audit() == []


class TestBackupStoreBackup:
    """Снятие бэкапа с устройства через драйвер."""

    def test_backup_running_and_startup(self, store):
        driver = FakeDriver()
        device = Device(name="sw1", host="10.0.0.1")

        snapshot = store.backup(device, driver)

        assert snapshot.content == default_config("sw1")
        assert snapshot.device_info["version"] == "17.9.4"
        assert len(store.list("sw1", kind=SnapshotKind.STARTUP)) == 1
        assert driver.actions("sw1")[0] == "connect"
        assert driver.actions("sw1")[-1] == "close"

    def test_startup_is_best_effort(self, store):
        driver = FakeDriver(no_startup=["sw1"])

        store.backup(Device(name="sw1", host="10.0.0.1"), driver)

        assert len(store.list("sw1")) == 1
        assert store.list("sw1", kind=SnapshotKind.STARTUP) == []

    def test_startup_command_error_tolerated(self, store):
        driver = MagicMock()
        driver.get_config.side_effect = [CONFIG, CommandError("% Invalid input", device="sw1")]
        driver.get_device_info.return_value = {}

        snapshot = store.backup(Device(name="sw1", host="10.0.0.1"), driver, session=object())

        assert snapshot.content == CONFIG
        driver.connect.assert_not_called()
        driver.close.assert_not_called()

    def test_empty_running_config(self, store):
        driver = FakeDriver(configs={"sw1": "  \n"})

        with pytest.raises(BackupError):
            store.backup(Device(name="sw1", host="10.0.0.1"), driver)

        assert store.list("sw1") == []
        assert driver.open_sessions == 0

    def test_unreachable_propagates(self, store):
        driver = FakeDriver(unreachable=["sw1"])

        with pytest.raises(UnreachableError):
            store.backup(Device(name="sw1", host="10.0.0.1"), driver)

    def test_write_failure_becomes_backup_error(self, tmp_path):
        blocker = tmp_path / "backups"
        blocker.write_text("not a directory", encoding="utf-8")
        store = BackupStore(blocker)

        with pytest.raises(BackupError, match="Ошибка записи"):
            store.save("sw1", SnapshotKind.RUNNING, CONFIG)


class TestBackupStoreManifest:
    """Манифест — единственный источник списка снапшотов."""

    def test_file_without_manifest_entry_invisible(self, store):
        save_at(store, "sw1", CONFIG, 2024, 1, 1, 9, 0, 0)
        phantom = store.root / "2024-01-01" / "sw1.running.235959000000.cfg"
        phantom.write_text("hostname phantom\n", encoding="utf-8")

        refs = store.list("sw1")

        assert len(refs) == 1
        assert store.resolve("sw1").content == CONFIG

    def test_corrupt_manifest_line_skipped(self, store, caplog):
        save_at(store, "sw1", CONFIG, 2024, 1, 1, 9, 0, 0)
        manifest = store.root / "2024-01-01" / MANIFEST_FILE
        with open(manifest, "a", encoding="utf-8") as f:
            f.write('{"device": "sw1", "timestamp": \n')

        assert len(store.list("sw1")) == 1
        assert "повреждённая запись манифеста" in caplog.text

    def test_torn_append_does_not_hide_next_snapshot(self, store):
        """Обрыв записи без перевода строки не склеивается со следующей."""
        save_at(store, "sw1", "a\n", 2024, 1, 1, 9, 0, 0)
        day_dir = store.root / "2024-01-01"
        for name in (MANIFEST_FILE, CHECKSUM_FILE):
            with open(day_dir / name, "a", encoding="utf-8") as f:
                f.write('{"device": "sw1", "timest')

        saved = save_at(store, "sw1", "b\n", 2024, 1, 1, 10, 0, 0)

        refs = store.list("sw1")
        assert [r.timestamp.hour for r in refs] == [10, 9]
        assert store.resolve("sw1", "latest").content == "b\n"
        sums = (day_dir / CHECKSUM_FILE).read_text(encoding="utf-8").splitlines()
        assert sums[-1] == f"{saved.checksum}  {saved.path.split('/')[-1]}"

    def test_list_newest_first_and_filters(self, store):
        save_at(store, "sw1", "a\n", 2024, 1, 1, 9, 0, 0)
        save_at(store, "sw1", "b\n", 2024, 1, 2, 9, 0, 0, purpose=SnapshotPurpose.SAFETY)
        save_at(store, "sw2", "c\n", 2024, 1, 3, 9, 0, 0)

        assert [r.device for r in store.list()] == ["sw2", "sw1", "sw1"]
        assert [r.timestamp.day for r in store.list("sw1")] == [2, 1]
        assert len(store.list("sw1", include_safety=False)) == 1

    def test_empty_store(self, store):
        assert store.list() == []
        assert store.audit() == []


class TestBackupStoreResolve:
    """Селекторы точки восстановления."""

    @pytest.fixture
    def history(self, store):
        save_at(store, "sw1", "day1-early\n", 2024, 1, 1, 8, 0, 0)
        save_at(store, "sw1", "day1-late\n", 2024, 1, 1, 20, 0, 0)
        save_at(store, "sw1", "day2\n", 2024, 1, 2, 9, 30, 0)
        return store

    def test_latest(self, history):
        assert history.resolve("sw1", "latest").content == "day2\n"

    def test_date_picks_latest_of_day(self, history):
        assert history.resolve("sw1", "2024-01-01").content == "day1-late\n"

    def test_exact_timestamp(self, history):
        assert history.resolve("sw1", "2024-01-01T08:00:00").content == "day1-early\n"

    def test_safety_snapshot_never_resolved(self, history):
        save_at(history, "sw1", "safety\n", 2024, 1, 3, 9, 0, 0, purpose=SnapshotPurpose.SAFETY)

        assert history.resolve("sw1", "latest").content == "day2\n"
        with pytest.raises(NoSuchBackupError):
            history.resolve("sw1", "2024-01-03")

    @pytest.mark.parametrize("selector", ["2023-12-31", "2024-01-01T08:00:01", "yesterday", "2024-13-01"])
    def test_no_match(self, history, selector):
        with pytest.raises(NoSuchBackupError):
            history.resolve("sw1", selector)

    def test_unknown_device(self, history):
        with pytest.raises(NoSuchBackupError):
            history.resolve("sw9")


class TestBackupStoreIntegrity:
    """Проверка контрольных сумм."""

    def test_tampered_file_detected(self, store):
        saved = store.save("sw1", SnapshotKind.RUNNING, CONFIG)
        (store.root / saved.path).write_text(CONFIG + "username evil\n", encoding="utf-8")

        assert store.verify_integrity(saved) is False
        with pytest.raises(IntegrityViolationError) as exc_info:
            store.load(saved.ref)
        assert exc_info.value.details["expected"] == saved.checksum

    def test_non_utf8_bytes_detected(self, store):
        saved = store.save("sw1", SnapshotKind.RUNNING, CONFIG)
        (store.root / saved.path).write_bytes(b"hostname \xff\n")

        assert store.verify_integrity(saved) is False
        assert [i.problem for i in store.audit()] == ["mismatch"]
        with pytest.raises(IntegrityViolationError, match="Checksum"):
            store.resolve("sw1")

    def test_missing_file_detected(self, store):
        saved = store.save("sw1", SnapshotKind.RUNNING, CONFIG)
        (store.root / saved.path).unlink()

        with pytest.raises(IntegrityViolationError, match="отсутствует"):
            store.resolve("sw1")

    def test_audit_reports_without_fixing(self, store):
        good = store.save("sw1", SnapshotKind.RUNNING, CONFIG)
        bad = store.save("sw2", SnapshotKind.RUNNING, CONFIG)
        gone = store.save("sw3", SnapshotKind.RUNNING, CONFIG)
        (store.root / bad.path).write_text("tampered\n", encoding="utf-8")
        (store.root / gone.path).unlink()

        issues = store.audit()

        assert {(i.ref.device, i.problem) for i in issues} == {("sw2", "mismatch"), ("sw3", "missing")}
        assert (store.root / bad.path).read_text(encoding="utf-8") == "tampered\n"
        assert store.verify_integrity(good)

    def test_audit_single_device(self, store):
        store.save("sw1", SnapshotKind.RUNNING, CONFIG)
        bad = store.save("sw2", SnapshotKind.RUNNING, CONFIG)
        (store.root / bad.path).write_text("tampered\n", encoding="utf-8")

        assert store.audit("sw1") == []
        assert len(store.audit("sw2")) == 1
