from __future__ import annotations

import io
import json
import sqlite3
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from analytics.repo import AnalyticsRepo
from analytics.service import AnalyticsService
from backup import (
    BACKUP_FORMAT,
    BackupError,
    BackupNotFoundError,
    BackupService,
    BlobStoreError,
    LocalBlobStore,
    S3BlobStore,
)
from backup.service import DEFAULT_BACKUP_KEY
from kvstore import MemoryStore, SqliteStore, StoreError


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def setup(blobs, fake_clock):
    repo = AnalyticsRepo(MemoryStore())
    backup = BackupService(repo, blobs)
    svc = AnalyticsService(repo, connected=False, backup=backup, auto_restore=False)
    return repo, backup, svc


def _seed(svc):
    svc.track_rating("president", 5)
    svc.track_rating("president", 4)
    svc.track_rating("works", 2)
    svc.track_share("twitter")
    svc.track_share("copy")


class TestBackupService:
    def test_info_without_backup(self, setup):
        _, backup, _ = setup
        info = backup.info()
        assert info["hasBackup"] is False
        assert info["key"] == DEFAULT_BACKUP_KEY

    def test_backup_reset_restore_round_trip(self, setup):
        repo, backup, svc = setup
        _seed(svc)
        repo.set_image_override("vp", "https://cdn.example.com/vp.jpg")
        before = svc.get_snapshot()

        result = backup.backup()
        assert result["totalRatings"] == 3
        assert result["totalShares"] == 2

        svc.reset("all")
        repo.set_image_override("vp", None)
        assert svc.get_snapshot()["totalRatings"] == 0

        restored = backup.restore()
        assert restored["restoredLeaders"] == 2
        after = svc.get_snapshot()
        assert after["leaderRatings"] == before["leaderRatings"]
        assert after["totalShares"] == before["totalShares"]
        assert repo.image_overrides() == {"vp": "https://cdn.example.com/vp.jpg"}

    def test_document_shape(self, setup, blobs):
        _, backup, svc = setup
        _seed(svc)
        backup.backup()
        doc = json.loads(blobs.get_bytes(DEFAULT_BACKUP_KEY))
        assert doc["format"] == BACKUP_FORMAT
        assert doc["formatVersion"] == 1
        assert set(doc["leaderRatings"]) == {"president", "works"}
        assert len(doc["contentHash"]) == 64

        info = backup.info()
        assert info["hasBackup"] is True
        assert info["totalRatings"] == 3
        assert info["size"] > 0

    def test_tampered_backup_is_rejected(self, setup, blobs):
        _, backup, svc = setup
        _seed(svc)
        backup.backup()
        doc = json.loads(blobs.get_bytes(DEFAULT_BACKUP_KEY))
        doc["leaderRatings"]["president"]["ratingDistribution"]["5"] = 9999
        blobs.put_bytes(DEFAULT_BACKUP_KEY, json.dumps(doc).encode("utf-8"))

        with pytest.raises(BackupError, match="contentHash"):
            backup.restore()
        assert svc.get_leader("president")["totalRatings"] == 2

    def test_newer_format_version_is_rejected(self, setup, blobs):
        _, backup, svc = setup
        backup.backup()
        doc = json.loads(blobs.get_bytes(DEFAULT_BACKUP_KEY))
        doc["formatVersion"] = 99
        blobs.put_bytes(DEFAULT_BACKUP_KEY, json.dumps(doc).encode("utf-8"))
        with pytest.raises(BackupError, match="formatVersion"):
            backup.restore()

    def test_garbage_backup_is_rejected(self, setup, blobs):
        _, backup, _ = setup
        blobs.put_bytes(DEFAULT_BACKUP_KEY, b"not json")
        with pytest.raises(BackupError):
            backup.restore()

    def test_restore_without_backup(self, setup):
        _, backup, _ = setup
        with pytest.raises(BackupNotFoundError):
            backup.restore()

    def test_auto_backup_is_throttled(self, setup, fake_clock):
        _, backup, _ = setup
        assert backup.maybe_auto_backup(60) is True
        assert backup.maybe_auto_backup(60) is False
        fake_clock.advance(seconds=61)
        assert backup.maybe_auto_backup(60) is True
        assert backup.maybe_auto_backup(0) is False

    def test_auto_backup_never_raises(self, fake_clock):
        blobs = MagicMock()
        blobs.put_bytes.side_effect = BlobStoreError("disk full")
        backup = BackupService(AnalyticsRepo(MemoryStore()), blobs)
        assert backup.maybe_auto_backup(60) is False

    def test_delete(self, setup):
        _, backup, _ = setup
        backup.backup()
        assert backup.delete() is True
        assert backup.delete() is False

    def test_restore_moves_last_updated_forward(self, setup, fake_clock):
        _, backup, svc = setup
        _seed(svc)
        backup.backup()
        fake_clock.advance(minutes=10)
        svc.reset("all")
        since = svc.last_updated()

        result = backup.restore()

        assert result["backupLastUpdated"] == "2026-03-15T12:00:00.000Z"
        assert result["lastUpdated"] == "2026-03-15T12:10:00.001Z"
        assert svc.last_updated() == result["lastUpdated"]
        assert svc.is_modified_since(since) is True

    def test_failed_restore_keeps_previous_counters(self, tmp_path, blobs, fake_clock):
        store = SqliteStore(tmp_path / "kv.sqlite3")
        repo = AnalyticsRepo(store)
        backup = BackupService(repo, blobs)
        svc = AnalyticsService(repo, connected=False, backup=backup, auto_restore=False)
        _seed(svc)
        backup.backup()
        svc.reset("all")
        svc.track_rating("vp", 3)
        before = repo.last_updated()

        real_write = SqliteStore._write
        written = []

        def flaky_write(self, cur, key, encoded, now):
            written.append(key)
            if len(written) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return real_write(self, cur, key, encoded, now)

        with patch.object(SqliteStore, "_write", flaky_write):
            with pytest.raises(StoreError):
                backup.restore()

        assert set(repo.rating_records()) == {"vp"}
        assert repo.share_records() == {}
        assert repo.last_updated() == before
        store.close()

    def test_import_rejects_non_object_records_before_clearing(self, memory_repo, fake_clock):
        svc = AnalyticsService(memory_repo, connected=False)
        svc.track_rating("president", 4)
        with pytest.raises(ValueError):
            memory_repo.import_records(ratings={"vp": [1, 2]}, shares={})
        assert set(memory_repo.rating_records()) == {"president"}

    def test_concurrent_auto_backups_write_once(self, fake_clock):
        blobs = MagicMock()

        def slow_put(key, data):
            time.sleep(0.05)
            return MagicMock(size=len(data), url=None)

        blobs.put_bytes.side_effect = slow_put
        backup = BackupService(AnalyticsRepo(MemoryStore()), blobs)
        gate = threading.Barrier(6)
        results = []

        def worker():
            gate.wait()
            results.append(backup.maybe_auto_backup(60))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == [False] * 5 + [True]
        assert blobs.put_bytes.call_count == 1


class TestLocalBlobStore:
    def test_put_get_head_list(self, blobs):
        info = blobs.put_bytes("a/b.json", b"{}")
        assert info.size == 2
        assert blobs.get_bytes("a/b.json") == b"{}"
        assert blobs.head("a/b.json").size == 2
        assert [b.key for b in blobs.list("a/")] == ["a/b.json"]
        assert blobs.get_bytes("missing.json") is None
        assert blobs.head("missing.json") is None

    @pytest.mark.parametrize("key", ["../escape.json", "a/../../x", "", "a//b"])
    def test_rejects_bad_keys(self, blobs, key):
        with pytest.raises(BlobStoreError):
            blobs.put_bytes(key, b"x")


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class TestS3BlobStore:
    def test_put_uses_prefix(self):
        s3 = MagicMock()
        store = S3BlobStore("bucket", prefix="ratedem", client=s3)
        info = store.put_bytes("analytics-backup.json", b"{}")
        s3.put_object.assert_called_once_with(
            Bucket="bucket",
            Key="ratedem/analytics-backup.json",
            Body=b"{}",
            ContentType="application/json",
        )
        assert info.key == "analytics-backup.json"
        assert info.url == "s3://bucket/ratedem/analytics-backup.json"

    def test_get_returns_body(self):
        s3 = MagicMock()
        s3.get_object.return_value = {"Body": io.BytesIO(b"data")}
        assert S3BlobStore("bucket", client=s3).get_bytes("k") == b"data"

    @pytest.mark.parametrize("code", ["NoSuchKey", "404", "NotFound"])
    def test_missing_objects_read_as_none(self, code):
        s3 = MagicMock()
        s3.get_object.side_effect = _client_error(code)
        s3.head_object.side_effect = _client_error(code, "HeadObject")
        store = S3BlobStore("bucket", client=s3)
        assert store.get_bytes("k") is None
        assert store.head("k") is None

    def test_other_errors_raise(self):
        s3 = MagicMock()
        s3.get_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(BlobStoreError):
            S3BlobStore("bucket", client=s3).get_bytes("k")

    def test_backup_round_trip_through_s3(self, fake_clock):
        objects = {}
        s3 = MagicMock()

        def put_object(Bucket, Key, Body, ContentType):
            objects[Key] = Body

        def get_object(Bucket, Key):
            if Key not in objects:
                raise _client_error("NoSuchKey")
            return {"Body": io.BytesIO(objects[Key])}

        s3.put_object.side_effect = put_object
        s3.get_object.side_effect = get_object

        repo = AnalyticsRepo(MemoryStore())
        svc = AnalyticsService(repo, connected=False)
        svc.track_share("native")
        backup = BackupService(repo, S3BlobStore("bucket", prefix="bk/", client=s3))
        backup.backup()
        svc.reset()
        backup.restore()
        assert svc.get_snapshot()["totalShares"] == 1
