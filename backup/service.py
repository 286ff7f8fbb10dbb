from __future__ import annotations

"""Analytics backup/restore against a blob store.

The backup document is a single JSON object:

    {
        "format": "ratedem.analytics.backup",
        "formatVersion": 1,
        "backupTimestamp": ISO,
        "lastUpdated": ISO | None,
        "totalRatings": int,
        "totalShares": int,
        "leaderRatings": {officialId: stored rating record},
        "shareAnalytics": {platform: stored share record},
        "imageOverrides": {officialId: url},
        "contentHash": sha256 of the canonical JSON of the data part,
    }

Totals are informational; on restore they are derived again from the records.
"""

import hashlib
import json
import logging
import threading
from typing import Any, Dict, Optional

import clock
from analytics.formulas import distribution_total, normalize_distribution
from analytics.repo import AnalyticsRepo

from .blob import BlobStore, BlobStoreError

logger = logging.getLogger(__name__)

BACKUP_FORMAT = "ratedem.analytics.backup"
BACKUP_FORMAT_VERSION = 1
DEFAULT_BACKUP_KEY = "analytics-backup.json"

# Keys covered by contentHash.
_DATA_KEYS = ("lastUpdated", "leaderRatings", "shareAnalytics", "imageOverrides")


class BackupError(ValueError):
    pass


class BackupNotFoundError(BackupError):
    pass


def _sha256_json(payload: Dict[str, Any]) -> str:
    encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _data_part(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: doc.get(k) for k in _DATA_KEYS}


def _count_ratings(records: Dict[str, Any]) -> int:
    return sum(distribution_total(normalize_distribution(r.get("ratingDistribution"))) for r in records.values())


def _count_shares(records: Dict[str, Any]) -> int:
    total = 0
    for rec in records.values():
        try:
            total += max(0, int(rec.get("count") or 0))
        except (TypeError, ValueError):
            continue
    return total


class BackupService:
    def __init__(self, repo: AnalyticsRepo, blobs: BlobStore, *, key: str = DEFAULT_BACKUP_KEY):
        self.repo = repo
        self.blobs = blobs
        self.key = key
        self._lock = threading.RLock()
        self._last_auto_ms: Optional[int] = None

    # ------------------------
    # Document
    # ------------------------

    def build_document(self) -> Dict[str, Any]:
        records = self.repo.export_records()
        ratings = {str(k): dict(v) for k, v in records["ratings"].items()}
        shares = {str(k): dict(v) for k, v in records["shares"].items()}
        doc: Dict[str, Any] = {
            "format": BACKUP_FORMAT,
            "formatVersion": BACKUP_FORMAT_VERSION,
            "backupTimestamp": clock.now_iso(),
            "lastUpdated": (records.get("meta") or {}).get("lastUpdated"),
            "totalRatings": _count_ratings(ratings),
            "totalShares": _count_shares(shares),
            "leaderRatings": ratings,
            "shareAnalytics": shares,
            "imageOverrides": dict(records.get("images") or {}),
        }
        doc["contentHash"] = _sha256_json(_data_part(doc))
        return doc

    def _load_document(self) -> Dict[str, Any]:
        raw = self.blobs.get_bytes(self.key)
        if raw is None:
            raise BackupNotFoundError(f"no backup found at {self.key!r}")
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BackupError(f"backup is not valid JSON: {exc}") from exc
        if not isinstance(doc, dict):
            raise BackupError("backup document must be a JSON object")
        return doc

    @staticmethod
    def verify_document(doc: Dict[str, Any]) -> None:
        if doc.get("format") != BACKUP_FORMAT:
            raise BackupError(f"unsupported backup format: {doc.get('format')!r}")
        try:
            version = int(doc.get("formatVersion") or 0)
        except (TypeError, ValueError):
            raise BackupError(f"invalid formatVersion: {doc.get('formatVersion')!r}") from None
        if version > BACKUP_FORMAT_VERSION:
            raise BackupError(f"unsupported formatVersion: {version}")
        if not isinstance(doc.get("leaderRatings"), dict) or not isinstance(doc.get("shareAnalytics"), dict):
            raise BackupError("backup is missing leaderRatings/shareAnalytics")
        expected = str(doc.get("contentHash") or "").strip()
        if expected and _sha256_json(_data_part(doc)) != expected:
            raise BackupError("backup contentHash mismatch")

    # ------------------------
    # Operations
    # ------------------------

    def backup(self) -> Dict[str, Any]:
        with self._lock:
            doc = self.build_document()
            data = json.dumps(doc, ensure_ascii=False, indent=2, sort_keys=True).encode("utf-8")
            blob = self.blobs.put_bytes(self.key, data)
            self._last_auto_ms = clock.now_ms()
            logger.info(
                "analytics backup written: key=%s ratings=%d shares=%d",
                self.key,
                doc["totalRatings"],
                doc["totalShares"],
            )
            return {
                "key": self.key,
                "size": blob.size,
                "url": blob.url,
                "backupTimestamp": doc["backupTimestamp"],
                "lastUpdated": doc["lastUpdated"],
                "totalRatings": doc["totalRatings"],
                "totalShares": doc["totalShares"],
                "contentHash": doc["contentHash"],
            }

    def restore(self) -> Dict[str, Any]:
        with self._lock:
            doc = self._load_document()
            self.verify_document(doc)
            ratings = {str(k): v for k, v in doc["leaderRatings"].items() if isinstance(v, dict)}
            shares = {str(k): v for k, v in doc["shareAnalytics"].items() if isinstance(v, dict)}
            images = doc.get("imageOverrides") if isinstance(doc.get("imageOverrides"), dict) else {}
            self.repo.import_records(ratings=ratings, shares=shares, images=images)
            # A restore is a write: lastUpdated moves past every earlier poll.
            meta = self.repo.touch_meta(clock.now_iso(), strictly_after=True)
            logger.info("analytics restored from backup %s (taken %s)", self.key, doc.get("backupTimestamp"))
            return {
                "key": self.key,
                "backupTimestamp": doc.get("backupTimestamp"),
                "backupLastUpdated": doc.get("lastUpdated"),
                "lastUpdated": meta["lastUpdated"],
                "totalRatings": _count_ratings(ratings),
                "totalShares": _count_shares(shares),
                "restoredLeaders": len(ratings),
                "restoredPlatforms": len(shares),
            }

    def info(self) -> Dict[str, Any]:
        blob = self.blobs.head(self.key)
        if blob is None:
            return {"hasBackup": False, "key": self.key, "size": 0, "lastModified": None}
        out: Dict[str, Any] = {
            "hasBackup": True,
            "key": self.key,
            "size": blob.size,
            "lastModified": blob.last_modified,
            "url": blob.url,
        }
        try:
            doc = self._load_document()
        except BackupError as exc:
            out["error"] = str(exc)
            return out
        out.update(
            {
                "backupTimestamp": doc.get("backupTimestamp"),
                "lastUpdated": doc.get("lastUpdated"),
                "totalRatings": doc.get("totalRatings"),
                "totalShares": doc.get("totalShares"),
                "formatVersion": doc.get("formatVersion"),
            }
        )
        return out

    def has_backup(self) -> bool:
        return self.blobs.head(self.key) is not None

    def delete(self) -> bool:
        with self._lock:
            return self.blobs.delete(self.key)

    def maybe_auto_backup(self, interval_seconds: int) -> bool:
        """Write a backup when the last one is older than interval_seconds.

        Best effort: returns False (and logs) on failure instead of raising.
        """
        if interval_seconds <= 0:
            return False
        with self._lock:
            now = clock.now_ms()
            last = self._last_auto_ms
            if last is not None and now - last < int(interval_seconds) * 1000:
                return False
            # Claimed even if the write fails, so a broken blob store is not hit on every write.
            self._last_auto_ms = now
            try:
                self.backup()
            except (BlobStoreError, BackupError, RuntimeError) as exc:
                logger.warning("auto-backup failed: %s", exc, exc_info=True)
                return False
        return True
