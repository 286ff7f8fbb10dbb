from __future__ import annotations

"""Analytics use-cases: tracking ratings/shares, serving views, presence.

Store errors propagate (the HTTP layer maps them to 503). Side effects that are
not part of the write itself (event fan-out, auto-backup, auto-restore) are
best effort: they log and move on.
"""

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import clock
from kvstore import StoreError
from officials.catalog import get_official

from . import config as a_cfg
from . import formulas
from .events import EventBroker
from .repo import AnalyticsRepo
from .types import AnalyticsSnapshot, AnalyticsSummary, LeaderRating, ShareView

if TYPE_CHECKING:
    from backup.service import BackupService

logger = logging.getLogger(__name__)

RESET_SCOPES = ("all", "shares", "ratings")


def normalize_user_id(value: Any) -> str:
    uid = str(value or "").strip()
    if not uid:
        raise ValueError("user id is required")
    if len(uid) > a_cfg.MAX_USER_ID_LENGTH:
        raise ValueError(f"user id is too long (max {a_cfg.MAX_USER_ID_LENGTH})")
    return uid


class AnalyticsService:
    def __init__(
        self,
        repo: AnalyticsRepo,
        *,
        connected: bool,
        broker: Optional[EventBroker] = None,
        backup: Optional["BackupService"] = None,
        backup_interval_seconds: int = 0,
        auto_restore: bool = True,
    ):
        self.repo = repo
        self.connected = bool(connected)
        self.broker = broker
        self.backup = backup
        self.backup_interval_seconds = int(backup_interval_seconds)
        self._restore_lock = threading.Lock()
        self._restore_checked = not auto_restore or backup is None

    # ------------------------
    # Best-effort side effects
    # ------------------------

    def _publish(self, event: str, data: Any) -> None:
        if self.broker is None:
            return
        try:
            self.broker.publish(event, data)
        except Exception:
            logger.warning("failed to publish %s event", event, exc_info=True)

    def _after_write(self) -> None:
        if self.backup is None or self.backup_interval_seconds <= 0:
            return
        self.backup.maybe_auto_backup(self.backup_interval_seconds)

    def ensure_restored(self) -> bool:
        """Restore from backup once per process when the store is empty.

        Returns True when a restore happened.
        """
        if self._restore_checked:
            return False
        with self._restore_lock:
            if self._restore_checked:
                return False
            self._restore_checked = True
            backup = self.backup
            if backup is None:
                return False
            try:
                if self.repo.has_data() or not backup.has_backup():
                    return False
                result = backup.restore()
            except Exception:
                logger.warning("auto-restore from backup failed", exc_info=True)
                return False
            logger.info(
                "auto-restored analytics from backup: ratings=%s shares=%s",
                result.get("totalRatings"),
                result.get("totalShares"),
            )
            return True

    def _require_backup(self) -> "BackupService":
        if self.backup is None:
            raise RuntimeError("backups are disabled")
        return self.backup

    def backup_now(self) -> Dict[str, Any]:
        """Manual backup. The pending auto-restore runs first, so a freshly
        started empty store never overwrites the last good backup."""
        backup = self._require_backup()
        self.ensure_restored()
        return backup.backup()

    def restore_backup(self) -> Dict[str, Any]:
        backup = self._require_backup()
        self._restore_checked = True
        result = backup.restore()
        self._publish("reset", {"scope": "restore", "lastUpdated": result["lastUpdated"]})
        return result

    # ------------------------
    # Writes
    # ------------------------

    def track_rating(self, official_id: Any, rating: Any, user_id: Optional[str] = None) -> LeaderRating:
        official = get_official(official_id)
        value = formulas.validate_rating(rating)
        self.ensure_restored()

        now_iso = clock.now_iso()
        month = clock.month_key()
        record = self.repo.apply_rating(
            official.id,
            lambda cur: formulas.fold_rating(cur, official.id, value, now_iso=now_iso, month_key=month),
        )
        self.repo.touch_meta(now_iso)
        if user_id:
            self._touch_user(user_id)

        view = formulas.rating_view(record, official_id=official.id)
        logger.debug("rating tracked: official=%s rating=%d total=%d", official.id, value, view["totalRatings"])
        self._publish("rating", {"officialId": official.id, "rating": value, "leader": view})
        self._after_write()
        return view

    def track_share(self, platform: Any, user_id: Optional[str] = None) -> ShareView:
        p = formulas.validate_platform(platform)
        self.ensure_restored()

        now_iso = clock.now_iso()
        now_ms = clock.now_ms()
        record = self.repo.apply_share(p, lambda cur: formulas.fold_share(cur, p, now_iso=now_iso, now_ms=now_ms))
        self.repo.touch_meta(now_iso)
        if user_id:
            self._touch_user(user_id)

        view = formulas.share_view(record, p, now_ms=now_ms)
        logger.debug("share tracked: platform=%s count=%d", p, view["count"])
        self._publish("share", view)
        self._after_write()
        return view

    def reset(self, scope: str = "all") -> AnalyticsSnapshot:
        s = str(scope or "all").strip().lower()
        if s not in RESET_SCOPES:
            raise ValueError(f"invalid reset scope: {scope!r} (expected one of {', '.join(RESET_SCOPES)})")
        # A reset is deliberate: never resurrect the counters from a backup afterwards.
        self._restore_checked = True

        removed = 0
        if s in ("all", "ratings"):
            removed += self.repo.clear_ratings()
        if s in ("all", "shares"):
            removed += self.repo.clear_shares()
        self.repo.touch_meta(clock.now_iso())
        logger.info("analytics reset: scope=%s removed=%d", s, removed)

        snapshot = self.get_snapshot()
        self._publish("reset", {"scope": s, "lastUpdated": snapshot["lastUpdated"]})
        return snapshot

    # ------------------------
    # Reads
    # ------------------------

    def last_updated(self) -> str:
        self.ensure_restored()
        return self.repo.last_updated() or ""

    def get_snapshot(self) -> AnalyticsSnapshot:
        self.ensure_restored()
        return formulas.build_snapshot(
            self.repo.rating_records(),
            self.repo.share_records(),
            last_updated=self.repo.last_updated() or "",
            active_users=self.active_users(),
            connected=self.connected,
            now_iso=clock.now_iso(),
            now_ms=clock.now_ms(),
        )

    def get_share_analytics(self) -> List[ShareView]:
        self.ensure_restored()
        return formulas.share_views(self.repo.share_records(), now_ms=clock.now_ms())

    def get_leader(self, official_id: Any) -> LeaderRating:
        official = get_official(official_id)
        self.ensure_restored()
        record = self.repo.rating_record(official.id)
        if not record:
            return formulas.empty_rating_view(official.id, now_iso=clock.now_iso())
        return formulas.rating_view(record, official_id=official.id)

    def get_summary(self) -> AnalyticsSummary:
        return formulas.build_summary(self.get_snapshot())

    def is_modified_since(self, since: Optional[str]) -> bool:
        """False only for a valid `since` at or after lastUpdated."""
        since_dt = clock.parse_iso(since)
        if since_dt is None:
            return True
        last_dt = clock.parse_iso(self.last_updated())
        if last_dt is None:
            # Nothing has ever been written.
            return False
        return last_dt > since_dt

    # ------------------------
    # Presence
    # ------------------------

    def _touch_user(self, user_id: str) -> None:
        try:
            self.repo.touch_active_user(normalize_user_id(user_id), clock.now_ms())
        except (ValueError, StoreError):
            logger.debug("ignoring presence update for user %r", user_id, exc_info=True)

    def active_users(self) -> int:
        cutoff = clock.now_ms() - int(a_cfg.ACTIVE_USER_TTL_SECONDS) * 1000
        return self.repo.count_active_users(cutoff)

    def enter_session(self, user_id: Any) -> int:
        uid = normalize_user_id(user_id)
        self.repo.touch_active_user(uid, clock.now_ms())
        active = self.active_users()
        self._publish("active", {"active": active})
        return active

    def leave_session(self, user_id: Any) -> int:
        uid = normalize_user_id(user_id)
        self.repo.remove_active_user(uid)
        active = self.active_users()
        self._publish("active", {"active": active})
        return active
