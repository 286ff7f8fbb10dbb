from __future__ import annotations

"""Storage layer for the analytics subsystem.

Pure key layout + store I/O: folding logic comes in from analytics.formulas,
this module only decides *where* documents live.

Key layout (under the configured prefix):
- ratings:<officialId>   stored rating record
- shares:<platform>      stored share record
- meta                   {"lastUpdated": ISO}
- images                 {"<officialId>": url}
- active_users           presence set
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Mapping, Optional

import clock
from kvstore import KeyValueStore

from .types import RatingRecord, ShareRecord

logger = logging.getLogger(__name__)

RATINGS_NS = "ratings:"
SHARES_NS = "shares:"
META_KEY = "meta"
IMAGES_KEY = "images"
ACTIVE_USERS_KEY = "active_users"


class AnalyticsRepo:
    def __init__(self, store: KeyValueStore, *, prefix: str = "ratedem:v1:"):
        self.store = store
        self.prefix = str(prefix)

    def _k(self, suffix: str) -> str:
        return f"{self.prefix}{suffix}"

    # ------------------------
    # Ratings
    # ------------------------

    def apply_rating(
        self,
        official_id: str,
        fold: Callable[[Optional[RatingRecord]], RatingRecord],
    ) -> RatingRecord:
        return self.store.update(self._k(RATINGS_NS + official_id), fold)

    def rating_record(self, official_id: str) -> Optional[RatingRecord]:
        return self.store.get(self._k(RATINGS_NS + official_id))

    def rating_records(self) -> Dict[str, RatingRecord]:
        ns = self._k(RATINGS_NS)
        return {k[len(ns):]: v for k, v in self.store.scan(ns).items()}

    # ------------------------
    # Shares
    # ------------------------

    def apply_share(
        self,
        platform: str,
        fold: Callable[[Optional[ShareRecord]], ShareRecord],
    ) -> ShareRecord:
        return self.store.update(self._k(SHARES_NS + platform), fold)

    def share_records(self) -> Dict[str, ShareRecord]:
        ns = self._k(SHARES_NS)
        return {k[len(ns):]: v for k, v in self.store.scan(ns).items()}

    # ------------------------
    # Meta
    # ------------------------

    def touch_meta(self, now_iso: str, *, strictly_after: bool = False) -> Dict[str, Any]:
        """Move lastUpdated to now_iso (never backwards).

        With strictly_after the value also ends up past the previous one, even
        within the same millisecond.
        """

        def _fold(cur: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            out = dict(cur or {})
            prev = str(out.get("lastUpdated") or "")
            # ISO strings with a fixed format compare chronologically.
            value = max(prev, now_iso)
            prev_dt = clock.parse_iso(prev)
            if strictly_after and value == prev and prev_dt is not None:
                value = clock.to_iso(prev_dt + timedelta(milliseconds=1))
            out["lastUpdated"] = value
            return out

        return self.store.update(self._k(META_KEY), _fold)

    def meta(self) -> Dict[str, Any]:
        return self.store.get(self._k(META_KEY)) or {}

    def last_updated(self) -> Optional[str]:
        value = self.meta().get("lastUpdated")
        return str(value) if value else None

    # ------------------------
    # Image overrides
    # ------------------------

    def image_overrides(self) -> Dict[str, str]:
        doc = self.store.get(self._k(IMAGES_KEY)) or {}
        return {str(k): str(v) for k, v in doc.items() if isinstance(v, str) and v}

    def set_image_override(self, official_id: str, url: Optional[str]) -> Dict[str, str]:
        def _fold(cur: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            out = dict(cur or {})
            if url:
                out[official_id] = url
            else:
                out.pop(official_id, None)
            return out

        return self.store.update(self._k(IMAGES_KEY), _fold)

    # ------------------------
    # Presence
    # ------------------------

    def touch_active_user(self, user_id: str, now_ms: int) -> None:
        self.store.touch_member(self._k(ACTIVE_USERS_KEY), user_id, now_ms)

    def remove_active_user(self, user_id: str) -> None:
        self.store.remove_member(self._k(ACTIVE_USERS_KEY), user_id)

    def count_active_users(self, min_ts_ms: int) -> int:
        return self.store.count_members(self._k(ACTIVE_USERS_KEY), min_ts_ms)

    # ------------------------
    # Bulk
    # ------------------------

    def has_data(self) -> bool:
        return bool(self.store.scan(self._k(RATINGS_NS)) or self.store.scan(self._k(SHARES_NS)))

    def clear_ratings(self) -> int:
        return self.store.delete_prefix(self._k(RATINGS_NS))

    def clear_shares(self) -> int:
        return self.store.delete_prefix(self._k(SHARES_NS))

    def export_records(self) -> Dict[str, Any]:
        return {
            "ratings": self.rating_records(),
            "shares": self.share_records(),
            "meta": self.meta(),
            "images": self.image_overrides(),
        }

    def import_records(
        self,
        *,
        ratings: Mapping[str, RatingRecord],
        shares: Mapping[str, ShareRecord],
        images: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Replace every rating and share record (and the image overrides) in one store call.

        Nothing is removed unless every record is an object; a store failure
        leaves the previous records in place. Returns the number of records dropped.
        """
        docs: Dict[str, Dict[str, Any]] = {}
        for ns, records in ((RATINGS_NS, ratings), (SHARES_NS, shares)):
            for name, rec in records.items():
                if not isinstance(rec, Mapping):
                    raise ValueError(f"record {ns}{name} must be an object (got {type(rec).__name__})")
                docs[self._k(ns + str(name))] = dict(rec)
        if images is not None:
            docs[self._k(IMAGES_KEY)] = {str(k): str(v) for k, v in images.items() if v}

        removed = self.store.replace_prefixes([self._k(RATINGS_NS), self._k(SHARES_NS)], docs)
        logger.info(
            "imported analytics records: ratings=%d shares=%d replaced=%d",
            len(ratings),
            len(shares),
            removed,
        )
        return removed
