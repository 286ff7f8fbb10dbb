from __future__ import annotations

"""Pure fold/derivation functions for ratings and shares.

Everything that turns an event into counters, or counters into a served view,
lives here. No I/O and no clock reads: callers pass `now_*` explicitly.
"""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import config as a_cfg
from .types import (
    AnalyticsSnapshot,
    AnalyticsSummary,
    InvalidPlatformError,
    InvalidRatingError,
    LeaderRating,
    RatingRecord,
    ShareRecord,
    ShareTrend,
    ShareView,
)

_RATING_KEYS = tuple(str(v) for v in range(a_cfg.RATING_MIN, a_cfg.RATING_MAX + 1))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_rating(value: Any) -> int:
    """Return value as an int in RATING_MIN..RATING_MAX or raise InvalidRatingError."""
    if isinstance(value, bool) or value is None:
        raise InvalidRatingError(f"rating must be an integer {a_cfg.RATING_MIN}-{a_cfg.RATING_MAX}")
    if isinstance(value, str):
        s = value.strip()
        if not s.lstrip("-").isdigit():
            raise InvalidRatingError(f"rating must be an integer (got {value!r})")
        value = int(s)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidRatingError(f"rating must be an integer (got {value!r})")
        value = int(value)
    if not isinstance(value, int):
        raise InvalidRatingError(f"rating must be an integer (got {type(value).__name__})")
    if value < a_cfg.RATING_MIN or value > a_cfg.RATING_MAX:
        raise InvalidRatingError(
            f"rating must be between {a_cfg.RATING_MIN} and {a_cfg.RATING_MAX} (got {value})"
        )
    return value


def validate_platform(value: Any) -> str:
    p = str(value or "").strip().lower()
    if p not in a_cfg.SHARE_PLATFORMS:
        raise InvalidPlatformError(
            f"invalid platform: {value!r}",
            valid_platforms=list(a_cfg.SHARE_PLATFORMS),
        )
    return p


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------


def _as_count(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, n)


def normalize_distribution(value: Any) -> Dict[str, int]:
    """Distribution with every rating key present and non-negative counts."""
    src: Mapping[str, Any] = value if isinstance(value, Mapping) else {}
    return {k: _as_count(src.get(k, src.get(int(k), 0))) for k in _RATING_KEYS}


def distribution_total(dist: Mapping[str, int]) -> int:
    return int(sum(dist.values()))


def distribution_average(dist: Mapping[str, int]) -> float:
    """Mean rating of a distribution; 0.0 when empty."""
    total = distribution_total(dist)
    if total <= 0:
        return 0.0
    weighted = sum(int(k) * int(c) for k, c in dist.items())
    avg = weighted / total
    # Guard the [min, max] invariant against any float noise.
    return min(float(a_cfg.RATING_MAX), max(float(a_cfg.RATING_MIN), avg))


def fold_rating(
    record: Optional[RatingRecord],
    official_id: str,
    rating: int,
    *,
    now_iso: str,
    month_key: str,
) -> RatingRecord:
    """Fold one rating into an official's stored record (returns a new record).

    The month baseline is the average at the moment the first rating of a new
    calendar month arrives; monthlyChange is measured against it.
    """
    r = validate_rating(rating)
    prev = record or {}
    dist = normalize_distribution(prev.get("ratingDistribution"))

    if prev.get("monthKey") != month_key:
        baseline: Optional[float] = distribution_average(dist) if distribution_total(dist) > 0 else None
    else:
        raw_baseline = prev.get("monthBaseline")
        baseline = float(raw_baseline) if isinstance(raw_baseline, (int, float)) else None

    dist[str(r)] += 1
    return {
        "officialId": str(official_id),
        "ratingDistribution": dist,
        "lastUpdated": now_iso,
        "monthKey": month_key,
        "monthBaseline": baseline,
    }


def rating_view(record: RatingRecord, *, official_id: Optional[str] = None) -> LeaderRating:
    dist = normalize_distribution(record.get("ratingDistribution"))
    total = distribution_total(dist)
    avg = distribution_average(dist)

    baseline = record.get("monthBaseline")
    if isinstance(baseline, (int, float)) and total > 0:
        monthly_change = round(avg - float(baseline), a_cfg.AVERAGE_DECIMALS)
    else:
        monthly_change = 0.0

    return {
        "officialId": str(official_id or record.get("officialId") or ""),
        "averageRating": round(avg, a_cfg.AVERAGE_DECIMALS),
        "totalRatings": total,
        "ratingDistribution": dist,
        "lastUpdated": str(record.get("lastUpdated") or ""),
        "performanceMetrics": {
            "approvalRating": int(round(avg / a_cfg.RATING_MAX * 100)) if total > 0 else 0,
            "trendsUp": bool(total > 0 and avg > a_cfg.TRENDS_UP_THRESHOLD),
            "monthlyChange": monthly_change,
        },
    }


def empty_rating_view(official_id: str, *, now_iso: str) -> LeaderRating:
    view = rating_view({"officialId": official_id}, official_id=official_id)
    view["lastUpdated"] = now_iso
    return view


# ---------------------------------------------------------------------------
# Shares
# ---------------------------------------------------------------------------


def _window_ms() -> int:
    return int(a_cfg.VELOCITY_WINDOW_SECONDS) * 1000


def _bucket_start(now_ms: int) -> int:
    size = int(a_cfg.VELOCITY_BUCKET_SECONDS) * 1000
    return int(now_ms) - int(now_ms) % size


def _recent_in_window(recent: Any, now_ms: int) -> List[List[int]]:
    """[bucket_start_ms, n] pairs inside the window, oldest first.

    Bare epoch-ms entries count as one event each.
    """
    cutoff = int(now_ms) - _window_ms()
    buckets: Dict[int, int] = {}
    for item in recent if isinstance(recent, list) else []:
        try:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                t, n = int(item[0]), int(item[1])
            else:
                t, n = int(item), 1
        except (TypeError, ValueError):
            continue
        if t > cutoff and n > 0:
            buckets[t] = buckets.get(t, 0) + n
    return [[t, buckets[t]] for t in sorted(buckets)]


def share_velocity(recent: Iterable[Any], now_ms: int) -> int:
    """Share events inside the trailing window ending at now_ms."""
    return sum(n for _, n in _recent_in_window(list(recent), now_ms))


def share_trend(velocity: int, count: int) -> ShareTrend:
    if velocity > a_cfg.TREND_UP_VELOCITY:
        return "up"
    if velocity == 0 and count > 0:
        return "down"
    return "stable"


def fold_share(
    record: Optional[ShareRecord],
    platform: str,
    *,
    now_iso: str,
    now_ms: int,
) -> ShareRecord:
    p = validate_platform(platform)
    prev = record or {}
    recent = _recent_in_window(prev.get("recent"), now_ms)
    start = _bucket_start(now_ms)
    if recent and recent[-1][0] == start:
        recent[-1][1] += 1
    else:
        recent.append([start, 1])
    return {
        "platform": p,
        "count": _as_count(prev.get("count")) + 1,
        "lastShared": now_iso,
        "recent": recent,
    }


def share_view(record: Optional[ShareRecord], platform: str, *, now_ms: int) -> ShareView:
    rec = record or {}
    count = _as_count(rec.get("count"))
    velocity = share_velocity(rec.get("recent") or [], now_ms)
    return {
        "platform": platform,
        "count": count,
        "lastShared": str(rec.get("lastShared") or ""),
        "trend": share_trend(velocity, count),
        "velocity": velocity,
    }


def share_views(share_records: Mapping[str, ShareRecord], *, now_ms: int) -> List[ShareView]:
    """All platforms in canonical order; unseen platforms read as zero."""
    return [share_view(share_records.get(p), p, now_ms=now_ms) for p in a_cfg.SHARE_PLATFORMS]


# ---------------------------------------------------------------------------
# Snapshot / summary
# ---------------------------------------------------------------------------


def build_snapshot(
    rating_records: Mapping[str, RatingRecord],
    share_records: Mapping[str, ShareRecord],
    *,
    last_updated: str,
    active_users: int,
    connected: bool,
    now_iso: str,
    now_ms: int,
) -> AnalyticsSnapshot:
    leader_ratings: Dict[str, LeaderRating] = {}
    for oid in sorted(rating_records):
        view = rating_view(rating_records[oid], official_id=oid)
        if view["totalRatings"] > 0:
            leader_ratings[oid] = view

    shares = share_views(share_records, now_ms=now_ms)
    return {
        "totalRatings": sum(v["totalRatings"] for v in leader_ratings.values()),
        "totalShares": sum(s["count"] for s in shares),
        "leaderRatings": leader_ratings,
        "shareAnalytics": shares,
        "lastUpdated": last_updated,
        "activeUsers": max(0, int(active_users)),
        "connected": bool(connected),
        "serverTime": now_iso,
        "version": a_cfg.SNAPSHOT_VERSION,
    }


def most_popular(shares: List[ShareView]) -> Optional[str]:
    """Platform with the highest count; earliest platform wins ties; None when nothing shared."""
    best: Optional[ShareView] = None
    for s in shares:
        if s["count"] <= 0:
            continue
        if best is None or s["count"] > best["count"]:
            best = s
    return best["platform"] if best else None


def trending(shares: List[ShareView]) -> List[str]:
    up = [s for s in shares if s["trend"] == "up"]
    up.sort(key=lambda s: -s["velocity"])
    return [s["platform"] for s in up]


def build_summary(snapshot: AnalyticsSnapshot) -> AnalyticsSummary:
    shares = snapshot["shareAnalytics"]
    return {
        "totalShares": snapshot["totalShares"],
        "totalRatings": snapshot["totalRatings"],
        "mostPopular": most_popular(shares),
        "trending": trending(shares),
        "lastUpdate": snapshot["lastUpdated"] or None,
        "activeUsers": snapshot["activeUsers"],
        "isConnected": snapshot["connected"],
    }
