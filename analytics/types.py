from __future__ import annotations

"""Typed containers for the analytics layer.

Stored records (what lives in the key-value store) and served views (what the
HTTP layer returns) are kept apart on purpose: records hold only raw counters,
views are derived from them at read time.

Stored rating record:

    {
        "officialId": str,
        "ratingDistribution": {"1": int, ..., "5": int},
        "lastUpdated": ISO str,
        "monthKey": "YYYY-MM",
        "monthBaseline": float | None,
    }

Stored share record:

    {
        "platform": str,
        "count": int,
        "lastShared": ISO str | "",
        "recent": [[bucket_start_ms, n], ...],   # trailing window only
    }
"""

from typing import Any, Dict, List, Literal, Optional, TypedDict

ShareTrend = Literal["up", "down", "stable"]


class InvalidRatingError(ValueError):
    pass


class InvalidPlatformError(ValueError):
    def __init__(self, message: str, *, valid_platforms: List[str]):
        super().__init__(message)
        self.valid_platforms = list(valid_platforms)


# ----------------------------
# Served views
# ----------------------------


class PerformanceMetrics(TypedDict):
    approvalRating: int
    trendsUp: bool
    monthlyChange: float


class LeaderRating(TypedDict):
    officialId: str
    averageRating: float
    totalRatings: int
    ratingDistribution: Dict[str, int]
    lastUpdated: str
    performanceMetrics: PerformanceMetrics


class ShareView(TypedDict):
    platform: str
    count: int
    lastShared: str
    trend: ShareTrend
    velocity: int


class AnalyticsSnapshot(TypedDict):
    totalRatings: int
    totalShares: int
    leaderRatings: Dict[str, LeaderRating]
    shareAnalytics: List[ShareView]
    lastUpdated: str
    activeUsers: int
    connected: bool
    serverTime: str
    version: str


class AnalyticsSummary(TypedDict):
    totalShares: int
    totalRatings: int
    mostPopular: Optional[str]
    trending: List[str]
    lastUpdate: Optional[str]
    activeUsers: int
    isConnected: bool


RatingRecord = Dict[str, Any]
ShareRecord = Dict[str, Any]
