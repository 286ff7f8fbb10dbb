"""Ratings and share analytics.

- formulas: the one place counters are folded and views derived
- repo: key layout over a kvstore backend
- service: tracking, reads, reset, presence
- events: in-process pub/sub for the SSE relay
"""

from __future__ import annotations

from .events import EventBroker
from .repo import AnalyticsRepo
from .service import AnalyticsService
from .types import InvalidPlatformError, InvalidRatingError

__all__ = [
    "AnalyticsRepo",
    "AnalyticsService",
    "EventBroker",
    "InvalidPlatformError",
    "InvalidRatingError",
]
