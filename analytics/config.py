from __future__ import annotations

"""Tuning parameters for the ratings/shares analytics fold.

This module is the single place to tune analytics behavior.

Ratings
-------
- Integer ratings in RATING_MIN..RATING_MAX.
- The average is recomputed from the per-value distribution on every fold.
- approvalRating = round(average / RATING_MAX * 100).
- trendsUp when the average is above TRENDS_UP_THRESHOLD.

Shares
------
- velocity = share events for a platform inside the trailing window.
- trend: "up" above TREND_UP_VELOCITY, "down" when the window is empty but the
  platform has been shared before, otherwise "stable".
"""

from typing import Tuple

# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

RATING_MIN: int = 1
RATING_MAX: int = 5

TRENDS_UP_THRESHOLD: float = 3.0

# Decimal places kept on the averages we serve.
AVERAGE_DECIMALS: int = 4

# ---------------------------------------------------------------------------
# Shares
# ---------------------------------------------------------------------------

SHARE_PLATFORMS: Tuple[str, ...] = ("twitter", "facebook", "whatsapp", "copy", "native", "other")

VELOCITY_WINDOW_SECONDS: int = 60 * 60

# Recent shares are kept as per-bucket counts; velocity resolution is one bucket.
VELOCITY_BUCKET_SECONDS: int = 10

TREND_UP_VELOCITY: int = 2

# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------

ACTIVE_USER_TTL_SECONDS: int = 5 * 60

MAX_USER_ID_LENGTH: int = 128

# ---------------------------------------------------------------------------
# Served payloads
# ---------------------------------------------------------------------------

SNAPSHOT_VERSION: str = "21"
