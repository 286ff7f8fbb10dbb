from __future__ import annotations

import datetime as _dt
from typing import Any, Callable, Optional

# Every timestamp written by the server goes through this module so tests can
# pin the clock. Do not call datetime.now() elsewhere.

_ClockFn = Callable[[], _dt.datetime]

_clock_override: Optional[_ClockFn] = None


def _system_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def set_clock(fn: _ClockFn) -> None:
    """Install a replacement clock (tests). fn must return an aware datetime."""
    global _clock_override
    _clock_override = fn


def reset_clock() -> None:
    global _clock_override
    _clock_override = None


def now_utc() -> _dt.datetime:
    fn = _clock_override or _system_now
    value = fn()
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    return value.astimezone(_dt.timezone.utc)


def to_iso(value: _dt.datetime) -> str:
    """UTC ISO string with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=_dt.timezone.utc)
    v = value.astimezone(_dt.timezone.utc)
    return v.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(now_utc())


def now_ms() -> int:
    return int(now_utc().timestamp() * 1000)


def month_key(value: Optional[_dt.datetime] = None) -> str:
    v = value or now_utc()
    return f"{v.year:04d}-{v.month:02d}"


def parse_iso(value: Any) -> Optional[_dt.datetime]:
    """Parse an ISO timestamp (Z or offset). Returns None for anything invalid."""
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = _dt.datetime.fromisoformat(s)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_dt.timezone.utc)
    return parsed.astimezone(_dt.timezone.utc)
