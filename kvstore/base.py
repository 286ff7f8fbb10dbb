from __future__ import annotations

"""Backend-neutral key-value store contract.

Values are JSON documents (dicts). The one primitive every write path uses is
update(): an atomic read-modify-write of a single key. Counters are folded
inside the callback, so concurrent writers against one key never lose
increments, whatever the backend.
"""

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

_WARN_COUNTS: Dict[str, int] = {}

UpdateFn = Callable[[Optional[Dict[str, Any]]], Dict[str, Any]]


class StoreError(RuntimeError):
    pass


class StoreUnavailableError(StoreError):
    pass


class StoreConflictError(StoreError):
    pass


def _warn_limited(code: str, msg: str, *, limit: int = 5) -> None:
    n = _WARN_COUNTS.get(code, 0)
    if n < limit:
        logger.warning("%s %s", code, msg)
    _WARN_COUNTS[code] = n + 1


def encode_doc(value: Dict[str, Any]) -> str:
    if not isinstance(value, dict):
        raise StoreError(f"store values must be dicts (got {type(value).__name__})")
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def decode_doc(raw: Any, *, key: str = "") -> Optional[Dict[str, Any]]:
    """Decode a stored document. Corrupt or non-object payloads read as missing."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        _warn_limited("KV_DECODE_FAILED", f"key={key!r} value_preview={repr(str(raw))[:120]}", limit=3)
        return None
    if not isinstance(value, dict):
        _warn_limited("KV_NOT_OBJECT", f"key={key!r} type={type(value).__name__}", limit=3)
        return None
    return value


class KeyValueStore:
    """Abstract store. Subclasses implement every method below."""

    name: str = "abstract"
    # False for process-local backends (data dies with the process).
    persistent: bool = True

    def ping(self) -> bool:
        raise NotImplementedError

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def update(self, key: str, fn: UpdateFn) -> Dict[str, Any]:
        raise NotImplementedError

    def scan(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def replace_prefixes(self, prefixes: Sequence[str], docs: Mapping[str, Dict[str, Any]]) -> int:
        """Drop every document under `prefixes`, then write `docs`, as one atomic step.

        Every value is encoded before anything is touched. Returns the number of
        documents dropped.
        """
        raise NotImplementedError

    # ------------------------
    # Presence sets (member -> last seen epoch ms)
    # ------------------------

    def touch_member(self, set_key: str, member: str, ts_ms: int) -> None:
        raise NotImplementedError

    def remove_member(self, set_key: str, member: str) -> None:
        raise NotImplementedError

    def count_members(self, set_key: str, min_ts_ms: int) -> int:
        """Drop members last seen before min_ts_ms, then return the remaining count."""
        raise NotImplementedError

    def clear_members(self, set_key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
