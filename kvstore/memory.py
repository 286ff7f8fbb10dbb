from __future__ import annotations

import copy
import threading
from typing import Any, Dict, Mapping, Optional, Sequence

from .base import KeyValueStore, UpdateFn, decode_doc, encode_doc


class MemoryStore(KeyValueStore):
    """Process-local store. Used directly in tests and as the startup fallback."""

    name = "memory"
    persistent = False

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # Documents are held encoded so callers can never mutate stored state.
        self._docs: Dict[str, str] = {}
        self._sets: Dict[str, Dict[str, int]] = {}

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return decode_doc(self._docs.get(key), key=key)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        encoded = encode_doc(value)
        with self._lock:
            self._docs[key] = encoded

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._docs.pop(key, None) is not None

    def update(self, key: str, fn: UpdateFn) -> Dict[str, Any]:
        with self._lock:
            current = decode_doc(self._docs.get(key), key=key)
            new = fn(current)
            self._docs[key] = encode_doc(new)
            return copy.deepcopy(new)

    def scan(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            items = [(k, v) for k, v in self._docs.items() if k.startswith(prefix)]
        out: Dict[str, Dict[str, Any]] = {}
        for k, raw in sorted(items):
            doc = decode_doc(raw, key=k)
            if doc is not None:
                out[k] = doc
        return out

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._docs if k.startswith(prefix)]
            for k in doomed:
                del self._docs[k]
            for k in [s for s in self._sets if s.startswith(prefix)]:
                del self._sets[k]
            return len(doomed)

    def replace_prefixes(self, prefixes: Sequence[str], docs: Mapping[str, Dict[str, Any]]) -> int:
        encoded = {str(k): encode_doc(v) for k, v in docs.items()}
        with self._lock:
            doomed = [k for k in self._docs if any(k.startswith(p) for p in prefixes)]
            for k in doomed:
                del self._docs[k]
            self._docs.update(encoded)
            return len(doomed)

    def touch_member(self, set_key: str, member: str, ts_ms: int) -> None:
        with self._lock:
            self._sets.setdefault(set_key, {})[str(member)] = int(ts_ms)

    def remove_member(self, set_key: str, member: str) -> None:
        with self._lock:
            self._sets.get(set_key, {}).pop(str(member), None)

    def count_members(self, set_key: str, min_ts_ms: int) -> int:
        with self._lock:
            members = self._sets.get(set_key)
            if not members:
                return 0
            for m in [m for m, ts in members.items() if ts < int(min_ts_ms)]:
                del members[m]
            return len(members)

    def clear_members(self, set_key: str) -> None:
        with self._lock:
            self._sets.pop(set_key, None)
