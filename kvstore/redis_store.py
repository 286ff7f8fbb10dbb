from __future__ import annotations

"""Redis key-value backend (redis-py).

Documents are JSON strings under plain keys. update() uses WATCH/MULTI so a
read-modify-write retries instead of overwriting a concurrent increment.
Presence sets are sorted sets scored by last-seen epoch milliseconds.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import redis

from .base import (
    KeyValueStore,
    StoreConflictError,
    StoreError,
    StoreUnavailableError,
    UpdateFn,
    decode_doc,
    encode_doc,
)

logger = logging.getLogger(__name__)

_GLOB_SPECIAL_RE = re.compile(r"([*?\[\]\\])")
_SCAN_COUNT = 500
_MGET_BATCH = 200


def _glob_escape(prefix: str) -> str:
    return _GLOB_SPECIAL_RE.sub(r"\\\1", prefix)


class RedisStore(KeyValueStore):
    name = "redis"
    persistent = True

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        max_retries: int = 20,
        socket_timeout: float = 5.0,
    ):
        if client is None:
            if not url:
                raise StoreUnavailableError("redis url is required")
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self._client = client
        self._max_retries = max(1, int(max_retries))

    @classmethod
    def connect(cls, url: str, **kwargs: Any) -> "RedisStore":
        """Build a store and verify the server answers; StoreUnavailableError otherwise."""
        store = cls(url, **kwargs)
        try:
            store._client.ping()
        except redis.RedisError as exc:
            store.close()
            raise StoreUnavailableError(f"redis not reachable at {url}: {exc}") from exc
        return store

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError:
            logger.debug("redis close failed", exc_info=True)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            logger.warning("redis ping failed", exc_info=True)
            return False

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = self._client.get(key)
        except redis.RedisError as exc:
            raise StoreError(f"redis get failed for {key!r}: {exc}") from exc
        return decode_doc(raw, key=key)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        encoded = encode_doc(value)
        try:
            self._client.set(key, encoded)
        except redis.RedisError as exc:
            raise StoreError(f"redis set failed for {key!r}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(key))
        except redis.RedisError as exc:
            raise StoreError(f"redis delete failed for {key!r}: {exc}") from exc

    def update(self, key: str, fn: UpdateFn) -> Dict[str, Any]:
        try:
            with self._client.pipeline() as pipe:
                for attempt in range(self._max_retries):
                    try:
                        pipe.watch(key)
                        current = decode_doc(pipe.get(key), key=key)
                        new = fn(current)
                        encoded = encode_doc(new)
                        pipe.multi()
                        pipe.set(key, encoded)
                        pipe.execute()
                        return new
                    except redis.WatchError:
                        logger.debug("redis update conflict on %s (attempt %d)", key, attempt + 1)
                        continue
                    finally:
                        pipe.reset()
        except redis.RedisError as exc:
            raise StoreError(f"redis update failed for {key!r}: {exc}") from exc
        raise StoreConflictError(f"redis update for {key!r} gave up after {self._max_retries} conflicts")

    def _keys(self, prefix: str) -> List[str]:
        return sorted(self._client.scan_iter(match=_glob_escape(prefix) + "*", count=_SCAN_COUNT))

    def scan(self, prefix: str) -> Dict[str, Dict[str, Any]]:
        try:
            keys = self._keys(prefix)
            out: Dict[str, Dict[str, Any]] = {}
            for i in range(0, len(keys), _MGET_BATCH):
                batch = keys[i : i + _MGET_BATCH]
                for k, raw in zip(batch, self._client.mget(batch)):
                    doc = decode_doc(raw, key=k)
                    if doc is not None:
                        out[k] = doc
            return out
        except redis.RedisError as exc:
            raise StoreError(f"redis scan failed for {prefix!r}: {exc}") from exc

    def delete_prefix(self, prefix: str) -> int:
        try:
            keys = self._keys(prefix)
            n = 0
            for i in range(0, len(keys), _MGET_BATCH):
                n += int(self._client.delete(*keys[i : i + _MGET_BATCH]))
            return n
        except redis.RedisError as exc:
            raise StoreError(f"redis delete_prefix failed for {prefix!r}: {exc}") from exc

    def replace_prefixes(self, prefixes: Sequence[str], docs: Mapping[str, Dict[str, Any]]) -> int:
        encoded = {str(k): encode_doc(v) for k, v in docs.items()}
        try:
            doomed = sorted({k for prefix in prefixes for k in self._keys(prefix)})
            # Deletes and writes go out as one MULTI/EXEC block.
            with self._client.pipeline(transaction=True) as pipe:
                for i in range(0, len(doomed), _MGET_BATCH):
                    pipe.delete(*doomed[i : i + _MGET_BATCH])
                if encoded:
                    pipe.mset(encoded)
                pipe.execute()
            return len(doomed)
        except redis.RedisError as exc:
            raise StoreError(f"redis replace_prefixes failed for {list(prefixes)!r}: {exc}") from exc

    def touch_member(self, set_key: str, member: str, ts_ms: int) -> None:
        try:
            self._client.zadd(set_key, {str(member): int(ts_ms)})
        except redis.RedisError as exc:
            raise StoreError(f"redis touch_member failed for {set_key!r}: {exc}") from exc

    def remove_member(self, set_key: str, member: str) -> None:
        try:
            self._client.zrem(set_key, str(member))
        except redis.RedisError as exc:
            raise StoreError(f"redis remove_member failed for {set_key!r}: {exc}") from exc

    def count_members(self, set_key: str, min_ts_ms: int) -> int:
        try:
            pipe = self._client.pipeline()
            pipe.zremrangebyscore(set_key, "-inf", f"({int(min_ts_ms)}")
            pipe.zcard(set_key)
            _, count = pipe.execute()
            return int(count or 0)
        except redis.RedisError as exc:
            raise StoreError(f"redis count_members failed for {set_key!r}: {exc}") from exc

    def clear_members(self, set_key: str) -> None:
        try:
            self._client.delete(set_key)
        except redis.RedisError as exc:
            raise StoreError(f"redis clear_members failed for {set_key!r}: {exc}") from exc
