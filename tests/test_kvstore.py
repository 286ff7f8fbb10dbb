from __future__ import annotations

import json
import sqlite3
import threading
from unittest.mock import MagicMock, patch

import pytest
import redis

from config import Settings
from kvstore import MemoryStore, RedisStore, SqliteStore, StoreConflictError, StoreError, build_store


class TestDocuments:
    def test_get_set_delete(self, any_store):
        assert any_store.get("a") is None
        any_store.set("a", {"n": 1, "name": "ñ"})
        assert any_store.get("a") == {"n": 1, "name": "ñ"}
        assert any_store.delete("a") is True
        assert any_store.delete("a") is False
        assert any_store.get("a") is None

    def test_values_must_be_dicts(self, any_store):
        with pytest.raises(StoreError):
            any_store.set("a", [1, 2])

    def test_update_passes_current_document(self, any_store):
        seen = []

        def bump(cur):
            seen.append(cur)
            return {"n": (cur or {}).get("n", 0) + 1}

        assert any_store.update("k", bump) == {"n": 1}
        assert any_store.update("k", bump) == {"n": 2}
        assert seen == [None, {"n": 1}]

    def test_scan_and_delete_prefix_treat_wildcards_literally(self, any_store):
        any_store.set("p:r_1", {"v": 1})
        any_store.set("p:r_2", {"v": 2})
        any_store.set("p:rx3", {"v": 3})
        any_store.set("q:r_1", {"v": 4})

        assert sorted(any_store.scan("p:r_")) == ["p:r_1", "p:r_2"]
        assert any_store.delete_prefix("p:r_") == 2
        assert sorted(any_store.scan("p:")) == ["p:rx3"]
        assert any_store.get("q:r_1") == {"v": 4}

    def test_replace_prefixes(self, any_store):
        any_store.set("r:a", {"n": 1})
        any_store.set("s:x", {"n": 2})
        any_store.set("meta", {"keep": True})

        removed = any_store.replace_prefixes(["r:", "s:"], {"r:b": {"n": 3}, "images": {"vp": "/vp.jpg"}})

        assert removed == 2
        assert any_store.scan("r:") == {"r:b": {"n": 3}}
        assert any_store.scan("s:") == {}
        assert any_store.get("meta") == {"keep": True}
        assert any_store.get("images") == {"vp": "/vp.jpg"}

    def test_replace_prefixes_rejects_bad_values_before_deleting(self, any_store):
        any_store.set("r:a", {"n": 1})
        with pytest.raises(StoreError):
            any_store.replace_prefixes(["r:"], {"r:b": {"n": 2}, "r:c": [3]})
        assert any_store.scan("r:") == {"r:a": {"n": 1}}

    def test_concurrent_updates_do_not_lose_increments(self, any_store):
        def bump(cur):
            return {"n": (cur or {}).get("n", 0) + 1}

        def worker():
            for _ in range(25):
                any_store.update("counter", bump)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert any_store.get("counter") == {"n": 200}


class TestPresence:
    def test_count_prunes_stale_members(self, any_store):
        any_store.touch_member("active", "u1", 1_000)
        any_store.touch_member("active", "u2", 5_000)
        any_store.touch_member("active", "u1", 6_000)
        assert any_store.count_members("active", 0) == 2
        assert any_store.count_members("active", 5_500) == 1
        # u2 was pruned, not just filtered.
        assert any_store.count_members("active", 0) == 1

    def test_remove_and_clear(self, any_store):
        any_store.touch_member("active", "u1", 1)
        any_store.touch_member("active", "u2", 1)
        any_store.remove_member("active", "u1")
        assert any_store.count_members("active", 0) == 1
        any_store.clear_members("active")
        assert any_store.count_members("active", 0) == 0


class TestSqlite:
    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "kv.sqlite3"
        with SqliteStore(path) as store:
            store.set("a", {"n": 1})
        with SqliteStore(path) as store:
            assert store.get("a") == {"n": 1}

    def test_corrupt_document_reads_as_missing(self, sqlite_store):
        sqlite_store.set("a", {"n": 1})
        with sqlite_store.transaction() as cur:
            cur.execute("UPDATE kv_documents SET value_json='{not json' WHERE key='a';")
        assert sqlite_store.get("a") is None
        assert sqlite_store.scan("") == {}

    def test_revision_increments_on_write(self, sqlite_store):
        sqlite_store.set("a", {"n": 1})
        sqlite_store.update("a", lambda cur: {"n": cur["n"] + 1})
        with sqlite_store.transaction() as cur:
            row = cur.execute("SELECT revision FROM kv_documents WHERE key='a';").fetchone()
        assert row["revision"] == 2

    def test_failed_update_rolls_back(self, sqlite_store):
        sqlite_store.set("a", {"n": 1})

        def boom(cur):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            sqlite_store.update("a", boom)
        assert sqlite_store.get("a") == {"n": 1}

    def test_replace_prefixes_rolls_back_on_write_failure(self, sqlite_store):
        sqlite_store.set("r:a", {"n": 1})
        real_write = SqliteStore._write
        written = []

        def flaky_write(self, cur, key, encoded, now):
            written.append(key)
            if len(written) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return real_write(self, cur, key, encoded, now)

        with patch.object(SqliteStore, "_write", flaky_write):
            with pytest.raises(StoreError):
                sqlite_store.replace_prefixes(["r:"], {"r:b": {"n": 2}, "r:c": {"n": 3}})

        assert written == ["r:b", "r:c"]
        assert sqlite_store.scan("r:") == {"r:a": {"n": 1}}


class TestMemory:
    def test_returned_documents_are_copies(self):
        store = MemoryStore()
        store.set("a", {"items": [1]})
        doc = store.get("a")
        doc["items"].append(2)
        assert store.get("a") == {"items": [1]}


def _pipeline_client(pipe):
    client = MagicMock()
    client.pipeline.return_value.__enter__.return_value = pipe
    client.pipeline.return_value.__exit__.return_value = False
    return client


class TestRedis:
    def test_get_decodes_json(self):
        client = MagicMock()
        client.get.return_value = '{"n": 3}'
        store = RedisStore(client=client)
        assert store.get("k") == {"n": 3}
        client.get.assert_called_once_with("k")

    def test_update_uses_watch_multi(self):
        pipe = MagicMock()
        pipe.get.return_value = None
        store = RedisStore(client=_pipeline_client(pipe))

        assert store.update("k", lambda cur: {"n": 1}) == {"n": 1}
        pipe.watch.assert_called_once_with("k")
        pipe.multi.assert_called_once()
        pipe.set.assert_called_once_with("k", json.dumps({"n": 1}, separators=(",", ":")))
        pipe.execute.assert_called_once()

    def test_update_retries_on_watch_error(self):
        pipe = MagicMock()
        pipe.get.side_effect = [None, '{"n":1}']
        pipe.execute.side_effect = [redis.WatchError(), ["OK"]]
        store = RedisStore(client=_pipeline_client(pipe))

        result = store.update("k", lambda cur: {"n": (cur or {}).get("n", 0) + 1})
        assert result == {"n": 2}
        assert pipe.execute.call_count == 2

    def test_update_gives_up_after_max_retries(self):
        pipe = MagicMock()
        pipe.get.return_value = None
        pipe.execute.side_effect = redis.WatchError()
        store = RedisStore(client=_pipeline_client(pipe), max_retries=3)

        with pytest.raises(StoreConflictError):
            store.update("k", lambda cur: {"n": 1})
        assert pipe.execute.call_count == 3

    def test_scan_escapes_glob_characters(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["p:[x]1"])
        client.mget.return_value = ['{"v":1}']
        store = RedisStore(client=client)

        assert store.scan("p:[x]") == {"p:[x]1": {"v": 1}}
        assert client.scan_iter.call_args.kwargs["match"] == "p:\\[x\\]*"

    def test_redis_errors_become_store_errors(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        store = RedisStore(client=client)
        with pytest.raises(StoreError):
            store.get("k")

    def test_count_members_prunes_then_counts(self):
        pipe = MagicMock()
        pipe.execute.return_value = [1, 4]
        client = MagicMock()
        client.pipeline.return_value = pipe
        store = RedisStore(client=client)

        assert store.count_members("active", 1000) == 4
        pipe.zremrangebyscore.assert_called_once_with("active", "-inf", "(1000")

    def test_replace_prefixes_is_one_multi_block(self):
        pipe = MagicMock()
        client = _pipeline_client(pipe)
        client.scan_iter.side_effect = lambda match, count: iter({"r:*": ["r:a", "r:b"], "s:*": ["s:x"]}[match])
        store = RedisStore(client=client)

        assert store.replace_prefixes(["r:", "s:"], {"r:c": {"n": 1}}) == 3
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.delete.assert_called_once_with("r:a", "r:b", "s:x")
        pipe.mset.assert_called_once_with({"r:c": '{"n":1}'})
        pipe.execute.assert_called_once()
        client.delete.assert_not_called()


class TestBuildStore:
    def test_memory_backend_is_not_connected(self):
        handle = build_store(Settings(store_backend="memory"))
        assert handle.store.name == "memory"
        assert handle.fallback is False
        assert handle.connected is False

    def test_sqlite_backend(self, tmp_path):
        handle = build_store(Settings(store_backend="sqlite", db_path=str(tmp_path / "x.sqlite3")))
        try:
            assert handle.store.name == "sqlite"
            assert handle.connected is True
        finally:
            handle.store.close()

    def test_unreachable_redis_falls_back_to_memory(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch("kvstore.redis_store.redis.Redis.from_url", return_value=client):
            handle = build_store(Settings(store_backend="redis", redis_url="redis://nowhere:6379/0"))

        assert handle.fallback is True
        assert handle.requested_backend == "redis"
        assert isinstance(handle.store, MemoryStore)
        assert handle.connected is False
