from __future__ import annotations

import datetime as _dt

import pytest

import clock
from analytics.repo import AnalyticsRepo
from kvstore import MemoryStore, SqliteStore

FIXED_NOW = _dt.datetime(2026, 3, 15, 12, 0, 0, tzinfo=_dt.timezone.utc)

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Settable clock installed through clock.set_clock()."""

    def __init__(self, start: _dt.datetime):
        self.now = start

    def __call__(self) -> _dt.datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + _dt.timedelta(**kwargs)


@pytest.fixture
def fake_clock():
    fc = FakeClock(FIXED_NOW)
    clock.set_clock(fc)
    yield fc
    clock.reset_clock()


@pytest.fixture
def memory_repo():
    return AnalyticsRepo(MemoryStore(), prefix="test:")


@pytest.fixture
def sqlite_store(tmp_path):
    store = SqliteStore(tmp_path / "kv.sqlite3")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = SqliteStore(tmp_path / "kv.sqlite3")
    yield store
    store.close()


@pytest.fixture
def app_env(monkeypatch, tmp_path):
    monkeypatch.setenv("RATEDEM_STORE_BACKEND", "sqlite")
    monkeypatch.setenv("RATEDEM_DB_PATH", str(tmp_path / "ratedem.sqlite3"))
    monkeypatch.setenv("RATEDEM_BLOB_BACKEND", "local")
    monkeypatch.setenv("RATEDEM_BLOB_DIR", str(tmp_path / "blobs"))
    monkeypatch.setenv("RATEDEM_ADMIN_TOKEN", ADMIN_TOKEN)
    monkeypatch.setenv("RATEDEM_BACKUP_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("RATEDEM_LOG_LEVEL", "WARNING")
    return tmp_path


@pytest.fixture
def client(app_env, fake_clock):
    from fastapi.testclient import TestClient

    from app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
