from __future__ import annotations

import pytest

from analytics import config as a_cfg


def _rate(client, official_id="president", rating=5):
    return client.post(
        "/api/analytics/universal",
        json={"type": "rating", "data": {"officialId": official_id, "rating": rating}},
    )


class TestHealth:
    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["store"] == "sqlite"
        assert body["connected"] is True
        assert body["fallback"] is False


class TestShares:
    def test_track_and_list(self, client):
        r = client.post("/api/analytics", json={"platform": "twitter"})
        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["data"]["count"] == 1
        assert body["version"] == a_cfg.SNAPSHOT_VERSION

        listing = client.get("/api/analytics").json()
        counts = {s["platform"]: s["count"] for s in listing["data"]}
        assert counts["twitter"] == 1
        assert set(counts) == set(a_cfg.SHARE_PLATFORMS)

    def test_invalid_platform(self, client):
        r = client.post("/api/analytics", json={"platform": "myspace"})
        assert r.status_code == 400
        body = r.json()
        assert "error" in body
        assert body["validPlatforms"] == list(a_cfg.SHARE_PLATFORMS)

    def test_missing_platform(self, client):
        r = client.post("/api/analytics", json={})
        assert r.status_code == 400

    def test_conditional_get(self, client, fake_clock):
        client.post("/api/analytics", json={"platform": "copy"})
        first = client.get("/api/analytics")
        last = first.json()["lastUpdated"]
        assert "ETag" in first.headers
        assert "Last-Modified" in first.headers

        r = client.get("/api/analytics", params={"since": last})
        assert r.status_code == 304

        fake_clock.advance(seconds=5)
        client.post("/api/analytics", json={"platform": "copy"})
        assert client.get("/api/analytics", params={"since": last}).status_code == 200

    def test_invalid_since_never_yields_304(self, client):
        client.post("/api/analytics", json={"platform": "copy"})
        assert client.get("/api/analytics", params={"since": "yesterday"}).status_code == 200

    def test_summary(self, client):
        for _ in range(3):
            client.post("/api/analytics", json={"platform": "whatsapp"})
        client.post("/api/analytics", json={"platform": "twitter"})
        data = client.get("/api/analytics/summary").json()["data"]
        assert data["totalShares"] == 4
        assert data["mostPopular"] == "whatsapp"
        assert data["trending"] == ["whatsapp"]
        assert data["isConnected"] is True


class TestUniversal:
    def test_rating_updates_snapshot(self, client):
        _rate(client, "president", 5)
        r = _rate(client, "president", 3)
        assert r.status_code == 200
        snap = r.json()["data"]
        leader = snap["leaderRatings"]["president"]
        assert leader["averageRating"] == 4.0
        assert leader["totalRatings"] == 2
        assert snap["totalRatings"] == 2

        got = client.get("/api/analytics/universal").json()["data"]
        assert got["totalRatings"] == 2
        assert got["serverTime"] == "2026-03-15T12:00:00.000Z"

    def test_share_via_universal(self, client):
        r = client.post("/api/analytics/universal", json={"type": "share", "data": {"platform": "native"}})
        assert r.status_code == 200
        assert r.json()["data"]["totalShares"] == 1

    @pytest.mark.parametrize(
        "body,status",
        [
            ({"type": "vote", "data": {}}, 400),
            ({}, 400),
            ({"type": "rating", "data": {"officialId": "president", "rating": 7}}, 400),
            ({"type": "rating", "data": {"officialId": "president"}}, 400),
            ({"type": "rating", "data": {"rating": 3}}, 400),
            ({"type": "rating", "data": {"officialId": "king", "rating": 3}}, 404),
            ({"type": "share", "data": {"platform": "fax"}}, 400),
        ],
    )
    def test_invalid_events(self, client, body, status):
        assert client.post("/api/analytics/universal", json=body).status_code == status

    def test_conditional_get(self, client):
        _rate(client)
        last = client.get("/api/analytics/universal").json()["lastUpdated"]
        assert client.get("/api/analytics/universal", params={"since": last}).status_code == 304
        assert client.get("/api/analytics/universal", params={"since": "2020-01-01T00:00:00Z"}).status_code == 200


class TestLeaders:
    def test_unrated_leader_reads_zero(self, client):
        data = client.get("/api/leaders/health/analytics").json()["data"]
        assert data["officialId"] == "health"
        assert data["totalRatings"] == 0

    def test_rated_leader(self, client):
        _rate(client, "health", 4)
        data = client.get("/api/leaders/health/analytics").json()["data"]
        assert data["averageRating"] == 4.0
        assert data["performanceMetrics"]["approvalRating"] == 80

    def test_unknown_leader(self, client):
        assert client.get("/api/leaders/king/analytics").status_code == 404


class TestPresence:
    def test_enter_and_leave(self, client):
        assert client.get("/api/analytics/active", params={"user": "a"}).json() == {"active": 1}
        assert client.get("/api/analytics/active", params={"user": "b"}).json() == {"active": 2}
        # Leaving is a visitor call and needs no admin token.
        assert client.delete("/api/analytics/active", params={"user": "a"}).json() == {"active": 1}

    def test_missing_user(self, client):
        assert client.get("/api/analytics/active").status_code == 400
        assert client.delete("/api/analytics/active").status_code == 400


class TestStreamRelay:
    def test_relay_known_type(self, client):
        r = client.post("/api/analytics/stream", json={"type": "rating", "data": {"officialId": "vp"}})
        assert r.status_code == 204

    def test_relay_unknown_type(self, client):
        assert client.post("/api/analytics/stream", json={"type": "reset", "data": {}}).status_code == 400


class TestOfficials:
    def test_list_and_filter(self, client):
        body = client.get("/api/officials").json()
        assert len(body["data"]) == 26
        assert body["categories"][0] == "Executive"
        security = client.get("/api/officials", params={"category": "Security"}).json()["data"]
        assert {o["category"] for o in security} == {"Security"}

    def test_get_one(self, client):
        assert client.get("/api/officials/vp").json()["data"]["fullName"] == "Kashim Shettima"
        assert client.get("/api/officials/king").status_code == 404

    def test_image_override(self, client, admin_headers):
        url = "https://cdn.example.com/vp.jpg"
        r = client.put("/api/officials/vp/image", json={"url": url}, headers=admin_headers)
        assert r.status_code == 200
        assert client.get("/api/officials/vp").json()["data"]["image"] == url

        bad = client.put("/api/officials/vp/image", json={"url": "javascript:x"}, headers=admin_headers)
        assert bad.status_code == 400

        assert client.delete("/api/officials/vp/image", headers=admin_headers).status_code == 200
        assert client.get("/api/officials/vp").json()["data"]["image"] != url


class TestAdminGuard:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("DELETE", "/api/analytics"),
            ("DELETE", "/api/analytics/universal"),
            ("GET", "/api/admin/backup"),
            ("POST", "/api/admin/backup"),
            ("PUT", "/api/officials/vp/image"),
            ("DELETE", "/api/officials/vp/image"),
        ],
    )
    def test_requires_token(self, client, method, path):
        assert client.request(method, path).status_code == 401
        assert client.request(method, path, headers={"X-Admin-Token": "wrong"}).status_code == 401
        assert client.request(method, path, headers={"Authorization": "Bearer wrong"}).status_code == 401

    def test_bearer_token_accepted(self, client):
        r = client.get("/api/admin/backup", headers={"Authorization": "Bearer test-admin-token"})
        assert r.status_code == 200

    def test_no_configured_token_rejects_everything(self, app_env, fake_clock, monkeypatch):
        from fastapi.testclient import TestClient

        from app.main import app

        monkeypatch.setenv("RATEDEM_ADMIN_TOKEN", "")
        with TestClient(app) as c:
            assert c.delete("/api/analytics", headers={"X-Admin-Token": ""}).status_code == 401
            assert c.get("/api/admin/backup", headers={"X-Admin-Token": "anything"}).status_code == 401

    def test_reset_shares(self, client, admin_headers):
        client.post("/api/analytics", json={"platform": "twitter"})
        _rate(client)
        r = client.delete("/api/analytics", headers=admin_headers)
        assert r.status_code == 200
        assert all(s["count"] == 0 for s in r.json()["data"])
        assert client.get("/api/analytics/universal").json()["data"]["totalRatings"] == 1

    def test_reset_all(self, client, admin_headers):
        client.post("/api/analytics", json={"platform": "twitter"})
        _rate(client)
        snap = client.delete("/api/analytics/universal", headers=admin_headers).json()["data"]
        assert snap["totalRatings"] == 0
        assert snap["totalShares"] == 0


class TestAdminBackup:
    def test_backup_info_restore(self, client, admin_headers):
        _rate(client, "works", 2)
        client.post("/api/analytics", json={"platform": "facebook"})

        r = client.post("/api/admin/backup", json={"action": "backup"}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["data"]["totalRatings"] == 1

        info = client.get("/api/admin/backup", headers=admin_headers).json()["data"]
        assert info["hasBackup"] is True

        client.delete("/api/analytics/universal", headers=admin_headers)
        r = client.post("/api/admin/backup", json={"action": "restore"}, headers=admin_headers)
        assert r.status_code == 200
        snap = client.get("/api/analytics/universal").json()["data"]
        assert snap["totalRatings"] == 1
        assert snap["totalShares"] == 1

    def test_restore_is_visible_to_earlier_pollers(self, client, admin_headers, fake_clock):
        _rate(client, "works", 4)
        client.post("/api/admin/backup", json={"action": "backup"}, headers=admin_headers)
        fake_clock.advance(minutes=10)
        client.delete("/api/analytics/universal", headers=admin_headers)
        since = client.get("/api/analytics/universal").json()["lastUpdated"]

        r = client.post("/api/admin/backup", json={"action": "restore"}, headers=admin_headers)
        assert r.json()["data"]["backupLastUpdated"] == "2026-03-15T12:00:00.000Z"

        r = client.get("/api/analytics/universal", params={"since": since})
        assert r.status_code == 200
        assert r.json()["data"]["totalRatings"] == 1

    def test_invalid_action(self, client, admin_headers):
        r = client.post("/api/admin/backup", json={"action": "explode"}, headers=admin_headers)
        assert r.status_code == 400

    def test_restore_without_backup(self, client, admin_headers):
        r = client.post("/api/admin/backup", json={"action": "restore"}, headers=admin_headers)
        assert r.status_code == 404
