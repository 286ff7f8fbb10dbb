from __future__ import annotations

import json

import pandas as pd
import pytest

import admin_cli
import state


@pytest.fixture
def cli_env(app_env, fake_clock):
    yield app_env
    state.shutdown_state()


def _seed():
    state.startup_init_state()
    try:
        svc = state.get_analytics()
        svc.track_rating("president", 5)
        svc.track_rating("vp", 2)
        svc.track_share("twitter")
    finally:
        state.shutdown_state()


def test_backup_reset_restore(cli_env, capsys):
    _seed()

    admin_cli.main(["backup"])
    out = json.loads(capsys.readouterr().out)
    assert out["totalRatings"] == 2

    admin_cli.main(["reset", "--scope", "all"])
    assert "totalRatings=0" in capsys.readouterr().out

    admin_cli.main(["restore"])
    restored = json.loads(capsys.readouterr().out)
    assert restored["totalRatings"] == 2
    assert restored["totalShares"] == 1

    admin_cli.main(["info"])
    assert json.loads(capsys.readouterr().out)["hasBackup"] is True


def test_restore_without_backup_exits(cli_env):
    with pytest.raises(SystemExit):
        admin_cli.main(["restore"])


def test_reset_rejects_unknown_scope(cli_env):
    with pytest.raises(SystemExit):
        admin_cli.main(["reset", "--scope", "everything"])


def test_export_csv(cli_env, capsys):
    _seed()
    out_path = cli_env / "out" / "ratings.csv"
    admin_cli.main(["export", "--out", str(out_path)])
    assert "exported 26 officials" in capsys.readouterr().out

    df = pd.read_csv(out_path)
    row = df[df["officialId"] == "president"].iloc[0]
    assert row["totalRatings"] == 1
    assert row["averageRating"] == 5.0
    assert row["stars_5"] == 1


def test_import_images(cli_env, capsys):
    src = cli_env / "images.csv"
    src.write_text("officialId,url\nvp,https://cdn.example.com/vp.jpg\n", encoding="utf-8")
    admin_cli.main(["import-images", "--file", str(src)])
    results = json.loads(capsys.readouterr().out)
    assert results == [{"officialId": "vp", "success": True, "url": "https://cdn.example.com/vp.jpg"}]

    state.startup_init_state()
    assert state.get_officials().get_with_image("vp").image == "https://cdn.example.com/vp.jpg"


def test_init_db(tmp_path, capsys):
    db = tmp_path / "fresh.sqlite3"
    admin_cli.main(["init-db", "--db", str(db)])
    assert db.exists()
    assert "OK: initialized" in capsys.readouterr().out
