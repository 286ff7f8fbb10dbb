from __future__ import annotations

from pathlib import Path

from tools import check_no_os_time


def test_repository_reads_time_through_clock():
    root = Path(__file__).resolve().parents[1]
    assert check_no_os_time.find_violations(root) == []


def test_detects_direct_clock_reads(tmp_path):
    (tmp_path / "bad.py").write_text("import time\nstamp = time.time()\n", encoding="utf-8")
    (tmp_path / "clock.py").write_text("import datetime\nnow = datetime.datetime.now()\n", encoding="utf-8")
    hits = check_no_os_time.find_violations(tmp_path)
    assert [(str(rel), ln) for rel, ln, _, _ in hits] == [("bad.py", 2)]
    assert check_no_os_time.main(tmp_path) == 1
