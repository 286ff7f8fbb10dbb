from __future__ import annotations

"""Fail-fast grep to prevent direct OS clock reads.

Every timestamp (lastUpdated, velocity windows, presence TTLs, backup times)
must come from clock.py so tests can pin the clock.

Run:
  python -m tools.check_no_os_time

Exit code:
  0 - clean
  1 - forbidden pattern found
"""

import os
import re
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

FORBIDDEN_PATTERNS = [
    r"\bdate\.today\s*\(",
    r"\bdatetime\.now\s*\(",
    r"\bdatetime\.utcnow\s*\(",
    r"\b_dt\.datetime\.now\s*\(",
    r"\b_dt\.datetime\.utcnow\s*\(",
    r"\btime\.time\s*\(",
]

EXCLUDE_DIRS = {
    ".git",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    "tests",
}

EXCLUDE_FILES = {
    # The clock itself.
    "clock.py",
    "check_no_os_time.py",
}


def iter_py_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dn = Path(dirpath)
        dirnames[:] = [d for d in dirnames if d not in EXCLUDE_DIRS]
        for fn in filenames:
            if not fn.endswith(".py") or fn in EXCLUDE_FILES:
                continue
            yield dn / fn


def find_violations(root: Path) -> List[Tuple[Path, int, str, str]]:
    compiled = [re.compile(p) for p in FORBIDDEN_PATTERNS]
    hits = []
    for fp in iter_py_files(root):
        try:
            text = fp.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        for i, line in enumerate(text.splitlines(), start=1):
            for rx in compiled:
                if rx.search(line):
                    hits.append((fp.relative_to(root), i, line.strip(), rx.pattern))
    return hits


def main(root: Optional[Path] = None) -> int:
    base = root or Path(__file__).resolve().parents[1]
    hits = find_violations(base)
    if not hits:
        print("[OK] No direct OS clock usage found.")
        return 0

    print("[FAIL] Direct OS clock usage found:\n")
    for rel, ln, line, pat in hits:
        print(f"- {rel}:{ln}: {line}")
        print(f"  matched: {pat}")
    print("\nFix: read the time through clock.py (now_utc / now_iso / now_ms).")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
