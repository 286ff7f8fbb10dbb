from __future__ import annotations

"""Bulk image-override import from a spreadsheet (CSV or Excel).

Expected columns: officialId, url. Rows are applied one at a time and each gets
its own result entry; one bad row never aborts the rest.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .service import OfficialsService
from .types import InvalidImageUrlError, UnknownOfficialError

logger = logging.getLogger(__name__)

COL_OFFICIAL_ID = "officialId"
COL_URL = "url"


class BulkImportError(ValueError):
    pass


def _read_table(path: Path, sheet_name: Optional[str]):
    import pandas as pd  # local import: only the admin CLI needs pandas

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str, keep_default_na=False)
    if suffix == ".xlsx":
        return pd.read_excel(path, sheet_name=(sheet_name if sheet_name is not None else 0), dtype=str)
    raise BulkImportError(f"unsupported file type: {suffix or '(none)'} (expected .csv or .xlsx)")


def import_image_overrides(
    service: OfficialsService,
    path: str | Path,
    *,
    sheet_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    p = Path(path)
    if not p.is_file():
        raise BulkImportError(f"file not found: {p}")
    df = _read_table(p, sheet_name)
    missing = [c for c in (COL_OFFICIAL_ID, COL_URL) if c not in df.columns]
    if missing:
        raise BulkImportError(f"missing required columns: {missing}")

    results: List[Dict[str, Any]] = []
    for row in df[[COL_OFFICIAL_ID, COL_URL]].fillna("").itertuples(index=False):
        official_id = str(row[0]).strip()
        url = str(row[1]).strip()
        try:
            official = service.set_image_override(official_id, url)
        except (UnknownOfficialError, InvalidImageUrlError) as exc:
            results.append({"officialId": official_id, "success": False, "error": str(exc)})
            continue
        results.append({"officialId": official.id, "success": True, "url": official.image})

    ok = sum(1 for r in results if r["success"])
    logger.info("bulk image import from %s: %d ok, %d failed", p, ok, len(results) - ok)
    return results
