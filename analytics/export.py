from __future__ import annotations

"""Leader ratings table export (CSV or Excel) for offline reporting."""

import logging
from pathlib import Path
from typing import Any, Dict, List

from officials.catalog import list_officials

from .service import AnalyticsService

logger = logging.getLogger(__name__)


def leader_rating_rows(service: AnalyticsService) -> List[Dict[str, Any]]:
    """One row per official in catalog order; unrated officials read as zeros."""
    rows: List[Dict[str, Any]] = []
    for official in list_officials():
        view = service.get_leader(official.id)
        metrics = view["performanceMetrics"]
        row: Dict[str, Any] = {
            "officialId": official.id,
            "name": official.full_name,
            "position": official.position,
            "category": official.category,
            "averageRating": view["averageRating"],
            "totalRatings": view["totalRatings"],
            "approvalRating": metrics["approvalRating"],
            "trendsUp": metrics["trendsUp"],
            "monthlyChange": metrics["monthlyChange"],
        }
        for k, count in view["ratingDistribution"].items():
            row[f"stars_{k}"] = count
        rows.append(row)
    return rows


def export_leader_ratings(service: AnalyticsService, path: str | Path) -> int:
    """Write the leader ratings table; format follows the file suffix. Returns the row count."""
    import pandas as pd

    p = Path(path)
    rows = leader_rating_rows(service)
    df = pd.DataFrame(rows)
    p.parent.mkdir(parents=True, exist_ok=True)
    suffix = p.suffix.lower()
    if suffix == ".csv":
        df.to_csv(p, index=False)
    elif suffix == ".xlsx":
        df.to_excel(p, index=False)
    else:
        raise ValueError(f"unsupported export type: {suffix or '(none)'} (expected .csv or .xlsx)")
    logger.info("exported %d leader rows to %s", len(rows), p)
    return len(rows)
