# Overview: Yearly per-kind document counts and totals for the dashboard, with read-through caching.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..models import Document
from .cache_service import CacheKeys

logger = logging.getLogger(__name__)


def yearly_summary(session, year: int) -> dict:
    """Counts and totals of active documents issued in `year`, per kind and status."""
    rows = (
        session.query(
            Document.kind,
            Document.status,
            func.count(Document.id),
            func.coalesce(func.sum(Document.total_cents), 0),
        )
        .filter(Document.issued_year == year, Document.active_filter())
        .group_by(Document.kind, Document.status)
        .all()
    )

    kinds: dict[str, dict] = {}
    for kind, status, count, total in rows:
        entry = kinds.setdefault(kind, {"count": 0, "total_cents": 0, "by_status": {}})
        entry["count"] += count
        entry["total_cents"] += int(total)
        entry["by_status"][status] = {"count": count, "total_cents": int(total)}

    return {"year": year, "kinds": kinds}


def cached_yearly_summary(session, cache, year: int) -> tuple[dict, bool]:
    """
    yearly_summary() through the read cache.

    Returns (summary, from_cache). Writers drop the key for the year they
    touched, so a hit is at most one TTL stale if that drop failed.
    """
    key = CacheKeys.dashboard_stats(year)
    cached = cache.get_json(key)
    if cached is not None:
        return cached, True

    summary = yearly_summary(session, year)
    cache.set_json(key, summary)
    logger.debug("Dashboard stats for %s computed and cached", year)
    return summary, False
