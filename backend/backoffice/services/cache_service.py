# Overview: Cache keys for derived read data and post-commit invalidation.

"""
Cache Invalidation Coordinator

Keys are plain strings derived from (kind, year) and do not depend on the
cache backend. Writers call invalidate() AFTER their transaction commits;
invalidation is not part of the write's atomicity. Failures only make cached
reads stale until the TTL expires, so they are logged and swallowed.
"""

from __future__ import annotations

import logging

from ..kinds import get_kind

logger = logging.getLogger(__name__)


class CacheKeys:
    """Deterministic cache key builders."""

    @staticmethod
    def list_page(kind: str, *, status: str | None, include_deleted: bool, sort: str, page: int, page_size: int) -> str:
        scope = "all" if include_deleted else "active"
        return f"{kind}:list:{status or 'all'}:{scope}:{sort}:{page}:{page_size}"

    @staticmethod
    def list_pattern(kind: str) -> str:
        return f"{kind}:list:*"

    @staticmethod
    def dashboard_stats(year: int) -> str:
        return f"dashboard:stats:{year}"

    DASHBOARD_STATS_PATTERN = "dashboard:stats:*"


def invalidation_targets(kind: str, affected_year: int | None = None) -> tuple[list[str], list[str]]:
    """
    Keys and patterns to drop after a write to a document of `kind`.

    Returns (exact_keys, patterns). Without a year every yearly summary is
    dropped, since any of them may include the document.
    """
    kind = get_kind(kind).name
    keys: list[str] = []
    patterns = [CacheKeys.list_pattern(kind)]
    if affected_year is not None:
        keys.append(CacheKeys.dashboard_stats(affected_year))
    else:
        patterns.append(CacheKeys.DASHBOARD_STATS_PATTERN)
    return keys, patterns


class CacheInvalidationCoordinator:
    def __init__(self, cache):
        self.cache = cache

    def invalidate(self, kind: str, affected_year: int | None = None) -> bool:
        """
        Drop cached reads for (kind, year). Safe to call repeatedly.

        Returns False if any delete failed; never raises.
        """
        try:
            keys, patterns = invalidation_targets(kind, affected_year)
        except KeyError:
            logger.warning("Cache invalidation skipped for unknown kind %r", kind)
            return False

        ok = True
        for key in keys:
            try:
                self.cache.delete(key)
            except Exception as exc:
                ok = False
                logger.warning("Cache invalidation failed for key %s: %s", key, exc)
        for pattern in patterns:
            try:
                self.cache.delete_pattern(pattern)
            except Exception as exc:
                ok = False
                logger.warning("Cache invalidation failed for pattern %s: %s", pattern, exc)
        return ok
