# Overview: Locking and retry helpers shared by the document services.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking and force a fresh read of the row.

    `populate_existing()` makes the query overwrite any copy already in the
    session's identity map, so the caller sees the committed state as of this
    statement rather than what was loaded earlier in the request.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (writers are serialized by the
    database lock instead), but other DBs will honor it.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient lock failures.

    Retries on OperationalError (deadlocks, "database is locked"). The session
    is rolled back before each retry, so `func` must redo all of its work.
    Optimistic-lock conflicts are NOT retried here: they mean the caller's view
    is stale and must be surfaced, not replayed.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning("Transient database error (attempt %d/%d), retrying in %.2fs: %s",
                           attempt + 1, attempts, delay, exc.orig)
            time.sleep(delay)
