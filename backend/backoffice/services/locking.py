# Overview: Optimistic-lock check on the document modified_at version token.

from __future__ import annotations

import logging
from datetime import datetime, timezone

from .errors import StaleWriteConflict

logger = logging.getLogger(__name__)


def _as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class OptimisticLockGuard:
    """
    Rejects writes based on a version of the document that is no longer current.

    The version token is the document's `modified_at`. A missing client token
    means the caller opted out of the check. Equal timestamps pass: two writes
    landing on the same storage tick are still serialized by the database, and
    the version-conditioned UPDATE catches the second one if it raced.
    """

    @staticmethod
    def is_stale(client_known_modified_at: datetime, current_modified_at: datetime) -> bool:
        return _as_utc_naive(client_known_modified_at) < _as_utc_naive(current_modified_at)

    @classmethod
    def check(cls, client_known_modified_at: datetime | None, current_modified_at: datetime | None) -> None:
        if client_known_modified_at is None or current_modified_at is None:
            return
        if cls.is_stale(client_known_modified_at, current_modified_at):
            logger.info(
                "Rejecting stale write: client saw %s, current version is %s",
                client_known_modified_at, current_modified_at,
            )
            raise StaleWriteConflict(details={
                "last_known_modified_at": _as_utc_naive(client_known_modified_at).isoformat(),
                "current_modified_at": _as_utc_naive(current_modified_at).isoformat(),
            })
