"""
Read-cache backends.

Cached values are derived aggregates (list pages, yearly dashboard numbers)
and are always reconstructible from the database, so reads and writes
degrade to a miss / no-op when Redis is unreachable. Deletes raise instead,
so an invalidation that did not happen is reported.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


class NullCache:
    """Cache backend used when no Redis URL is configured."""

    is_available = False

    def get_json(self, key: str) -> Optional[Any]:
        return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return False

    def delete_pattern(self, pattern: str) -> int:
        return 0

    def ping(self) -> bool:
        return False


class RedisCache:
    """
    Redis wrapper with prefixed keys and a small circuit breaker.

    Reads swallow failures and report a miss. Deletes raise, also while the
    cache is unreachable, because the invalidation coordinator is the one
    that decides how to log them and whether the invalidation succeeded.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "backoffice:",
        default_ttl: int = 300,
        failure_threshold: int = 5,
        failure_window: float = 30.0,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._client: Optional[redis.Redis] = None
        self._available = False

        self._failure_count = 0
        self._failure_threshold = failure_threshold
        self._failure_window = failure_window
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info("Redis cache connected: %s", self._redis_url)
            return True
        except redis.RedisError as exc:
            logger.warning("Redis connection failed (caching disabled): %s", exc)
            self._available = False
            return False

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now
        self._failure_count += 1
        if self._failure_count >= self._failure_threshold:
            if now - self._first_failure_time <= self._failure_window:
                self._circuit_open = True
                logger.error("Redis circuit breaker open after %d failures", self._failure_count)

    def _require_circuit(self) -> None:
        if not self._check_circuit():
            raise redis.ConnectionError("Redis cache unavailable")

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get_json(self, key: str) -> Optional[Any]:
        if not self._check_circuit():
            return None
        try:
            raw = self._client.get(self._make_key(key))
        except redis.RedisError as exc:
            self._record_failure()
            logger.debug("Redis GET failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._check_circuit():
            return False
        try:
            self._client.set(
                self._make_key(key),
                json.dumps(value, default=str),
                ex=ttl or self._default_ttl,
            )
            return True
        except redis.RedisError as exc:
            self._record_failure()
            logger.debug("Redis SET failed for %s: %s", key, exc)
            return False

    def delete(self, key: str) -> bool:
        self._require_circuit()
        try:
            self._client.delete(self._make_key(key))
            return True
        except redis.RedisError:
            self._record_failure()
            raise

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns count deleted."""
        self._require_circuit()
        try:
            keys = list(self._client.scan_iter(match=self._make_key(pattern), count=1000))
            if keys:
                return self._client.delete(*keys)
            return 0
        except redis.RedisError:
            self._record_failure()
            raise

    def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
