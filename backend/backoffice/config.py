# backend/backoffice/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Read cache. Caching is disabled entirely when REDIS_URL is empty.
    REDIS_URL = os.environ.get("REDIS_URL", "")
    CACHE_KEY_PREFIX = os.environ.get("CACHE_KEY_PREFIX", "backoffice:")
    CACHE_TTL_SECONDS = _int_env("CACHE_TTL_SECONDS", 300)

    # "counter" uses the document_sequences table; "scan" derives the next
    # number from the highest existing display id.
    SEQUENCE_STRATEGY = os.environ.get("SEQUENCE_STRATEGY", "counter")
    SEQUENCE_MAX_ATTEMPTS = _int_env("SEQUENCE_MAX_ATTEMPTS", 3)

    # None means the " 02", " 03", ... suffix search is unbounded.
    NAME_SUFFIX_LIMIT = _int_env("NAME_SUFFIX_LIMIT", None)

    DEFAULT_PAGE_SIZE = _int_env("DEFAULT_PAGE_SIZE", 25)
    MAX_PAGE_SIZE = _int_env("MAX_PAGE_SIZE", 100)

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    }
