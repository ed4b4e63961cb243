# Overview: Flask extension instances for database, migrations, and the read cache.

from flask import current_app
from sqlalchemy import event
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .cache import NullCache, RedisCache

db = SQLAlchemy()
migrate = Migrate()

CACHE_EXTENSION_KEY = "backoffice_cache"


def init_cache(app):
    """Attach the read-cache backend; falls back to NullCache without REDIS_URL."""
    redis_url = app.config.get("REDIS_URL")
    if redis_url:
        cache = RedisCache(
            redis_url=redis_url,
            prefix=app.config.get("CACHE_KEY_PREFIX", "backoffice:"),
            default_ttl=app.config.get("CACHE_TTL_SECONDS", 300),
        )
        cache.connect()
    else:
        cache = NullCache()
    app.extensions[CACHE_EXTENSION_KEY] = cache
    return cache


def get_cache():
    return current_app.extensions[CACHE_EXTENSION_KEY]


def configure_sqlite_engine(engine) -> None:
    """
    Start every transaction on a file-backed SQLite database with BEGIN IMMEDIATE.

    pysqlite's deferred BEGIN lets two writers both hold a read lock and then
    fail the upgrade to a write lock with "database is locked" without waiting
    out the busy timeout. Taking the write lock first makes concurrent writers
    queue instead. In-memory databases share one connection and are skipped.
    """
    if engine.dialect.name != "sqlite" or engine.url.database in (None, "", ":memory:"):
        return

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
