# backend/backoffice/routes/system.py
"""
System health and version endpoints.

Reports the state of the database and of the read cache. The cache is
optional: an unreachable Redis makes the service "degraded", never
"unhealthy", because every cached value can be recomputed.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db, get_cache
from ..models import Document, DocumentSequence
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and the tables the write path depends on.
    """
    start_time = time.time()
    try:
        document_count = db.session.query(Document).count()
        counter_count = db.session.query(DocumentSequence).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "documents": document_count,
                "sequence_counters": counter_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_cache_health() -> dict:
    start_time = time.time()
    cache = get_cache()

    if not current_app.config.get("REDIS_URL"):
        return {"status": "healthy", "details": {"enabled": False}}

    reachable = cache.ping()
    elapsed_ms = (time.time() - start_time) * 1000
    if not reachable:
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "warning": "Cache unreachable; serving reads from the database",
        }
    return {
        "status": "healthy",
        "latency_ms": round(elapsed_ms, 2),
        "details": {"enabled": True},
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (cache down)
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    cache_health = check_cache_health()

    all_checks = [database_health, cache_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "cache": cache_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "sequence_strategy": current_app.config.get("SEQUENCE_STRATEGY"),
        "server_time": utcnow().isoformat() + "Z",
    }
