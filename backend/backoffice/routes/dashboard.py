# Overview: Flask API route for yearly dashboard numbers.

from flask import Blueprint, current_app, jsonify

from ..extensions import db, get_cache
from ..services.dashboard_service import cached_yearly_summary


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/<int:year>")
def yearly_dashboard_route(year: int):
    """
    Counts and totals of active documents issued in `year`, per kind and status.

    Response:
        {
            "year": 2025,
            "kinds": {"quotation": {"count": 3, "total_cents": ..., "by_status": {...}}},
            "cached": false
        }
    """
    if year < 1 or year > 9999:
        return jsonify({"error": "year must be between 1 and 9999", "code": "VALIDATION_ERROR"}), 400
    try:
        summary, from_cache = cached_yearly_summary(db.session, get_cache(), year)
    except Exception:
        current_app.logger.exception("Failed to build dashboard summary")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
    return jsonify({**summary, "cached": from_cache})
