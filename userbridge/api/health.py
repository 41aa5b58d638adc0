"""Health check endpoints."""
from flask import Blueprint, current_app
from sqlalchemy import text

from userbridge.api.services import services

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Readiness check: the local store must answer."""
    try:
        with services().database.session() as session:
            session.execute(text("SELECT 1"))
    except Exception as exc:
        current_app.logger.warning("Readiness check failed: %s", exc)
        return ("database unavailable", 503, {"Content-Type": "text/plain"})
    return ("ready", 200, {"Content-Type": "text/plain"})
