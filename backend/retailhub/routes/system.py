# backend/retailhub/routes/system.py
"""
System health endpoint.

Reports database reachability and a few row counts useful when debugging
a deployment (license and activation totals included).
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import License, LicenseActivation, Store, User
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity and basic queries."""
    start_time = time.time()
    try:
        details = {
            "stores": db.session.query(Store).count(),
            "users": db.session.query(User).count(),
            "licenses": db.session.query(License).count(),
            "active_activations": db.session.query(LicenseActivation).filter_by(is_active=True).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Health check.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
