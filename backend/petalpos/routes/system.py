# backend/petalpos/routes/system.py
"""Health endpoint for deployment checks."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


@system_bp.get("/api/health")
def health():
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        database = {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}
        status_code = 200
    except Exception as e:
        current_app.logger.exception("Database health check failed")
        database = {"status": "unhealthy", "error": str(e)}
        status_code = 503

    return jsonify({
        "status": database["status"],
        "checked_at": to_utc_z(utcnow()),
        "database": database,
    }), status_code
