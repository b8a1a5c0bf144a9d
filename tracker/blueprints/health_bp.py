"""
Health endpoints.

    GET /api/v1/health/ready  → 200 while the process serves requests
    GET /api/v1/health/live   → per-dependency status; 503 when the store is down

Only the database decides the overall verdict. Redis and the group cache
are reported but degrade to in-process fallbacks.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from tracker.models import db
from tracker.services import cache_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _timed(probe):
    """Run *probe*; return ``{"status": "ok", "latency_ms": ...}`` or an error entry."""
    started = time.perf_counter()
    try:
        probe()
    except Exception as exc:
        logger.warning("Health probe %s failed: %s", probe.__name__, exc)
        return {"status": "error"}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _probe_database():
    db.session.execute(db.text("SELECT 1"))


def _redis_entry():
    url = current_app.config.get("REDIS_URL", "")
    if not url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "detail": "no REDIS_URL configured"}

    def _probe_redis():
        import redis as redis_lib
        redis_lib.from_url(url, socket_timeout=2).ping()

    return _timed(_probe_redis)


def _store_mode():
    if current_app.config.get("DATA_ACCESS_FACTORY") is not None:
        return "custom"
    if current_app.config.get("REMOTE_TRACKER_URL"):
        return "remote"
    return "database"


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {
        "database": _timed(_probe_database),
        "redis": _redis_entry(),
        "cache": cache_service.health_check(),
        "store": {"mode": _store_mode()},
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "env": current_app.config.get("ENV_NAME"),
        "checks": checks,
    }), 200 if healthy else 503
