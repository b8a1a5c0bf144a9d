"""
Fire-Proofing Tracker
Flask application factory.

Usage:
    from tracker import create_app
    app = create_app()           # APP_ENV or "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from tracker.config import config
from tracker.models import db
from tracker.middleware.diagnostics import run_startup_diagnostics
from tracker.middleware.logging_config import configure_logging
from tracker.middleware.rate_limiter import init_rate_limits
from tracker.middleware.timing import init_request_timing
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

APP_NAME = "Fire-Proofing Tracker"
WRITE_METHODS = ("POST", "PUT", "PATCH")


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Element and job deletes cascade through FKs; SQLite needs them switched on."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # limits are attached per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def _init_cors(app):
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _init_request_guard(app):
    """Reject oversized bodies and non-JSON writes to the API before routing."""
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)

    @app.before_request
    def _guard_request():
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and request.content_length and request.content_length > limit:
            abort(413)
        if (request.method in WRITE_METHODS and request.path.startswith("/api/")
                and request.data and "json" not in (request.content_type or "")):
            abort(415)


def _register_blueprints(app):
    from tracker.blueprints.element_bp import element_bp
    from tracker.blueprints.grouping_bp import grouping_bp
    from tracker.blueprints.health_bp import health_bp
    from tracker.blueprints.job_bp import job_bp
    from tracker.blueprints.project_bp import project_bp

    for bp in (project_bp, element_bp, job_bp, grouping_bp, health_bp):
        app.register_blueprint(bp)


def _register_app_errors(app):
    """JSON bodies for errors raised outside any blueprint handler."""

    @app.errorhandler(404)
    def not_found(e):
        resp, status = api_error(E.NOT_FOUND, "Not found")
        body = resp.get_json()
        body["path"] = request.path
        return body, status

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, "Content-Type must be application/json", status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("seed-workflow-templates")
    def seed_workflow_templates_cmd():
        """Copy the built-in workflows into the database so they can be edited."""
        from tracker.services.workflow_templates import seed_default_templates
        added = seed_default_templates()
        db.session.commit()
        logger.info("Seeded %s workflow template(s)", added)


def create_app(config_name=None):
    """Build the app for *config_name* ("development", "testing" or "production")."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    _init_cors(app)
    init_request_timing(app)
    _init_request_guard(app)

    # Model modules must be imported before create_all sees the metadata.
    from tracker.models import element, job, project, workflow_template  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            logger.warning("Schema creation skipped: %s", exc)

    _register_blueprints(app)
    _register_cli(app)
    _register_app_errors(app)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": APP_NAME}

    run_startup_diagnostics(app)
    init_rate_limits(app, limiter)  # needs the blueprints registered
    return app
