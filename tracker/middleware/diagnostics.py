"""
Startup diagnostics, run once per process outside testing.

Each check returns ``(status, issue)``; the results are logged as a
single summary line followed by one warning per issue.
"""

import logging
import sys

from flask import Flask

from tracker.models import db

logger = logging.getLogger(__name__)


def _check_database(app):
    uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
    kind = uri.split(":", 1)[0].split("+", 1)[0] or "unknown"
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:
        return f"{kind} FAILED", f"Database unreachable: {exc}"
    return f"{kind} ok", None


def _check_templates(app):
    from tracker.models.workflow_template import WorkflowTemplate
    try:
        stored = WorkflowTemplate.query.filter_by(is_active=True).count()
    except Exception as exc:
        return "unreadable", f"Workflow templates unreadable: {exc}"
    if stored == 0:
        return "built-in only", ("No stored workflow templates; "
                                 "run 'flask seed-workflow-templates' to make them editable")
    return f"{stored} stored", None


def _check_redis(app):
    url = app.config.get("REDIS_URL", "")
    if not url or not url.startswith(("redis://", "rediss://")):
        return "not configured", None
    try:
        import redis as redis_lib
        redis_lib.from_url(url, socket_timeout=2).ping()
    except Exception:
        return "unreachable", "Redis unreachable; rate limits and group cache fall back to memory"
    return "ok", None


CHECKS = (
    ("database", _check_database),
    ("templates", _check_templates),
    ("redis", _check_redis),
)


def run_startup_diagnostics(app: Flask):
    if app.config.get("TESTING"):
        return

    results, issues = {}, []
    with app.app_context():
        for name, check in CHECKS:
            status, issue = check(app)
            results[name] = status
            if issue:
                issues.append(issue)

    logger.info(
        "Startup: python=%s env=%s %s",
        ".".join(str(p) for p in sys.version_info[:3]),
        app.config.get("ENV_NAME", "development"),
        " ".join(f"{name}={status}" for name, status in results.items()),
    )
    for issue in issues:
        logger.warning("Startup issue: %s", issue)
