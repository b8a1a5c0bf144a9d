"""Project blueprint.

Endpoint groups:
  CRUD                 GET/POST /api/v1/projects
                       GET/PUT/DELETE /api/v1/projects/<project_id>
  Derived status       GET  /api/v1/projects/<project_id>/status
  Status correction    POST /api/v1/projects/<project_id>/status/correct
  Progress             GET  /api/v1/projects/<project_id>/progress
  Job statistics       GET  /api/v1/projects/<project_id>/job-stats

Stored project status is a cache; /status compares it with the status
derived from the elements and /status/correct rewrites a stale
"completed" to "in_progress".
"""

import logging

from flask import Blueprint, jsonify

from tracker.blueprints import get_store, json_body, paginate_items, register_error_handlers
from tracker.models import db
from tracker.models.project import Project
from tracker.services import cache_service
from tracker.services.element_status import (
    compute_project_progress,
    corrected_project_status,
    count_by_status,
    needs_status_correction,
    reconcile_project_status,
    summarize_job_statuses,
)
from tracker.services.views import load_annotated
from tracker.utils.errors import E, api_error
from tracker.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)

PRIORITIES = ("low", "medium", "high", "critical")
PROJECT_STATUSES = ("pending", "in_progress", "completed")


def _validate_fields(data, partial=False):
    """Return an error response tuple, or None when *data* is acceptable."""
    if not partial or "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            return api_error(E.VALIDATION_REQUIRED, "title is required")
        if len(title) > 200:
            return api_error(E.VALIDATION_INVALID, "title must be ≤ 200 characters")
    if data.get("priority") is not None and data["priority"] not in PRIORITIES:
        return api_error(E.VALIDATION_INVALID, f"priority must be one of {', '.join(PRIORITIES)}")
    if data.get("status") is not None and data["status"] not in PROJECT_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"status must be one of {', '.join(PROJECT_STATUSES)}")
    return None


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = Project.query.order_by(Project.created_at.desc(), Project.id.desc()).all()
    page, total = paginate_items([p.to_dict() for p in projects])
    return jsonify({"items": page, "total": total}), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Body: {title, description?, priority?, location?, status?}"""
    data = json_body()
    err = _validate_fields(data)
    if err:
        return err
    project = Project(
        title=data["title"].strip(),
        description=data.get("description"),
        status=data.get("status") or "pending",
        priority=data.get("priority") or "medium",
        location=data.get("location"),
    )
    db.session.add(project)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Created project %s", project.id, extra={"project_id": project.id})
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    data = json_body()
    err = _validate_fields(data, partial=True)
    if err:
        return err
    for field in ("title", "description", "status", "priority", "location"):
        if field in data:
            value = data[field]
            setattr(project, field, value.strip() if field == "title" else value)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project, err = get_or_404(Project, project_id)
    if err:
        return err
    db.session.delete(project)
    err = db_commit_or_error()
    if err:
        return err
    cache_service.invalidate_project(project_id)
    return jsonify({"message": "Project deleted", "id": project_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Derived status, progress, statistics
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:project_id>/status", methods=["GET"])
def project_status(project_id):
    store = get_store()
    project = store.get_project(project_id)
    annotated = load_annotated(store, project_id)
    return jsonify({
        "project_id": project_id,
        "stored_status": project.status,
        "derived_status": corrected_project_status(annotated).value,
        "needs_correction": needs_status_correction(project, annotated),
        "element_counts": count_by_status(annotated),
    }), 200


@project_bp.route("/projects/<int:project_id>/status/correct", methods=["POST"])
def correct_project_status(project_id):
    store = get_store()
    project = store.get_project(project_id)
    annotated = load_annotated(store, project_id)
    updated = reconcile_project_status(store, project, annotated)
    return jsonify({
        "corrected": updated.status != project.status,
        "project": updated.to_dict(),
        "derived_status": corrected_project_status(annotated).value,
    }), 200


@project_bp.route("/projects/<int:project_id>/progress", methods=["GET"])
def project_progress(project_id):
    store = get_store()
    store.get_project(project_id)
    progress = compute_project_progress(load_annotated(store, project_id))
    return jsonify({"project_id": project_id, **progress.to_dict()}), 200


@project_bp.route("/projects/<int:project_id>/job-stats", methods=["GET"])
def project_job_stats(project_id):
    store = get_store()
    store.get_project(project_id)
    return jsonify({"project_id": project_id, **summarize_job_statuses(store.list_jobs(project_id))}), 200
