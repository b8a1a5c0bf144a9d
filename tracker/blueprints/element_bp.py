"""Structural element blueprint.

Endpoint groups:
  Listing        GET  /api/v1/projects/<project_id>/elements
  Create         POST /api/v1/projects/<project_id>/elements
  Admin view     POST /api/v1/projects/<project_id>/elements/query
  Filter values  GET  /api/v1/projects/<project_id>/elements/values?field=grid_no
  Single         GET/PUT/DELETE /api/v1/elements/<element_id>

Every element in a response carries its derived status, job counters
and current pending job. The stored ``status`` column is only a cache.
"""

import logging

from flask import Blueprint, jsonify, request

from tracker.blueprints import (
    get_store,
    get_workflow_service,
    json_body,
    paginate_items,
    register_error_handlers,
)
from tracker.core.exceptions import ValidationError
from tracker.models import db
from tracker.models.element import ELEMENT_FIELDS, StructuralElement
from tracker.models.project import Project
from tracker.services import cache_service
from tracker.services.element_status import annotate_element, count_by_status
from tracker.services.filter_engine import ViewState, apply_filters, distinct_values
from tracker.services.records import ElementRecord, ElementStatus
from tracker.services.views import admin_sections, load_annotated
from tracker.utils.errors import E, api_error
from tracker.utils.helpers import db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

element_bp = Blueprint("elements", __name__, url_prefix="/api/v1")
register_error_handlers(element_bp)

ELEMENT_STATUS_VALUES = tuple(s.value for s in ElementStatus)
NON_NEGATIVE_FIELDS = ("qty", "length_mm", "surface_area_sqm")


def _clean_fields(data, allow_status=False):
    """Pick writable element fields from *data*, coercing numeric columns.

    Raises ValidationError on a non-numeric or negative measurement.
    """
    allowed = ELEMENT_FIELDS + (("status",) if allow_status else ())
    fields = {k: data[k] for k in allowed if k in data}
    errors = {}
    for name in ElementRecord.NUMERIC_FIELDS:
        if name not in fields or fields[name] in (None, ""):
            if name in fields:
                fields[name] = None
            continue
        try:
            fields[name] = float(fields[name])
        except (TypeError, ValueError):
            errors[name] = "must be a number"
            continue
        if name in NON_NEGATIVE_FIELDS and fields[name] < 0:
            errors[name] = "must not be negative"
    if "status" in fields and fields["status"] not in ELEMENT_STATUS_VALUES:
        errors["status"] = "must be one of " + ", ".join(ELEMENT_STATUS_VALUES)
    if errors:
        raise ValidationError("Invalid element fields", details=errors)
    return fields


# ═════════════════════════════════════════════════════════════════════════
# Project-scoped
# ═════════════════════════════════════════════════════════════════════════


@element_bp.route("/projects/<int:project_id>/elements", methods=["GET"])
def list_elements(project_id):
    """Query params: search, status (comma-separated), include_jobs, limit, offset."""
    store = get_store()
    store.get_project(project_id)
    annotated = load_annotated(store, project_id)
    counts = count_by_status(annotated)

    wanted = [s.strip() for s in request.args.get("status", "").split(",") if s.strip()]
    if wanted:
        annotated = [a for a in annotated if a.status.value in wanted]
    annotated = apply_filters(annotated, request.args.get("search", ""))

    include_jobs = request.args.get("include_jobs", "").lower() in ("1", "true", "yes")
    page, total = paginate_items(annotated)
    return jsonify({
        "items": [a.to_dict(include_jobs=include_jobs) for a in page],
        "total": total,
        "counts": counts,
    }), 200


@element_bp.route("/projects/<int:project_id>/elements", methods=["POST"])
def create_element(project_id):
    """Body: element fields, plus an optional workflow_key to seed its jobs."""
    _, err = get_or_404(Project, project_id)
    if err:
        return err
    data = json_body()
    fields = _clean_fields(data)
    workflow_key = (data.get("workflow_key") or "").strip()
    if workflow_key:
        service = get_workflow_service()
        if workflow_key not in service.store.list_workflow_templates():
            return api_error(E.VALIDATION_RULE, f"Unknown workflow: {workflow_key}",
                             details={"workflow_key": "no workflow template with this key"})

    element = StructuralElement(project_id=project_id, **fields)
    db.session.add(element)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Created element %s in project %s", element.id, project_id,
                extra={"project_id": project_id, "element_id": element.id})

    if workflow_key:
        service.instantiate_predefined_workflow(element.id, workflow_key)
    cache_service.invalidate_project(project_id)

    store = get_store()
    annotated = annotate_element(store.get_element(element.id), store.list_element_jobs(element.id))
    return jsonify(annotated.to_dict(include_jobs=True)), 201


@element_bp.route("/projects/<int:project_id>/elements/query", methods=["POST"])
def query_elements(project_id):
    """Admin view: one filtered/grouped block per element status.

    Body: {"sections": {"<element status>": <view state>, ...}}
    """
    store = get_store()
    store.get_project(project_id)
    raw = json_body().get("sections") or {}
    if not isinstance(raw, dict):
        return api_error(E.VALIDATION_INVALID, "sections must be an object")
    unknown = sorted(set(raw) - set(ELEMENT_STATUS_VALUES))
    if unknown:
        return api_error(E.VALIDATION_INVALID, "Unknown section(s): " + ", ".join(unknown))
    states = {status: ViewState.from_dict(state) for status, state in raw.items()}
    sections = admin_sections(load_annotated(store, project_id), states)
    return jsonify({"project_id": project_id, "sections": sections}), 200


@element_bp.route("/projects/<int:project_id>/elements/values", methods=["GET"])
def element_values(project_id):
    """Distinct values of one column, for multi-select filter options."""
    field = request.args.get("field", "").strip()
    if not field:
        return api_error(E.VALIDATION_REQUIRED, "field is required")
    store = get_store()
    store.get_project(project_id)
    rows = [a.to_dict() for a in load_annotated(store, project_id)]
    return jsonify({"field": field, "values": distinct_values(rows, field)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Single element
# ═════════════════════════════════════════════════════════════════════════


@element_bp.route("/elements/<int:element_id>", methods=["GET"])
def get_element(element_id):
    store = get_store()
    element = store.get_element(element_id)
    annotated = annotate_element(element, store.list_element_jobs(element_id))
    return jsonify(annotated.to_dict(include_jobs=True)), 200


@element_bp.route("/elements/<int:element_id>", methods=["PUT"])
def update_element(element_id):
    store = get_store()
    fields = _clean_fields(json_body(), allow_status=True)
    if not fields:
        return api_error(E.VALIDATION_REQUIRED, "No updatable fields supplied")
    updated = store.update_element(element_id, fields)
    cache_service.invalidate_project(updated.project_id)
    return jsonify(updated.to_dict()), 200


@element_bp.route("/elements/<int:element_id>", methods=["DELETE"])
def delete_element(element_id):
    element, err = get_or_404(StructuralElement, element_id, "Element")
    if err:
        return err
    project_id = element.project_id
    db.session.delete(element)
    err = db_commit_or_error()
    if err:
        return err
    cache_service.invalidate_project(project_id)
    logger.info("Deleted element %s", element_id,
                extra={"project_id": project_id, "element_id": element_id})
    return jsonify({"message": "Element deleted", "id": element_id}), 200
