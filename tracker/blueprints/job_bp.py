"""Job blueprint.

Endpoint groups:
  Listing        GET  /api/v1/projects/<project_id>/jobs
                 GET  /api/v1/elements/<element_id>/jobs
  Creation       POST /api/v1/elements/<element_id>/jobs           (custom job at a position)
                 POST /api/v1/elements/<element_id>/jobs/batch     (atomic multi-create)
                 POST /api/v1/elements/<element_id>/workflow       (predefined workflow)
                 POST /api/v1/jobs/bulk-assign                     (workflow on many elements)
  Ordering       PUT  /api/v1/elements/<element_id>/jobs/order
                 POST /api/v1/elements/<element_id>/jobs/renormalize
                 POST /api/v1/jobs/<job_id>/move
  Single job     GET/PUT/DELETE /api/v1/jobs/<job_id>
                 PATCH /api/v1/jobs/<job_id>/progress
  Templates      GET  /api/v1/workflow-templates

A bulk assignment returns 200 even when some elements failed; the
response lists which ones and why.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from tracker.blueprints import (
    get_store,
    get_workflow_service,
    json_body,
    paginate_items,
    register_error_handlers,
)
from tracker.core.exceptions import ValidationError
from tracker.services import cache_service
from tracker.services.element_status import derive_status
from tracker.services.order_index import compute_insertion_key, effective_order_key
from tracker.services.records import JobRecord, JobStatus
from tracker.services.workflow_templates import display_name, fire_proofing_type
from tracker.utils.errors import E, api_error
from tracker.utils.helpers import parse_int_list

logger = logging.getLogger(__name__)

job_bp = Blueprint("jobs", __name__, url_prefix="/api/v1")
register_error_handlers(job_bp)


def _element_payload(service, element_id, jobs=None):
    """Ordered jobs of one element plus its derived status."""
    jobs = service.element_jobs(element_id) if jobs is None else jobs
    return {
        "element_id": element_id,
        "items": [j.to_dict() for j in jobs],
        "total": len(jobs),
        "derived": derive_status(jobs).to_dict(),
    }


def _job_from_body(data, element, order_index):
    """Build a JobRecord for *element* from a request body.

    Raises ValidationError for a missing title or an unknown status.
    """
    title = str(data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "must not be empty"})
    status = JobStatus.coerce(data.get("status"))
    completed = status is JobStatus.COMPLETED
    job_type = (data.get("job_type") or "").strip() or "custom"
    return JobRecord(
        element_id=element.id,
        project_id=element.project_id,
        title=title,
        description=data.get("description") or "",
        job_type=job_type,
        status=status,
        progress_percentage=100 if completed else data.get("progress_percentage") or 0,
        order_index=order_index,
        step_number=data.get("step_number"),
        total_steps=data.get("total_steps"),
        fire_proofing_type=data.get("fire_proofing_type")
        or (fire_proofing_type(job_type) if job_type != "custom" else None),
        completed_date=data.get("completed_date") or (datetime.now(timezone.utc) if completed else None),
    )


# ═════════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════════


@job_bp.route("/projects/<int:project_id>/jobs", methods=["GET"])
def list_project_jobs(project_id):
    store = get_store()
    store.get_project(project_id)
    jobs = sorted(store.list_jobs(project_id),
                  key=lambda j: (str(j.element_id), effective_order_key(j)))
    page, total = paginate_items([j.to_dict() for j in jobs], default_limit=1000, max_limit=10000)
    return jsonify({"items": page, "total": total}), 200


@job_bp.route("/elements/<int:element_id>/jobs", methods=["GET"])
def list_element_jobs(element_id):
    service = get_workflow_service()
    service.store.get_element(element_id)
    return jsonify(_element_payload(service, element_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════


@job_bp.route("/elements/<int:element_id>/jobs", methods=["POST"])
def create_job(element_id):
    """Body: {title, position?, job_type?, status?, description?}

    ``position`` is "start", "end" or a 0-based index. A body carrying an
    explicit ``order_index`` is stored as given instead.
    """
    service = get_workflow_service()
    data = json_body()

    if data.get("order_index") is not None:
        element = service.store.get_element(element_id)
        try:
            order_index = float(data["order_index"])
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "order_index must be numeric")
        job = service.store.create_job(_job_from_body(data, element, order_index))
        service.sync_element_cache(element_id)
    else:
        job = service.insert_custom_job(
            element_id,
            data.get("title"),
            position=data.get("position"),
            job_type=data.get("job_type"),
            initial_status=data.get("status") or JobStatus.PENDING.value,
            description=data.get("description") or "",
        )
    cache_service.invalidate_project(job.project_id)
    logger.info("Created job %s on element %s", job.id, element_id,
                extra={"element_id": element_id, "job_id": job.id})
    return jsonify(job.to_dict()), 201


@job_bp.route("/elements/<int:element_id>/jobs/batch", methods=["POST"])
def create_jobs_batch(element_id):
    """Body: {"jobs": [{title, order_index?, ...}, ...]} — all or nothing."""
    service = get_workflow_service()
    payloads = json_body().get("jobs")
    if not isinstance(payloads, list) or not payloads:
        return api_error(E.VALIDATION_REQUIRED, "jobs must be a non-empty list")

    element = service.store.get_element(element_id)
    keys = [effective_order_key(j) for j in service.store.list_element_jobs(element_id)]
    records = []
    for data in payloads:
        if not isinstance(data, dict):
            return api_error(E.VALIDATION_INVALID, "each job must be an object")
        order_index = data.get("order_index")
        if order_index is None:
            order_index = compute_insertion_key(keys, "end")
        try:
            order_index = float(order_index)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "order_index must be numeric")
        keys.append(order_index)
        records.append(_job_from_body(data, element, order_index))

    created = service.store.create_jobs(records)
    service.sync_element_cache(element_id)
    cache_service.invalidate_project(element.project_id)
    return jsonify({"items": [j.to_dict() for j in created], "total": len(created)}), 201


@job_bp.route("/elements/<int:element_id>/workflow", methods=["POST"])
def assign_workflow(element_id):
    """Body: {"workflow_key": "cement_fire_proofing"}"""
    service = get_workflow_service()
    created = service.instantiate_predefined_workflow(element_id, json_body().get("workflow_key"))
    if created:
        cache_service.invalidate_project(created[0].project_id)
    return jsonify({
        "element_id": element_id,
        "items": [j.to_dict() for j in created],
        "total": len(created),
    }), 201


@job_bp.route("/jobs/bulk-assign", methods=["POST"])
def bulk_assign():
    """Body: {"element_ids": [...], "workflow_key": "..."}"""
    data = json_body()
    ids, err = parse_int_list(data.get("element_ids"), "element_ids")
    if err:
        return err
    service = get_workflow_service()
    result = service.bulk_assign_workflow(ids, data.get("workflow_key"))
    for project_id in {j.project_id for jobs in result.created.values() for j in jobs}:
        cache_service.invalidate_project(project_id)
    return jsonify(result.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Ordering
# ═════════════════════════════════════════════════════════════════════════


@job_bp.route("/elements/<int:element_id>/jobs/order", methods=["PUT"])
def reorder_jobs(element_id):
    """Body: {"job_ids": [every job of the element, in the new order]}"""
    ids, err = parse_int_list(json_body().get("job_ids"), "job_ids")
    if err:
        return err
    service = get_workflow_service()
    jobs = service.reorder_jobs(element_id, ids)
    if jobs:
        cache_service.invalidate_project(jobs[0].project_id)
    return jsonify(_element_payload(service, element_id, jobs)), 200


@job_bp.route("/elements/<int:element_id>/jobs/renormalize", methods=["POST"])
def renormalize_jobs(element_id):
    service = get_workflow_service()
    element = service.store.get_element(element_id)
    jobs = service.renormalize_element(element_id)
    cache_service.invalidate_project(element.project_id)
    return jsonify(_element_payload(service, element_id, jobs)), 200


@job_bp.route("/jobs/<int:job_id>/move", methods=["POST"])
def move_job(job_id):
    """Body: {"direction": "up" | "down"}"""
    service = get_workflow_service()
    jobs = service.move_job(job_id, json_body().get("direction"))
    element_id = jobs[0].element_id
    cache_service.invalidate_project(jobs[0].project_id)
    return jsonify(_element_payload(service, element_id, jobs)), 200


# ═════════════════════════════════════════════════════════════════════════
# Single job
# ═════════════════════════════════════════════════════════════════════════


@job_bp.route("/jobs/<int:job_id>", methods=["GET"])
def get_job(job_id):
    return jsonify(get_store().get_job(job_id).to_dict()), 200


@job_bp.route("/jobs/<int:job_id>", methods=["PUT"])
def update_job(job_id):
    service = get_workflow_service()
    job = service.update_job(job_id, json_body())
    cache_service.invalidate_project(job.project_id)
    return jsonify(job.to_dict()), 200


@job_bp.route("/jobs/<int:job_id>/progress", methods=["PATCH"])
def update_progress(job_id):
    """Body: {"progress_percentage": 0..100}"""
    service = get_workflow_service()
    job = service.update_progress(job_id, json_body().get("progress_percentage"))
    cache_service.invalidate_project(job.project_id)
    return jsonify(job.to_dict()), 200


@job_bp.route("/jobs/<int:job_id>", methods=["DELETE"])
def delete_job(job_id):
    service = get_workflow_service()
    job = service.store.get_job(job_id)
    service.delete_job(job_id)
    cache_service.invalidate_project(job.project_id)
    return jsonify({"message": "Job deleted", "id": job_id}), 200


# ═════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════


@job_bp.route("/workflow-templates", methods=["GET"])
def list_workflow_templates():
    templates = get_store().list_workflow_templates()
    return jsonify({
        "templates": {
            key: {
                "display_name": display_name(key),
                "fire_proofing_type": fire_proofing_type(key),
                "steps": steps,
            }
            for key, steps in sorted(templates.items())
        }
    }), 200
