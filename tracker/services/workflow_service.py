"""
Workflow service — creates, orders and edits an element's jobs.

All storage goes through the DataAccess collaborator passed in; the
service holds no state of its own. Input is validated before the first
collaborator call, so a rejected request never half-applies.

Rules:
  - predefined workflow: steps 1..N, pending, 0 %, appended after any
    existing jobs, created for one element in a single batch
  - custom job: placed by fractional order key; when the neighbours
    leave no room the element is renormalized first
  - bulk assignment: per element, never aborts the batch; failures are
    reported, not raised
  - status "completed" forces progress 100; progress 100 forces
    "completed"; progress is clamped to 0..100
  - after any mutation the element's cached status is re-derived; a
    failure of that follow-up write is logged, never reported as a failed
    mutation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from tracker.core.exceptions import ExternalIOError, NotFoundError, ValidationError
from tracker.services.data_access import UPDATABLE_JOB_FIELDS, DataAccess
from tracker.services.element_status import annotate_element
from tracker.services.order_index import (
    LEGACY_ORDER_SENTINEL,
    RENORMALIZE_STRIDE,
    compute_insertion_key,
    effective_order_key,
    has_room,
    renormalize,
    resolve_position,
    sort_jobs,
)
from tracker.services.records import AnnotatedElement, JobRecord, JobStatus, clamp_progress
from tracker.services.workflow_templates import (
    TEMPLATE_STEP_STRIDE,
    describe_step,
    fire_proofing_type,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_BULK_ELEMENTS = 5000
MOVE_DIRECTIONS = ("up", "down")


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class BatchFailure:
    element_id: object
    reason: str

    def to_dict(self) -> dict:
        return {"element_id": self.element_id, "reason": self.reason}


@dataclass
class BulkAssignResult:
    """Outcome of assigning one workflow to many elements."""
    workflow_key: str
    succeeded: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    created: dict = field(default_factory=dict)

    @property
    def total_jobs_created(self) -> int:
        return sum(len(jobs) for jobs in self.created.values())

    def to_dict(self) -> dict:
        return {
            "workflow_key": self.workflow_key,
            "succeeded": list(self.succeeded),
            "failed": [f.to_dict() for f in self.failed],
            "succeeded_count": len(self.succeeded),
            "failed_count": len(self.failed),
            "total_jobs_created": self.total_jobs_created,
        }


def _now():
    return datetime.now(timezone.utc)


def _require_title(title) -> str:
    text = str(title).strip() if title is not None else ""
    if not text:
        raise ValidationError("Job title is required", details={"title": "must not be empty"})
    return text


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

class WorkflowService:
    def __init__(self, store: DataAccess, max_bulk_elements: int = DEFAULT_MAX_BULK_ELEMENTS):
        self.store = store
        self.max_bulk_elements = max_bulk_elements

    # ── Reading ──────────────────────────────────────────────────────────

    def element_jobs(self, element_id) -> list[JobRecord]:
        return sort_jobs(self.store.list_element_jobs(element_id))

    def refresh_element_status(self, element_id) -> AnnotatedElement:
        """Re-derive one element's status and update the stored cache if stale."""
        element = self.store.get_element(element_id)
        annotated = annotate_element(element, self.store.list_element_jobs(element_id))
        if element.status != annotated.status.value:
            self.store.update_element(element_id, {"status": annotated.status.value})
            logger.debug("Element %s status cache %r -> %r", element_id,
                         element.status, annotated.status.value)
        return annotated

    def sync_element_cache(self, element_id, fields: dict | None = None) -> AnnotatedElement | None:
        """Best-effort cache writes after jobs were already stored.

        The jobs are committed by then and status is derived on every read,
        so a store failure here is logged and swallowed rather than turned
        into a failed request.
        """
        try:
            if fields:
                self.store.update_element(element_id, fields)
            return self.refresh_element_status(element_id)
        except ExternalIOError as exc:
            logger.warning("Element %s cache not updated after write: %s", element_id, exc,
                           extra={"element_id": element_id})
            return None

    # ── Predefined workflows ─────────────────────────────────────────────

    def _workflow_titles(self, workflow_key) -> tuple[str, list]:
        key = (workflow_key or "").strip()
        if not key:
            raise ValidationError("workflow_key is required", details={"workflow_key": "must not be empty"})
        titles = self.store.list_workflow_templates().get(key)
        if not titles:
            raise ValidationError(
                f"Unknown workflow: {key}",
                details={"workflow_key": "no workflow template with this key"},
            )
        return key, list(titles)

    def _instantiate(self, element_id, key: str, titles: Sequence[str]) -> list[JobRecord]:
        element = self.store.get_element(element_id)
        existing = [effective_order_key(j) for j in self.store.list_element_jobs(element_id)]
        ordered_keys = [k for k in existing if k < LEGACY_ORDER_SENTINEL]
        offset = max(ordered_keys) if ordered_keys else 0.0

        total = len(titles)
        jobs = [
            JobRecord(
                element_id=element.id,
                project_id=element.project_id,
                title=title,
                description=describe_step(title, step, total, key),
                job_type=key,
                status=JobStatus.PENDING,
                progress_percentage=0,
                order_index=offset + step * TEMPLATE_STEP_STRIDE,
                step_number=step,
                total_steps=total,
                fire_proofing_type=fire_proofing_type(key),
            )
            for step, title in enumerate(titles, start=1)
        ]
        created = self.store.create_jobs(jobs)

        workflow_change = {"fire_proofing_workflow": key} if element.fire_proofing_workflow != key else None
        self.sync_element_cache(element.id, workflow_change)
        logger.info("Instantiated workflow %s on element %s (%d jobs)", key, element.id, len(created),
                    extra={"element_id": element.id, "project_id": element.project_id})
        return created

    def instantiate_predefined_workflow(self, element_id, workflow_type_key) -> list[JobRecord]:
        """Create one pending job per template step on the element.

        Calling twice creates the steps twice; callers guard against
        double assignment.
        """
        key, titles = self._workflow_titles(workflow_type_key)
        return self._instantiate(element_id, key, titles)

    def bulk_assign_workflow(self, element_ids: Iterable, workflow_type_key) -> BulkAssignResult:
        """Instantiate a workflow on every element, collecting per-element failures."""
        ids = list(dict.fromkeys(element_ids or ()))
        if not ids:
            raise ValidationError("element_ids is required", details={"element_ids": "must not be empty"})
        if len(ids) > self.max_bulk_elements:
            raise ValidationError(
                f"Too many elements ({len(ids)}); limit is {self.max_bulk_elements}",
                details={"element_ids": f"at most {self.max_bulk_elements} per request"},
            )
        key, titles = self._workflow_titles(workflow_type_key)

        result = BulkAssignResult(workflow_key=key)
        for element_id in ids:
            try:
                result.created[element_id] = self._instantiate(element_id, key, titles)
                result.succeeded.append(element_id)
            except (ExternalIOError, NotFoundError, ValidationError) as exc:
                logger.warning("Bulk assign %s failed for element %s: %s", key, element_id, exc,
                               extra={"element_id": element_id})
                result.failed.append(BatchFailure(element_id, str(exc)))

        logger.info("Bulk assign %s: %d succeeded, %d failed, %d jobs created",
                    key, len(result.succeeded), len(result.failed), result.total_jobs_created)
        return result

    # ── Custom jobs ──────────────────────────────────────────────────────

    def insert_custom_job(self, element_id, title, position=None, job_type=None,
                          initial_status="pending", description="") -> JobRecord:
        """Insert a job at *position* ("start", "end", an index, or None = end)."""
        title = _require_title(title)
        status = JobStatus.coerce(initial_status)
        resolve_position(position, 0)

        element = self.store.get_element(element_id)
        jobs = sort_jobs(self.store.list_element_jobs(element_id))
        keys = [effective_order_key(j) for j in jobs]
        if not has_room(keys, position):
            logger.warning("No order-key room on element %s; renormalizing", element_id,
                           extra={"element_id": element_id})
            jobs = self._apply_renormalization(jobs)
            keys = [effective_order_key(j) for j in jobs]

        completed = status is JobStatus.COMPLETED
        job = JobRecord(
            element_id=element.id,
            project_id=element.project_id,
            title=title,
            description=description or "",
            job_type=(job_type or "").strip() or "custom",
            status=status,
            progress_percentage=100 if completed else 0,
            order_index=compute_insertion_key(keys, position),
            fire_proofing_type=fire_proofing_type(job_type) if job_type else None,
            completed_date=_now() if completed else None,
        )
        created = self.store.create_job(job)
        self.sync_element_cache(element.id)
        return created

    # ── Editing ──────────────────────────────────────────────────────────

    def _normalize_changes(self, fields: dict) -> dict:
        unknown = sorted(set(fields) - UPDATABLE_JOB_FIELDS - {"id", "element_id", "project_id"})
        if unknown:
            raise ValidationError(
                "Unknown job field(s): " + ", ".join(unknown),
                details={name: "not an editable job field" for name in unknown},
            )
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_JOB_FIELDS}

        if "title" in changes:
            changes["title"] = _require_title(changes["title"])
        if "order_index" in changes and changes["order_index"] is not None:
            try:
                changes["order_index"] = float(changes["order_index"])
            except (TypeError, ValueError):
                raise ValidationError("order_index must be numeric",
                                      details={"order_index": "must be a number"}) from None
        if "progress_percentage" in changes:
            changes["progress_percentage"] = clamp_progress(changes["progress_percentage"])

        if "status" in changes:
            status = JobStatus.coerce(changes["status"])
            changes["status"] = status.value
            if status is JobStatus.COMPLETED:
                changes["progress_percentage"] = 100.0
                changes["completed_date"] = _now()
            else:
                changes["completed_date"] = None
        elif changes.get("progress_percentage") == 100.0:
            changes["status"] = JobStatus.COMPLETED.value
            changes["completed_date"] = _now()
        return changes

    def update_job(self, job_id, fields: dict) -> JobRecord:
        changes = self._normalize_changes(fields or {})
        if not changes:
            raise ValidationError("No updatable fields supplied")
        current = self.store.get_job(job_id)
        updated = self.store.update_job(job_id, changes)
        self.sync_element_cache(current.element_id)
        return updated

    def update_progress(self, job_id, percentage) -> JobRecord:
        try:
            value = float(percentage)
        except (TypeError, ValueError):
            value = None
        if value is None or not 0 <= value <= 100:
            raise ValidationError(
                "Progress must be between 0 and 100",
                details={"progress_percentage": "must be a number from 0 to 100"},
            )
        return self.update_job(job_id, {"progress_percentage": value})

    def delete_job(self, job_id) -> None:
        job = self.store.get_job(job_id)
        self.store.delete_job(job_id)
        self.sync_element_cache(job.element_id)
        logger.info("Deleted job %s from element %s", job_id, job.element_id,
                    extra={"element_id": job.element_id, "job_id": job_id})

    # ── Ordering ─────────────────────────────────────────────────────────

    def _apply_renormalization(self, jobs: Sequence[JobRecord]) -> list[JobRecord]:
        changes = renormalize(jobs, RENORMALIZE_STRIDE)
        updated = {j.id: j for j in jobs}
        for job_id, key in changes.items():
            updated[job_id] = self.store.update_job(job_id, {"order_index": key})
        return sort_jobs(updated.values())

    def renormalize_element(self, element_id) -> list[JobRecord]:
        """Spread an element's order keys back out to 10, 20, 30..."""
        jobs = self.store.list_element_jobs(element_id)
        result = self._apply_renormalization(jobs)
        logger.info("Renormalized %d jobs on element %s", len(result), element_id,
                    extra={"element_id": element_id})
        return result

    def reorder_jobs(self, element_id, ordered_job_ids: Sequence) -> list[JobRecord]:
        """Rewrite order keys so the jobs follow *ordered_job_ids*."""
        if not ordered_job_ids:
            raise ValidationError("job_ids is required", details={"job_ids": "must not be empty"})
        wanted = [str(i) for i in ordered_job_ids]
        if len(set(wanted)) != len(wanted):
            raise ValidationError("job_ids contains duplicates", details={"job_ids": "ids must be unique"})

        jobs = {str(j.id): j for j in self.store.list_element_jobs(element_id)}
        if set(wanted) != set(jobs):
            raise ValidationError(
                "job_ids must list every job of the element exactly once",
                details={
                    "missing": sorted(set(jobs) - set(wanted)),
                    "unknown": sorted(set(wanted) - set(jobs)),
                },
            )

        result = []
        for position, job_key in enumerate(wanted, start=1):
            job = jobs[job_key]
            new_key = position * RENORMALIZE_STRIDE
            if job.order_index != new_key:
                job = self.store.update_job(job.id, {"order_index": new_key})
            result.append(job)
        return result

    def move_job(self, job_id, direction: str) -> list[JobRecord]:
        """Swap a job with its neighbour above or below."""
        if direction not in MOVE_DIRECTIONS:
            raise ValidationError("direction must be 'up' or 'down'",
                                  details={"direction": "expected up or down"})
        job = self.store.get_job(job_id)
        jobs = sort_jobs(self.store.list_element_jobs(job.element_id))
        index = next(i for i, j in enumerate(jobs) if str(j.id) == str(job.id))
        other = index - 1 if direction == "up" else index + 1
        if not 0 <= other < len(jobs):
            raise ValidationError(
                f"Job is already {'first' if direction == 'up' else 'last'}",
                details={"direction": "no neighbour in that direction"},
            )

        a, b = jobs[index], jobs[other]
        key_a, key_b = effective_order_key(a), effective_order_key(b)
        if key_a == key_b:
            jobs = self._apply_renormalization(jobs)
            a, b = jobs[index], jobs[other]
            key_a, key_b = effective_order_key(a), effective_order_key(b)
        self.store.update_job(a.id, {"order_index": key_b})
        self.store.update_job(b.id, {"order_index": key_a})
        return self.element_jobs(job.element_id)
