"""
Element status engine — derives element and project status from jobs.

The job list is the single source of truth. Any status stored on an
element or project row is a cache: it is never read for decisions, and
a project stored as completed that the jobs contradict is rewritten.

Element precedence (first match wins):
  1. no jobs                         → "no jobs"
  2. any job not_applicable          → "non clearance"
  3. every job completed             → "complete"
  4. some completion or any progress → "active"
  5. otherwise                       → "no jobs"
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from tracker.services.filter_engine import current_pending_job, to_number
from tracker.services.order_index import sort_jobs
from tracker.services.records import (
    AnnotatedElement,
    DerivedStatus,
    ElementRecord,
    ElementStatus,
    JobRecord,
    JobStatus,
    ProjectRecord,
    ProjectStatus,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _count_statuses(jobs: Sequence[JobRecord]) -> dict:
    counts = {status: 0 for status in JobStatus}
    for job in jobs:
        status = JobStatus.coerce(job.status)
        if status is JobStatus.COMPLETED:
            counts[JobStatus.COMPLETED] += 1
        elif status is JobStatus.NOT_APPLICABLE:
            counts[JobStatus.NOT_APPLICABLE] += 1
        elif status is JobStatus.PENDING:
            counts[JobStatus.PENDING] += 1
        else:
            raise AssertionError(f"Unhandled job status {status!r}")
    return counts


def derive_status(jobs: Iterable[JobRecord]) -> DerivedStatus:
    """Compute status, counts and percentages for one element's jobs."""
    jobs = list(jobs)
    total = len(jobs)
    if total == 0:
        return DerivedStatus(ElementStatus.NO_JOBS, 0, 0, 0, 0)

    counts = _count_statuses(jobs)
    completed = counts[JobStatus.COMPLETED]
    completion = 100.0 * completed / total
    avg_progress = sum(j.progress_percentage for j in jobs) / total

    if counts[JobStatus.NOT_APPLICABLE] > 0:
        status = ElementStatus.NON_CLEARANCE
    elif completed == total:
        status = ElementStatus.COMPLETE
    elif completion > 0 or avg_progress > 0:
        status = ElementStatus.ACTIVE
    else:
        status = ElementStatus.NO_JOBS

    return DerivedStatus(
        status=status,
        completed_count=completed,
        total_count=total,
        completion_percentage=round_half_up(completion),
        avg_progress=round_half_up(avg_progress),
    )


def group_jobs_by_element(jobs: Iterable[JobRecord]) -> dict:
    grouped: dict = {}
    for job in jobs:
        grouped.setdefault(str(job.element_id), []).append(job)
    return grouped


def annotate_element(element: ElementRecord, jobs: Iterable[JobRecord]) -> AnnotatedElement:
    ordered = sort_jobs(jobs)
    return AnnotatedElement(
        element=element,
        jobs=ordered,
        derived=derive_status(ordered),
        current_pending_job=current_pending_job(ordered),
    )


def annotate_elements(elements: Iterable[ElementRecord], jobs: Iterable[JobRecord]) -> list[AnnotatedElement]:
    """Join a project's bulk job list onto its elements and derive each status."""
    by_element = group_jobs_by_element(jobs)
    annotated = [annotate_element(el, by_element.pop(str(el.id), [])) for el in elements]
    if by_element:
        logger.debug("Ignored jobs for %d unknown elements", len(by_element))
    return annotated


def count_by_status(annotated: Iterable[AnnotatedElement]) -> dict:
    counts = {status.value: 0 for status in ElementStatus}
    for item in annotated:
        counts[item.status.value] += 1
    return counts


# ── Project status ──────────────────────────────────────────────────────────


def corrected_project_status(elements: Iterable) -> ProjectStatus:
    """Project status implied by its elements' derived statuses.

    Accepts annotated elements or anything else exposing ``.status``.
    """
    statuses = [getattr(e, "status", e) for e in elements]
    if not statuses:
        return ProjectStatus.PENDING
    complete = sum(1 for s in statuses if s == ElementStatus.COMPLETE)
    if complete == len(statuses):
        return ProjectStatus.COMPLETE
    if complete > 0:
        return ProjectStatus.IN_PROGRESS
    return ProjectStatus.PENDING


def needs_status_correction(project: ProjectRecord, elements: Sequence) -> bool:
    stored = ProjectStatus.from_persisted(project.status)
    return stored is ProjectStatus.COMPLETE and corrected_project_status(elements) is not ProjectStatus.COMPLETE


def reconcile_project_status(store, project: ProjectRecord, elements: Sequence) -> ProjectRecord:
    """Rewrite a stale "completed" project status to in_progress.

    Returns the updated project, or *project* untouched when it is
    consistent with its elements.
    """
    if not needs_status_correction(project, elements):
        return project
    derived = corrected_project_status(elements)
    logger.warning(
        "Project %s stored as completed but elements say %s; correcting to in_progress",
        project.id, derived.value, extra={"project_id": project.id},
    )
    return store.update_project(project.id, {"status": ProjectStatus.IN_PROGRESS.value})


# ── Progress & statistics ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectProgress:
    total_surface_area: float
    completed_surface_area: float
    progress_percentage: int
    total_elements: int
    completed_elements: int

    def to_dict(self) -> dict:
        return {
            "total_surface_area": self.total_surface_area,
            "completed_surface_area": self.completed_surface_area,
            "progress_percentage": self.progress_percentage,
            "total_elements": self.total_elements,
            "completed_elements": self.completed_elements,
        }


def compute_project_progress(annotated: Sequence[AnnotatedElement]) -> ProjectProgress:
    """Surface-area weighted completion across a project's elements."""
    total_area = 0.0
    done_area = 0.0
    done = 0
    for item in annotated:
        area = to_number(item.element.surface_area_sqm) or 0.0
        total_area += area
        if item.status is ElementStatus.COMPLETE:
            done += 1
            done_area += area
    pct = round_half_up(100.0 * done_area / total_area) if total_area > 0 else 0
    return ProjectProgress(
        total_surface_area=round(total_area, 2),
        completed_surface_area=round(done_area, 2),
        progress_percentage=pct,
        total_elements=len(annotated),
        completed_elements=done,
    )


def summarize_job_statuses(jobs: Iterable[JobRecord]) -> dict:
    jobs = list(jobs)
    counts = _count_statuses(jobs)
    total = len(jobs)
    completed = counts[JobStatus.COMPLETED]
    return {
        "total": total,
        "pending": counts[JobStatus.PENDING],
        "completed": completed,
        "not_applicable": counts[JobStatus.NOT_APPLICABLE],
        "completion_rate": round_half_up(100.0 * completed / total) if total else 0,
    }
