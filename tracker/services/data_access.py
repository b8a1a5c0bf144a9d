"""
Data-access collaborator — the only door between the engines and storage.

Architecture:
  DataAccess is an abstract interface. The engines and WorkflowService
  receive an instance and never touch a session or an HTTP client.
    - SqlAlchemyDataAccess — the app's own database (Flask-SQLAlchemy)
    - InMemoryDataAccess   — dict-backed store for tests and scripts
    - RestDataAccess       — a remote tracker over HTTP
                             (tracker.integrations.rest_data_access)

Every storage failure surfaces as ExternalIOError; a missing row as
NotFoundError. Adapters never retry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from typing import Callable, Iterable, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError

from tracker.core.exceptions import ExternalIOError, NotFoundError, ValidationError
from tracker.services.grouping_engine import OTHER_GROUP, group_key_of
from tracker.services.records import (
    ElementRecord,
    JobRecord,
    JobStatus,
    ProjectRecord,
    job_row,
)
from tracker.services.workflow_templates import builtin_templates

logger = logging.getLogger(__name__)

# Job columns a caller may change through update_job.
UPDATABLE_JOB_FIELDS = frozenset({
    "title", "description", "job_type", "status", "progress_percentage",
    "order_index", "step_number", "total_steps", "fire_proofing_type",
    "completed_date",
})

UPDATABLE_PROJECT_FIELDS = frozenset({"title", "description", "status", "priority", "location"})

ELEMENT_UPDATABLE = frozenset(ElementRecord.__dataclass_fields__) - {"id", "project_id"}


def as_datetime(value):
    """ISO-8601 string or datetime to datetime; anything else to None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def filter_rows(rows: Iterable[dict], where: Mapping | None) -> list[dict]:
    """Keep rows whose group key equals the requested one for every field."""
    if not where:
        return list(rows)
    return [r for r in rows if all(group_key_of(r, f) == str(v) for f, v in where.items())]


def project_columns(rows: Iterable[dict], columns: Sequence[str] | None) -> list[dict]:
    if not columns:
        return list(rows)
    return [{c: r.get(c) for c in columns} for r in rows]


class DataAccess(ABC):
    """Abstract store for projects, elements, jobs and workflow templates."""

    @abstractmethod
    def get_project(self, project_id) -> ProjectRecord:
        """Return one project or raise NotFoundError."""

    @abstractmethod
    def update_project(self, project_id, fields: dict) -> ProjectRecord:
        """Apply a partial update and return the stored project."""

    @abstractmethod
    def list_elements(self, project_id) -> list[ElementRecord]:
        """All elements of a project."""

    @abstractmethod
    def get_element(self, element_id) -> ElementRecord:
        """Return one element or raise NotFoundError."""

    @abstractmethod
    def update_element(self, element_id, fields: dict) -> ElementRecord:
        """Apply a partial update to an element."""

    @abstractmethod
    def list_jobs(self, project_id) -> list[JobRecord]:
        """Every job of a project, in one call."""

    @abstractmethod
    def get_job(self, job_id) -> JobRecord:
        """Return one job or raise NotFoundError."""

    @abstractmethod
    def create_job(self, job: JobRecord) -> JobRecord:
        """Persist a new job and return it with its id."""

    @abstractmethod
    def update_job(self, job_id, fields: dict) -> JobRecord:
        """Apply a partial update and return the stored job."""

    @abstractmethod
    def delete_job(self, job_id) -> None:
        """Remove one job."""

    @abstractmethod
    def list_workflow_templates(self) -> dict:
        """``{workflow_key: [ordered job titles]}``."""

    # ── Derived defaults (adapters override when they can do better) ──

    def create_jobs(self, jobs: Sequence[JobRecord]) -> list[JobRecord]:
        return [self.create_job(job) for job in jobs]

    def list_element_jobs(self, element_id) -> list[JobRecord]:
        element = self.get_element(element_id)
        return [j for j in self.list_jobs(element.project_id) if str(j.element_id) == str(element_id)]

    def list_job_rows(self, project_id, where: Mapping | None = None,
                      columns: Sequence[str] | None = None) -> list[dict]:
        """Flat job+element rows, optionally restricted to one group path."""
        elements = {str(e.id): e for e in self.list_elements(project_id)}
        rows = [job_row(j, elements.get(str(j.element_id))) for j in self.list_jobs(project_id)]
        return project_columns(filter_rows(rows, where), columns)


# ═════════════════════════════════════════════════════════════════════════════
# In-memory store
# ═════════════════════════════════════════════════════════════════════════════

class InMemoryDataAccess(DataAccess):
    """Dict-backed store.

    ``fail_on(operation, payload) -> bool`` lets a test make any single
    call raise ExternalIOError; ``create_jobs`` stays all-or-nothing.
    """

    def __init__(self, templates: dict | None = None,
                 fail_on: Callable[[str, object], bool] | None = None):
        self.projects: dict = {}
        self.elements: dict = {}
        self.jobs: dict = {}
        self.templates = dict(templates) if templates is not None else builtin_templates()
        self.fail_on = fail_on
        self.calls: list = []
        self._ids = count(1)

    # ── seeding helpers ──

    def add_project(self, project: ProjectRecord) -> ProjectRecord:
        if project.id is None:
            project = replace(project, id=next(self._ids))
        self.projects[project.id] = project
        return project

    def add_element(self, element: ElementRecord) -> ElementRecord:
        if element.id is None:
            element = replace(element, id=next(self._ids))
        self.elements[element.id] = element
        return element

    def add_job(self, job: JobRecord) -> JobRecord:
        if job.id is None:
            job = replace(job, id=next(self._ids))
        self.jobs[job.id] = job
        return job

    def _check(self, operation: str, payload=None):
        self.calls.append(operation)
        if self.fail_on and self.fail_on(operation, payload):
            raise ExternalIOError(operation, "injected failure")

    def _lookup(self, table: dict, resource: str, key):
        if key in table:
            return table[key]
        for stored_key, value in table.items():
            if str(stored_key) == str(key):
                return value
        raise NotFoundError(resource, key)

    # ── DataAccess ──

    def get_project(self, project_id):
        self._check("get_project", project_id)
        return replace(self._lookup(self.projects, "Project", project_id))

    def update_project(self, project_id, fields):
        self._check("update_project", project_id)
        current = self._lookup(self.projects, "Project", project_id)
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_PROJECT_FIELDS}
        updated = replace(current, updated_at=datetime.now(timezone.utc), **changes)
        self.projects[current.id] = updated
        return replace(updated)

    def list_elements(self, project_id):
        self._check("list_elements", project_id)
        return [replace(e) for e in self.elements.values() if str(e.project_id) == str(project_id)]

    def get_element(self, element_id):
        self._check("get_element", element_id)
        return replace(self._lookup(self.elements, "Element", element_id))

    def update_element(self, element_id, fields):
        self._check("update_element", element_id)
        current = self._lookup(self.elements, "Element", element_id)
        changes = {k: v for k, v in fields.items() if k in ELEMENT_UPDATABLE}
        updated = replace(current, **changes)
        self.elements[current.id] = updated
        return replace(updated)

    def list_jobs(self, project_id):
        self._check("list_jobs", project_id)
        return [replace(j) for j in self.jobs.values() if str(j.project_id) == str(project_id)]

    def list_element_jobs(self, element_id):
        self._check("list_element_jobs", element_id)
        self._lookup(self.elements, "Element", element_id)
        return [replace(j) for j in self.jobs.values() if str(j.element_id) == str(element_id)]

    def get_job(self, job_id):
        self._check("get_job", job_id)
        return replace(self._lookup(self.jobs, "Job", job_id))

    def _new_job(self, job: JobRecord) -> JobRecord:
        self._lookup(self.elements, "Element", job.element_id)
        created_at = job.created_at or datetime.now(timezone.utc)
        return replace(job, id=next(self._ids), created_at=created_at)

    def create_job(self, job):
        self._check("create_job", job)
        stored = self._new_job(job)
        self.jobs[stored.id] = stored
        return replace(stored)

    def create_jobs(self, jobs):
        for job in jobs:
            self._check("create_job", job)
        staged = [self._new_job(job) for job in jobs]
        for job in staged:
            self.jobs[job.id] = job
        return [replace(j) for j in staged]

    def update_job(self, job_id, fields):
        self._check("update_job", job_id)
        current = self._lookup(self.jobs, "Job", job_id)
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_JOB_FIELDS}
        updated = replace(current, **changes)
        self.jobs[current.id] = updated
        return replace(updated)

    def delete_job(self, job_id):
        self._check("delete_job", job_id)
        job = self._lookup(self.jobs, "Job", job_id)
        del self.jobs[job.id]

    def list_workflow_templates(self):
        self._check("list_workflow_templates")
        return {k: list(v) for k, v in self.templates.items()}


# ═════════════════════════════════════════════════════════════════════════════
# SQLAlchemy store
# ═════════════════════════════════════════════════════════════════════════════

class SqlAlchemyDataAccess(DataAccess):
    """Store backed by the app database.

    Each mutation commits on its own; ``create_jobs`` commits once so
    one element's workflow lands whole or not at all.
    """

    def __init__(self, session=None):
        if session is None:
            from tracker.models import db
            session = db.session
        self.session = session

    @contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Database failure during %s", operation)
            raise ExternalIOError(operation, str(exc)) from exc

    def _get(self, model, pk, resource: str):
        obj = self.session.get(model, pk)
        if obj is None:
            raise NotFoundError(resource, pk)
        return obj

    def get_project(self, project_id):
        from tracker.models.project import Project
        with self._guard("get_project"):
            return self._get(Project, project_id, "Project").to_record()

    def update_project(self, project_id, fields):
        from tracker.models.project import Project
        with self._guard("update_project"):
            project = self._get(Project, project_id, "Project")
            for key, value in fields.items():
                if key in UPDATABLE_PROJECT_FIELDS:
                    setattr(project, key, value)
            self.session.commit()
            return project.to_record()

    def list_elements(self, project_id):
        from tracker.models.element import StructuralElement
        with self._guard("list_elements"):
            rows = (self.session.query(StructuralElement)
                    .filter(StructuralElement.project_id == project_id)
                    .order_by(StructuralElement.id)
                    .all())
            return [r.to_record() for r in rows]

    def get_element(self, element_id):
        from tracker.models.element import StructuralElement
        with self._guard("get_element"):
            return self._get(StructuralElement, element_id, "Element").to_record()

    def update_element(self, element_id, fields):
        from tracker.models.element import ELEMENT_FIELDS, StructuralElement
        with self._guard("update_element"):
            element = self._get(StructuralElement, element_id, "Element")
            for key, value in fields.items():
                if key in ELEMENT_FIELDS or key == "status":
                    setattr(element, key, value)
            self.session.commit()
            return element.to_record()

    def list_jobs(self, project_id):
        from tracker.models.job import Job
        with self._guard("list_jobs"):
            rows = self.session.query(Job).filter(Job.project_id == project_id).order_by(Job.id).all()
            return [r.to_record() for r in rows]

    def list_element_jobs(self, element_id):
        from tracker.models.element import StructuralElement
        from tracker.models.job import Job
        with self._guard("list_element_jobs"):
            self._get(StructuralElement, element_id, "Element")
            rows = self.session.query(Job).filter(Job.element_id == element_id).order_by(Job.id).all()
            return [r.to_record() for r in rows]

    def get_job(self, job_id):
        from tracker.models.job import Job
        with self._guard("get_job"):
            return self._get(Job, job_id, "Job").to_record()

    def _to_model(self, job: JobRecord):
        from tracker.models.element import StructuralElement
        from tracker.models.job import Job
        element = self._get(StructuralElement, job.element_id, "Element")
        return Job(
            element_id=element.id,
            project_id=element.project_id,
            title=job.title,
            description=job.description,
            job_type=job.job_type,
            status=job.status.value,
            progress_percentage=job.progress_percentage,
            order_index=job.order_index,
            step_number=job.step_number,
            total_steps=job.total_steps,
            fire_proofing_type=job.fire_proofing_type,
            completed_date=as_datetime(job.completed_date),
        )

    def create_job(self, job):
        with self._guard("create_job"):
            model = self._to_model(job)
            self.session.add(model)
            self.session.commit()
            return model.to_record()

    def create_jobs(self, jobs):
        with self._guard("create_jobs"):
            models = [self._to_model(job) for job in jobs]
            self.session.add_all(models)
            self.session.commit()
            return [m.to_record() for m in models]

    def update_job(self, job_id, fields):
        from tracker.models.job import Job
        with self._guard("update_job"):
            job = self._get(Job, job_id, "Job")
            for key, value in fields.items():
                if key not in UPDATABLE_JOB_FIELDS:
                    continue
                if key == "status":
                    value = JobStatus.coerce(value).value
                elif key == "completed_date":
                    value = as_datetime(value)
                setattr(job, key, value)
            self.session.commit()
            return job.to_record()

    def delete_job(self, job_id):
        from tracker.models.job import Job
        with self._guard("delete_job"):
            job = self._get(Job, job_id, "Job")
            self.session.delete(job)
            self.session.commit()

    def list_workflow_templates(self):
        from tracker.models.workflow_template import WorkflowTemplate
        templates = builtin_templates()
        with self._guard("list_workflow_templates"):
            rows = self.session.query(WorkflowTemplate).filter(WorkflowTemplate.is_active.is_(True)).all()
        for row in rows:
            templates[row.key] = list(row.steps or [])
        return templates

    def list_job_rows(self, project_id, where=None, columns=None):
        from tracker.models.element import StructuralElement
        from tracker.models.job import Job

        row_columns = _row_columns(Job, StructuralElement)
        requested = list(columns) if columns else list(row_columns)
        unknown = [c for c in list(requested) + list(where or {}) if c not in row_columns]
        if unknown:
            raise ValidationError(
                "Unknown row field(s): " + ", ".join(sorted(set(unknown))),
                details={f: "unknown field" for f in unknown},
            )
        selected = list(dict.fromkeys(requested + list(where or {})))

        with self._guard("list_job_rows"):
            query = (self.session.query(*[row_columns[c].label(c) for c in selected])
                     .join(StructuralElement, Job.element_id == StructuralElement.id)
                     .filter(Job.project_id == project_id))
            # Narrow in SQL where a plain string comparison is exact; the
            # Python pass below settles numeric keys and the Other bucket.
            for field, value in (where or {}).items():
                column = row_columns[field]
                if field != "status" and value != OTHER_GROUP and _is_string(column):
                    query = query.filter(column == str(value))
            rows = [dict(r._mapping) for r in query.order_by(Job.id).all()]

        for row in rows:
            if "status" in row:
                row["status"] = JobStatus.coerce(row["status"]).value
        return project_columns(filter_rows(rows, where), columns)


def _is_string(column) -> bool:
    from sqlalchemy import String
    return isinstance(getattr(column, "type", None), String)


def _row_columns(Job, StructuralElement) -> dict:
    from tracker.models.element import ELEMENT_FIELDS
    columns = {name: getattr(StructuralElement, name) for name in ELEMENT_FIELDS if name != "notes"}
    columns.update({
        "job_id": Job.id,
        "element_id": Job.element_id,
        "project_id": Job.project_id,
        "job_title": Job.title,
        "job_description": Job.description,
        "job_type": Job.job_type,
        "status": Job.status,
        "progress_percentage": Job.progress_percentage,
        "order_index": Job.order_index,
        "step_number": Job.step_number,
        "total_steps": Job.total_steps,
        "fire_proofing_type": Job.fire_proofing_type,
    })
    return columns
