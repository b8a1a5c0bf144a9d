"""
Plain value records shared by the tracker engines.

The engines never see ORM rows or HTTP payloads; every data-access
adapter converts what it reads into these dataclasses first.

Usage:
    from tracker.services.records import JobRecord, JobStatus

    job = JobRecord.from_dict({"id": 7, "element_id": 3, "title": "Primer"})
    assert job.status is JobStatus.PENDING
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

from tracker.core.exceptions import ValidationError


# ═════════════════════════════════════════════════════════════════════════════
# Status enumerations
# ═════════════════════════════════════════════════════════════════════════════

class JobStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    NOT_APPLICABLE = "not_applicable"

    @classmethod
    def coerce(cls, value: Any) -> "JobStatus":
        """Map a raw status to a member.

        ``in_progress`` and a missing status are legacy spellings of pending.
        """
        if isinstance(value, cls):
            return value
        if value is None or value == "" or value == "in_progress":
            return cls.PENDING
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(
                f"Invalid job status: {value!r}",
                details={"status": f"must be one of {allowed}"},
            ) from None


class ElementStatus(str, Enum):
    NO_JOBS = "no jobs"
    NON_CLEARANCE = "non clearance"
    ACTIVE = "active"
    COMPLETE = "complete"


# Persisted project rows use "completed"; the derived value is "complete".
PERSISTED_COMPLETED = "completed"


class ProjectStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"

    @classmethod
    def from_persisted(cls, value: str | None) -> "ProjectStatus":
        if value in (PERSISTED_COMPLETED, cls.COMPLETE.value):
            return cls.COMPLETE
        if value == cls.IN_PROGRESS.value:
            return cls.IN_PROGRESS
        return cls.PENDING

    @property
    def persisted_value(self) -> str:
        return PERSISTED_COMPLETED if self is ProjectStatus.COMPLETE else self.value


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def clamp_progress(value: Any) -> float:
    """Clamp a progress percentage into [0, 100]; junk becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(100.0, number))


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _optional_int(value: Any) -> int | None:
    number = _optional_float(value)
    return None if number is None else int(number)


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def as_row(record: Any) -> dict:
    """Return a flat mapping view of a record, row dict or dataclass."""
    if isinstance(record, dict):
        return record
    to_dict = getattr(record, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Cannot read fields from {type(record).__name__}")


# ═════════════════════════════════════════════════════════════════════════════
# Records
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class JobRecord:
    """One workflow step on a structural element."""
    id: int | str | None = None
    element_id: int | str | None = None
    project_id: int | str | None = None
    title: str = ""
    description: str = ""
    job_type: str = "custom"
    status: JobStatus = JobStatus.PENDING
    progress_percentage: float = 0.0
    order_index: float | None = None
    step_number: int | None = None
    total_steps: int | None = None
    fire_proofing_type: str | None = None
    created_at: datetime | str | None = None
    completed_date: datetime | str | None = None

    def __post_init__(self):
        self.status = JobStatus.coerce(self.status)
        self.progress_percentage = clamp_progress(self.progress_percentage)
        self.order_index = _optional_float(self.order_index)
        self.step_number = _optional_int(self.step_number)
        self.total_steps = _optional_int(self.total_steps)

    @classmethod
    def from_dict(cls, data: dict) -> "JobRecord":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "element_id": self.element_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "job_type": self.job_type,
            "status": self.status.value,
            "progress_percentage": self.progress_percentage,
            "order_index": self.order_index,
            "step_number": self.step_number,
            "total_steps": self.total_steps,
            "fire_proofing_type": self.fire_proofing_type,
            "created_at": _iso(self.created_at),
            "completed_date": _iso(self.completed_date),
        }


@dataclass
class ElementRecord:
    """A structural element (beam, column, bracing...) tracked for fire-proofing.

    ``status`` is whatever the store last cached; the engines never read it.
    """
    id: int | str | None = None
    project_id: int | str | None = None
    serial_no: str | None = None
    structure_number: str | None = None
    drawing_no: str | None = None
    level: str | None = None
    member_type: str | None = None
    grid_no: str | None = None
    part_mark_no: str | None = None
    section_sizes: str | None = None
    length_mm: float | None = None
    qty: float | None = None
    section_depth_mm: float | None = None
    flange_width_mm: float | None = None
    web_thickness_mm: float | None = None
    flange_thickness_mm: float | None = None
    fireproofing_thickness: float | None = None
    surface_area_sqm: float | None = None
    fire_proofing_workflow: str | None = None
    notes: str | None = None
    status: str | None = None

    NUMERIC_FIELDS = (
        "length_mm", "qty", "section_depth_mm", "flange_width_mm",
        "web_thickness_mm", "flange_thickness_mm", "fireproofing_thickness",
        "surface_area_sqm",
    )

    def __post_init__(self):
        for name in self.NUMERIC_FIELDS:
            setattr(self, name, _optional_float(getattr(self, name)))

    @classmethod
    def from_dict(cls, data: dict) -> "ElementRecord":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class ProjectRecord:
    id: int | str | None = None
    title: str = ""
    description: str | None = None
    status: str = ProjectStatus.PENDING.value
    priority: str | None = None
    location: str | None = None
    created_at: datetime | str | None = None
    updated_at: datetime | str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectRecord":
        return cls(**_known_fields(cls, data))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "location": self.location,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class DerivedStatus:
    """Element status bundle computed from its jobs on every read."""
    status: ElementStatus
    completed_count: int
    total_count: int
    completion_percentage: int
    avg_progress: int

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "jobs_completed": self.completed_count,
            "total_jobs": self.total_count,
            "completion_percentage": self.completion_percentage,
            "avg_progress": self.avg_progress,
        }


@dataclass
class AnnotatedElement:
    """An element joined with its ordered jobs and derived status."""
    element: ElementRecord
    jobs: list[JobRecord] = field(default_factory=list)
    derived: DerivedStatus | None = None
    current_pending_job: str = ""

    @property
    def id(self):
        return self.element.id

    @property
    def status(self) -> ElementStatus:
        return self.derived.status

    def to_dict(self, include_jobs: bool = False) -> dict:
        row = self.element.to_dict()
        row.update(self.derived.to_dict())
        row["current_pending_job"] = self.current_pending_job
        if include_jobs:
            row["jobs"] = [j.to_dict() for j in self.jobs]
        return row


# Element columns carried on every worklist row.
_ROW_ELEMENT_FIELDS = (
    "serial_no", "structure_number", "drawing_no", "level", "member_type",
    "grid_no", "part_mark_no", "section_sizes", "length_mm", "qty",
    "section_depth_mm", "flange_width_mm", "web_thickness_mm",
    "flange_thickness_mm", "fireproofing_thickness", "surface_area_sqm",
    "fire_proofing_workflow",
)


def job_row(job: JobRecord, element: ElementRecord | None) -> dict:
    """Flatten a job and its element into one engineer-worklist row."""
    row = {name: getattr(element, name, None) for name in _ROW_ELEMENT_FIELDS}
    row.update({
        "job_id": job.id,
        "element_id": job.element_id,
        "project_id": job.project_id,
        "job_title": job.title,
        "job_description": job.description,
        "job_type": job.job_type,
        "status": job.status.value,
        "progress_percentage": job.progress_percentage,
        "order_index": job.order_index,
        "step_number": job.step_number,
        "total_steps": job.total_steps,
        "fire_proofing_type": job.fire_proofing_type,
    })
    return row
