"""Job model — one ordered workflow step on a structural element."""

from datetime import datetime, timezone

from tracker.models import db
from tracker.services.records import JobRecord


class Job(db.Model):
    __tablename__ = "jobs"

    id = db.Column(db.Integer, primary_key=True)
    element_id = db.Column(
        db.Integer,
        db.ForeignKey("structural_elements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True, default="")
    job_type = db.Column(
        db.String(50), nullable=False, default="custom",
        comment="workflow template key or custom",
    )
    status = db.Column(
        db.String(30), nullable=False, default="pending", index=True,
        comment="pending | completed | not_applicable",
    )
    progress_percentage = db.Column(db.Float, nullable=False, default=0.0)
    order_index = db.Column(db.Float, nullable=True)
    step_number = db.Column(db.Integer, nullable=True)
    total_steps = db.Column(db.Integer, nullable=True)
    fire_proofing_type = db.Column(db.String(50), nullable=True)
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_jobs_element_order", "element_id", "order_index"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "element_id": self.element_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description or "",
            "job_type": self.job_type,
            "status": self.status,
            "progress_percentage": self.progress_percentage,
            "order_index": self.order_index,
            "step_number": self.step_number,
            "total_steps": self.total_steps,
            "fire_proofing_type": self.fire_proofing_type,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_record(self) -> JobRecord:
        return JobRecord.from_dict(self.to_dict())

    def __repr__(self) -> str:
        return f"<Job {self.id}: {self.title} [{self.status}]>"
