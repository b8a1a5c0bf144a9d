"""Workflow template model — named ordered list of job titles."""

from datetime import datetime, timezone

from tracker.models import db


class WorkflowTemplate(db.Model):
    __tablename__ = "workflow_templates"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), nullable=False, unique=True)
    display_name = db.Column(db.String(100), nullable=False)
    fire_proofing_type = db.Column(db.String(50), nullable=True)
    steps = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

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

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "display_name": self.display_name,
            "fire_proofing_type": self.fire_proofing_type,
            "steps": list(self.steps or []),
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<WorkflowTemplate {self.key} ({len(self.steps or [])} steps)>"
