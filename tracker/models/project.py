"""Project model — top of the Project -> Element -> Job hierarchy."""

from datetime import datetime, timezone

from tracker.models import db
from tracker.services.records import ProjectRecord


class Project(db.Model):
    """A fire-proofing contract or site package."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=False, default="pending",
        comment="pending | in_progress | completed (cache; derived from elements)",
    )
    priority = db.Column(
        db.String(20), nullable=True, default="medium",
        comment="low | medium | high | critical",
    )
    location = db.Column(db.String(200), nullable=True)

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

    elements = db.relationship(
        "StructuralElement", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "location": self.location,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_record(self) -> ProjectRecord:
        return ProjectRecord.from_dict(self.to_dict())

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"
