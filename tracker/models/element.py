"""Structural element model (beam, column, bracing...)."""

from datetime import datetime, timezone

from tracker.models import db
from tracker.services.records import ElementRecord

# Columns a client may set through the API.
ELEMENT_FIELDS = (
    "serial_no", "structure_number", "drawing_no", "level", "member_type",
    "grid_no", "part_mark_no", "section_sizes", "length_mm", "qty",
    "section_depth_mm", "flange_width_mm", "web_thickness_mm",
    "flange_thickness_mm", "fireproofing_thickness", "surface_area_sqm",
    "fire_proofing_workflow", "notes",
)


class StructuralElement(db.Model):
    __tablename__ = "structural_elements"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    serial_no = db.Column(db.String(50), nullable=True)
    structure_number = db.Column(db.String(100), nullable=True)
    drawing_no = db.Column(db.String(100), nullable=True)
    level = db.Column(db.String(50), nullable=True, index=True)
    member_type = db.Column(db.String(50), nullable=True)
    grid_no = db.Column(db.String(50), nullable=True, index=True)
    part_mark_no = db.Column(db.String(100), nullable=True)
    section_sizes = db.Column(db.String(100), nullable=True)
    length_mm = db.Column(db.Float, nullable=True)
    qty = db.Column(db.Float, nullable=True)
    section_depth_mm = db.Column(db.Float, nullable=True)
    flange_width_mm = db.Column(db.Float, nullable=True)
    web_thickness_mm = db.Column(db.Float, nullable=True)
    flange_thickness_mm = db.Column(db.Float, nullable=True)
    fireproofing_thickness = db.Column(db.Float, nullable=True)
    surface_area_sqm = db.Column(db.Float, nullable=True)
    fire_proofing_workflow = db.Column(
        db.String(50), nullable=True,
        comment="workflow template key assigned to this element",
    )
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(30), nullable=True, default="no jobs",
        comment="last derived status; never read for decisions",
    )

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

    jobs = db.relationship(
        "Job", backref="element", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.Index("ix_structural_elements_project_grid", "project_id", "grid_no"),
    )

    def to_dict(self) -> dict:
        data = {"id": self.id, "project_id": self.project_id}
        for name in ELEMENT_FIELDS:
            data[name] = getattr(self, name)
        data["status"] = self.status
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def to_record(self) -> ElementRecord:
        return ElementRecord.from_dict(self.to_dict())

    def __repr__(self) -> str:
        return f"<StructuralElement {self.id}: {self.structure_number}>"
