"""initial_tracker_tables

Create projects, structural_elements, jobs and workflow_templates.

Revision ID: 7c1e4a9b2d10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d10"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("priority", sa.String(length=20), nullable=True, server_default="medium"),
            sa.Column("location", sa.String(length=200), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "structural_elements" not in existing_tables:
        op.create_table(
            "structural_elements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("serial_no", sa.String(length=50), nullable=True),
            sa.Column("structure_number", sa.String(length=100), nullable=True),
            sa.Column("drawing_no", sa.String(length=100), nullable=True),
            sa.Column("level", sa.String(length=50), nullable=True),
            sa.Column("member_type", sa.String(length=50), nullable=True),
            sa.Column("grid_no", sa.String(length=50), nullable=True),
            sa.Column("part_mark_no", sa.String(length=100), nullable=True),
            sa.Column("section_sizes", sa.String(length=100), nullable=True),
            sa.Column("length_mm", sa.Float(), nullable=True),
            sa.Column("qty", sa.Float(), nullable=True),
            sa.Column("section_depth_mm", sa.Float(), nullable=True),
            sa.Column("flange_width_mm", sa.Float(), nullable=True),
            sa.Column("web_thickness_mm", sa.Float(), nullable=True),
            sa.Column("flange_thickness_mm", sa.Float(), nullable=True),
            sa.Column("fireproofing_thickness", sa.Float(), nullable=True),
            sa.Column("surface_area_sqm", sa.Float(), nullable=True),
            sa.Column("fire_proofing_workflow", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True, server_default="no jobs"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_structural_elements_project_id", "structural_elements", ["project_id"])
        op.create_index("ix_structural_elements_level", "structural_elements", ["level"])
        op.create_index("ix_structural_elements_grid_no", "structural_elements", ["grid_no"])
        op.create_index(
            "ix_structural_elements_project_grid", "structural_elements", ["project_id", "grid_no"],
        )

    if "jobs" not in existing_tables:
        op.create_table(
            "jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("element_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("job_type", sa.String(length=50), nullable=False, server_default="custom"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
            sa.Column("order_index", sa.Float(), nullable=True),
            sa.Column("step_number", sa.Integer(), nullable=True),
            sa.Column("total_steps", sa.Integer(), nullable=True),
            sa.Column("fire_proofing_type", sa.String(length=50), nullable=True),
            sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["element_id"], ["structural_elements.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_jobs_element_id", "jobs", ["element_id"])
        op.create_index("ix_jobs_project_id", "jobs", ["project_id"])
        op.create_index("ix_jobs_status", "jobs", ["status"])
        op.create_index("ix_jobs_element_order", "jobs", ["element_id", "order_index"])

    if "workflow_templates" not in existing_tables:
        op.create_table(
            "workflow_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=50), nullable=False),
            sa.Column("display_name", sa.String(length=100), nullable=False),
            sa.Column("fire_proofing_type", sa.String(length=50), nullable=True),
            sa.Column("steps", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key", name="uq_workflow_templates_key"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "workflow_templates" in existing_tables:
        op.drop_table("workflow_templates")

    if "jobs" in existing_tables:
        op.drop_index("ix_jobs_element_order", table_name="jobs")
        op.drop_index("ix_jobs_status", table_name="jobs")
        op.drop_index("ix_jobs_project_id", table_name="jobs")
        op.drop_index("ix_jobs_element_id", table_name="jobs")
        op.drop_table("jobs")

    if "structural_elements" in existing_tables:
        op.drop_index("ix_structural_elements_project_grid", table_name="structural_elements")
        op.drop_index("ix_structural_elements_grid_no", table_name="structural_elements")
        op.drop_index("ix_structural_elements_level", table_name="structural_elements")
        op.drop_index("ix_structural_elements_project_id", table_name="structural_elements")
        op.drop_table("structural_elements")

    if "projects" in existing_tables:
        op.drop_table("projects")
