"""initial_readiness_schema

Create projects, criteria_templates, criteria and evidence tables.

Revision ID: 7e3a9c1d2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7e3a9c1d2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("project_code", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("owner_email", sa.String(length=200), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("go_live_date", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_org_id", "projects", ["org_id"])

    if "criteria_templates" not in existing_tables:
        op.create_table(
            "criteria_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=False, server_default="med"),
            sa.Column("default_status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("evidence_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("default_due_offset_days", sa.Integer(), nullable=True),
            sa.Column("meta", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_criteria_templates_org_id", "criteria_templates", ["org_id"])
        op.create_index(
            "ix_criteria_templates_catalog", "criteria_templates",
            ["is_active", "category", "title"],
        )

    if "criteria" not in existing_tables:
        op.create_table(
            "criteria",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("org_id", sa.String(length=36), nullable=True),
            sa.Column("template_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=False, server_default="med"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="not_started"),
            sa.Column("evidence_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("owner_email", sa.String(length=200), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("caveat_reason", sa.Text(), nullable=True),
            sa.Column("meta", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_criteria_project_id", "criteria", ["project_id"])
        op.create_index("ix_criteria_project_template", "criteria", ["project_id", "template_id"])

    if "evidence" not in existing_tables:
        op.create_table(
            "evidence",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("criterion_id", sa.String(length=36), nullable=False),
            sa.Column("kind", sa.String(length=10), nullable=False, server_default="note"),
            sa.Column("note", sa.Text(), nullable=False),
            sa.Column("url", sa.Text(), nullable=True),
            sa.Column("file_path", sa.String(length=500), nullable=True),
            sa.Column("mime_type", sa.String(length=150), nullable=True),
            sa.Column("size_bytes", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by", sa.String(length=200), nullable=True),
            sa.Column("meta", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["criterion_id"], ["criteria.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_evidence_criterion_id", "evidence", ["criterion_id"])
        op.create_index("ix_evidence_criterion_ts", "evidence", ["criterion_id", "uploaded_at"])


def downgrade():
    op.drop_table("evidence")
    op.drop_table("criteria")
    op.drop_table("criteria_templates")
    op.drop_table("projects")
