"""Initial schema for the approval chain service

Revision ID: 20261019_000000
Revises: None
Create Date: 2026-10-19 00:00:00.000000

This is the initial migration that creates all tables of the approval engine:
- Subjects and their ordered approval steps
- Approval templates (read-only configuration)
- Approver directory and section/department heads
- Append-only history and bypass logs
- Subject members and approver change requests

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    """Create all tables."""

    op.create_table(
        "ac_subjects",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("document_number", sa.String(128), nullable=False),
        sa.Column("line_code", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("submitter_id", sa.String(64), nullable=False),
        sa.Column("section_id", sa.String(64), nullable=True),
        sa.Column("department_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_subjects_kind", "kind"),
        sa.Index("ix_ac_subjects_line_code", "line_code"),
        sa.Index("ix_ac_subjects_submitter_id", "submitter_id"),
    )

    op.create_table(
        "ac_approval_steps",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("actor_label", sa.String(128), nullable=False),
        sa.Column("approver_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("original_approver_id", sa.String(64), nullable=True),
        sa.Column("is_changed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subject_id", "step_order", name="uq_ac_approval_steps_subject_order"),
        sa.Index("ix_ac_approval_steps_subject_id", "subject_id"),
        sa.Index("ix_ac_approval_steps_approver_id", "approver_id"),
    )

    op.create_table(
        "ac_approval_templates",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("line_code", sa.String(64), nullable=True),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("actor_name", sa.String(128), nullable=False),
        sa.Column("model_type", sa.String(32), nullable=False),
        sa.Column("section_id", sa.String(64), nullable=True),
        sa.Column("use_dynamic_section", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_insert_step", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("insert_after_step", sa.Integer(), nullable=True),
        sa.Column("applies_to_lines", JSONType, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_approval_templates_kind", "kind"),
    )

    op.create_table(
        "ac_history",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("approver_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("details", JSONType, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_history_subject_id", "subject_id"),
        sa.Index("ix_ac_history_approver_id", "approver_id"),
        sa.Index("ix_ac_history_created_at", "created_at"),
    )

    op.create_table(
        "ac_bypass_logs",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("admin_id", sa.String(64), nullable=False),
        sa.Column("strategy", sa.String(16), nullable=False),
        sa.Column("before_status", sa.String(32), nullable=False),
        sa.Column("before_progress", sa.Integer(), nullable=False),
        sa.Column("after_status", sa.String(32), nullable=False),
        sa.Column("after_progress", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("affected_step_count", sa.Integer(), nullable=False),
        sa.Column("affected_steps", JSONType, nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_bypass_logs_subject_id", "subject_id"),
    )

    op.create_table(
        "ac_approvers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("employee_code", sa.String(64), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("gender", sa.String(16), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_approvers_employee_code", "employee_code"),
    )

    for table, unit_column in (("ac_section_heads", "section_id"), ("ac_department_heads", "department_id")):
        op.create_table(
            table,
            sa.Column("id", sa.String(64), nullable=False),
            sa.Column(unit_column, sa.String(64), nullable=False),
            sa.Column("approver_id", sa.String(64), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
            sa.Index(f"ix_{table}_{unit_column}", unit_column),
        )

    op.create_table(
        "ac_subject_members",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("employee_code", sa.String(64), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_subject_members_subject_id", "subject_id"),
    )

    op.create_table(
        "ac_approver_change_requests",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("step_id", sa.String(64), nullable=False),
        sa.Column("current_approver_id", sa.String(64), nullable=False),
        sa.Column("new_approver_id", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("admin_decision", sa.Text(), nullable=True),
        sa.Column("processed_by", sa.String(64), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_ac_approver_change_requests_subject_id", "subject_id"),
        sa.Index("ix_ac_approver_change_requests_step_id", "step_id"),
    )


def downgrade() -> None:
    """Drop all tables created in upgrade."""
    op.drop_table("ac_approver_change_requests")
    op.drop_table("ac_subject_members")
    op.drop_table("ac_department_heads")
    op.drop_table("ac_section_heads")
    op.drop_table("ac_approvers")
    op.drop_table("ac_bypass_logs")
    op.drop_table("ac_history")
    op.drop_table("ac_approval_templates")
    op.drop_table("ac_approval_steps")
    op.drop_table("ac_subjects")
