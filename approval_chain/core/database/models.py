from __future__ import annotations

"""SQLAlchemy ORM models for approval chain persistence.

These ORM models define the SQL schema used by the repository implementations
in ``approval_chain.engine.repos.sql``.

Design
------

The schema is optimized for auditability and concurrent decisions:

- Subjects store the document under approval with its aggregate status and
  progress.
- Approval steps form the ordered chain of one subject. Subjects and steps both
  carry a ``version`` backing the optimistic write check used inside decision
  transactions.
- Templates, approvers and org-unit heads are read-only configuration.
- History entries and bypass logs are append-only audit trails.

Table names are prefixed with ``ac_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class SubjectRow(Base):
    """Row model for ``ac_subjects``.

    One document undergoing approval.

    Key fields:

    - ``kind``: authorization or handover; selects the document profile.
    - ``line_code``: parsed from ``document_number`` at creation time.
    - ``status``/``progress``: aggregate state recomputed on every decision.
    - ``version``: bumped on every write so writers racing on disjoint steps
      still conflict on the subject row.
    """

    __tablename__ = "ac_subjects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), index=True)
    document_number: Mapped[str] = mapped_column(String(128))
    line_code: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    submitter_id: Mapped[str] = mapped_column(String(64), index=True)
    section_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    department_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(String(32))
    progress: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ApprovalStepRow(Base):
    """Row model for ``ac_approval_steps``.

    ``step_order`` is contiguous ``1..N`` per subject and never changes after
    creation. ``approver_id`` only changes through an approved change request.
    """

    __tablename__ = "ac_approval_steps"
    __table_args__ = (UniqueConstraint("subject_id", "step_order", name="uq_ac_approval_steps_subject_order"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    step_order: Mapped[int] = mapped_column(Integer)
    actor_label: Mapped[str] = mapped_column(String(128))
    approver_id: Mapped[str] = mapped_column(String(64), index=True)

    status: Mapped[str] = mapped_column(String(32))
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1)
    original_approver_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_changed: Mapped[bool] = mapped_column(Boolean, default=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ApprovalTemplateRow(Base):
    """Row model for ``ac_approval_templates``.

    ``line_code`` null means the template belongs to every line. Insert steps
    carry ``applies_to_lines`` either as a JSON array or as JSON-encoded text.
    """

    __tablename__ = "ac_approval_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), index=True)
    line_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    step_order: Mapped[int] = mapped_column(Integer)
    actor_name: Mapped[str] = mapped_column(String(128))

    model_type: Mapped[str] = mapped_column(String(32))
    section_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    use_dynamic_section: Mapped[bool] = mapped_column(Boolean, default=False)

    is_insert_step: Mapped[bool] = mapped_column(Boolean, default=False)
    insert_after_step: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    applies_to_lines: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)


class HistoryEntryRow(Base):
    """Row model for ``ac_history``.

    Append-only audit timeline of a subject. ``details`` holds structured
    context for administrative actions (bypass, approver changes).
    """

    __tablename__ = "ac_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    approver_id: Mapped[str] = mapped_column(String(64), index=True)

    status: Mapped[str] = mapped_column(String(32))
    note: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str] = mapped_column(Text)
    action_type: Mapped[str] = mapped_column(String(32))
    details: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class BypassLogRow(Base):
    """Row model for ``ac_bypass_logs``.

    Append-only record of administrative overrides with before/after state.
    """

    __tablename__ = "ac_bypass_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    admin_id: Mapped[str] = mapped_column(String(64))
    strategy: Mapped[str] = mapped_column(String(16))

    before_status: Mapped[str] = mapped_column(String(32))
    before_progress: Mapped[int] = mapped_column(Integer)
    after_status: Mapped[str] = mapped_column(String(32))
    after_progress: Mapped[int] = mapped_column(Integer)

    reason: Mapped[str] = mapped_column(Text)
    affected_step_count: Mapped[int] = mapped_column(Integer)
    affected_steps: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ApproverRow(Base):
    """Row model for ``ac_approvers`` (identity directory)."""

    __tablename__ = "ac_approvers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    employee_code: Mapped[str] = mapped_column(String(64), index=True)
    employee_name: Mapped[str] = mapped_column(String(255))
    gender: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class SectionHeadRow(Base):
    """Row model for ``ac_section_heads``: current head(s) of a section."""

    __tablename__ = "ac_section_heads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    section_id: Mapped[str] = mapped_column(String(64), index=True)
    approver_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)


class DepartmentHeadRow(Base):
    """Row model for ``ac_department_heads``: current head(s) of a department."""

    __tablename__ = "ac_department_heads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    department_id: Mapped[str] = mapped_column(String(64), index=True)
    approver_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)


class SubjectMemberRow(Base):
    """Row model for ``ac_subject_members``."""

    __tablename__ = "ac_subject_members"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    employee_code: Mapped[str] = mapped_column(String(64))
    employee_name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(16), default="active")


class ApproverChangeRequestRow(Base):
    """Row model for ``ac_approver_change_requests``.

    A request to hand one undecided step over to another approver, pending
    until an administrator approves or rejects it.
    """

    __tablename__ = "ac_approver_change_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject_id: Mapped[str] = mapped_column(String(64), index=True)
    step_id: Mapped[str] = mapped_column(String(64), index=True)
    current_approver_id: Mapped[str] = mapped_column(String(64))
    new_approver_id: Mapped[str] = mapped_column(String(64))

    reason: Mapped[str] = mapped_column(Text)
    priority: Mapped[str] = mapped_column(String(16), default="normal")
    status: Mapped[str] = mapped_column(String(16))
    requested_by: Mapped[str] = mapped_column(String(64))

    admin_decision: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
