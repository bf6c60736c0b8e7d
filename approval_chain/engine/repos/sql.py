from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides the relational persistence implementation for the
repository interfaces defined in ``approval_chain.engine.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production uses
  migrations).
- Create a session factory with ``create_sessionmaker``.
- Open a session, start a transaction and build repository instances bound to
  it with ``build_sql_repos``.

Transaction model
-----------------

Unlike a commit-per-call repository, every repository here shares the session
it was built with and never commits. ``TransactionRunner`` opens the session,
begins the transaction, hands the bundle to the unit of work and commits once
at the end, so a step mutation, the subject's aggregate update and the audit
row are durable together.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from approval_chain.core.database.models import (
    ApprovalStepRow,
    ApprovalTemplateRow,
    ApproverChangeRequestRow,
    ApproverRow,
    BypassLogRow,
    DepartmentHeadRow,
    HistoryEntryRow,
    SectionHeadRow,
    SubjectMemberRow,
    SubjectRow,
)
from approval_chain.core.database.utils import utc_now
from approval_chain.core.exceptions import WriteConflict

from ..schemas.domain import (
    ApprovalStep,
    ApprovalTemplate,
    Approver,
    ApproverChangeRequest,
    BypassLog,
    DocumentKind,
    HistoryEntry,
    StepStatus,
    Subject,
    SubjectMember,
    SubjectStatus,
)
from .interfaces import (
    BypassLogRepository,
    ChangeRequestRepository,
    DirectoryRepository,
    HistoryRepository,
    MemberRepository,
    StepRepository,
    SubjectRepository,
    TemplateRepository,
)


def _value(v: Any) -> Any:
    return getattr(v, "value", v)


@dataclass(frozen=True)
class SqlSubjectRepository(SubjectRepository):
    """SQL implementation of ``SubjectRepository``."""

    session: AsyncSession

    async def add(self, subject: Subject) -> None:
        self.session.add(
            SubjectRow(
                id=subject.id,
                kind=_value(subject.kind),
                document_number=subject.document_number,
                line_code=subject.line_code,
                title=subject.title,
                submitter_id=subject.submitter_id,
                section_id=subject.section_id,
                department_id=subject.department_id,
                status=_value(subject.status),
                progress=subject.progress,
                version=subject.version,
                created_at=subject.created_at,
                updated_at=subject.updated_at,
            )
        )

    async def get(self, subject_id: str) -> Optional[Subject]:
        row = await self.session.get(SubjectRow, subject_id, populate_existing=True)
        if row is None:
            return None
        return Subject.model_validate(row)

    async def update_state(
        self, subject_id: str, *, status: SubjectStatus, progress: int, expected_version: int
    ) -> int:
        return await self._bump(subject_id, expected_version, status=_value(status), progress=progress)

    async def touch(self, subject_id: str, *, expected_version: int) -> int:
        return await self._bump(subject_id, expected_version)

    async def _bump(self, subject_id: str, expected_version: int, **values: Any) -> int:
        result = await self.session.execute(
            update(SubjectRow)
            .where(SubjectRow.id == subject_id, SubjectRow.version == expected_version)
            .values(**values, version=expected_version + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise WriteConflict(f"subject {subject_id} changed since version {expected_version}")
        return expected_version + 1


@dataclass(frozen=True)
class SqlStepRepository(StepRepository):
    """SQL implementation of ``StepRepository``."""

    session: AsyncSession

    async def add_many(self, steps: Sequence[ApprovalStep]) -> None:
        self.session.add_all(
            [
                ApprovalStepRow(
                    id=step.id,
                    subject_id=step.subject_id,
                    step_order=step.step_order,
                    actor_label=step.actor_label,
                    approver_id=step.approver_id,
                    status=_value(step.status),
                    note=step.note,
                    version=step.version,
                    original_approver_id=step.original_approver_id,
                    is_changed=step.is_changed,
                    updated_at=step.updated_at,
                )
                for step in steps
            ]
        )

    async def get(self, step_id: str) -> Optional[ApprovalStep]:
        row = await self.session.get(ApprovalStepRow, step_id, populate_existing=True)
        if row is None:
            return None
        return ApprovalStep.model_validate(row)

    async def list_for_subject(self, subject_id: str) -> list[ApprovalStep]:
        stmt = (
            select(ApprovalStepRow)
            .where(ApprovalStepRow.subject_id == subject_id)
            .order_by(ApprovalStepRow.step_order.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [ApprovalStep.model_validate(r) for r in result.scalars().all()]

    async def find_by_approver(self, subject_id: str, approver_id: str) -> Optional[ApprovalStep]:
        stmt = (
            select(ApprovalStepRow)
            .where(ApprovalStepRow.subject_id == subject_id, ApprovalStepRow.approver_id == approver_id)
            .order_by(ApprovalStepRow.step_order.asc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalars().first()
        if row is None:
            return None
        return ApprovalStep.model_validate(row)

    async def save(self, step: ApprovalStep, *, expected_version: int) -> ApprovalStep:
        now = utc_now()
        result = await self.session.execute(
            update(ApprovalStepRow)
            .where(ApprovalStepRow.id == step.id, ApprovalStepRow.version == expected_version)
            .values(
                status=_value(step.status),
                note=step.note,
                approver_id=step.approver_id,
                original_approver_id=step.original_approver_id,
                is_changed=step.is_changed,
                version=expected_version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise WriteConflict(f"approval step {step.id} changed since version {expected_version}")
        return step.model_copy(update={"version": expected_version + 1, "updated_at": now})


@dataclass(frozen=True)
class SqlTemplateRepository(TemplateRepository):
    """SQL implementation of ``TemplateRepository``."""

    session: AsyncSession

    async def list_base(self, kind: DocumentKind, line_code: str) -> list[ApprovalTemplate]:
        stmt = (
            select(ApprovalTemplateRow)
            .where(
                ApprovalTemplateRow.kind == _value(kind),
                ApprovalTemplateRow.is_insert_step.is_(False),
                ApprovalTemplateRow.is_active.is_(True),
                ApprovalTemplateRow.is_deleted.is_(False),
                or_(ApprovalTemplateRow.line_code.is_(None), ApprovalTemplateRow.line_code == line_code),
            )
            .order_by(ApprovalTemplateRow.step_order.asc())
        )
        result = await self.session.execute(stmt)
        return [ApprovalTemplate.model_validate(r) for r in result.scalars().all()]

    async def list_insert_steps(self, kind: DocumentKind) -> list[ApprovalTemplate]:
        stmt = (
            select(ApprovalTemplateRow)
            .where(
                ApprovalTemplateRow.kind == _value(kind),
                ApprovalTemplateRow.is_insert_step.is_(True),
                ApprovalTemplateRow.is_active.is_(True),
                ApprovalTemplateRow.is_deleted.is_(False),
            )
            .order_by(ApprovalTemplateRow.priority.desc(), ApprovalTemplateRow.step_order.asc())
        )
        result = await self.session.execute(stmt)
        return [ApprovalTemplate.model_validate(r) for r in result.scalars().all()]


@dataclass(frozen=True)
class SqlDirectoryRepository(DirectoryRepository):
    """SQL implementation of ``DirectoryRepository``."""

    session: AsyncSession

    async def get_approver(self, approver_id: str) -> Optional[Approver]:
        row = await self.session.get(ApproverRow, approver_id)
        if row is None:
            return None
        return Approver.model_validate(row)

    async def section_heads(self, section_id: str) -> list[Approver]:
        stmt = (
            select(ApproverRow)
            .join(SectionHeadRow, SectionHeadRow.approver_id == ApproverRow.id)
            .where(SectionHeadRow.section_id == section_id)
            .order_by(SectionHeadRow.position.asc())
        )
        result = await self.session.execute(stmt)
        return [Approver.model_validate(r) for r in result.scalars().all()]

    async def department_heads(self, department_id: str) -> list[Approver]:
        stmt = (
            select(ApproverRow)
            .join(DepartmentHeadRow, DepartmentHeadRow.approver_id == ApproverRow.id)
            .where(DepartmentHeadRow.department_id == department_id)
            .order_by(DepartmentHeadRow.position.asc())
        )
        result = await self.session.execute(stmt)
        return [Approver.model_validate(r) for r in result.scalars().all()]


@dataclass(frozen=True)
class SqlHistoryRepository(HistoryRepository):
    """SQL implementation of ``HistoryRepository``."""

    session: AsyncSession

    async def append(self, entry: HistoryEntry) -> None:
        self.session.add(
            HistoryEntryRow(
                id=entry.id,
                subject_id=entry.subject_id,
                approver_id=entry.approver_id,
                status=entry.status,
                note=entry.note,
                description=entry.description,
                action_type=_value(entry.action_type),
                details=entry.details,
                created_at=entry.created_at,
            )
        )

    async def list_for_subject(self, subject_id: str) -> list[HistoryEntry]:
        stmt = (
            select(HistoryEntryRow)
            .where(HistoryEntryRow.subject_id == subject_id)
            .order_by(HistoryEntryRow.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [HistoryEntry.model_validate(r) for r in result.scalars().all()]

    async def find_recent(
        self,
        subject_id: str,
        approver_id: str,
        *,
        status: str,
        note: str,
        since: datetime,
    ) -> Optional[HistoryEntry]:
        stmt = (
            select(HistoryEntryRow)
            .where(
                HistoryEntryRow.subject_id == subject_id,
                HistoryEntryRow.approver_id == approver_id,
                HistoryEntryRow.status == status,
                HistoryEntryRow.note == note,
                HistoryEntryRow.created_at >= since,
            )
            .order_by(HistoryEntryRow.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalars().first()
        if row is None:
            return None
        return HistoryEntry.model_validate(row)

    async def approvers_with_status(self, subject_id: str, status: StepStatus) -> list[str]:
        stmt = (
            select(HistoryEntryRow.approver_id)
            .where(HistoryEntryRow.subject_id == subject_id, HistoryEntryRow.status == _value(status))
            .distinct()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


@dataclass(frozen=True)
class SqlBypassLogRepository(BypassLogRepository):
    """SQL implementation of ``BypassLogRepository``."""

    session: AsyncSession

    async def append(self, log: BypassLog) -> None:
        self.session.add(
            BypassLogRow(
                id=log.id,
                subject_id=log.subject_id,
                admin_id=log.admin_id,
                strategy=_value(log.strategy),
                before_status=_value(log.before_status),
                before_progress=log.before_progress,
                after_status=_value(log.after_status),
                after_progress=log.after_progress,
                reason=log.reason,
                affected_step_count=log.affected_step_count,
                affected_steps=[a.model_dump(mode="json") for a in log.affected_steps],
                created_at=log.created_at,
            )
        )

    async def list_for_subject(self, subject_id: str) -> list[BypassLog]:
        stmt = (
            select(BypassLogRow)
            .where(BypassLogRow.subject_id == subject_id)
            .order_by(BypassLogRow.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [BypassLog.model_validate(r) for r in result.scalars().all()]


@dataclass(frozen=True)
class SqlMemberRepository(MemberRepository):
    """SQL implementation of ``MemberRepository``."""

    session: AsyncSession

    async def add_many(self, members: Sequence[SubjectMember]) -> None:
        self.session.add_all(
            [
                SubjectMemberRow(
                    id=m.id,
                    subject_id=m.subject_id,
                    employee_code=m.employee_code,
                    employee_name=m.employee_name,
                    status=m.status,
                )
                for m in members
            ]
        )

    async def list_for_subject(self, subject_id: str) -> list[SubjectMember]:
        stmt = select(SubjectMemberRow).where(SubjectMemberRow.subject_id == subject_id)
        result = await self.session.execute(stmt)
        return [SubjectMember.model_validate(r) for r in result.scalars().all()]


@dataclass(frozen=True)
class SqlChangeRequestRepository(ChangeRequestRepository):
    """SQL implementation of ``ChangeRequestRepository``."""

    session: AsyncSession

    async def add(self, request: ApproverChangeRequest) -> None:
        self.session.add(
            ApproverChangeRequestRow(
                id=request.id,
                subject_id=request.subject_id,
                step_id=request.step_id,
                current_approver_id=request.current_approver_id,
                new_approver_id=request.new_approver_id,
                reason=request.reason,
                priority=_value(request.priority),
                status=_value(request.status),
                requested_by=request.requested_by,
                admin_decision=request.admin_decision,
                processed_by=request.processed_by,
                processed_at=request.processed_at,
                created_at=request.created_at,
            )
        )

    async def get(self, request_id: str) -> Optional[ApproverChangeRequest]:
        row = await self.session.get(ApproverChangeRequestRow, request_id, populate_existing=True)
        if row is None:
            return None
        return ApproverChangeRequest.model_validate(row)

    async def find_pending_for_step(self, step_id: str) -> Optional[ApproverChangeRequest]:
        stmt = (
            select(ApproverChangeRequestRow)
            .where(ApproverChangeRequestRow.step_id == step_id, ApproverChangeRequestRow.status == "pending")
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalars().first()
        if row is None:
            return None
        return ApproverChangeRequest.model_validate(row)

    async def save(self, request: ApproverChangeRequest) -> None:
        await self.session.execute(
            update(ApproverChangeRequestRow)
            .where(ApproverChangeRequestRow.id == request.id)
            .values(
                status=_value(request.status),
                admin_decision=request.admin_decision,
                processed_by=request.processed_by,
                processed_at=request.processed_at,
            )
        )


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories sharing one unit of work."""

    subjects: SqlSubjectRepository
    steps: SqlStepRepository
    templates: SqlTemplateRepository
    directory: SqlDirectoryRepository
    history: SqlHistoryRepository
    bypass_logs: SqlBypassLogRepository
    members: SqlMemberRepository
    change_requests: SqlChangeRequestRepository


def build_sql_repos(session: AsyncSession) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` bound to an open session.

    Args:
        session: The session (and transaction) every repository shares.

    Returns:
        Bundle containing all repository instances
    """
    return SqlRepoBundle(
        subjects=SqlSubjectRepository(session),
        steps=SqlStepRepository(session),
        templates=SqlTemplateRepository(session),
        directory=SqlDirectoryRepository(session),
        history=SqlHistoryRepository(session),
        bypass_logs=SqlBypassLogRepository(session),
        members=SqlMemberRepository(session),
        change_requests=SqlChangeRequestRepository(session),
    )
