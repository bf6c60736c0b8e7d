from __future__ import annotations

"""Repository interface contracts.

The engine depends on these Protocols instead of concrete persistence
implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations are bound to one unit of work (one ``AsyncSession``); they
  never commit. The transaction runner owns commit and rollback so that a
  decision's step, subject and history writes land together or not at all.
- History entries and bypass logs are append-only.
- Templates, approvers and org-unit heads are read-only configuration.
"""

from datetime import datetime
from typing import Optional, Protocol, Sequence

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


class SubjectRepository(Protocol):
    """Persist and query subjects (documents under approval)."""

    async def add(self, subject: Subject) -> None:
        """
        Insert a new subject.

        Args:
            subject: The subject to persist.
        """
        ...

    async def get(self, subject_id: str) -> Optional[Subject]:
        """
        Retrieve a subject by its ID.

        Args:
            subject_id: The subject identifier.

        Returns:
            The Subject if found, else None.
        """
        ...

    async def update_state(
        self, subject_id: str, *, status: SubjectStatus, progress: int, expected_version: int
    ) -> int:
        """
        Overwrite the aggregate status and progress of a subject.

        Args:
            subject_id: The subject to update.
            status: The new aggregate status.
            progress: The new progress percentage (0-100).
            expected_version: The version read at the start of the unit of work.

        Returns:
            The new version.

        Raises:
            WriteConflict: Another transaction updated the subject first.
        """
        ...

    async def touch(self, subject_id: str, *, expected_version: int) -> int:
        """Bump ``updated_at`` and the version without changing state."""
        ...


class StepRepository(Protocol):
    """Persist and query the approval steps of a subject."""

    async def add_many(self, steps: Sequence[ApprovalStep]) -> None:
        """Insert the full chain of a new subject."""
        ...

    async def get(self, step_id: str) -> Optional[ApprovalStep]:
        """Retrieve a step by its ID."""
        ...

    async def list_for_subject(self, subject_id: str) -> list[ApprovalStep]:
        """
        List a subject's chain.

        Args:
            subject_id: The subject identifier.

        Returns:
            Steps ordered by ``step_order`` ascending.
        """
        ...

    async def find_by_approver(self, subject_id: str, approver_id: str) -> Optional[ApprovalStep]:
        """Locate the step a given approver holds in a subject's chain."""
        ...

    async def save(self, step: ApprovalStep, *, expected_version: int) -> ApprovalStep:
        """
        Persist a mutated step using an optimistic version check.

        Args:
            step: The step carrying its new status, note and approver.
            expected_version: The version the caller read before mutating.

        Returns:
            The step with its bumped version.

        Raises:
            WriteConflict: If another writer changed the row in the meantime.
        """
        ...


class TemplateRepository(Protocol):
    """Read-only access to approval templates."""

    async def list_base(self, kind: DocumentKind, line_code: str) -> list[ApprovalTemplate]:
        """
        List active, non-deleted, non-insert templates for a document kind.

        Templates with a null ``line_code`` apply to every line; otherwise the
        template's line must match.

        Returns:
            Templates ordered by ``step_order`` ascending.
        """
        ...

    async def list_insert_steps(self, kind: DocumentKind) -> list[ApprovalTemplate]:
        """
        List active, non-deleted insert-step templates for a document kind.

        Returns:
            Templates ordered by ``priority`` descending, then ``step_order``.
        """
        ...


class DirectoryRepository(Protocol):
    """Read-only access to the approver directory and org-unit heads."""

    async def get_approver(self, approver_id: str) -> Optional[Approver]:
        ...

    async def section_heads(self, section_id: str) -> list[Approver]:
        """Heads of a section ordered by position."""
        ...

    async def department_heads(self, department_id: str) -> list[Approver]:
        """Heads of a department ordered by position."""
        ...


class HistoryRepository(Protocol):
    """Append-only audit trail of a subject."""

    async def append(self, entry: HistoryEntry) -> None:
        ...

    async def list_for_subject(self, subject_id: str) -> list[HistoryEntry]:
        """List entries newest first."""
        ...

    async def find_recent(
        self,
        subject_id: str,
        approver_id: str,
        *,
        status: str,
        note: str,
        since: datetime,
    ) -> Optional[HistoryEntry]:
        """
        Find an identical decision recorded at or after ``since``.

        Args:
            subject_id: The subject identifier.
            approver_id: The approver who decided.
            status: The decision status.
            note: The decision note (empty string when none was given).
            since: Lower bound of the lookup window.

        Returns:
            The matching entry, or None.
        """
        ...

    async def approvers_with_status(self, subject_id: str, status: StepStatus) -> list[str]:
        """Distinct approver IDs that recorded ``status`` on the subject."""
        ...


class BypassLogRepository(Protocol):
    async def append(self, log: BypassLog) -> None:
        ...

    async def list_for_subject(self, subject_id: str) -> list[BypassLog]:
        ...


class MemberRepository(Protocol):
    async def add_many(self, members: Sequence[SubjectMember]) -> None:
        ...

    async def list_for_subject(self, subject_id: str) -> list[SubjectMember]:
        ...


class ChangeRequestRepository(Protocol):
    """Persist approver change requests."""

    async def add(self, request: ApproverChangeRequest) -> None:
        ...

    async def get(self, request_id: str) -> Optional[ApproverChangeRequest]:
        ...

    async def find_pending_for_step(self, step_id: str) -> Optional[ApproverChangeRequest]:
        ...

    async def save(self, request: ApproverChangeRequest) -> None:
        """Persist the decision fields of a processed request."""
        ...
