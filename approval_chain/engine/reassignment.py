"""Approver change requests.

An approver who cannot decide on their step asks for it to be handed to
someone else; an administrator approves or rejects the request. The approved
change swaps the step's approver in place, keeping ``step_order`` and status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from approval_chain.core.database.utils import utc_now
from approval_chain.core.exceptions import BusinessRuleViolation, NotFoundError, PermissionDenied, ValidationError
from approval_chain.core.logging_config import get_logger

from .history import describe
from .profiles import profile_for
from .repos.sql import SqlRepoBundle
from .schemas.domain import (
    ApprovalStep,
    Approver,
    ApproverChangeRequest,
    ChangeRequestPriority,
    ChangeRequestStatus,
    HistoryAction,
    HistoryEntry,
    StepStatus,
    Subject,
    SubjectStatus,
)

logger = get_logger(__name__)

_CHANGEABLE = frozenset({StepStatus.pending, StepStatus.on_going})


@dataclass(frozen=True)
class ChangeOutcome:
    subject: Subject
    request: ApproverChangeRequest
    step: ApprovalStep
    entry: HistoryEntry
    new_approver: Optional[Approver] = None


class ApproverChangeManager:
    """Create and process approver change requests."""

    def __init__(self, admin_roles: Iterable[str] = ("admin", "Admin", "Super Admin")) -> None:
        self._admin_roles = frozenset(admin_roles)

    def check_processing(
        self,
        admin_role: Optional[str],
        decision: str,
        admin_decision: Optional[str],
    ) -> ChangeRequestStatus:
        """
        Pre-transaction checks for processing a request.

        Returns:
            The parsed decision.

        Raises:
            PermissionDenied: The caller's role may not process requests.
            ValidationError: Decision is not approved/rejected, or no admin decision text.
        """
        if admin_role not in self._admin_roles:
            raise PermissionDenied(
                "Only an administrator can process approver change requests", details={"role": admin_role}
            )
        if decision not in (ChangeRequestStatus.approved.value, ChangeRequestStatus.rejected.value):
            raise ValidationError(
                f"Invalid change request decision '{decision}'", details={"allowed": ["approved", "rejected"]}
            )
        if not admin_decision or not admin_decision.strip():
            raise ValidationError("An admin decision note is required")
        return ChangeRequestStatus(decision)

    async def _load(self, repos: SqlRepoBundle, subject_id: str, step_id: str) -> tuple[Subject, ApprovalStep]:
        subject = await repos.subjects.get(subject_id)
        if subject is None:
            raise NotFoundError("Subject", subject_id)
        step = await repos.steps.get(step_id)
        if step is None or step.subject_id != subject_id:
            raise NotFoundError("ApprovalStep", step_id)
        return subject, step

    async def request_change(
        self,
        repos: SqlRepoBundle,
        *,
        subject_id: str,
        step_id: str,
        current_approver_id: str,
        new_approver_id: str,
        reason: str,
        requested_by: str,
        priority: ChangeRequestPriority = ChangeRequestPriority.normal,
    ) -> ChangeOutcome:
        """
        File a change request for an undecided step.

        Raises:
            ValidationError: Missing reason, or the new approver equals the current one.
            NotFoundError: Unknown subject, step or new approver.
            BusinessRuleViolation: The subject is done, the step is already decided,
                the current approver does not hold the step, the new approver is
                inactive, or a request for the step is already pending.
        """
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to change an approver", details={"reason": reason})
        if current_approver_id == new_approver_id:
            raise ValidationError(
                "The new approver must differ from the current one", details={"new_approver_id": new_approver_id}
            )

        subject, step = await self._load(repos, subject_id, step_id)
        if subject.status == SubjectStatus.done:
            raise BusinessRuleViolation(f"Subject {subject_id} is already done")
        if step.status not in _CHANGEABLE:
            raise BusinessRuleViolation(
                f"Step {step.step_order} is {step.status.value}; only pending or on_going steps can change approver"
            )
        if step.approver_id != current_approver_id:
            raise BusinessRuleViolation(
                f"Approver {current_approver_id} does not hold step {step.step_order}",
                details={"step_approver_id": step.approver_id},
            )

        new_approver = await repos.directory.get_approver(new_approver_id)
        if new_approver is None:
            raise NotFoundError("Approver", new_approver_id)
        if not new_approver.is_active:
            raise BusinessRuleViolation(f"Approver {new_approver_id} is not active")
        if await repos.steps.find_by_approver(subject_id, new_approver_id) is not None:
            raise BusinessRuleViolation(f"Approver {new_approver_id} already holds a step in this chain")
        if await repos.change_requests.find_pending_for_step(step_id) is not None:
            raise BusinessRuleViolation(f"A change request for step {step.step_order} is already pending")

        request = ApproverChangeRequest(
            subject_id=subject_id,
            step_id=step_id,
            current_approver_id=current_approver_id,
            new_approver_id=new_approver_id,
            reason=reason,
            priority=priority,
            requested_by=requested_by,
        )
        await repos.change_requests.add(request)

        requester = await repos.directory.get_approver(requested_by)
        entry = HistoryEntry(
            subject_id=subject_id,
            approver_id=requested_by,
            status="change_requested",
            note=reason,
            description=describe(
                profile_for(subject.kind),
                requester.employee_name if requester else requested_by,
                "change_requested",
                step_order=step.step_order,
            ),
            action_type=HistoryAction.change_requested,
            details={"request_id": request.id, "new_approver_id": new_approver_id, "priority": priority.value},
        )
        await repos.history.append(entry)
        logger.info(f"Approver change requested for step {step.step_order} of {subject_id} ({request.id})")
        return ChangeOutcome(subject=subject, request=request, step=step, entry=entry, new_approver=new_approver)

    async def process(
        self,
        repos: SqlRepoBundle,
        *,
        request_id: str,
        decision: ChangeRequestStatus,
        admin_decision: str,
        admin_id: str,
    ) -> ChangeOutcome:
        """
        Approve or reject a pending change request.

        The caller validates the decision with ``check_processing`` first.

        Raises:
            NotFoundError: Unknown request, subject or step.
            BusinessRuleViolation: The request was already processed, or the
                step was decided in the meantime.
        """
        request = await repos.change_requests.get(request_id)
        if request is None:
            raise NotFoundError("ApproverChangeRequest", request_id)
        if request.status != ChangeRequestStatus.pending:
            raise BusinessRuleViolation(f"Change request {request_id} was already {request.status.value}")

        subject, step = await self._load(repos, request.subject_id, request.step_id)
        processed = request.model_copy(
            update={
                "status": decision,
                "admin_decision": admin_decision,
                "processed_by": admin_id,
                "processed_at": utc_now(),
            }
        )

        admin = await repos.directory.get_approver(admin_id)
        admin_name = admin.employee_name if admin else admin_id
        profile = profile_for(subject.kind)
        new_approver: Optional[Approver] = None

        if decision == ChangeRequestStatus.approved:
            if step.status not in _CHANGEABLE:
                raise BusinessRuleViolation(
                    f"Step {step.step_order} was already {step.status.value}; approver can no longer change"
                )
            new_approver = await repos.directory.get_approver(request.new_approver_id)
            if new_approver is None:
                raise NotFoundError("Approver", request.new_approver_id)
            if await repos.steps.find_by_approver(subject.id, new_approver.id) is not None:
                raise BusinessRuleViolation(f"Approver {new_approver.id} already holds a step in this chain")
            step = await repos.steps.save(
                step.model_copy(
                    update={
                        "approver_id": new_approver.id,
                        "original_approver_id": step.original_approver_id or step.approver_id,
                        "is_changed": True,
                    }
                ),
                expected_version=step.version,
            )
            entry = HistoryEntry(
                subject_id=subject.id,
                approver_id=admin_id,
                status="approver_changed",
                note=admin_decision,
                description=describe(
                    profile,
                    admin_name,
                    "approver_changed",
                    step_order=step.step_order,
                    new_approver_name=new_approver.employee_name,
                ),
                action_type=HistoryAction.approver_changed,
                details={
                    "request_id": request.id,
                    "previous_approver_id": request.current_approver_id,
                    "new_approver_id": new_approver.id,
                },
            )
        else:
            entry = HistoryEntry(
                subject_id=subject.id,
                approver_id=admin_id,
                status="change_rejected",
                note=admin_decision,
                description=describe(profile, admin_name, "change_rejected", step_order=step.step_order),
                action_type=HistoryAction.change_rejected,
                details={"request_id": request.id},
            )

        await repos.change_requests.save(processed)
        await repos.history.append(entry)
        await repos.subjects.touch(subject.id, expected_version=subject.version)
        logger.info(f"Approver change request {request_id} {decision.value} by {admin_id}")
        return ChangeOutcome(subject=subject, request=processed, step=step, entry=entry, new_approver=new_approver)
