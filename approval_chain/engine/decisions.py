"""Decision processing: the per-step and aggregate state machine.

Steps move ``pending -> on_going -> {approved | not_approved | rejected}``;
``approved`` is terminal. One decision mutates one step, may promote the next
step, recomputes the subject's progress and aggregate status, and appends one
history entry. All of it runs inside the unit of work handed in by
``TransactionRunner`` so it commits together or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from approval_chain.core.exceptions import BusinessRuleViolation, NotFoundError, ValidationError
from approval_chain.core.logging_config import get_logger

from .duplicates import DuplicateSuppressor
from .history import describe
from .profiles import profile_for
from .repos.sql import SqlRepoBundle
from .schemas.domain import (
    DECISION_STATUSES,
    ApprovalStep,
    HistoryAction,
    HistoryEntry,
    StepStatus,
    Subject,
    SubjectStatus,
)

logger = get_logger(__name__)

# A next step already in one of these states is left alone on promotion.
_NO_PROMOTION = frozenset({StepStatus.approved, StepStatus.not_approved, StepStatus.rejected, StepStatus.on_going})


def compute_progress(steps: Sequence[ApprovalStep]) -> int:
    """Percentage of approved steps, rounded half up. Zero for an empty chain."""
    total = len(steps)
    if total == 0:
        return 0
    approved = sum(1 for s in steps if s.status == StepStatus.approved)
    return (200 * approved + total) // (2 * total)


def aggregate_status(steps: Sequence[ApprovalStep], *, last_step_approved: bool = False) -> SubjectStatus:
    """Derive the subject status from its whole chain.

    Precedence: any ``rejected`` step, then any ``not_approved`` step, then a
    completed chain (every step approved, or the final step just approved),
    otherwise still in progress.
    """
    statuses = [s.status for s in steps]
    if StepStatus.rejected in statuses:
        return SubjectStatus.rejected
    if StepStatus.not_approved in statuses:
        return SubjectStatus.not_approved
    if statuses and (last_step_approved or all(s == StepStatus.approved for s in statuses)):
        return SubjectStatus.done
    return SubjectStatus.on_progress


def parse_decision_status(value: str) -> StepStatus:
    """Validate a submitted decision status."""
    try:
        status = StepStatus(value)
    except ValueError:
        status = None
    if status not in DECISION_STATUSES:
        raise ValidationError(
            f"Invalid decision status '{value}'",
            details={"status": value, "allowed": sorted(s.value for s in DECISION_STATUSES)},
        )
    return status


def _replace(steps: Sequence[ApprovalStep], step: ApprovalStep) -> list[ApprovalStep]:
    return [step if s.id == step.id else s for s in steps]


@dataclass(frozen=True)
class DecisionOutcome:
    """Result of one decision attempt.

    ``duplicate`` is set when the decision was recognized as a repeat of one
    already recorded; nothing was written in that case.
    """

    subject: Subject
    step: Optional[ApprovalStep] = None
    activated_step: Optional[ApprovalStep] = None
    entry: Optional[HistoryEntry] = None
    duplicate: bool = False


class DecisionProcessor:
    """Apply one approver decision to a subject's chain."""

    def __init__(self, duplicates: DuplicateSuppressor) -> None:
        self._duplicates = duplicates

    async def apply(
        self,
        repos: SqlRepoBundle,
        *,
        subject_id: str,
        approver_id: str,
        status: StepStatus,
        note: Optional[str] = None,
    ) -> DecisionOutcome:
        """
        Apply a decision inside the caller's transaction.

        Args:
            repos: Repositories bound to the current transaction.
            subject_id: The subject being decided on.
            approver_id: The approver submitting the decision.
            status: One of approved, not_approved, rejected.
            note: Optional free-text note.

        Returns:
            The outcome carrying the updated subject and steps.

        Raises:
            NotFoundError: Unknown subject, or approver holds no step in the chain.
            BusinessRuleViolation: The approver's step is already approved.
        """
        note_text = note or ""
        subject = await repos.subjects.get(subject_id)
        if subject is None:
            raise NotFoundError("Subject", subject_id)

        duplicate = await self._duplicates.find(
            repos.history, subject_id=subject_id, approver_id=approver_id, status=status, note=note_text
        )
        if duplicate is not None:
            logger.info(f"Duplicate {status.value} decision by {approver_id} on {subject_id} ignored inside transaction")
            return DecisionOutcome(subject=subject, duplicate=True)

        step = await repos.steps.find_by_approver(subject_id, approver_id)
        if step is None:
            raise NotFoundError("ApprovalStep", f"{subject_id}/{approver_id}")
        if step.status == StepStatus.approved:
            raise BusinessRuleViolation(
                f"Step {step.step_order} of subject {subject_id} is already approved",
                details={"step_id": step.id, "status": step.status.value},
            )

        chain = await repos.steps.list_for_subject(subject_id)
        decided = await repos.steps.save(
            step.model_copy(update={"status": status, "note": note}), expected_version=step.version
        )
        chain = _replace(chain, decided)

        activated: Optional[ApprovalStep] = None
        last_step_approved = False
        if status == StepStatus.approved:
            nxt = next((s for s in chain if s.step_order == step.step_order + 1), None)
            if nxt is None:
                last_step_approved = True
            elif nxt.status not in _NO_PROMOTION:
                if any(s.status == StepStatus.on_going for s in chain if s.id != nxt.id):
                    logger.warning(
                        f"Step {nxt.step_order} of {subject_id} not promoted: another step is already on_going"
                    )
                else:
                    activated = await repos.steps.save(
                        nxt.model_copy(update={"status": StepStatus.on_going}), expected_version=nxt.version
                    )
                    chain = _replace(chain, activated)

        progress = compute_progress(chain)
        new_status = aggregate_status(chain, last_step_approved=last_step_approved)
        version = await repos.subjects.update_state(
            subject_id, status=new_status, progress=progress, expected_version=subject.version
        )

        again = False
        if status == StepStatus.not_approved:
            again = approver_id in await repos.history.approvers_with_status(subject_id, StepStatus.not_approved)
        approver = await repos.directory.get_approver(approver_id)
        entry = HistoryEntry(
            subject_id=subject_id,
            approver_id=approver_id,
            status=status.value,
            note=note_text,
            description=describe(
                profile_for(subject.kind),
                approver.employee_name if approver else approver_id,
                status.value,
                again=again,
            ),
            action_type=HistoryAction.decision,
            details={"step_order": step.step_order, "progress": progress},
        )
        await repos.history.append(entry)

        logger.info(
            f"Subject {subject_id}: step {step.step_order} {step.status.value} -> {status.value}, "
            f"subject {subject.status.value} -> {new_status.value}, progress {subject.progress} -> {progress}"
        )
        return DecisionOutcome(
            subject=subject.model_copy(update={"status": new_status, "progress": progress, "version": version}),
            step=decided,
            activated_step=activated,
            entry=entry,
        )
