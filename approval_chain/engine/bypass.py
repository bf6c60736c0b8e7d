"""Administrative bypass of a stuck approval chain.

Two strategies, chosen by the requested target status:

- ``approved`` (partial): every ``on_going`` step is approved and the earliest
  ``pending`` step takes over, so the chain keeps moving.
- ``done`` (full): every ``pending`` or ``on_going`` step is approved and the
  subject is closed at 100%.

Both write a bypass log with the before/after state and the affected steps,
plus a mirrored history entry, inside the same transaction as the step updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from approval_chain.core.exceptions import BusinessRuleViolation, NotFoundError, PermissionDenied, ValidationError
from approval_chain.core.logging_config import get_logger

from .decisions import compute_progress
from .history import bypass_note, describe
from .profiles import profile_for
from .repos.sql import SqlRepoBundle
from .schemas.domain import (
    AffectedStep,
    ApprovalStep,
    BypassLog,
    BypassStrategy,
    HistoryAction,
    HistoryEntry,
    StepStatus,
    Subject,
    SubjectStatus,
)

logger = get_logger(__name__)

_STRATEGIES = {
    "approved": BypassStrategy.partial,
    "done": BypassStrategy.full,
}


def strategy_for(target_status: str) -> BypassStrategy:
    """Map a requested target status onto a bypass strategy."""
    strategy = _STRATEGIES.get(target_status)
    if strategy is None:
        raise ValidationError(
            f"Invalid bypass target status '{target_status}'",
            details={"target_status": target_status, "allowed": sorted(_STRATEGIES)},
        )
    return strategy


@dataclass(frozen=True)
class BypassOutcome:
    subject: Subject
    log: BypassLog
    entry: HistoryEntry
    affected_steps: list[ApprovalStep]


class BypassEngine:
    """Force a subject's chain forward on behalf of a privileged administrator."""

    def __init__(self, admin_roles: Iterable[str] = ("Super Admin",)) -> None:
        self._admin_roles = frozenset(admin_roles)

    def authorize(self, admin_role: Optional[str]) -> None:
        if admin_role not in self._admin_roles:
            raise PermissionDenied(
                "Only a privileged administrator can bypass an approval chain",
                details={"role": admin_role},
            )

    def validate(self, target_status: str, reason: Optional[str]) -> BypassStrategy:
        """Pre-transaction validation of a bypass request."""
        strategy = strategy_for(target_status)
        if not reason or not reason.strip():
            raise ValidationError("A bypass reason is required", details={"reason": reason})
        return strategy

    async def apply(
        self,
        repos: SqlRepoBundle,
        *,
        subject_id: str,
        strategy: BypassStrategy,
        reason: str,
        admin_id: str,
    ) -> BypassOutcome:
        """
        Apply a bypass inside the caller's transaction.

        Args:
            repos: Repositories bound to the current transaction.
            subject_id: The subject to bypass.
            strategy: Partial or full bypass.
            reason: Why the administrator overrides the chain.
            admin_id: The acting administrator.

        Returns:
            The updated subject, the written log and history entry and the changed steps.

        Raises:
            NotFoundError: Unknown subject.
            BusinessRuleViolation: The subject is already complete, or no step is eligible.
        """
        subject = await repos.subjects.get(subject_id)
        if subject is None:
            raise NotFoundError("Subject", subject_id)
        if subject.status == SubjectStatus.done and subject.progress == 100:
            raise BusinessRuleViolation(
                f"Subject {subject_id} is already complete", details={"status": subject.status.value}
            )

        chain = await repos.steps.list_for_subject(subject_id)
        eligible = {StepStatus.on_going}
        if strategy == BypassStrategy.full:
            eligible.add(StepStatus.pending)
        targets = [s for s in chain if s.status in eligible]
        if not targets:
            raise BusinessRuleViolation(
                f"No step of subject {subject_id} is eligible for a {strategy.value} bypass",
                details={"eligible_statuses": sorted(s.value for s in eligible)},
            )

        admin = await repos.directory.get_approver(admin_id)
        admin_name = admin.employee_name if admin else admin_id
        note = bypass_note(admin_name, strategy.value, reason)

        affected: list[AffectedStep] = []
        changed: list[ApprovalStep] = []
        by_id = {s.id: s for s in chain}
        for step in targets:
            saved = await repos.steps.save(
                step.model_copy(update={"status": StepStatus.approved, "note": note}), expected_version=step.version
            )
            by_id[saved.id] = saved
            changed.append(saved)
            affected.append(self._affected(step, StepStatus.approved))

        if strategy == BypassStrategy.partial:
            progress = compute_progress(list(by_id.values()))
            pending = sorted((s for s in by_id.values() if s.status == StepStatus.pending), key=lambda s: s.step_order)
            if pending:
                promoted = await repos.steps.save(
                    pending[0].model_copy(update={"status": StepStatus.on_going}),
                    expected_version=pending[0].version,
                )
                by_id[promoted.id] = promoted
                changed.append(promoted)
                affected.append(self._affected(pending[0], StepStatus.on_going))
            unresolved = any(s.status != StepStatus.approved for s in by_id.values())
            new_status = SubjectStatus.approved if progress == 100 and not unresolved else SubjectStatus.on_progress
        else:
            progress = 100
            new_status = SubjectStatus.done

        version = await repos.subjects.update_state(
            subject_id, status=new_status, progress=progress, expected_version=subject.version
        )

        log = BypassLog(
            subject_id=subject_id,
            admin_id=admin_id,
            strategy=strategy,
            before_status=subject.status,
            before_progress=subject.progress,
            after_status=new_status,
            after_progress=progress,
            reason=reason,
            affected_step_count=len(targets),
            affected_steps=affected,
        )
        await repos.bypass_logs.append(log)

        entry = HistoryEntry(
            subject_id=subject_id,
            approver_id=admin_id,
            status="bypassed",
            note=reason,
            description=describe(profile_for(subject.kind), admin_name, "bypassed", strategy=strategy.value),
            action_type=HistoryAction.admin_bypass,
            details={
                "bypass_log_id": log.id,
                "strategy": strategy.value,
                "before": {"status": subject.status.value, "progress": subject.progress},
                "after": {"status": new_status.value, "progress": progress},
                "affected_step_count": len(targets),
            },
        )
        await repos.history.append(entry)

        logger.info(
            f"{strategy.value} bypass of subject {subject_id} by {admin_id}: {len(targets)} step(s) approved, "
            f"{subject.status.value}/{subject.progress}% -> {new_status.value}/{progress}%"
        )
        return BypassOutcome(
            subject=subject.model_copy(update={"status": new_status, "progress": progress, "version": version}),
            log=log,
            entry=entry,
            affected_steps=changed,
        )

    @staticmethod
    def _affected(step: ApprovalStep, final_status: StepStatus) -> AffectedStep:
        return AffectedStep(
            step_id=step.id,
            step_order=step.step_order,
            approver_id=step.approver_id,
            actor_label=step.actor_label,
            original_status=step.status,
            final_status=final_status,
        )
