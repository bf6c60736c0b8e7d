"""Approval service facade.

``ApprovalService`` is the single entry point collaborators use. It wires the
engine components together:

- chain creation (template/approver resolution, chain builder),
- decisions (duplicate suppressor, decision processor),
- administrative bypass and approver change requests,

runs every state change through ``TransactionRunner`` and fires notifications
only after the transaction committed.

Usage
-----

    engine = create_engine(settings.database.url)
    service = ApprovalService(create_sessionmaker(engine), notifier=NotificationDispatcher([EmailNotifier()]))

    chain = await service.create_chain(CreateChainRequest(document_number="AUTH/M1/2024/001", submitter_id="u1"))
    chain = await service.submit_decision(chain.subject.id, "u2", "approved", note="ok")
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from approval_chain.core.config import Settings
from approval_chain.core.config import settings as default_settings
from approval_chain.core.exceptions import NotFoundError
from approval_chain.core.logging_config import get_logger

from .bypass import BypassEngine
from .chain import ChainBuilder
from .decisions import DecisionProcessor, parse_decision_status
from .duplicates import DuplicateSuppressor
from .history import default_note, describe
from .notifications import Notification, NotificationDispatcher, NotificationEvent, unique_recipients
from .profiles import profile_for
from .reassignment import ApproverChangeManager
from .repos.sql import SqlRepoBundle
from .schemas.domain import (
    Approver,
    ApproverChangeRequest,
    BypassLog,
    ChangeRequestPriority,
    CreateChainRequest,
    HistoryAction,
    HistoryEntry,
    StepStatus,
    Subject,
    SubjectWithSteps,
)
from .transaction import RetryPolicy, TransactionRunner

logger = get_logger(__name__)


class ApprovalService:
    """Create approval chains and move them forward.

    Args:
        session_factory: Factory for the sessions each unit of work runs in.
        settings: Source of retry, isolation, duplicate window and role configuration.
        notifier: Dispatcher receiving post-commit notifications.
        retry_policy: Overrides the policy derived from ``settings``.
        sleep: Backoff sleep, replaceable in tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: Settings = default_settings,
        notifier: Optional[NotificationDispatcher] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        decision_cfg = settings.decision
        self._runner = TransactionRunner(
            session_factory,
            policy=retry_policy or RetryPolicy.from_settings(settings),
            isolation_level=settings.database.isolation_level,
            sleep=sleep,
        )
        self._notifier = notifier or NotificationDispatcher()
        self._duplicates = DuplicateSuppressor(window=timedelta(seconds=decision_cfg.duplicate_window))
        self._builder = ChainBuilder()
        self._decisions = DecisionProcessor(self._duplicates)
        self._bypass = BypassEngine(admin_roles=decision_cfg.admin_roles)
        self._changes = ApproverChangeManager(admin_roles=decision_cfg.reviewer_admin_roles)

    @property
    def notifier(self) -> NotificationDispatcher:
        return self._notifier

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_chain(self, subject_id: str) -> SubjectWithSteps:
        """
        Return a subject with its steps (by ``step_order``) and history (newest first).

        Raises:
            NotFoundError: Unknown subject.
        """

        async def _read(repos: SqlRepoBundle) -> SubjectWithSteps:
            subject = await repos.subjects.get(subject_id)
            if subject is None:
                raise NotFoundError("Subject", subject_id)
            return SubjectWithSteps(
                subject=subject,
                steps=await repos.steps.list_for_subject(subject_id),
                history=await repos.history.list_for_subject(subject_id),
                members=await repos.members.list_for_subject(subject_id),
            )

        return await self._runner.read(_read)

    async def get_bypass_logs(self, subject_id: str) -> list[BypassLog]:
        async def _read(repos: SqlRepoBundle) -> list[BypassLog]:
            if await repos.subjects.get(subject_id) is None:
                raise NotFoundError("Subject", subject_id)
            return await repos.bypass_logs.list_for_subject(subject_id)

        return await self._runner.read(_read)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_chain(self, request: CreateChainRequest) -> SubjectWithSteps:
        """
        Create a subject and its approval chain atomically.

        Raises:
            ValidationError: Malformed document number or no resolvable approver.
            NotFoundError: Handover submitter missing from the directory.
        """
        created = await self._runner.run(lambda repos: self._builder.create(repos, request), label="create chain")
        await self._notify(
            Notification(
                event=NotificationEvent.chain_created,
                subject=created.subject,
                decision="submitted",
                note=created.entry.note,
                recipients=unique_recipients(created.first_approver),
            )
        )
        return SubjectWithSteps(
            subject=created.subject,
            steps=created.steps,
            history=[created.entry],
            members=created.members,
        )

    async def submit_decision(
        self,
        subject_id: str,
        approver_id: str,
        status: str,
        note: Optional[str] = None,
    ) -> SubjectWithSteps:
        """
        Apply one approver's decision.

        An identical decision (same subject, approver, status and note) seen
        within the duplicate window returns the current state untouched.

        Raises:
            ValidationError: ``status`` is not approved, not_approved or rejected.
            NotFoundError: Unknown subject, or the approver holds no step.
            BusinessRuleViolation: The approver's step is already approved.
            ConflictError: Concurrent writers exhausted the retry policy.
        """
        decision = parse_decision_status(status)
        note_text = note or ""

        duplicate = await self._runner.read(
            lambda repos: self._duplicates.find(
                repos.history, subject_id=subject_id, approver_id=approver_id, status=decision, note=note_text
            )
        )
        if duplicate is not None:
            logger.info(f"Duplicate {decision.value} decision by {approver_id} on {subject_id}; returning current state")
            return await self.get_chain(subject_id)

        outcome = await self._runner.run(
            lambda repos: self._decisions.apply(
                repos, subject_id=subject_id, approver_id=approver_id, status=decision, note=note
            ),
            label="decision",
        )
        if not outcome.duplicate:
            ids = [outcome.subject.submitter_id, approver_id]
            if outcome.activated_step is not None:
                ids.append(outcome.activated_step.approver_id)
            await self._notify_ids(
                NotificationEvent.decision, outcome.subject, ids, decision=decision.value, note=note
            )
        return await self.get_chain(subject_id)

    async def admin_bypass(
        self,
        subject_id: str,
        target_status: str,
        reason: str,
        admin_id: str,
        admin_role: Optional[str],
    ) -> SubjectWithSteps:
        """
        Force a chain forward: ``approved`` bypasses the current step, ``done`` closes the chain.

        Raises:
            PermissionDenied: ``admin_role`` is not a bypass role.
            ValidationError: Unknown target status or empty reason.
            NotFoundError: Unknown subject.
            BusinessRuleViolation: Subject already complete or nothing eligible.
            ConflictError: Concurrent writers exhausted the retry policy.
        """
        self._bypass.authorize(admin_role)
        strategy = self._bypass.validate(target_status, reason)
        outcome = await self._runner.run(
            lambda repos: self._bypass.apply(
                repos, subject_id=subject_id, strategy=strategy, reason=reason, admin_id=admin_id
            ),
            label="bypass",
        )
        ids = [outcome.subject.submitter_id, *(s.approver_id for s in outcome.affected_steps)]
        await self._notify_ids(NotificationEvent.bypass, outcome.subject, ids, decision=target_status, note=reason)
        return await self.get_chain(subject_id)

    async def record_revision(self, subject_id: str, editor_id: str, note: Optional[str] = None) -> SubjectWithSteps:
        """
        Record that a subject was edited.

        No step is reset: decided steps keep their status. One ``updated``
        history entry is appended and approvers who previously answered
        ``not_approved`` are notified.

        Raises:
            NotFoundError: Unknown subject.
        """

        async def _revise(repos: SqlRepoBundle) -> tuple[Subject, list[str]]:
            subject = await repos.subjects.get(subject_id)
            if subject is None:
                raise NotFoundError("Subject", subject_id)
            profile = profile_for(subject.kind)
            editor = await repos.directory.get_approver(editor_id)
            await repos.subjects.touch(subject_id, expected_version=subject.version)
            await repos.history.append(
                HistoryEntry(
                    subject_id=subject_id,
                    approver_id=editor_id,
                    status="updated",
                    note=note or default_note(profile, "updated"),
                    description=describe(profile, editor.employee_name if editor else editor_id, "updated"),
                    action_type=HistoryAction.revision,
                )
            )
            refused = await repos.history.approvers_with_status(subject_id, StepStatus.not_approved)
            logger.info(f"Revision of subject {subject_id} by {editor_id}; {len(refused)} approver(s) to re-notify")
            return subject, refused

        subject, refused = await self._runner.run(_revise, label="revision")
        await self._notify_ids(NotificationEvent.revision, subject, refused, decision="updated", note=note)
        return await self.get_chain(subject_id)

    async def request_approver_change(
        self,
        subject_id: str,
        step_id: str,
        current_approver_id: str,
        new_approver_id: str,
        reason: str,
        requested_by: str,
        priority: str = "normal",
    ) -> ApproverChangeRequest:
        """File a request to hand an undecided step to another approver."""
        level = ChangeRequestPriority.urgent if priority == "urgent" else ChangeRequestPriority.normal
        outcome = await self._runner.run(
            lambda repos: self._changes.request_change(
                repos,
                subject_id=subject_id,
                step_id=step_id,
                current_approver_id=current_approver_id,
                new_approver_id=new_approver_id,
                reason=reason,
                requested_by=requested_by,
                priority=level,
            ),
            label="approver change request",
        )
        return outcome.request

    async def process_approver_change(
        self,
        request_id: str,
        decision: str,
        admin_decision: str,
        admin_id: str,
        admin_role: Optional[str],
    ) -> ApproverChangeRequest:
        """Approve or reject a pending approver change request."""
        parsed = self._changes.check_processing(admin_role, decision, admin_decision)
        outcome = await self._runner.run(
            lambda repos: self._changes.process(
                repos, request_id=request_id, decision=parsed, admin_decision=admin_decision, admin_id=admin_id
            ),
            label="approver change",
        )
        if outcome.new_approver is not None:
            await self._notify(
                Notification(
                    event=NotificationEvent.approver_changed,
                    subject=outcome.subject,
                    decision=parsed.value,
                    note=admin_decision,
                    recipients=[outcome.new_approver],
                )
            )
        return outcome.request

    # ------------------------------------------------------------------
    # Notifications (post-commit, best-effort)
    # ------------------------------------------------------------------

    async def _load_approvers(self, ids: Iterable[str]) -> list[Approver]:
        async def _read(repos: SqlRepoBundle) -> list[Approver]:
            found = [await repos.directory.get_approver(i) for i in dict.fromkeys(ids)]
            return unique_recipients(*found)

        return await self._runner.read(_read)

    async def _notify_ids(
        self,
        event: NotificationEvent,
        subject: Subject,
        ids: Iterable[str],
        *,
        decision: Optional[str],
        note: Optional[str],
    ) -> None:
        try:
            recipients = await self._load_approvers(ids)
        except Exception as e:
            logger.error(f"Could not resolve {event.value} recipients for subject {subject.id}: {e}", exc_info=True)
            return
        await self._notify(
            Notification(event=event, subject=subject, decision=decision, note=note, recipients=recipients)
        )

    async def _notify(self, notification: Notification) -> None:
        try:
            await self._notifier.dispatch(notification)
        except Exception as e:
            logger.error(
                f"Notification {notification.event.value} for subject {notification.subject.id} failed: {e}",
                exc_info=True,
            )
