"""Chain construction for a newly submitted subject."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from approval_chain.core.exceptions import NotFoundError, ValidationError
from approval_chain.core.logging_config import get_logger

from .approvers import ApproverResolver
from .decisions import compute_progress
from .history import default_note, describe
from .profiles import DocumentProfile, profile_for
from .repos.sql import SqlRepoBundle
from .schemas.domain import (
    ApprovalStep,
    Approver,
    CreateChainRequest,
    HistoryAction,
    HistoryEntry,
    InitialStatusPolicy,
    StepDefinition,
    StepStatus,
    Subject,
    SubjectMember,
    SubjectStatus,
)
from .templates import TemplateResolver

logger = get_logger(__name__)


def parse_line_code(document_number: str) -> str:
    """Extract the line code from a ``segment/LINE_CODE/segment...`` number."""
    parts = (document_number or "").split("/")
    if len(parts) < 2 or not parts[1].strip():
        raise ValidationError(
            "Invalid document number format: expected 'segment/LINE_CODE/...'",
            details={"document_number": document_number},
        )
    return parts[1].strip()


def deduplicate(definitions: Sequence[StepDefinition]) -> list[StepDefinition]:
    """Keep the first step of each approver, preserving resolution order."""
    seen: set[str] = set()
    unique: list[StepDefinition] = []
    for definition in definitions:
        if definition.approver.id in seen:
            logger.debug(f"Approver {definition.approver.employee_code} already in chain; dropping duplicate step")
            continue
        seen.add(definition.approver.id)
        unique.append(definition)
    return unique


def initial_statuses(count: int, policy: InitialStatusPolicy) -> list[StepStatus]:
    """Starting status of each position in a chain of ``count`` steps."""
    if count == 0:
        return []
    if policy == InitialStatusPolicy.submitter_first:
        head = [StepStatus.approved, StepStatus.on_going][:count]
    else:
        head = [StepStatus.on_going]
    return head + [StepStatus.pending] * (count - len(head))


def splice_step(
    definitions: list[StepDefinition],
    extra: StepDefinition,
    after_position: Optional[int],
) -> list[StepDefinition]:
    """Insert ``extra`` after 1-based ``after_position`` (default 1), or append when past the end.

    The first position always stays in place; it is the submitter's own step.
    """
    if any(d.approver.id == extra.approver.id for d in definitions):
        return definitions
    position = max(after_position or 1, 1)
    if position >= len(definitions):
        return [*definitions, extra]
    return [*definitions[:position], extra, *definitions[position:]]


def _is_nominated(approver_id: Optional[str]) -> bool:
    if approver_id is None:
        return False
    value = str(approver_id).strip()
    if not value:
        return False
    if value.lstrip("-").isdigit() and int(value) <= 0:
        return False
    return True


@dataclass(frozen=True)
class ChainCreated:
    subject: Subject
    steps: list[ApprovalStep]
    members: list[SubjectMember]
    entry: HistoryEntry
    first_approver: Optional[Approver]


class ChainBuilder:
    """Resolve, deduplicate and persist the approval chain of a new subject."""

    async def _template_chain(
        self,
        repos: SqlRepoBundle,
        profile: DocumentProfile,
        request: CreateChainRequest,
        line_code: str,
    ) -> list[StepDefinition]:
        templates = await TemplateResolver(repos.templates).resolve(profile.kind, line_code)
        return await ApproverResolver(repos.directory).resolve_all(
            templates, section_id=request.section_id, department_id=request.department_id
        )

    async def _manual_chain(
        self,
        repos: SqlRepoBundle,
        profile: DocumentProfile,
        request: CreateChainRequest,
        line_code: str,
        submitter: Approver,
    ) -> list[StepDefinition]:
        definitions = [StepDefinition(actor_label="Submitter", approver=submitter)]
        nominated = [a for a in request.manual_approver_ids if _is_nominated(a)]
        for i, approver_id in enumerate(nominated):
            approver = await repos.directory.get_approver(str(approver_id).strip())
            if approver is None:
                logger.warning(f"Nominated approver {approver_id} not found in directory; skipped")
                continue
            definitions.append(StepDefinition(actor_label=f"Manual Approver {i + 1}", approver=approver))

        template = await TemplateResolver(repos.templates).highest_priority_insert(profile.kind, line_code)
        if template is not None:
            extra = await ApproverResolver(repos.directory).resolve(
                template, section_id=request.section_id, department_id=request.department_id
            )
            if extra is not None:
                definitions = splice_step(
                    definitions,
                    StepDefinition(actor_label=template.actor_name, approver=extra),
                    template.insert_after_step,
                )
        return definitions

    async def create(self, repos: SqlRepoBundle, request: CreateChainRequest) -> ChainCreated:
        """
        Create a subject together with its chain, members and first history entry.

        Everything is written through ``repos`` and committed by the caller's
        transaction in one go.

        Args:
            repos: Repositories bound to the current transaction.
            request: The submission.

        Returns:
            The persisted subject, steps, members and history entry.

        Raises:
            ValidationError: Malformed document number, or no approver could be resolved.
            NotFoundError: A submitter-first chain whose submitter is not in the directory.
        """
        profile = profile_for(request.kind)
        line_code = parse_line_code(request.document_number)
        submitter = await repos.directory.get_approver(request.submitter_id)

        if profile.manual_chain:
            if submitter is None:
                raise NotFoundError("Approver", request.submitter_id)
            definitions = await self._manual_chain(repos, profile, request, line_code, submitter)
        else:
            definitions = await self._template_chain(repos, profile, request, line_code)

        definitions = deduplicate(definitions)
        statuses = initial_statuses(len(definitions), profile.initial_policy)
        if StepStatus.on_going not in statuses:
            raise ValidationError(
                f"No approver could be resolved for {profile.noun} '{request.document_number}'",
                details={"line_code": line_code, "resolved_steps": len(definitions)},
            )

        subject = Subject(
            kind=profile.kind,
            document_number=request.document_number,
            line_code=line_code,
            title=request.title,
            submitter_id=request.submitter_id,
            section_id=request.section_id,
            department_id=request.department_id,
            status=SubjectStatus.submitted,
        )
        steps = [
            ApprovalStep(
                subject_id=subject.id,
                step_order=order,
                actor_label=definition.actor_label,
                approver_id=definition.approver.id,
                status=status,
            )
            for order, (definition, status) in enumerate(zip(definitions, statuses), start=1)
        ]
        subject = subject.model_copy(update={"progress": compute_progress(steps)})
        members = [
            SubjectMember(subject_id=subject.id, employee_code=m.employee_code, employee_name=m.employee_name)
            for m in request.members
        ]
        entry = HistoryEntry(
            subject_id=subject.id,
            approver_id=request.submitter_id,
            status="submitted",
            note=request.note or default_note(profile, "submitted"),
            description=describe(
                profile, submitter.employee_name if submitter else request.submitter_id, "submitted"
            ),
            action_type=HistoryAction.submission,
        )

        await repos.subjects.add(subject)
        # Disjoint rows; staged together and flushed by the commit.
        await asyncio.gather(
            repos.steps.add_many(steps),
            repos.members.add_many(members),
            repos.history.append(entry),
        )

        first = next(i for i, s in enumerate(steps) if s.status == StepStatus.on_going)
        logger.info(
            f"Created {profile.kind.value} subject {subject.id} ({request.document_number}) "
            f"with {len(steps)} step(s); step {steps[first].step_order} on_going"
        )
        return ChainCreated(
            subject=subject,
            steps=steps,
            members=members,
            entry=entry,
            first_approver=definitions[first].approver,
        )
