from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class DocumentKind(str, Enum):
    authorization = "authorization"
    handover = "handover"


class SubjectStatus(str, Enum):
    submitted = "submitted"
    on_progress = "on_progress"
    approved = "approved"
    not_approved = "not_approved"
    rejected = "rejected"
    done = "done"


class StepStatus(str, Enum):
    pending = "pending"
    on_going = "on_going"
    approved = "approved"
    not_approved = "not_approved"
    rejected = "rejected"


# Statuses an approver may submit as a decision.
DECISION_STATUSES = frozenset({StepStatus.approved, StepStatus.not_approved, StepStatus.rejected})


class ModelType(str, Enum):
    section = "section"
    department = "department"


class InitialStatusPolicy(str, Enum):
    submitter_first = "submitter_first"
    reviewer_first = "reviewer_first"


class BypassStrategy(str, Enum):
    partial = "partial"
    full = "full"


class HistoryAction(str, Enum):
    submission = "submission"
    decision = "decision"
    revision = "revision"
    admin_bypass = "admin_bypass"
    change_requested = "change_requested"
    approver_changed = "approver_changed"
    change_rejected = "change_rejected"


class ChangeRequestStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ChangeRequestPriority(str, Enum):
    normal = "normal"
    urgent = "urgent"


class Subject(BaseSchema):
    id: str = Field(default_factory=_new_id)
    kind: DocumentKind = DocumentKind.authorization

    document_number: str
    line_code: str
    title: Optional[str] = None

    submitter_id: str
    section_id: Optional[str] = None
    department_id: Optional[str] = None

    status: SubjectStatus = SubjectStatus.submitted
    progress: int = 0
    version: int = 1
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ApprovalStep(BaseSchema):
    id: str = Field(default_factory=_new_id)
    subject_id: str

    step_order: int
    actor_label: str
    approver_id: str

    status: StepStatus = StepStatus.pending
    note: Optional[str] = None

    version: int = 1
    original_approver_id: Optional[str] = None
    is_changed: bool = False

    updated_at: datetime = Field(default_factory=_utc_now)


class ApprovalTemplate(BaseSchema):
    id: str = Field(default_factory=_new_id)
    kind: DocumentKind = DocumentKind.authorization
    line_code: Optional[str] = None
    step_order: int
    actor_name: str

    model_type: ModelType = ModelType.section
    section_id: Optional[str] = None
    use_dynamic_section: bool = False

    is_insert_step: bool = False
    insert_after_step: Optional[int] = None
    applies_to_lines: Optional[Any] = None

    is_active: bool = True
    is_deleted: bool = False
    priority: int = 0


class Approver(BaseSchema):
    """An identity from the approver directory."""

    id: str
    employee_code: str
    employee_name: str
    gender: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True


class StepDefinition(BaseSchema):
    """A template entry bound to a concrete approver, before persistence."""

    actor_label: str
    approver: Approver


class HistoryEntry(BaseSchema):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    approver_id: str

    status: str
    note: str = ""
    description: str
    action_type: HistoryAction = HistoryAction.decision
    details: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utc_now)


class AffectedStep(BaseSchema):
    step_id: str
    step_order: int
    approver_id: str
    actor_label: str
    original_status: StepStatus
    final_status: StepStatus


class BypassLog(BaseSchema):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    admin_id: str
    strategy: BypassStrategy

    before_status: SubjectStatus
    before_progress: int
    after_status: SubjectStatus
    after_progress: int

    reason: str
    affected_step_count: int
    affected_steps: List[AffectedStep] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utc_now)


class SubjectMember(BaseSchema):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    employee_code: str
    employee_name: str
    status: str = "active"


class MemberInput(BaseSchema):
    employee_code: str
    employee_name: str


class ApproverChangeRequest(BaseSchema):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    step_id: str
    current_approver_id: str
    new_approver_id: str

    reason: str
    priority: ChangeRequestPriority = ChangeRequestPriority.normal
    status: ChangeRequestStatus = ChangeRequestStatus.pending
    requested_by: str

    admin_decision: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utc_now)


class CreateChainRequest(BaseSchema):
    """Input for creating a subject together with its approval chain.

    ``manual_approver_ids`` is only read for handover documents, whose chain is
    nominated by the submitter instead of resolved from templates.
    """

    kind: DocumentKind = DocumentKind.authorization
    document_number: str
    title: Optional[str] = None

    submitter_id: str
    section_id: Optional[str] = None
    department_id: Optional[str] = None

    manual_approver_ids: List[Optional[str]] = Field(default_factory=list)
    members: List[MemberInput] = Field(default_factory=list)
    note: Optional[str] = None


class SubjectWithSteps(BaseSchema):
    subject: Subject
    steps: List[ApprovalStep] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    members: List[SubjectMember] = Field(default_factory=list)
