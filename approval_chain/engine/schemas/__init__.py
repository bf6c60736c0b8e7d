"""Schemas and DTOs for the approval engine."""

from .domain import (
    DECISION_STATUSES,
    AffectedStep,
    ApprovalStep,
    ApprovalTemplate,
    Approver,
    ApproverChangeRequest,
    BypassLog,
    BypassStrategy,
    ChangeRequestPriority,
    ChangeRequestStatus,
    CreateChainRequest,
    DocumentKind,
    HistoryAction,
    HistoryEntry,
    InitialStatusPolicy,
    MemberInput,
    ModelType,
    StepDefinition,
    StepStatus,
    Subject,
    SubjectMember,
    SubjectStatus,
    SubjectWithSteps,
)

__all__ = [
    "DECISION_STATUSES",
    "AffectedStep",
    "ApprovalStep",
    "ApprovalTemplate",
    "Approver",
    "ApproverChangeRequest",
    "BypassLog",
    "BypassStrategy",
    "ChangeRequestPriority",
    "ChangeRequestStatus",
    "CreateChainRequest",
    "DocumentKind",
    "HistoryAction",
    "HistoryEntry",
    "InitialStatusPolicy",
    "MemberInput",
    "ModelType",
    "StepDefinition",
    "StepStatus",
    "Subject",
    "SubjectMember",
    "SubjectStatus",
    "SubjectWithSteps",
]
