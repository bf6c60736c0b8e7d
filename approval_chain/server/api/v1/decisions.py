"""
Decisions API Endpoints.

This module provides the endpoints approvers and administrators use to move a
chain forward: individual decisions and administrative bypasses.
"""

from fastapi import APIRouter

from approval_chain.engine.schemas import SubjectWithSteps
from approval_chain.server.schemas import BypassSubmit, DecisionSubmit
from approval_chain.server.services.deps import ApprovalServiceDep

router = APIRouter()


@router.post(
    "/{subject_id}/decisions",
    response_model=SubjectWithSteps,
    summary="Submit Decision",
    description="Approve, not-approve or reject the approver's step of a subject.",
    responses={
        404: {"description": "Subject not found or approver holds no step"},
        400: {"description": "Step already approved"},
        409: {"description": "Concurrent updates; retry later"},
        422: {"description": "Invalid decision status"},
    },
)
async def submit_decision(subject_id: str, submission: DecisionSubmit, service: ApprovalServiceDep):
    """
    Submit a decision.

    Repeating an identical decision within the duplicate window is harmless: the
    current state is returned and nothing is recorded twice.
    """
    return await service.submit_decision(subject_id, submission.approver_id, submission.status, submission.note)


@router.post(
    "/{subject_id}/bypass",
    response_model=SubjectWithSteps,
    summary="Bypass Approval Chain",
    description="Administrative override: partial (target_status=approved) or full (target_status=done).",
    responses={
        403: {"description": "Caller is not a privileged administrator"},
        404: {"description": "Subject not found"},
        400: {"description": "Subject already complete or no eligible step"},
        409: {"description": "Concurrent updates; retry later"},
    },
)
async def bypass(subject_id: str, submission: BypassSubmit, service: ApprovalServiceDep):
    return await service.admin_bypass(
        subject_id,
        submission.target_status,
        submission.reason,
        submission.admin_id,
        submission.admin_role,
    )
