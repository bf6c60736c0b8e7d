"""
Approver Change API Endpoints.

This module lets an approver ask for their undecided step to be handed to
someone else, and lets an administrator approve or reject that request.
"""

from fastapi import APIRouter, status

from approval_chain.engine.schemas import ApproverChangeRequest
from approval_chain.server.schemas import ApproverChangeCreate, ApproverChangeProcess
from approval_chain.server.services.deps import ApprovalServiceDep

router = APIRouter()


@router.post(
    "/subjects/{subject_id}/approver-changes",
    response_model=ApproverChangeRequest,
    status_code=status.HTTP_201_CREATED,
    summary="Request Approver Change",
    responses={
        404: {"description": "Subject, step or new approver not found"},
        400: {"description": "Step already decided, request already pending, or approver mismatch"},
    },
)
async def request_change(subject_id: str, body: ApproverChangeCreate, service: ApprovalServiceDep):
    return await service.request_approver_change(
        subject_id,
        body.step_id,
        body.current_approver_id,
        body.new_approver_id,
        body.reason,
        body.requested_by,
        body.priority,
    )


@router.post(
    "/approver-changes/{request_id}",
    response_model=ApproverChangeRequest,
    summary="Process Approver Change",
    responses={
        403: {"description": "Caller is not an administrator"},
        404: {"description": "Request not found"},
        400: {"description": "Request already processed or step already decided"},
    },
)
async def process_change(request_id: str, body: ApproverChangeProcess, service: ApprovalServiceDep):
    return await service.process_approver_change(
        request_id, body.status, body.admin_decision, body.admin_id, body.admin_role
    )
