"""
Subjects API Endpoints.

This module provides endpoints for submitting documents into an approval chain,
reading a chain with its history, and recording revisions.
"""

from typing import List

from fastapi import APIRouter, status

from approval_chain.engine.schemas import BypassLog, CreateChainRequest, SubjectWithSteps
from approval_chain.server.schemas import RevisionSubmit
from approval_chain.server.services.deps import ApprovalServiceDep

router = APIRouter()


@router.post(
    "/",
    response_model=SubjectWithSteps,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Subject",
    description="Create a subject and resolve its approval chain atomically.",
    responses={
        422: {"description": "Malformed document number or no approver could be resolved"},
        404: {"description": "Submitter not found (handover documents)"},
    },
)
async def create_subject(request: CreateChainRequest, service: ApprovalServiceDep):
    """
    Submit a subject.

    The line code is parsed from the document number, the chain is resolved from
    templates (or nominated approvers for handovers) and persisted with the first
    history entry.
    """
    return await service.create_chain(request)


@router.get(
    "/{subject_id}",
    response_model=SubjectWithSteps,
    summary="Get Approval Chain",
    description="Retrieve a subject with its ordered steps and its history, newest first.",
    responses={404: {"description": "Subject not found"}},
)
async def get_subject(subject_id: str, service: ApprovalServiceDep):
    return await service.get_chain(subject_id)


@router.post(
    "/{subject_id}/revisions",
    response_model=SubjectWithSteps,
    summary="Record Revision",
    description="Record that the subject was edited. Step statuses are not reset.",
    responses={404: {"description": "Subject not found"}},
)
async def record_revision(subject_id: str, revision: RevisionSubmit, service: ApprovalServiceDep):
    return await service.record_revision(subject_id, revision.editor_id, revision.note)


@router.get(
    "/{subject_id}/bypass-logs",
    response_model=List[BypassLog],
    summary="List Bypass Logs",
    description="Retrieve the administrative bypasses applied to a subject, newest first.",
    responses={404: {"description": "Subject not found"}},
)
async def list_bypass_logs(subject_id: str, service: ApprovalServiceDep):
    return await service.get_bypass_logs(subject_id)
