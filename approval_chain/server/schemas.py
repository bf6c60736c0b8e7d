"""
API Schemas.

This module contains Pydantic models used for API request bodies.
Responses reuse the engine's domain schemas directly.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DecisionSubmit(BaseModel):
    """
    Schema for submitting an approver's decision on a subject.
    """

    approver_id: str = Field(..., description="Identifier of the approver deciding.", examples=["emp-102"])
    status: str = Field(
        ...,
        description="The decision: approved, not_approved or rejected.",
        examples=["approved", "not_approved", "rejected"],
    )
    note: Optional[str] = Field(default=None, description="Optional free-text note.")

    model_config = ConfigDict(
        json_schema_extra={"example": {"approver_id": "emp-102", "status": "approved", "note": "Looks good"}}
    )


class BypassSubmit(BaseModel):
    """
    Schema for an administrative bypass.

    ``target_status`` ``approved`` bypasses the current step only; ``done``
    approves every remaining step.
    """

    target_status: str = Field(..., description="approved (partial) or done (full).", examples=["approved", "done"])
    reason: str = Field(..., description="Why the chain is being overridden.")
    admin_id: str = Field(..., description="Identifier of the acting administrator.")
    admin_role: Optional[str] = Field(default=None, description="Role of the acting administrator.")


class RevisionSubmit(BaseModel):
    """Schema for recording an edit of a subject."""

    editor_id: str = Field(..., description="Identifier of whoever edited the subject.")
    note: Optional[str] = Field(default=None, description="What changed.")


class ApproverChangeCreate(BaseModel):
    """Schema for requesting that a step be handed to another approver."""

    step_id: str
    current_approver_id: str
    new_approver_id: str
    reason: str
    requested_by: str
    priority: str = Field(default="normal", examples=["normal", "urgent"])


class ApproverChangeProcess(BaseModel):
    """Schema for an administrator's decision on an approver change request."""

    status: str = Field(..., description="approved or rejected.", examples=["approved", "rejected"])
    admin_decision: str = Field(..., description="Justification of the decision.")
    admin_id: str
    admin_role: Optional[str] = None
