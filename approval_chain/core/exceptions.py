"""
Engine-wide exception hierarchy.

Every operation of the approval engine surfaces failures through these types so
that a thin API layer can map each class onto one status code.

Usage:
    from approval_chain.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Subject", resource_id="a1b2")
    raise ValidationError("Invalid status", details={"status": "pending"})
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ApprovalChainError(Exception):
    """Base error for the approval engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ApprovalChainError):
    """Malformed input rejected before any write (bad status, bad document number).

    Maps to HTTP 422.
    """


class NotFoundError(ApprovalChainError):
    """Raised when a subject, step, approver or request does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Subject", "ApprovalStep").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: Any = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, {"resource": resource, "resource_id": resource_id})


class BusinessRuleViolation(ApprovalChainError):
    """Well-formed request that breaks a chain rule (e.g. re-deciding an approved step)."""


class PermissionDenied(BusinessRuleViolation):
    """Administrative operation attempted by a non-privileged role."""


class ConflictError(ApprovalChainError):
    """Transaction retries exhausted under concurrent writers. Maps to HTTP 409."""


class WriteConflict(Exception):
    """A row changed underneath the current transaction; the attempt may be retried."""
