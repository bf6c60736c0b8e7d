"""Audit text for history entries."""

from __future__ import annotations

from typing import Optional

from .profiles import DocumentProfile


def describe(
    profile: DocumentProfile,
    actor_name: str,
    status: str,
    *,
    again: bool = False,
    strategy: Optional[str] = None,
    step_order: Optional[int] = None,
    new_approver_name: Optional[str] = None,
) -> str:
    """
    Build the human-readable description of one history entry.

    Args:
        profile: Profile of the subject's document kind.
        actor_name: Display name of whoever acted.
        status: The status or action being recorded.
        again: For ``not_approved``, whether this approver already refused once.
        strategy: For bypass entries, the bypass strategy.
        step_order: For approver change entries, the affected step.
        new_approver_name: For approved changes, who now holds the step.

    Returns:
        The description string.
    """
    noun = profile.noun
    if status == "submitted":
        return f"{actor_name} has submitted the {noun}"
    if status == "updated":
        return f"{actor_name} has updated the {noun}"
    if status == "approved":
        return f"{actor_name} has approved the {noun}"
    if status == "not_approved":
        if again:
            return f"{actor_name} not approved again the {noun}"
        return f"{actor_name} has not approved the {noun}"
    if status == "rejected":
        return f"{actor_name} has rejected the {noun}"
    if status == "bypassed":
        return f"{actor_name} bypassed the {noun} ({strategy} bypass)"
    if status == "change_requested":
        return f"{actor_name} requested an approver change for step {step_order} of the {noun}"
    if status == "approver_changed":
        return f"{actor_name} changed the approver of step {step_order} of the {noun} to {new_approver_name}"
    if status == "change_rejected":
        return f"{actor_name} rejected the approver change request for step {step_order} of the {noun}"
    return f"{actor_name} has changed {noun} status to {status}"


def default_note(profile: DocumentProfile, status: str) -> str:
    """Note recorded for submissions and revisions when the actor gave none."""
    if status == "submitted":
        return f"This {profile.noun} has been submitted."
    if status == "updated":
        return f"This {profile.noun} has been updated."
    return f'Status has been changed to "{status}".'


def bypass_note(admin_name: str, strategy: str, reason: str) -> str:
    return f"Bypassed by super admin ({admin_name}) - {strategy} bypass: {reason}"
