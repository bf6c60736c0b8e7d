"""Per-document-kind settings for the shared approval engine."""

from __future__ import annotations

from dataclasses import dataclass

from .schemas.domain import DocumentKind, InitialStatusPolicy


@dataclass(frozen=True)
class DocumentProfile:
    """What differs between document kinds routed through the same engine.

    Attributes:
        kind: The document kind.
        noun: Display name used in audit descriptions.
        initial_policy: Which chain entry starts ``on_going``.
        manual_chain: Whether the chain is nominated by the submitter rather
            than resolved from templates.
    """

    kind: DocumentKind
    noun: str
    initial_policy: InitialStatusPolicy
    manual_chain: bool = False


PROFILES: dict[DocumentKind, DocumentProfile] = {
    DocumentKind.authorization: DocumentProfile(
        kind=DocumentKind.authorization,
        noun="Authorization Document",
        initial_policy=InitialStatusPolicy.reviewer_first,
    ),
    DocumentKind.handover: DocumentProfile(
        kind=DocumentKind.handover,
        noun="Handover Document",
        initial_policy=InitialStatusPolicy.submitter_first,
        manual_chain=True,
    ),
}


def profile_for(kind: DocumentKind) -> DocumentProfile:
    return PROFILES[DocumentKind(kind)]
