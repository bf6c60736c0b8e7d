"""Best-effort notification fan-out.

The engine hands committed events to a ``NotificationDispatcher``; message
composition and delivery belong to the registered ``Notifier`` collaborators.

Usage:
    dispatcher = NotificationDispatcher()
    dispatcher.register(my_email_notifier)

    # Called by ApprovalService after commit
    await dispatcher.dispatch(Notification(event=NotificationEvent.decision, ...))

Events:
    chain.created     - subject submitted, first approver is waiting
    decision          - an approver decided (submitter, decider, next approver)
    bypass            - an administrator forced the chain forward
    approver.changed  - a step was handed to another approver
    revision          - subject edited (approvers who previously refused)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Protocol

from approval_chain.core.logging_config import get_logger

from .schemas.domain import Approver, Subject

logger = get_logger(__name__)


class NotificationEvent(str, Enum):
    chain_created = "chain.created"
    decision = "decision"
    bypass = "bypass"
    approver_changed = "approver.changed"
    revision = "revision"


@dataclass(frozen=True)
class Notification:
    event: NotificationEvent
    subject: Subject
    decision: Optional[str] = None
    note: Optional[str] = None
    recipients: list[Approver] = field(default_factory=list)


class Notifier(Protocol):
    """Delivery collaborator (email, chat, queue...)."""

    async def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier:
    """Notifier that only records what would have been sent."""

    async def notify(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.event.value}] subject={notification.subject.id} decision={notification.decision} "
            f"recipients={[r.employee_code for r in notification.recipients]}"
        )


class NotificationDispatcher:
    """Fan a notification out to every registered notifier.

    Failures are logged per notifier and never propagate: a committed decision
    must not be reported as failed because delivery did not work.
    """

    def __init__(self, notifiers: Iterable[Notifier] = ()) -> None:
        self._notifiers: list[Notifier] = list(notifiers)

    def register(self, notifier: Notifier) -> None:
        self._notifiers.append(notifier)
        logger.debug(f"Registered notifier {type(notifier).__name__}")

    def clear(self) -> None:
        self._notifiers.clear()

    async def dispatch(self, notification: Notification) -> None:
        notifiers = list(self._notifiers)
        if not notifiers or not notification.recipients:
            return
        results = await asyncio.gather(
            *(n.notify(notification) for n in notifiers),
            return_exceptions=True,
        )
        for notifier, result in zip(notifiers, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Notifier {type(notifier).__name__} failed for {notification.event.value} "
                    f"on subject {notification.subject.id}: {result}",
                    exc_info=result,
                )


def unique_recipients(*approvers: Optional[Approver]) -> list[Approver]:
    """Drop missing entries and repeats, keeping first occurrence."""
    seen: set[str] = set()
    recipients: list[Approver] = []
    for approver in approvers:
        if approver is None or approver.id in seen:
            continue
        seen.add(approver.id)
        recipients.append(approver)
    return recipients
