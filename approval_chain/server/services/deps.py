"""
Approval Service Dependency.

Provides a singleton instance of the ApprovalService for API endpoints.
"""

from typing import Annotated, Optional

from fastapi import Depends

from approval_chain.core.database import async_session_maker
from approval_chain.engine import ApprovalService, LoggingNotifier, NotificationDispatcher

_service: Optional[ApprovalService] = None


def get_approval_service() -> ApprovalService:
    global _service
    if _service is None:
        _service = ApprovalService(async_session_maker, notifier=NotificationDispatcher([LoggingNotifier()]))
    return _service


ApprovalServiceDep = Annotated[ApprovalService, Depends(get_approval_service)]
