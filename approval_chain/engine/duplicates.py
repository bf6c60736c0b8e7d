"""Duplicate decision suppression."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from approval_chain.core.database.utils import utc_now

from .repos.interfaces import HistoryRepository
from .schemas.domain import HistoryEntry, StepStatus


class DuplicateSuppressor:
    """Recognize a decision already recorded within a short window.

    A history entry with the same subject, approver, status and note created
    less than ``window`` ago means the submission is a client retry. Callers
    check once before opening the transaction and again inside it.
    """

    def __init__(self, window: timedelta = timedelta(seconds=60), clock: Callable[[], datetime] = utc_now) -> None:
        self.window = window
        self._clock = clock

    async def find(
        self,
        history: HistoryRepository,
        *,
        subject_id: str,
        approver_id: str,
        status: StepStatus,
        note: str,
    ) -> Optional[HistoryEntry]:
        since = self._clock() - self.window
        return await history.find_recent(subject_id, approver_id, status=status.value, note=note, since=since)
