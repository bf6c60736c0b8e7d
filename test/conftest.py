from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Load dotenv files early so settings can be overridden locally
try:  # pragma: no cover
    from dotenv import load_dotenv

    TEST_ROOT = Path(__file__).resolve().parent
    load_dotenv(TEST_ROOT / ".env", override=False)
except ImportError:
    pass

# Point the global engine at SQLite before the application modules are imported
os.environ.setdefault("APPROVAL_CHAIN_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from approval_chain.core.database import create_all, create_engine, create_sessionmaker
from approval_chain.core.database.models import (
    ApprovalTemplateRow,
    ApproverRow,
    DepartmentHeadRow,
    SectionHeadRow,
)
from approval_chain.engine import ApprovalService, Notification, NotificationDispatcher, RetryPolicy

# Directory used by the scenario tests:
#   section S1 -> Alice, section SX -> Xavier, department D1 -> Bob
#   authorization base chain: Section Head (S1) @1, Department Head (D1) @2
#   insert step: Line Reviewer (SX) after step 1, only for line M1
APPROVERS = [
    ("u-sub", "E000", "Sam Submitter", True),
    ("u-a", "E001", "Alice Anders", True),
    ("u-b", "E002", "Bob Brandt", True),
    ("u-x", "E003", "Xavier Xu", True),
    ("u-c", "E004", "Carol Chen", True),
    ("u-d", "E005", "Dan Dormant", False),
    ("admin", "E999", "Ada Admin", True),
]


async def seed_directory(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    ApproverRow(id=i, employee_code=code, employee_name=name, is_active=active)
                    for i, code, name, active in APPROVERS
                ]
            )
            session.add_all(
                [
                    SectionHeadRow(id="sh-1", section_id="S1", approver_id="u-a", position=0),
                    SectionHeadRow(id="sh-2", section_id="SX", approver_id="u-x", position=0),
                    SectionHeadRow(id="sh-3", section_id="S2", approver_id="u-d", position=0),
                    SectionHeadRow(id="sh-4", section_id="S2", approver_id="u-c", position=1),
                    DepartmentHeadRow(id="dh-1", department_id="D1", approver_id="u-b", position=0),
                ]
            )
            session.add_all(
                [
                    ApprovalTemplateRow(
                        id="tpl-a",
                        kind="authorization",
                        step_order=1,
                        actor_name="Section Head",
                        model_type="section",
                        section_id="S1",
                    ),
                    ApprovalTemplateRow(
                        id="tpl-b",
                        kind="authorization",
                        step_order=2,
                        actor_name="Department Head",
                        model_type="department",
                        section_id="D1",
                    ),
                    ApprovalTemplateRow(
                        id="tpl-x",
                        kind="authorization",
                        step_order=10,
                        actor_name="Line Reviewer",
                        model_type="section",
                        section_id="SX",
                        is_insert_step=True,
                        insert_after_step=1,
                        applies_to_lines=["M1"],
                        priority=5,
                    ),
                    ApprovalTemplateRow(
                        id="tpl-old",
                        kind="authorization",
                        step_order=3,
                        actor_name="Retired Step",
                        model_type="section",
                        section_id="S1",
                        is_deleted=True,
                    ),
                    ApprovalTemplateRow(
                        id="tpl-hx",
                        kind="handover",
                        step_order=1,
                        actor_name="Line Reviewer",
                        model_type="section",
                        section_id="SX",
                        is_insert_step=True,
                        insert_after_step=1,
                        applies_to_lines='["M1"]',
                        priority=5,
                    ),
                ]
            )


class RecordingNotifier:
    """Notifier collecting every notification it receives."""

    def __init__(self) -> None:
        self.received: list[Notification] = []

    async def notify(self, notification: Notification) -> None:
        self.received.append(notification)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed SQLite database shared by every session of a test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'approval_chain.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    factory = create_sessionmaker(db_engine)
    await seed_directory(factory)
    return factory


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0, jitter=0, timeout=5)


@pytest.fixture
def service(session_factory, notifier: RecordingNotifier, fast_retry: RetryPolicy) -> ApprovalService:
    return ApprovalService(
        session_factory,
        notifier=NotificationDispatcher([notifier]),
        retry_policy=fast_retry,
        sleep=AsyncMock(),
    )
