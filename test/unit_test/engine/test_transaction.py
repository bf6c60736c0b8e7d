"""Unit tests for the retrying transaction runner."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.exc import OperationalError

from approval_chain.core.config import Settings
from approval_chain.core.exceptions import ConflictError, WriteConflict
from approval_chain.engine.repos import SqlRepoBundle
from approval_chain.engine.transaction import RetryPolicy, TransactionRunner, is_retryable


class _Flaky:
    """Unit of work failing ``failures`` times before succeeding."""

    def __init__(self, failures: int, exc: Exception) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self, repos: SqlRepoBundle) -> str:
        self.calls += 1
        assert isinstance(repos, SqlRepoBundle)
        if self.calls <= self.failures:
            raise self.exc
        return "committed"


class TestIsRetryable:
    def test_write_conflict_and_timeout(self) -> None:
        assert is_retryable(WriteConflict("stale"))
        assert is_retryable(asyncio.TimeoutError())

    def test_serialization_failure(self) -> None:
        orig = Mock()
        orig.sqlstate = "40001"
        assert is_retryable(OperationalError("UPDATE", {}, orig))

    def test_deadlock(self) -> None:
        orig = Mock()
        orig.sqlstate = "40P01"
        assert is_retryable(OperationalError("UPDATE", {}, orig))

    def test_sqlite_lock(self) -> None:
        assert is_retryable(OperationalError("UPDATE", {}, Exception("database is locked")))

    def test_other_errors(self) -> None:
        assert not is_retryable(ValueError("boom"))
        assert not is_retryable(OperationalError("SELECT", {}, Exception("no such table")))


class TestRetryPolicy:
    def test_from_settings(self) -> None:
        s = Settings(
            APPROVAL_CHAIN_RETRY_MAX_ATTEMPTS=5,
            APPROVAL_CHAIN_RETRY_BASE_DELAY=0.1,
            APPROVAL_CHAIN_RETRY_JITTER=0.05,
            APPROVAL_CHAIN_TRANSACTION_TIMEOUT=2,
        )

        policy = RetryPolicy.from_settings(s)

        assert policy == RetryPolicy(max_attempts=5, base_delay=0.1, jitter=0.05, timeout=2.0)

    def test_defaults(self) -> None:
        assert RetryPolicy() == RetryPolicy(max_attempts=3, base_delay=0.5, jitter=0.3, timeout=30.0)


class TestTransactionRunner:
    @pytest.fixture
    def sleep(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def runner(self, session_factory, fast_retry, sleep) -> TransactionRunner:
        return TransactionRunner(session_factory, policy=fast_retry, sleep=sleep)

    @pytest.mark.asyncio
    async def test_first_attempt_commits(self, runner: TransactionRunner, sleep: AsyncMock) -> None:
        work = _Flaky(0, WriteConflict("never"))

        assert await runner.run(work) == "committed"
        assert work.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_after_conflict(self, runner: TransactionRunner, sleep: AsyncMock) -> None:
        work = _Flaky(2, WriteConflict("stale version"))

        assert await runner.run(work, label="decision") == "committed"
        assert work.calls == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_conflict(self, runner: TransactionRunner) -> None:
        work = _Flaky(10, WriteConflict("stale version"))

        with pytest.raises(ConflictError) as exc_info:
            await runner.run(work, label="decision")

        assert work.calls == 3
        assert exc_info.value.details == {"attempts": 3}
        assert isinstance(exc_info.value.__cause__, WriteConflict)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self, runner: TransactionRunner, sleep: AsyncMock) -> None:
        work = _Flaky(1, ValueError("bad input"))

        with pytest.raises(ValueError, match="bad input"):
            await runner.run(work)

        assert work.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_conflict(self, session_factory, sleep: AsyncMock) -> None:
        runner = TransactionRunner(
            session_factory, policy=RetryPolicy(max_attempts=2, base_delay=0, jitter=0, timeout=0.01), sleep=sleep
        )
        calls = 0

        async def slow(repos: SqlRepoBundle) -> None:
            nonlocal calls
            calls += 1
            await asyncio.sleep(1)

        with pytest.raises(ConflictError):
            await runner.run(slow, label="slow")
        assert calls == 2

    @pytest.mark.asyncio
    async def test_failed_attempt_rolls_back(self, runner: TransactionRunner) -> None:
        from approval_chain.engine.schemas import Subject

        attempts = 0

        async def work(repos: SqlRepoBundle) -> str:
            nonlocal attempts
            attempts += 1
            await repos.subjects.add(
                Subject(id=f"s-{attempts}", document_number="AUTH/M1/1", line_code="M1", submitter_id="u-sub")
            )
            if attempts == 1:
                raise WriteConflict("first attempt loses")
            return "ok"

        await runner.run(work)

        assert await runner.read(lambda repos: repos.subjects.get("s-1")) is None
        assert await runner.read(lambda repos: repos.subjects.get("s-2")) is not None
