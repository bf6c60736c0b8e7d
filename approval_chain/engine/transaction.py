"""Run a unit of work in a serializable transaction with bounded retry.

Decisions, bypasses and approver changes all go through ``TransactionRunner``.
Each attempt opens a fresh session, pins the isolation level, builds the
repository bundle on it and commits once. A write conflict or an attempt
timeout rolls the attempt back and retries with exponential backoff plus
jitter; running out of attempts surfaces ``ConflictError``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from approval_chain.core.config import Settings
from approval_chain.core.exceptions import ConflictError, WriteConflict
from approval_chain.core.logging_config import get_logger

from .repos.sql import SqlRepoBundle, build_sql_repos

logger = get_logger(__name__)

T = TypeVar("T")

# Postgres serialization_failure and deadlock_detected.
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry parameters.

    Attributes:
        max_attempts: Total attempts, including the first.
        base_delay: Delay before the second attempt; doubles afterwards.
        jitter: Upper bound of the uniform random delay added to each wait.
        timeout: Per-attempt timeout in seconds; exceeding it counts as a conflict.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    jitter: float = 0.3
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        cfg = settings.retry
        return cls(
            max_attempts=cfg.max_attempts,
            base_delay=cfg.base_delay,
            jitter=cfg.jitter,
            timeout=cfg.timeout,
        )


def is_retryable(exc: BaseException) -> bool:
    """Whether a failed attempt may be retried."""
    if isinstance(exc, (WriteConflict, asyncio.TimeoutError)):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if code in _RETRYABLE_SQLSTATES:
            return True
        return "database is locked" in str(orig)
    return False


class TransactionRunner:
    """Execute units of work transactionally under a ``RetryPolicy``."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        policy: RetryPolicy = RetryPolicy(),
        isolation_level: Optional[str] = "SERIALIZABLE",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self.policy = policy
        self._isolation_level = isolation_level
        self._sleep = sleep

    async def _attempt(self, work: Callable[[SqlRepoBundle], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            async with session.begin():
                if self._isolation_level:
                    await session.connection(execution_options={"isolation_level": self._isolation_level})
                return await work(build_sql_repos(session))

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Transaction attempt {retry_state.attempt_number}/{self.policy.max_attempts} failed "
            f"({type(exc).__name__}: {exc}); retrying in {wait:.2f}s"
        )

    async def run(self, work: Callable[[SqlRepoBundle], Awaitable[T]], *, label: str = "transaction") -> T:
        """
        Run ``work`` until it commits or the retry policy is exhausted.

        Args:
            work: Coroutine function receiving repositories bound to the
                attempt's transaction. It must re-read every piece of state it
                depends on, since it may run more than once.
            label: Name used in log messages.

        Returns:
            Whatever ``work`` returned on the committed attempt.

        Raises:
            ConflictError: Every attempt failed with a retryable error.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_exponential(multiplier=self.policy.base_delay, exp_base=2) + wait_random(0, self.policy.jitter),
            retry=retry_if_exception(is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await asyncio.wait_for(self._attempt(work), timeout=self.policy.timeout)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error(f"{label} gave up after {self.policy.max_attempts} attempt(s): {last}")
            raise ConflictError(
                f"{label} could not be committed because of concurrent updates; please retry",
                details={"attempts": self.policy.max_attempts},
            ) from last
        raise RuntimeError("Unreachable")  # pragma: no cover - safety

    async def read(self, work: Callable[[SqlRepoBundle], Awaitable[T]]) -> T:
        """Run a read-only unit of work without retry."""
        async with self._session_factory() as session:
            return await work(build_sql_repos(session))
