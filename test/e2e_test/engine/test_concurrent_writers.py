"""End-to-end tests for concurrent writers on one subject.

Writers run concurrently through the real ``TransactionRunner`` against the
file-backed SQLite database. Whatever the interleaving, the committed state must
satisfy the chain invariants and a losing writer must be retried or rejected,
never allowed to overwrite the winner.
"""

from __future__ import annotations

import asyncio

import pytest

from approval_chain.core.exceptions import BusinessRuleViolation
from approval_chain.engine import ApprovalService
from approval_chain.engine.decisions import compute_progress
from approval_chain.engine.schemas import (
    CreateChainRequest,
    HistoryAction,
    StepStatus,
    SubjectStatus,
    SubjectWithSteps,
)

A, O, P, R = StepStatus.approved, StepStatus.on_going, StepStatus.pending, StepStatus.rejected


async def _m1_chain(service: ApprovalService) -> SubjectWithSteps:
    return await service.create_chain(
        CreateChainRequest(
            document_number="AUTH/M1/2026/042",
            submitter_id="u-sub",
            section_id="S1",
            department_id="D1",
        )
    )


def _assert_consistent(chain: SubjectWithSteps) -> None:
    assert chain.subject.progress == compute_progress(chain.steps)
    assert sum(1 for s in chain.steps if s.status == O) <= 1
    assert [s.step_order for s in chain.steps] == list(range(1, len(chain.steps) + 1))


class TestRacingDecisions:
    @pytest.mark.asyncio
    async def test_decisions_on_different_steps_keep_progress(self, service: ApprovalService) -> None:
        created = await _m1_chain(service)
        subject_id = created.subject.id

        results = await asyncio.gather(
            service.submit_decision(subject_id, "u-a", "approved"),
            service.submit_decision(subject_id, "u-b", "rejected"),
            return_exceptions=True,
        )

        assert not [r for r in results if isinstance(r, Exception)]
        final = await service.get_chain(subject_id)
        _assert_consistent(final)
        assert [s.status for s in final.steps] == [A, O, R]
        assert (final.subject.status, final.subject.progress) == (SubjectStatus.rejected, 33)
        assert final.subject.version == created.subject.version + 2
        decisions = [h for h in final.history if h.action_type == HistoryAction.decision]
        assert sorted((h.approver_id, h.status) for h in decisions) == [("u-a", "approved"), ("u-b", "rejected")]

    @pytest.mark.asyncio
    async def test_repeated_runs_stay_consistent(self, service: ApprovalService) -> None:
        for _ in range(3):
            created = await _m1_chain(service)
            await asyncio.gather(
                service.submit_decision(created.subject.id, "u-a", "approved"),
                service.submit_decision(created.subject.id, "u-b", "rejected"),
            )

            final = await service.get_chain(created.subject.id)
            _assert_consistent(final)
            assert final.subject.progress == 33


class TestDecisionRacingBypass:
    @pytest.mark.asyncio
    async def test_exactly_one_writer_decides_the_on_going_step(self, service: ApprovalService) -> None:
        created = await _m1_chain(service)
        subject_id = created.subject.id

        decision, bypass = await asyncio.gather(
            service.submit_decision(subject_id, "u-a", "approved"),
            service.admin_bypass(subject_id, "approved", "Alice on leave", "admin", "Super Admin"),
            return_exceptions=True,
        )

        assert not isinstance(bypass, Exception)
        final = await service.get_chain(subject_id)
        _assert_consistent(final)
        log = (await service.get_bypass_logs(subject_id))[0]
        affected = [(a.approver_id, a.final_status) for a in log.affected_steps]

        if isinstance(decision, Exception):
            # bypass committed first and approved Alice's step
            assert isinstance(decision, BusinessRuleViolation)
            assert affected == [("u-a", A), ("u-x", O)]
            assert [s.status for s in final.steps] == [A, O, P]
            assert final.steps[0].note.startswith("Bypassed by super admin")
            assert final.subject.progress == 33
        else:
            # decision committed first; the bypass was retried against Xavier's step
            assert affected == [("u-x", A), ("u-b", O)]
            assert [s.status for s in final.steps] == [A, A, O]
            assert final.steps[0].note is None
            assert final.subject.progress == 67

        assert final.subject.status == SubjectStatus.on_progress
        alice_decisions = [h for h in final.history if h.approver_id == "u-a" and h.action_type == HistoryAction.decision]
        assert len(alice_decisions) == (0 if isinstance(decision, Exception) else 1)
