"""End-to-end tests for the HTTP API.

The application's service dependency is overridden with a service bound to the
per-test SQLite database; requests go through httpx's ASGI transport.
"""

from __future__ import annotations

from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from approval_chain.core.database import get_session
from approval_chain.engine import ApprovalService
from approval_chain.server.main import app
from approval_chain.server.services.deps import get_approval_service


@pytest_asyncio.fixture
async def client(service: ApprovalService) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_approval_service] = lambda: service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _submit(client: AsyncClient, number: str = "AUTH/M1/2026/001") -> dict:
    response = await client.post(
        "/api/v1/subjects/",
        json={"document_number": number, "submitter_id": "u-sub", "section_id": "S1", "department_id": "D1"},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_readiness_queries_database(self, client: AsyncClient, session_factory) -> None:
        async def _session():
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_session] = _session

        response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok"}

    @pytest.mark.asyncio
    async def test_readiness_reports_unavailable_database(self, client: AsyncClient) -> None:
        broken = AsyncMock()
        broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        async def _session():
            yield broken

        app.dependency_overrides[get_session] = _session

        response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "unavailable"


class TestSubjectsApi:
    @pytest.mark.asyncio
    async def test_submit_and_read(self, client: AsyncClient) -> None:
        created = await _submit(client)
        subject_id = created["subject"]["id"]

        response = await client.get(f"/api/v1/subjects/{subject_id}")

        assert response.status_code == 200
        body = response.json()
        assert [s["approver_id"] for s in body["steps"]] == ["u-a", "u-x", "u-b"]
        assert [s["status"] for s in body["steps"]] == ["on_going", "pending", "pending"]
        assert body["history"][0]["status"] == "submitted"

    @pytest.mark.asyncio
    async def test_malformed_document_number_is_422(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/subjects/", json={"document_number": "AUTH", "submitter_id": "u-sub"})

        assert response.status_code == 422
        assert response.json()["error_type"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_unknown_subject_is_404(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/subjects/missing")

        assert response.status_code == 404
        assert response.json()["details"] == {"resource": "Subject", "resource_id": "missing"}

    @pytest.mark.asyncio
    async def test_revision(self, client: AsyncClient) -> None:
        subject_id = (await _submit(client))["subject"]["id"]

        response = await client.post(
            f"/api/v1/subjects/{subject_id}/revisions", json={"editor_id": "u-sub", "note": "typo"}
        )

        assert response.status_code == 200
        assert response.json()["history"][0]["status"] == "updated"


class TestDecisionsApi:
    @pytest.mark.asyncio
    async def test_decision_flow(self, client: AsyncClient) -> None:
        subject_id = (await _submit(client))["subject"]["id"]

        response = await client.post(
            f"/api/v1/subjects/{subject_id}/decisions", json={"approver_id": "u-a", "status": "approved"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["subject"]["progress"] == 33
        assert body["subject"]["status"] == "on_progress"

        again = await client.post(
            f"/api/v1/subjects/{subject_id}/decisions",
            json={"approver_id": "u-a", "status": "rejected", "note": "second thoughts"},
        )
        assert again.status_code == 400
        assert again.json()["error_type"] == "BusinessRuleViolation"

    @pytest.mark.asyncio
    async def test_invalid_status_is_422(self, client: AsyncClient) -> None:
        subject_id = (await _submit(client))["subject"]["id"]

        response = await client.post(
            f"/api/v1/subjects/{subject_id}/decisions", json={"approver_id": "u-a", "status": "pending"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_bypass_and_logs(self, client: AsyncClient) -> None:
        subject_id = (await _submit(client))["subject"]["id"]

        forbidden = await client.post(
            f"/api/v1/subjects/{subject_id}/bypass",
            json={"target_status": "done", "reason": "deadline", "admin_id": "u-a", "admin_role": "Admin"},
        )
        assert forbidden.status_code == 403

        response = await client.post(
            f"/api/v1/subjects/{subject_id}/bypass",
            json={"target_status": "done", "reason": "deadline", "admin_id": "admin", "admin_role": "Super Admin"},
        )
        assert response.status_code == 200
        assert response.json()["subject"]["status"] == "done"

        logs = await client.get(f"/api/v1/subjects/{subject_id}/bypass-logs")
        assert logs.status_code == 200
        assert logs.json()[0]["strategy"] == "full"
        assert logs.json()[0]["affected_step_count"] == 3


class TestApproverChangesApi:
    @pytest.mark.asyncio
    async def test_request_and_process(self, client: AsyncClient) -> None:
        created = await _submit(client)
        subject_id = created["subject"]["id"]
        step_id = created["steps"][2]["id"]

        response = await client.post(
            f"/api/v1/subjects/{subject_id}/approver-changes",
            json={
                "step_id": step_id,
                "current_approver_id": "u-b",
                "new_approver_id": "u-c",
                "reason": "travelling",
                "requested_by": "u-b",
            },
        )
        assert response.status_code == 201
        request_id = response.json()["id"]

        processed = await client.post(
            f"/api/v1/approver-changes/{request_id}",
            json={"status": "approved", "admin_decision": "ok", "admin_id": "admin", "admin_role": "Admin"},
        )
        assert processed.status_code == 200
        assert processed.json()["status"] == "approved"

        chain = (await client.get(f"/api/v1/subjects/{subject_id}")).json()
        assert chain["steps"][2]["approver_id"] == "u-c"
        assert chain["steps"][2]["is_changed"] is True
