"""
Unit tests for FastAPI application lifespan management.

Tests verify that startup initializes the database and that the service
dependency is a process-wide singleton.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI

pytestmark = pytest.mark.asyncio


class TestLifespanStartup:
    """Test application startup lifespan events."""

    async def test_lifespan_startup_initializes_database(self):
        """Test that lifespan startup calls init_db."""
        from approval_chain.server.main import lifespan

        with patch("approval_chain.server.main.init_db", new_callable=AsyncMock) as mock_init_db:
            async with lifespan(FastAPI()):
                mock_init_db.assert_awaited_once()

    async def test_lifespan_startup_failure_propagates(self):
        """Test that a database failure aborts startup."""
        from approval_chain.server.main import lifespan

        with patch("approval_chain.server.main.init_db", new_callable=AsyncMock) as mock_init_db:
            mock_init_db.side_effect = ConnectionError("database unreachable")
            with pytest.raises(ConnectionError):
                async with lifespan(FastAPI()):
                    pass


class TestServiceDependency:
    async def test_singleton(self):
        from approval_chain.engine import ApprovalService
        from approval_chain.server.services import deps

        with patch.object(deps, "_service", None):
            first = deps.get_approval_service()
            second = deps.get_approval_service()

        assert isinstance(first, ApprovalService)
        assert first is second
