"""Unit tests for settings and grouped configuration."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

import pytest

from approval_chain.core.config import Settings
from approval_chain.core.exceptions import ApprovalChainError, NotFoundError
from approval_chain.core.logging_config import get_logger, setup_logging


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(APPROVAL_CHAIN_DATABASE_URL="sqlite+aiosqlite:///:memory:")

        assert s.database.url == "sqlite+aiosqlite:///:memory:"
        assert s.database.isolation_level == "SERIALIZABLE"
        assert s.retry.max_attempts == 3
        assert s.retry.base_delay == 0.5
        assert s.decision.duplicate_window == 60.0
        assert s.decision.admin_roles == ["Super Admin"]
        assert "Admin" in s.decision.reviewer_admin_roles

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APPROVAL_CHAIN_RETRY_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("APPROVAL_CHAIN_ADMIN_ROLES", '["Root", "Super Admin"]')
        monkeypatch.setenv("APPROVAL_CHAIN_DUPLICATE_WINDOW", "15")

        s = Settings()

        assert s.retry.max_attempts == 7
        assert s.decision.admin_roles == ["Root", "Super Admin"]
        assert s.decision.duplicate_window == 15.0

    def test_cors_group(self) -> None:
        s = Settings(CORS_ORIGINS=["https://example.org"], CORS_ALLOW_CREDENTIALS=False)

        assert s.cors.origins == ["https://example.org"]
        assert s.cors.allow_credentials is False


class TestLogging:
    def test_setup_logging_installs_console_handler(self) -> None:
        root = logging.getLogger()
        saved = root.handlers[:]
        try:
            setup_logging(log_level="warning", log_format="json", enable_file=False)

            stream_handlers = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
            assert len(stream_handlers) == 1
            assert stream_handlers[0].level == logging.WARNING
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved

    def test_rotating_file_handler(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APPROVAL_CHAIN_LOG_FILE_DIR", str(tmp_path / "logs"))
        monkeypatch.setattr("approval_chain.core.logging_config.settings", Settings())
        root = logging.getLogger()
        saved = root.handlers[:]
        try:
            setup_logging(log_level="info", log_format="simple", enable_file=True)

            file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
            assert len(file_handlers) == 1
            assert (tmp_path / "logs" / "approval_chain.log").exists()
            file_handlers[0].close()
        finally:
            root.handlers[:] = saved

    def test_module_level_overrides(self) -> None:
        root = logging.getLogger()
        saved = root.handlers[:]
        try:
            setup_logging(log_format="detailed", enable_file=False, module_levels={"approval_chain.engine": "ERROR"})
            assert logging.getLogger("approval_chain.engine").level == logging.ERROR
        finally:
            root.handlers[:] = saved
            logging.getLogger("approval_chain.engine").setLevel(logging.DEBUG)

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown log format"):
            setup_logging(log_format="xml", enable_file=False)

    def test_get_logger(self) -> None:
        assert get_logger("approval_chain.engine.decisions").name == "approval_chain.engine.decisions"


class TestExceptions:
    def test_not_found_message(self) -> None:
        exc = NotFoundError("Subject", "s-1")

        assert exc.message == "Subject id=s-1 not found"
        assert exc.details == {"resource": "Subject", "resource_id": "s-1"}
        assert isinstance(exc, ApprovalChainError)

    def test_details_default_to_empty(self) -> None:
        assert ApprovalChainError("boom").details == {}
