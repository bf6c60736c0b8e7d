"""
Logging Configuration Module.

Central stdlib logging setup for the approval chain service. Every module
logs through ``get_logger(__name__)``; ``setup_logging`` is called once by the
application entry point and installs:

- one console handler at the configured level,
- an optional size-rotated file handler (``APPROVAL_CHAIN_LOG_TO_FILE``),
- per-package levels from ``MODULE_LOG_LEVELS``.

Defaults come from the ``log`` settings group (``APPROVAL_CHAIN_LOG_*``).
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional

from approval_chain.core.config import settings

LOG_FILE_NAME = "approval_chain.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

LOG_FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    "json": (
        '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
        '"line": %(lineno)d, "message": "%(message)s"}'
    ),
}

# Per-package levels applied on top of the console level
MODULE_LOG_LEVELS = {
    "approval_chain.engine": "DEBUG",
    "approval_chain.engine.transaction": "INFO",
    "approval_chain.engine.notifications": "INFO",
    "approval_chain.engine.repos": "INFO",
    "approval_chain.server": "INFO",
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
    "asyncio": "WARNING",
    "uvicorn.access": "INFO",
}


def _formatter(log_format: str) -> logging.Formatter:
    pattern = LOG_FORMATS.get(log_format.lower())
    if pattern is None:
        raise ValueError(f"Unknown log format '{log_format}', expected one of {sorted(LOG_FORMATS)}")
    return logging.Formatter(pattern, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
    module_levels: Optional[Mapping[str, str]] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Console level; defaults to ``APPROVAL_CHAIN_LOG_LEVEL``.
        log_format: ``simple``, ``detailed`` or ``json``; defaults to ``APPROVAL_CHAIN_LOG_FORMAT``.
        enable_file: Whether to add the rotating file handler; defaults to ``APPROVAL_CHAIN_LOG_TO_FILE``.
        module_levels: Extra per-logger levels merged over ``MODULE_LOG_LEVELS``.

    Raises:
        ValueError: Unknown log format.
    """
    cfg = settings.log
    level = (log_level or cfg.level).upper()
    formatter = _formatter(log_format or cfg.format)
    to_file = cfg.enable_file if enable_file is None else enable_file

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if to_file:
        log_dir = Path(cfg.file_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in {**MODULE_LOG_LEVELS, **(module_levels or {})}.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Logging configured: level={level}, format={log_format or cfg.format}, file={to_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
