"""
Database layer for the approval chain service.

Structure:
- models.py: ORM row models for subjects, steps, templates and audit tables
- session.py: Global engine and session factory management
- utils.py: Database utility functions (engine, session factory, schema creation)
"""

from .models import Base
from .session import (
    async_session_maker,
    engine,
    get_session,
    init_db,
)
from .utils import (
    create_all,
    create_engine,
    create_sessionmaker,
    utc_now,
)

__all__ = [
    "Base",
    "async_session_maker",
    "create_all",
    "create_engine",
    "create_sessionmaker",
    "engine",
    "get_session",
    "init_db",
    "utc_now",
]
