"""Repository interfaces and SQL implementations for approval persistence.

The repository layer is the persistence boundary for the approval engine.

Responsibilities
----------------

- Provide a small set of async repository interfaces (Protocols) that the
  engine components can depend on.
- Persist durable, auditable records of a subject's approval:

  - the subject and its aggregate status/progress,
  - the ordered step chain,
  - the append-only history and bypass logs,
  - approver change requests.

Design notes
------------

The engine is written against interfaces so it can be used with a SQL database
(async SQLAlchemy implementation provided in ``repos.sql``) or with in-memory
fakes in unit tests.
"""

from .interfaces import (
    BypassLogRepository,
    ChangeRequestRepository,
    DirectoryRepository,
    HistoryRepository,
    MemberRepository,
    StepRepository,
    SubjectRepository,
    TemplateRepository,
)
from .sql import SqlRepoBundle, build_sql_repos

__all__ = [
    "BypassLogRepository",
    "ChangeRequestRepository",
    "DirectoryRepository",
    "HistoryRepository",
    "MemberRepository",
    "StepRepository",
    "SubjectRepository",
    "TemplateRepository",
    "SqlRepoBundle",
    "build_sql_repos",
]
