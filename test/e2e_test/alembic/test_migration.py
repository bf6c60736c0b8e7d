"""End-to-end tests for the Alembic migration script.

The migration is applied to an in-process SQLite database through Alembic's
``Operations`` API and compared with the ORM metadata:
1. Creates every table the ORM maps, with the same columns
2. Creates the unique step order constraint and lookup indexes
3. Can be downgraded and upgraded again
"""

import importlib.util
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations

from approval_chain.core.database.models import Base

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent
MIGRATION = PROJECT_ROOT / "alembic" / "versions" / "20261019_000000_initial_approval_chain_schema.py"


@pytest.fixture(scope="module")
def migration():
    spec = importlib.util.spec_from_file_location("initial_approval_chain_schema", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def connection():
    engine = sa.create_engine("sqlite://")
    with engine.begin() as conn:
        yield conn
    engine.dispose()


def _run(connection, step) -> None:
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        step()


class TestInitialMigration:
    def test_revision_header(self, migration):
        assert migration.revision == "20261019_000000"
        assert migration.down_revision is None

    def test_upgrade_matches_orm(self, migration, connection):
        _run(connection, migration.upgrade)

        inspector = sa.inspect(connection)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            columns = {c["name"] for c in inspector.get_columns(name)}
            assert columns == set(table.columns.keys()), name

    def test_step_order_is_unique_per_subject(self, migration, connection):
        _run(connection, migration.upgrade)

        inspector = sa.inspect(connection)
        uniques = inspector.get_unique_constraints("ac_approval_steps")
        assert any(u["column_names"] == ["subject_id", "step_order"] for u in uniques)
        indexed = {tuple(i["column_names"]) for i in inspector.get_indexes("ac_history")}
        assert ("subject_id",) in indexed

    def test_downgrade_and_upgrade_again(self, migration, connection):
        _run(connection, migration.upgrade)
        _run(connection, migration.downgrade)
        assert sa.inspect(connection).get_table_names() == []

        _run(connection, migration.upgrade)
        assert "ac_subjects" in sa.inspect(connection).get_table_names()
