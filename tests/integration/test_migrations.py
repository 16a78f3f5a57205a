"""Test the Alembic schema migration against the ORM models.

Runs the migration's upgrade/downgrade through an Alembic operations
context on SQLite, so no PostgreSQL instance is needed.
"""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from subsidy.db.base import Base
import subsidy.db.models  # noqa: F401


MIGRATION = (
    Path(__file__).resolve().parents[2]
    / "subsidy" / "migrations" / "versions" / "0001_initial_schema.py"
)


def _load_migration():
    module_spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture
def migration_engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


def _run(engine, fn):
    with engine.begin() as conn:
        context = MigrationContext.configure(conn)
        with Operations.context(context):
            fn()


@pytest.mark.integration
class TestInitialMigration:
    """Run upgrade -> verify -> downgrade -> verify cycle."""

    def test_revision_identifiers(self):
        migration = _load_migration()
        assert migration.revision == "0001"
        assert migration.down_revision is None

    def test_upgrade_creates_model_tables(self, migration_engine):
        _run(migration_engine, _load_migration().upgrade)

        tables = set(inspect(migration_engine).get_table_names())
        assert tables == set(Base.metadata.tables)

    def test_columns_match_models(self, migration_engine):
        _run(migration_engine, _load_migration().upgrade)
        inspector = inspect(migration_engine)

        for name, table in Base.metadata.tables.items():
            migrated = {col["name"] for col in inspector.get_columns(name)}
            assert migrated == {col.name for col in table.columns}, name

    def test_open_step_index_matches_model(self, migration_engine):
        _run(migration_engine, _load_migration().upgrade)

        migrated = {
            index["name"]: index
            for index in inspect(migration_engine).get_indexes("application_steps")
        }
        declared = {index.name for index in Base.metadata.tables["application_steps"].indexes}

        assert "ux_application_steps_open" in declared
        assert migrated["ux_application_steps_open"]["unique"]
        assert migrated["ux_application_steps_open"]["column_names"] == ["application_id"]

    def test_downgrade_drops_everything(self, migration_engine):
        migration = _load_migration()
        _run(migration_engine, migration.upgrade)
        _run(migration_engine, migration.downgrade)

        assert inspect(migration_engine).get_table_names() == []
