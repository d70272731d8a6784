import importlib
import logging
from collections.abc import Generator
from pathlib import Path
from types import ModuleType

import pytest
from pytest_alembic import MigrationContext
from pytest_alembic.config import Config
from pytest_alembic.tests import (
    test_single_head_revision,  # noqa: F401
    test_up_down_consistency,  # noqa: F401
    test_upgrade,  # noqa: F401
)
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Connection

from app.types.sqlalchemy import Base
from app.utils.initialization import drop_db_sync
from tests.commons import SQLALCHEMY_DATABASE_URL_SYNC

logger = logging.getLogger("bayplan_tests")


@pytest.fixture
def alembic_config() -> Config:
    return Config()


@pytest.fixture
def alembic_engine(alembic_connection: Connection) -> Connection:
    """
    pytest-alembic expects an `alembic_engine` fixture, we give it a connection.

    Alembic can not be run from an asynchronous function, migrations are tested with a synchronous connection.
    """
    return alembic_connection


@pytest.fixture
def alembic_connection() -> Generator[Connection, None, None]:
    # Migrations logs are easier to read without SQLAlchemy queries
    connectable = create_engine(SQLALCHEMY_DATABASE_URL_SYNC, echo=False)

    with connectable.begin() as connection:
        # The application client of the other tests may have created the tables
        drop_db_sync(connection)

        yield connection

    connectable.dispose()


@pytest.fixture(scope="module")
def migration_modules() -> dict[str, ModuleType]:
    """
    Revision scripts of `migrations/versions`, by revision identifier
    """
    modules: dict[str, ModuleType] = {}
    for migration_file_path in sorted(Path().glob("migrations/versions/*.py")):
        migration_module = importlib.import_module(
            ".".join(migration_file_path.with_suffix("").parts),
        )
        modules[migration_module.revision] = migration_module
    return modules


def test_every_revision_has_upgrade_checks(
    alembic_runner: MigrationContext,
    migration_modules: dict[str, ModuleType],
) -> None:
    revisions = [
        revision
        for revision in alembic_runner.history.revisions
        if revision not in ["base", "heads"]
    ]
    assert set(revisions) == set(migration_modules)
    for revision in revisions:
        assert hasattr(migration_modules[revision], "pre_test_upgrade"), revision
        assert hasattr(migration_modules[revision], "test_upgrade"), revision


def test_revisions_upgrade_one_by_one(
    alembic_runner: MigrationContext,
    alembic_connection: Connection,
    migration_modules: dict[str, ModuleType],
) -> None:
    for revision in alembic_runner.history.revisions:
        if revision not in migration_modules:
            continue
        logger.info(f"Upgrading to revision {revision}")
        migration_modules[revision].pre_test_upgrade(alembic_runner, alembic_connection)
        alembic_runner.managed_upgrade(revision)
        migration_modules[revision].test_upgrade(alembic_runner, alembic_connection)


def test_head_creates_the_model_tables(
    alembic_runner: MigrationContext,
    alembic_connection: Connection,
) -> None:
    alembic_runner.migrate_up_to("heads")

    tables = set(inspect(alembic_connection).get_table_names())
    assert set(Base.metadata.tables) <= tables
