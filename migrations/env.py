import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection

from app.dependencies import get_settings
from app.modules.service_bay import models_service_bay  # noqa: F401
from app.types.sqlalchemy import Base
from app.utils.state import init_engine

config = context.config

# Existing loggers are kept, the application configures its own loggers
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Models must be imported for autogenerate to see their tables
target_metadata = Base.metadata


def configure_context(connection: Connection | None = None, url: str | None = None):
    context.configure(
        connection=connection,
        url=url,
        target_metadata=target_metadata,
        literal_binds=connection is None,
        # SQLite can not alter most constraints, operations are replayed on a copy of the table
        render_as_batch=True,
        compare_type=True,
        # We don't want our custom type to be prefixed by the whole module path `app.types.sqlalchemy.`
        # See https://alembic.sqlalchemy.org/en/latest/autogenerate.html#controlling-the-module-prefix
        user_module_prefix="",
    )


def run_migrations_offline() -> None:
    """
    Emit the migrations as SQL to the script output, without a database connection
    """
    configure_context(url=config.get_main_option("sqlalchemy.url"))

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    configure_context(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations(connection: AsyncConnection) -> None:
    # SQLAlchemy does not support `Inspection on an AsyncConnection`, Alembic must be called through `run_sync`
    # See https://alembic.sqlalchemy.org/en/latest/cookbook.html#programmatic-api-use-connection-sharing-with-asyncio
    await connection.run_sync(do_run_migrations)


async def run_cli_migrations() -> None:
    """
    Alembic was invoked from the CLI: migrations run against the database of the production settings
    """
    connectable = init_engine(get_settings())

    async with connectable.connect() as connection:
        await run_async_migrations(connection)
    await connectable.dispose()


def run_migrations_online() -> None:
    """
    The application startup (`app.app.update_db_tables`) and tests share their connection
    through `config.attributes["connection"]`.
    See https://alembic.sqlalchemy.org/en/latest/cookbook.html#connection-sharing

    Without a shared connection, we assume Alembic was invoked from the CLI.
    """
    connection: None | Connection | AsyncConnection = config.attributes.get(
        "connection",
        None,
    )

    if connection is None:
        asyncio.run(run_cli_migrations())
    elif isinstance(connection, AsyncConnection):
        asyncio.run(run_async_migrations(connection))
    elif isinstance(connection, Connection):
        do_run_migrations(connection)
    else:
        raise TypeError(  # noqa: TRY003
            f"Unsupported connection object {connection}. A Connection or and AsyncConnection is required, got a {type(connection)}",
        )


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
