"""Alembic migration environment for the engine-owned tables.

The URL comes from Settings.database_url (DATABASE_URL), rewritten to the
sync psycopg2 form Alembic drives:
    postgresql+asyncpg://...  →  postgresql://...

Ledger tables (app.models.ledger) live on their own MetaData and are owned by
the accounting platform; include_object keeps autogenerate away from them.
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from app.core.config import get_settings
from app.models import risk  # noqa: F401  registers the engine-owned tables
from app.models.database import Base
from app.models.ledger import LedgerBase

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
LEDGER_TABLES = frozenset(LedgerBase.metadata.tables)


def sync_database_url(url: str) -> str:
    for async_prefix in ("postgresql+asyncpg://", "postgresql+psycopg2://"):
        if url.startswith(async_prefix):
            return "postgresql://" + url[len(async_prefix):]
    return url


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    return not (type_ == "table" and name in LEDGER_TABLES)


config.set_main_option("sqlalchemy.url", sync_database_url(get_settings().database_url))


def run_migrations_offline() -> None:
    """Emit SQL to stdout (alembic upgrade --sql) without a live connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
