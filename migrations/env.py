"""Alembic environment for the repeater schema."""
from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from bridge_hub.core.settings import settings
from bridge_hub.db.session import Base

config = context.config

if config.config_file_name is not None:
    # Keep application loggers alive when migrations run in-process.
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# ALEMBIC_URL wins over DATABASE_URL so a one-off target can be migrated.
config.set_main_option(
    "sqlalchemy.url",
    os.getenv("ALEMBIC_URL") or settings.effective_database_url,
)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
