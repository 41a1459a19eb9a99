"""
Alembic environment for the Property Viewing Booking database.

The database URL comes from the Alembic config when one is set there
(tests and core.database.upgrade_database set it) and from DATABASE_URL
otherwise. Online migrations run on an engine built by build_engine, so
SQLite migrations take the same immediate write lock as the application.
"""
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy.pool import NullPool

# Add src directory to path to import models
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from core.config import DATABASE_URL
from core.database import Base, build_engine
import models  # noqa: F401

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def get_url() -> str:
    return config.get_main_option("sqlalchemy.url") or DATABASE_URL


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to a database."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
    connectable = build_engine(get_url(), poolclass=NullPool)

    try:
        with connectable.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata)

            with context.begin_transaction():
                context.run_migrations()
    finally:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
