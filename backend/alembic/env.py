"""
Alembic migration environment.
Supports both online (connected to DB) and offline (SQL script generation) modes.

The target database defaults to DATABASE_URL_SYNC and can be overridden per
run, e.g. to migrate a throwaway SQLite file:

    alembic -x db_url=sqlite:///./bandroom_dev.db upgrade head

SQLite cannot ALTER constraints in place, so migrations against it run in
batch mode.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from bandroom.core.config import get_settings
from bandroom.db.base import Base
from bandroom.models import Instrument, Meeting, MeetingMembership, Reservation, User  # noqa: F401 - registers tables

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    return override or get_settings().DATABASE_URL_SYNC


def _configure_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        # Autogenerate also reports column type changes
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    url = _database_url()
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
    url = _database_url()
    config.set_main_option("sqlalchemy.url", url)
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
