"""Alembic environment configuration for adsbook.

Targets the adsbook ORM metadata on SQLite with render_as_batch=True for
ALTER TABLE compatibility. The database URL comes from ``sqlalchemy.url``
(alembic.ini or ``-x``/``set_main_option``), falling back to the configured
``Settings.db_path``.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context

from adsbook.db.orm import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    from adsbook.config import Settings

    settings = Settings()
    settings.ensure_data_dir()
    return f"sqlite:///{settings.db_path}"


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a database connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Migrate through the same engine factory the application uses (WAL, foreign keys)."""
    from adsbook.db.engine import create_db_engine

    # sqlite:///relative/path or sqlite:////absolute/path
    db_path = _database_url().replace("sqlite:///", "", 1)
    connectable = create_db_engine(db_path)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
