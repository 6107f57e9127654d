from __future__ import annotations

import pathlib
import sys

import sqlalchemy as sa
from alembic.config import Config as AlembicConfig
from sqlalchemy import engine_from_config, pool

from alembic import context

BASE_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from app.models import Base  # noqa: E402
from app.settings import settings  # noqa: E402

target_metadata = Base.metadata


def _ensure_alembic_version_num_length(connection: sa.Connection, length: int = 128) -> None:
    """
    alembic_version.version_num defaults to VARCHAR(32), shorter than our
    descriptive revision ids. Widen it on PostgreSQL before migrating.
    """
    if connection.dialect.name != "postgresql":
        return

    try:
        current_len = connection.execute(
            sa.text(
                """
                SELECT character_maximum_length
                FROM information_schema.columns
                WHERE table_name = 'alembic_version'
                  AND column_name = 'version_num'
                ORDER BY table_schema
                LIMIT 1
                """
            )
        ).scalar_one_or_none()
    except Exception:
        # Missing table or privileges: Alembic creates it (or fails) on its own.
        return

    if current_len is None or current_len >= length:
        return

    connection.execute(
        sa.text(f"ALTER TABLE alembic_version ALTER COLUMN version_num TYPE VARCHAR({int(length)})")
    )


def _configure_alembic() -> AlembicConfig:
    """Point Alembic at settings.database_url (DATABASE_URL)."""
    cfg = context.config
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""

    cfg = _configure_alembic()
    context.configure(
        url=cfg.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table="alembic_version",
        version_column="version_num",
        version_column_type=sa.String(length=128),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""

    cfg = _configure_alembic()
    connectable = engine_from_config(
        cfg.get_section(cfg.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        _ensure_alembic_version_num_length(connection, length=128)
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table="alembic_version",
            version_column="version_num",
            version_column_type=sa.String(length=128),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
