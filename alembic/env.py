from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, engine_from_config, pool
from sqlalchemy.engine import Connection

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, PROJECT_ROOT)

from jornify.database import Base  # noqa: E402
from jornify.database import DATABASE_URL as APP_DATABASE_URL  # noqa: E402
from jornify.models import employee, monthly_signature, record_event, time_record  # noqa: E402,F401

config = context.config
if os.getenv("DATABASE_URL"):
    config.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_db_url() -> str:
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    ini_url = config.get_main_option("sqlalchemy.url")
    if ini_url:
        return ini_url
    if APP_DATABASE_URL:
        return APP_DATABASE_URL
    raise RuntimeError("No database URL configured (DATABASE_URL or alembic.ini sqlalchemy.url)")


def _render_as_batch(url: str) -> bool:
    # SQLite cannot ALTER constraints in place.
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    url = _get_db_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
        render_as_batch=_render_as_batch(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def _configure_and_run(connection: Connection, url: str) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=_render_as_batch(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        connectable = create_engine(env_url, poolclass=pool.NullPool)
        with connectable.connect() as connection:
            _configure_and_run(connection, env_url)
        return

    url = _get_db_url()
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        _configure_and_run(connection, url)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
