"""Alembic environment for the writewise schema.

init_db() supplies the URL from writewise settings. Command-line runs
(``alembic upgrade head``) read DATABASE_URL / DATABASE_PATH from .env.
"""

import os
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

load_dotenv(Path(__file__).resolve().parents[1] / ".env")

config = context.config
from_settings = config.attributes.get("url_from_settings", False)


def _cli_database_url() -> str:
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgresql://"):
        return url
    return f"sqlite:///{os.getenv('DATABASE_PATH', 'writewise.db')}"


if not from_settings:
    config.set_main_option("sqlalchemy.url", _cli_database_url())
    if config.config_file_name is not None:
        fileConfig(config.config_file_name)

url = config.get_main_option("sqlalchemy.url")
# SQLite cannot ALTER most things in place; batch mode rebuilds the table
batch = url.startswith("sqlite")


def run_offline() -> None:
    context.configure(
        url=url,
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=None, render_as_batch=batch)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
