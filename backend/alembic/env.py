from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool

from payables.core.settings import settings
from payables.db.session import build_engine
from payables.models import Base


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# DATABASE_URL from the environment always wins over alembic.ini.
database_url = settings.database_url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        # SQLite cannot ALTER most constraints in place.
        render_as_batch=database_url.startswith("sqlite"),
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _configure(url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    with build_engine(database_url, poolclass=pool.NullPool).connect() as connection:
        _configure(connection=connection)
