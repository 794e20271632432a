import os

from alembic import context
from sqlalchemy import engine_from_config, pool

from checkout_service.core.config import get_settings
from checkout_service.db.session import Base
import checkout_service.db.models  # noqa

config = context.config
target_metadata = Base.metadata

# kept apart from other services sharing the database
VERSION_TABLE = "alembic_version_checkout"


def database_url() -> str:
    return os.getenv("POSTGRES_DSN") or config.get_main_option("sqlalchemy.url") or get_settings().POSTGRES_DSN


def configure(**kwargs):
    context.configure(
        target_metadata=target_metadata,
        version_table=VERSION_TABLE,
        compare_type=True,
        render_as_batch=database_url().startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline():
    configure(url=database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        {"sqlalchemy.url": database_url()},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
