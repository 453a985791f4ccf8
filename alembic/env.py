import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, create_engine

from valence.core.config import settings
from valence.db.session import Base

# Import all models so Alembic sees them in metadata
from valence.models.user import User  # noqa: F401
from valence.models.booking import Booking  # noqa: F401
from valence.models.connected_account import ConnectedAccount  # noqa: F401
from valence.models.webhook_event import ProcessedWebhookEvent  # noqa: F401
from valence.models.message import BookingMessage  # noqa: F401
from valence.models.audit_log import AuditLog  # noqa: F401
from valence.models.email_log import EmailLog  # noqa: F401
from valence.models.service import Service  # noqa: F401
from valence.models.availability import AvailabilityWindow  # noqa: F401
from valence.models.review import Review  # noqa: F401


config = context.config

# Force sqlalchemy.url from the runtime DATABASE_URL
db_url = getattr(settings, "DATABASE_URL", None) or os.getenv("DATABASE_URL")
if not db_url:
    raise RuntimeError("DATABASE_URL is not set (check .env / valence.core.config.settings)")

config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    url = config.get_main_option("sqlalchemy.url")

    # alembic.ini does not expand env vars, so build the engine from the resolved URL.
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        # No DDL before configure(), otherwise begin_transaction() never commits.
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
