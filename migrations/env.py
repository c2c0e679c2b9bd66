"""
Alembic env.py — resolves the connection URL through caseflow's Settings.

Credential priority is the same as the application's (see
caseflow.core.config):
  1. LOCAL_DB_* variables  (when ENVIRONMENT=development)
  2. DB_HOST + DB_PASSWORD env vars
  3. AWS Secrets Manager at /caseflow/db/credentials (production)

Migrations are raw SQL; the ORM metadata is attached only so that
``alembic revision --autogenerate`` can report drift between the models and
the live schema.

Usage:
  # Development (local Docker Compose):
  ENVIRONMENT=development alembic upgrade head

  # Production (credentials from Secrets Manager):
  ENVIRONMENT=production alembic upgrade head
"""
import logging
import sys
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from caseflow.core.config import get_settings
from caseflow.models import Base

# ---------------------------------------------------------------------------
# Load .env from repo root
# ---------------------------------------------------------------------------
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=_repo_root / ".env", override=False)

logger = logging.getLogger("alembic.env")


def _get_db_url() -> str:
    """Return a psycopg2 connection URL based on the current environment."""
    try:
        return get_settings().database_url_sync
    except RuntimeError as exc:
        logger.error("%s", exc)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Alembic config
# ---------------------------------------------------------------------------
config = context.config
config.set_main_option("sqlalchemy.url", _get_db_url())

# Interpret the config file for Python logging
if config.config_file_name is not None:
    import logging.config
    logging.config.fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (generate SQL script without DB connection)."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live DB connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
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
