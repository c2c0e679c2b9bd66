#!/usr/bin/env python3
"""
Seed runner — loads the case lookup tables (categories, priorities, statuses,
channels).

Usage:
  # Development (local Docker Compose):
  ENVIRONMENT=development python seed.py

  # Production:
  ENVIRONMENT=production python seed.py

Seeds are idempotent — safe to re-run (all INSERT … ON CONFLICT DO NOTHING).
Connection details come from caseflow's Settings, so the credential rules
are the application's (LOCAL_DB_* in development, DB_* or Secrets Manager
otherwise).
"""
import logging
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv
from sqlalchemy.engine import make_url

from caseflow.core.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Load .env
# ---------------------------------------------------------------------------
_repo_root = Path(__file__).resolve().parent.parent.parent
load_dotenv(dotenv_path=_repo_root / ".env", override=False)

SEEDS_DIR = Path(__file__).parent

SEED_FILES = [
    "seed_case_categories.sql",
    "seed_case_priorities.sql",
    "seed_case_statuses.sql",
    "seed_case_channels.sql",
]

VERIFY_QUERIES = {
    "case_categories": ("SELECT COUNT(*) FROM case_categories", 8),
    "case_priorities": ("SELECT COUNT(*) FROM case_priorities", 4),
    "case_statuses":   ("SELECT COUNT(*) FROM case_statuses",   9),
    "case_channels":   ("SELECT COUNT(*) FROM case_channels",   8),
}

# Exactly one status must be the initial one for new cases
INITIAL_STATUS_QUERY = "SELECT COUNT(*) FROM case_statuses WHERE is_initial AND is_active"


def _get_connection() -> psycopg2.extensions.connection:
    settings = get_settings()
    try:
        url = make_url(settings.database_url_sync)
    except RuntimeError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    return psycopg2.connect(
        host=url.host,
        port=url.port,
        dbname=url.database,
        user=url.username,
        password=url.password,
        sslmode="prefer" if settings.is_development else "require",
    )


def run_seeds() -> None:
    conn = _get_connection()
    conn.autocommit = False
    cur = conn.cursor()

    try:
        for filename in SEED_FILES:
            sql = (SEEDS_DIR / filename).read_text(encoding="utf-8")
            logger.info("Running seed: %s", filename)
            cur.execute(sql)

        conn.commit()
        logger.info("All seeds committed successfully.")
    except Exception:
        conn.rollback()
        logger.exception("Seed failed — transaction rolled back.")
        sys.exit(1)
    finally:
        cur.close()
        conn.close()


def verify() -> None:
    conn = _get_connection()
    cur = conn.cursor()
    all_ok = True

    try:
        for table, (query, expected) in VERIFY_QUERIES.items():
            cur.execute(query)
            count = cur.fetchone()[0]
            ok = count >= expected
            all_ok = all_ok and ok
            logger.info(
                "  %-20s %s  (got %d, expected >= %d)", table, "OK" if ok else "FAIL", count, expected
            )

        cur.execute(INITIAL_STATUS_QUERY)
        initial = cur.fetchone()[0]
        if initial != 1:
            all_ok = False
            logger.error("  expected exactly one initial case status, found %d", initial)
    finally:
        cur.close()
        conn.close()

    if not all_ok:
        logger.error("Verification failed — lookup tables are incomplete.")
        sys.exit(1)

    logger.info("Verification passed.")


if __name__ == "__main__":
    logger.info("Environment: %s", get_settings().environment)
    logger.info("--- Running seeds ---")
    run_seeds()
    logger.info("--- Verifying row counts ---")
    verify()
