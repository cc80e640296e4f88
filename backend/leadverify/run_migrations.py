# backend/leadverify/run_migrations.py
"""Upgrade the schema once the database accepts connections: ``python -m leadverify.run_migrations [revision]``."""
import asyncio
import logging
import os
import sys

from alembic import command
from alembic.config import Config

from leadverify.db import wait_for_db
from leadverify.logging_config import setup_logging

log = logging.getLogger("leadverify.migrations")

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "alembic.ini")


async def run_migrations(revision: str = "head"):
    await wait_for_db(max_retries=8, delay=2.0)

    cfg = Config(ALEMBIC_INI)
    log.info("Upgrading schema to %s", revision)
    command.upgrade(cfg, revision)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_migrations(sys.argv[1] if len(sys.argv) > 1 else "head"))
