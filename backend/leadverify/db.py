# backend/leadverify/db.py
import asyncio
import logging

import sqlalchemy
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import settings

logger = logging.getLogger("leadverify.db")

Base = declarative_base()

_engine = None
_session_maker = None


def is_postgres(bind) -> bool:
    """True when ``bind`` (engine, connection or session bind) talks to PostgreSQL."""
    return bind.dialect.name == "postgresql"


def engine_options(url: str) -> dict:
    # SQLite (local runs, tests) uses its own pool and rejects sizing options
    if make_url(url).get_backend_name() == "sqlite":
        return {"echo": settings.DEBUG}
    return {
        "echo": settings.DEBUG,
        "pool_pre_ping": True,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
    }


def get_engine():
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
    return _engine


def get_session_maker():
    """
    Shared session factory for the API, the worker and the scheduler.

    Objects stay loaded after commit: job rows and contacts are read back
    after each batch commit.
    """
    global _session_maker
    if _session_maker is None:
        _session_maker = sessionmaker(bind=get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker


# ---------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------
async def get_db():
    async with get_session_maker()() as session:
        yield session


# ---------------------------------------------------------
# DB readiness check for container startup
# ---------------------------------------------------------
async def wait_for_db(max_retries: int = 8, delay: float = 2.0):
    engine = get_engine()
    target = engine.url.render_as_string(hide_password=True)

    last_exc = None
    for attempt in range(1, max_retries + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(sqlalchemy.text("SELECT 1"))
            logger.info("Database %s ready (attempt %d)", target, attempt)
            return True
        except OperationalError as e:
            last_exc = e
            msg = str(e.__cause__ or e)
            if "password authentication failed" in msg.lower():
                logger.error("Database authentication failed for %s", target)
                raise
            logger.warning("Database %s not ready (attempt %d/%d): %s", target, attempt, max_retries, msg)
            await asyncio.sleep(delay)

    logger.error("Gave up on database %s after %d attempts", target, max_retries)
    raise last_exc
