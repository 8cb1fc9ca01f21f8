"""
Database engine and sessions for the newsletter service.

One async engine per process. PostgreSQL (asyncpg) in every deployed
environment, SQLite (aiosqlite) in tests and quick local runs.

SECURITY:
- SQL echo is off in production: contact emails and IPs travel in statements
- The connection string is never logged, only its driver
"""

import logging
import time
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

# Campaign sends hold one session for the whole recipient loop; keep headroom
# for the public pixel and confirm links that arrive meanwhile.
POSTGRES_POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}


class Base(DeclarativeBase):
    """Declarative base shared by users and newsletter tables."""


def _log_query_start(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.pop("query_start_time", None)
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms < SLOW_QUERY_THRESHOLD_MS:
        return
    # Only the statement shape; parameters carry addresses and tokens
    logger.warning(
        "Slow query (%.0fms): %s",
        duration_ms,
        statement[:200] + ("..." if len(statement) > 200 else ""),
    )


def build_engine(url: str, **engine_kwargs) -> AsyncEngine:
    """Create an async engine with slow-query logging attached."""
    options = {} if url.startswith("sqlite") else dict(POSTGRES_POOL_OPTIONS)
    options.update(engine_kwargs)

    new_engine = create_async_engine(url, echo=settings.sqlalchemy_echo, **options)
    event.listen(new_engine.sync_engine, "before_cursor_execute", _log_query_start)
    event.listen(new_engine.sync_engine, "after_cursor_execute", _log_slow_query)
    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit: delivery reports counters it just committed
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
async_session_maker = build_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session. Routes commit explicitly; nothing is committed here."""
    async with async_session_maker() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create missing tables. Alembic owns schema changes after the first deploy."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


async def dispose_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
