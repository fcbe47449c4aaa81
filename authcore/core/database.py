"""
Async engine, session factory and the per-request session dependency.

The engine's connection pool is the only shared mutable resource in the
process.  Every unit of work acquires a session, commits on success,
rolls back on any error and always releases the connection.  Driver
failures and pool/statement timeouts surface as
`StorageUnavailableError` so callers can tell them apart from
business-rule failures.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authcore.core.config import settings
from authcore.core.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (OperationalError, PoolTimeoutError, asyncio.TimeoutError)


def build_engine(url: str | None = None, **kwargs: Any) -> AsyncEngine:
    """Create an engine with bounded waits on every storage call."""
    url = url or settings.DATABASE_URL
    # Bound parameters carry tokens and hashes; keep them out of SQL logs.
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True, "hide_parameters": True}
    if not url.startswith("sqlite"):
        options["pool_timeout"] = settings.DB_POOL_TIMEOUT_SECONDS
    if "+asyncpg" in url:
        options["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS}
    options.update(kwargs)
    return create_async_engine(url, **options)


engine = build_engine()
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


def is_storage_error(exc: BaseException) -> bool:
    if isinstance(exc, STORAGE_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """Acquire-use-release a session as one transaction."""
    factory = factory or SessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            if is_storage_error(exc):
                logger.error("Storage call failed: %s", exc.__class__.__name__)
                raise StorageUnavailableError() from exc
            raise


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — one transaction per request."""
    async with session_scope() as session:
        yield session
