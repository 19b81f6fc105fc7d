"""SQLAlchemy async engine and session management.

Owns one async engine and session factory per manager instance, a scoped
session context manager with commit/rollback, and lifecycle helpers for
schema creation and shutdown.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .base_models import Base

logger = structlog.get_logger(__name__)


def _is_sqlite_memory(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"))


class DatabaseManager:
    """Async engine plus session factory for one database."""

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 5,
        pool_timeout: int = 30,
    ) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo}
        if _is_sqlite_memory(url):
            # A single shared connection keeps the in-memory schema alive.
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        elif not url.startswith("sqlite"):
            engine_kwargs.update(pool_size=pool_size, pool_timeout=pool_timeout, pool_pre_ping=True)
        self._url = url
        self._engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("database_engine_created", url=url.split("@")[-1])

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create every table registered on the declarative base."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_created", tables=sorted(Base.metadata.tables))

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def check_health(self) -> dict[str, Any]:
        """Run a trivial query; used by the health monitor."""
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "healthy", "url": self._url.split("@")[-1]}

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("database_engine_disposed")
