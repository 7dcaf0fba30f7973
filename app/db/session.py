"""
Database Session Management - explicitly owned async SQLAlchemy engines.

A Database is constructed once by the application lifespan, handed to
request handlers through app.state, and disposed with shutdown().
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from structlog import get_logger

from app.config import Settings
from app.db.batch import BatchQuery, run_batch

logger = get_logger(__name__)


def to_async_url(url: str) -> str:
    """Point a plain PostgreSQL URL at the asyncpg driver."""
    for scheme in ("postgresql://", "postgres://"):
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme) :]
    return url


class Database:
    """Pooled async engine plus session factory for one PostgreSQL database."""

    def __init__(
        self,
        url: str,
        *,
        name: str = "primary",
        pool_size: int = 10,
        pool_timeout: int = 10,
        pool_recycle: int = 1800,
        connect_timeout: int = 10,
        echo: bool = False,
    ) -> None:
        self.name = name
        self.engine: AsyncEngine = create_async_engine(
            to_async_url(url),
            pool_size=pool_size,
            max_overflow=0,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            connect_args={"timeout": connect_timeout},
            echo=echo,
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, url: str, name: str = "primary") -> "Database":
        return cls(
            url,
            name=name,
            pool_size=settings.database_pool_size,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            connect_timeout=settings.database_connect_timeout,
            echo=settings.log_level.upper() == "DEBUG",
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Get an async database session.

        Usage:
            async with database.session() as session:
                result = await session.execute(...)
        """
        async with self.session_factory() as session:
            yield session

    async def run_batch(self, queries: Mapping[str, BatchQuery]) -> dict[str, Any]:
        """Run a named batch of read queries concurrently (see app.db.batch)."""
        return await run_batch(self.session_factory, queries)

    async def shutdown(self) -> None:
        """Drain the connection pool. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.engine.dispose()
        logger.info("database_pool_disposed", database=self.name)


def get_database(request: Request) -> Database:
    """FastAPI dependency: the product data database."""
    return request.app.state.database  # type: ignore[no-any-return]


def get_auth_database(request: Request) -> Database:
    """FastAPI dependency: the admin auth database."""
    return request.app.state.auth_database  # type: ignore[no-any-return]
