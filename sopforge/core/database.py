"""Async SQLAlchemy engine and session factory for the artifact store."""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from sopforge.core.config import DatabaseSettings
from sopforge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine_from_settings(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for the configured database.

    SQLite URLs get a single shared connection when in-memory, since every
    new connection to ``sqlite://`` would otherwise see an empty database.
    """
    url = db_settings.url
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=db_settings.echo, future=True, **kwargs)

    return create_async_engine(
        url,
        pool_size=db_settings.pool_size,
        max_overflow=db_settings.max_overflow,
        echo=db_settings.echo,
        future=True,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """Database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        """Initialize database client.

        Args:
            engine: SQLAlchemy async engine
        """
        self.engine = engine
        self.session_maker = create_session_maker(engine)
        self._connected = False

    @classmethod
    def from_settings(cls, db_settings: Optional[DatabaseSettings] = None) -> "DatabaseClient":
        return cls(create_engine_from_settings(db_settings or DatabaseSettings()))

    async def connect(self) -> None:
        """Verify the database is reachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        self._connected = True
        LOGGER.info("Database connection established")

    async def init_schema(self) -> None:
        """Create all artifact tables that do not exist yet."""
        # Registers the mapped classes on Base.metadata
        from sopforge.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Artifact store schema initialized")

    async def disconnect(self) -> None:
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")

    @property
    def is_connected(self) -> bool:
        return self._connected
