"""Database configuration and connection management."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from codementor.config import settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


class DatabaseManager:
    """Relational database connection manager."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self, database_url: Optional[str] = None) -> None:
        """Initialize the database engine and session maker."""
        url = database_url or settings.database_url
        logger.info("Initializing database connection...")

        engine_options: Dict[str, Any] = {
            "echo": settings.database_echo,
            "pool_pre_ping": True,
        }
        if not url.startswith("sqlite"):
            engine_options.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_recycle=3600,  # Recycle connections every hour
            )

        try:
            self.engine = create_async_engine(url, **engine_options)
            self.async_session_maker = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

            # Test connection
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))

            logger.info("Database connection established")

        except Exception as e:
            logger.error("Failed to initialize database", error=str(e))
            raise

    def bind(self, engine: AsyncEngine) -> None:
        """Use an already created engine."""
        self.engine = engine
        self.async_session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create all tables registered on the metadata."""
        if not self.engine:
            raise RuntimeError("Database not initialized")

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database schema created")

    async def close(self) -> None:
        """Close the database connection."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connection closed")
        self.engine = None
        self.async_session_maker = None

    async def health_check(self) -> dict:
        """Perform health check on the database."""
        health_status = {"status": "unknown", "error": None}

        try:
            if self.engine:
                async with self.engine.begin() as conn:
                    await conn.execute(text("SELECT 1"))
                health_status["status"] = "healthy"
            else:
                health_status["status"] = "disabled"
        except Exception as e:
            health_status["status"] = "unhealthy"
            health_status["error"] = str(e)

        return health_status

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session."""
        if not self.async_session_maker:
            raise RuntimeError("Database not initialized")

        async with self.async_session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()


# Global database manager instance
db_manager = DatabaseManager()


# Import models to ensure they are registered with SQLAlchemy
import codementor.auth.models  # noqa: E402,F401
import codementor.collaboration.models  # noqa: E402,F401
import codementor.gamification.models  # noqa: E402,F401
import codementor.roadmaps.models  # noqa: E402,F401
