# src/db/database.py
from core.config import settings
from fastapi import HTTPException
from typing import AsyncGenerator, Any, Dict
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from utils.logger import setup_logger

logger = setup_logger("DATABASE")


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine with pool settings suited to the backend"""
    engine_kwargs: Dict[str, Any] = {"echo": settings.DEBUG}

    if database_url.startswith("sqlite"):
        # aiosqlite connections are cheap and must not be shared across loops
        engine_kwargs["poolclass"] = NullPool
    elif settings.ENVIRONMENT == "testing":
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            pool_size=20,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={
                "server_settings": {
                    "jit": "off",
                    "application_name": "health_records",
                },
            },
        )

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create SQLAlchemy engine with async support
engine = build_engine(settings.DATABASE_URL)

# Async session factory
AsyncSessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session per request"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()

        except HTTPException:
            await session.rollback()
            # Domain errors (403, 404, 409...) are reported by the handlers
            raise

        except Exception as exc:
            await session.rollback()
            logger.error(f"Database session error: {exc}", exc_info=True)
            raise


async def create_tables(bind: AsyncEngine = None) -> None:
    """Create every table registered on the declarative base"""
    # Registers all mappers on Base.metadata
    import models  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def drop_tables(bind: AsyncEngine = None) -> None:
    """Drop every table registered on the declarative base"""
    import models  # noqa: F401

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("Database tables dropped")


async def disconnect_db() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")
