"""
Database configuration and session management

Services never reach for a global connection: every operation receives the
AsyncSession it should run in, either from the `get_db` dependency or from
`get_db_session()` outside a request.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from butik.core.config import settings


def build_engine(url: str, debug: bool = False) -> AsyncEngine:
    """Create an async engine with a pool sized for the environment."""
    if url.startswith("sqlite"):
        # SQLite drivers pick their own pool class
        pool_config = {}
    elif settings.ENVIRONMENT == "production":
        pool_config = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    else:
        pool_config = {
            "pool_size": 2,
            "max_overflow": 5,
            "pool_pre_ping": True,
        }
    return create_async_engine(url, echo=debug, future=True, **pool_config)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL, debug=settings.DEBUG)

AsyncSessionLocal = build_sessionmaker(engine)

Base = declarative_base()


async def init_models(bind: AsyncEngine = None) -> None:
    """Create all tables. Used for development startup and tests."""
    # Register mappers before create_all
    import butik.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting async database sessions"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """
    Context manager for database sessions outside FastAPI request context.

    Usage:
        async with get_db_session() as db:
            result = await db.execute(...)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a multi-row mutation as one unit of work.

    Commits when the block exits cleanly. Any exception rolls back every
    write issued in the block and is re-raised to the caller unchanged.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
