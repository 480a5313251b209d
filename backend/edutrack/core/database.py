import asyncio
import time
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.exc import IntegrityError, OperationalError, DBAPIError
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator, AsyncIterator, Awaitable, Optional, TypeVar

from edutrack.core.config import settings
from edutrack.core.exceptions import (
    EduTrackError,
    ServiceUnavailableError,
    TransactionAbortedError,
    conflict_from_integrity_error,
)
from edutrack.core.logging_config import logger

T = TypeVar("T")

# Create base class for models (can be defined before engine)
Base = declarative_base()

# Lazy engine initialization - create on first use to avoid import-time issues
_engine: Optional[AsyncEngine] = None
_async_session_local: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url() -> str:
    """Get properly formatted database URL"""
    db_url = settings.DATABASE_URL
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")
    return db_url


def get_engine() -> AsyncEngine:
    """
    Get or create the database engine (lazy initialization).

    Connection pooling strategy:
    - SQLite: NullPool
    - PostgreSQL Development: NullPool (simpler debugging)
    - PostgreSQL Production: QueuePool sized by DB_POOL_* settings
    """
    global _engine
    if _engine is None:
        db_url = get_database_url()

        if "sqlite" in db_url:
            _engine = create_async_engine(
                db_url,
                echo=settings.DB_ECHO,
                connect_args={"check_same_thread": False},
                poolclass=NullPool,
            )
        elif settings.DEBUG or settings.ENVIRONMENT == "development":
            _engine = create_async_engine(
                db_url,
                echo=settings.DB_ECHO,
                poolclass=NullPool,
            )
        else:
            _engine = create_async_engine(
                db_url,
                echo=settings.DB_ECHO,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
                pool_pre_ping=True,  # Verify connections before use
            )
    return _engine


def get_session_local() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy initialization)"""
    global _async_session_local
    if _async_session_local is None:
        _async_session_local = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
    return _async_session_local


def AsyncSessionLocal():
    """Create a new async session"""
    return get_session_local()()


# Dependency to get DB session
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session - only commits if there are pending changes"""
    session_factory = get_session_local()
    async with session_factory() as session:
        try:
            yield session
            if session.new or session.dirty or session.deleted:
                await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run a multi-table workflow as one unit of work.

    Every write made inside the block commits together or not at all.
    Errors are re-raised as a single structured failure:

    - EduTrackError subclasses (validation, conflict, not found) propagate unchanged
    - IntegrityError becomes ConflictError naming the duplicated field
    - connectivity failures become ServiceUnavailableError
    - anything else becomes TransactionAbortedError
    """
    try:
        yield session
        await session.commit()
    except EduTrackError:
        await session.rollback()
        logger.log_workflow_event(operation, "aborted")
        raise
    except IntegrityError as e:
        await session.rollback()
        conflict = conflict_from_integrity_error(e)
        logger.log_workflow_event(operation, "aborted", reason=conflict.message)
        raise conflict from e
    except (OperationalError, DBAPIError) as e:
        await session.rollback()
        logger.log_error_with_context(e, context=operation)
        raise ServiceUnavailableError() from e
    except Exception as e:
        await session.rollback()
        logger.log_error_with_context(e, context=operation)
        raise TransactionAbortedError(operation) from e
    else:
        logger.log_workflow_event(operation, "committed")


# Database initialization
async def init_db():
    """Create all tables that do not exist yet"""
    eng = get_engine()
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connection"""
    global _engine, _async_session_local
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_local = None


async def run_bounded(awaitable: Awaitable[T], operation: str,
                      timeout: Optional[float] = None) -> T:
    """
    Await a read-only store operation with a deadline.

    Overruns and connectivity failures surface as ServiceUnavailableError,
    never as a partial result.
    """
    started = time.perf_counter()
    try:
        result = await asyncio.wait_for(awaitable, timeout or settings.OPERATION_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        logger.warning(f"{operation} timed out", extra={"event_type": "timeout", "operation": operation})
        raise ServiceUnavailableError() from e
    except (OperationalError, DBAPIError) as e:
        logger.log_error_with_context(e, context=operation)
        raise ServiceUnavailableError() from e
    logger.log_performance(operation, (time.perf_counter() - started) * 1000)
    return result


__all__ = [
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "transaction",
    "run_bounded",
    "init_db",
    "close_db",
]
