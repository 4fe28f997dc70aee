"""
Database configuration and session management
"""
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from iotmon.core.config import settings

database_url = settings.DATABASE_URL

engine_kwargs = {
    "echo": settings.DATABASE_ECHO,
    "pool_pre_ping": True,
}
# SQLite (tests, local runs) uses a single-connection pool without sizing options
if not database_url.startswith("sqlite"):
    engine_kwargs.update(pool_size=5, max_overflow=10)

# Create async engine
engine = create_async_engine(database_url, **engine_kwargs)

# Async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)

# Base class for models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_db() -> AsyncSession:
    """Dependency for getting async database session"""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Initialize database tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
