from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from cexpi.config import settings

# Accept plain postgresql:// URLs from hosting providers
_db_url = settings.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

# The engine connects lazily, so the memory backend never opens a connection
engine = create_async_engine(
    _db_url,
    pool_pre_ping=True,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
)

# Repositories open one short-lived session per operation
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
