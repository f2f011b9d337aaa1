"""Database engine and session factory."""

from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trendwatch.config import settings
from trendwatch.errors import StorageError

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def storage_errors(operation: str):
    """Re-raise SQLAlchemy failures inside the block as StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(operation, e) from e
