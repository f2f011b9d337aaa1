"""Shared fixtures: a throwaway SQLite database per test."""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trendwatch.db.models import Base, Product, ProductStatus


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'trendwatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return datetime(2026, 10, 1, 12, 0, 0)


@pytest.fixture
def make_product(db_session):
    """Factory committing a product with sensible defaults."""

    async def factory(**fields) -> Product:
        fields.setdefault("name", "Test Product")
        fields.setdefault("status", ProductStatus.FLAGGED)
        product = Product(**fields)
        db_session.add(product)
        await db_session.commit()
        return product

    return factory
