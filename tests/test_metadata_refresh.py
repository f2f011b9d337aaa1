"""Tests for the metadata refresh job."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from trendwatch.config import settings
from trendwatch.db.models import Product, ProductMetadata, ProductStatus
from trendwatch.ingest.rate_limiter import RateLimiter
from trendwatch.worker.metadata_refresh import MetadataRefreshJob, price_changed


def _mock_metadata(monkeypatch, entries):
    monkeypatch.setattr(
        settings,
        "source_adapters",
        {"primary_sales_source": {"enabled": True, "mock_metadata": entries}},
    )


def _job(session_factory, batch_size=None):
    return MetadataRefreshJob(
        session_factory=session_factory,
        limiter=RateLimiter(min_interval=0),
        batch_size=batch_size,
    )


def _published(key, **fields):
    fields.setdefault("name", f"Product {key}")
    return Product(
        status=ProductStatus.PUBLISHED,
        external_key=f"amazon:{key}",
        canonical_url=f"https://www.amazon.com/dp/{key}",
        **fields,
    )


@pytest.mark.asyncio
async def test_refresh_stores_ratings_and_price(db_session, session_factory, monkeypatch, now):
    db_session.add(_published("B000000001", price=Decimal("20.00")))
    await db_session.commit()
    _mock_metadata(
        monkeypatch,
        {"amazon:B000000001": {"star_rating": 4.6, "review_count": 1200, "price": 24.99}},
    )

    summary = await _job(session_factory).run(now=now)

    assert summary.updated == 1
    async with session_factory() as db:
        product = (await db.execute(select(Product))).scalar_one()
        metadata = (await db.execute(select(ProductMetadata))).scalar_one()
    assert metadata.star_rating == 4.6
    assert metadata.review_count == 1200
    assert metadata.last_checked_at == now
    assert float(product.price) == pytest.approx(24.99)


@pytest.mark.asyncio
async def test_small_price_move_ignored(db_session, session_factory, monkeypatch, now):
    db_session.add(_published("B000000001", price=Decimal("20.00")))
    await db_session.commit()
    _mock_metadata(monkeypatch, {"amazon:B000000001": {"price": 20.40}})

    await _job(session_factory).run(now=now)

    async with session_factory() as db:
        product = (await db.execute(select(Product))).scalar_one()
    assert float(product.price) == pytest.approx(20.00)


@pytest.mark.asyncio
async def test_only_due_published_products_selected(db_session, session_factory, monkeypatch, now):
    fresh = _published("B000000001")
    flagged = Product(
        name="Flagged",
        status=ProductStatus.FLAGGED,
        external_key="amazon:B000000002",
        canonical_url="https://www.amazon.com/dp/B000000002",
    )
    due = _published("B000000003")
    db_session.add_all([fresh, flagged, due])
    await db_session.flush()
    db_session.add(ProductMetadata(product_id=fresh.id, last_checked_at=now - timedelta(days=3)))
    db_session.add(ProductMetadata(product_id=due.id, last_checked_at=now - timedelta(days=30)))
    await db_session.commit()
    _mock_metadata(
        monkeypatch,
        {key: {"star_rating": 4.0} for key in ("amazon:B000000001", "amazon:B000000002", "amazon:B000000003")},
    )

    summary = await _job(session_factory).run(now=now)

    assert summary.updated == 1
    async with session_factory() as db:
        checked = (
            await db.execute(
                select(ProductMetadata.product_id).where(ProductMetadata.last_checked_at == now)
            )
        ).scalars().all()
    assert checked == [due.id]


@pytest.mark.asyncio
async def test_batch_takes_highest_scores_first(db_session, session_factory, monkeypatch, now):
    low = _published("B000000001", current_score=20)
    high = _published("B000000002", current_score=80)
    db_session.add_all([low, high])
    await db_session.commit()
    _mock_metadata(
        monkeypatch,
        {"amazon:B000000001": {"star_rating": 3.0}, "amazon:B000000002": {"star_rating": 5.0}},
    )

    summary = await _job(session_factory, batch_size=1).run(now=now)

    assert summary.updated == 1
    async with session_factory() as db:
        rows = (await db.execute(select(ProductMetadata))).scalars().all()
    assert [row.product_id for row in rows] == [high.id]


@pytest.mark.asyncio
async def test_missing_metadata_skipped(db_session, session_factory, monkeypatch, now):
    db_session.add(_published("B000000001"))
    await db_session.commit()
    _mock_metadata(monkeypatch, {})

    summary = await _job(session_factory).run(now=now)

    assert summary.skipped == 1
    assert summary.updated == 0


@pytest.mark.parametrize(
    "current,new_price,expected",
    [
        (None, 10.0, True),
        (Decimal("0"), 10.0, True),
        (Decimal("20.00"), 20.50, False),
        (Decimal("20.00"), 22.00, True),
        (Decimal("20.00"), 18.00, True),
    ],
)
def test_price_changed(current, new_price, expected):
    assert price_changed(current, new_price, 0.05) is expected
