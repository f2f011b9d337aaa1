"""Read-side queries for display and content generation."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.config import settings
from trendwatch.db.models import Product, ProductAlias, ProductContent, ProductStatus, ScoreHistory
from trendwatch.db.session import storage_errors
from trendwatch.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "current_score": Product.current_score,
    "base_score": Product.base_score,
    "peak_score": Product.peak_score,
    "days_trending": Product.days_trending,
    "first_detected_at": Product.first_detected_at,
}


async def get_product(db: AsyncSession, product_id: int) -> Product:
    async with storage_errors("query.get_product"):
        product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


async def find_by_slug(db: AsyncSession, slug: str) -> Product:
    """Resolve a content slug, falling back to aliases left by merges."""
    async with storage_errors("query.find_by_slug"):
        result = await db.execute(
            select(Product).join(ProductContent).where(ProductContent.slug == slug)
        )
        product = result.scalar_one_or_none()
        if product is None:
            result = await db.execute(
                select(Product).join(ProductAlias).where(ProductAlias.slug == slug)
            )
            product = result.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product", slug)
    return product


async def list_products(
    db: AsyncSession,
    status: Optional[str] = None,
    min_score: Optional[int] = None,
    max_score: Optional[int] = None,
    max_days: Optional[int] = None,
    sort: str = "current_score",
    descending: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> List[Product]:
    """
    List products filtered by status, score range and age.

    Args:
        db: Database session
        status: FLAGGED, DRAFT or PUBLISHED
        min_score: Minimum current score (inclusive)
        max_score: Maximum current score (inclusive)
        max_days: Maximum days trending (inclusive)
        sort: One of SORT_FIELDS
        descending: Sort direction
        limit: Page size
        offset: Page offset

    Raises:
        ValidationError: unknown status or sort field
    """
    if status is not None and status not in ProductStatus.ALL:
        raise ValidationError(f"Unknown status {status}", {"status": status})
    if sort not in SORT_FIELDS:
        raise ValidationError(f"Unknown sort field {sort}", {"sort": sort})

    column = SORT_FIELDS[sort]
    query = select(Product)
    if status is not None:
        query = query.where(Product.status == status)
    if min_score is not None:
        query = query.where(Product.current_score >= min_score)
    if max_score is not None:
        query = query.where(Product.current_score <= max_score)
    if max_days is not None:
        query = query.where(Product.days_trending <= max_days)
    query = query.order_by(column.desc() if descending else column.asc(), Product.id)
    query = query.offset(offset).limit(limit)

    async with storage_errors("query.list_products"):
        result = await db.execute(query)
        return list(result.scalars().all())


async def products_needing_content(db: AsyncSession, limit: Optional[int] = None) -> List[Product]:
    """FLAGGED products, best first, for the content generation service."""
    query = (
        select(Product)
        .where(Product.status == ProductStatus.FLAGGED)
        .order_by(Product.current_score.desc(), Product.id)
    )
    if limit:
        query = query.limit(limit)
    async with storage_errors("query.products_needing_content"):
        result = await db.execute(query)
        return list(result.scalars().all())


async def score_history(
    db: AsyncSession,
    product_id: int,
    days: int = 7,
    now: Optional[datetime] = None,
) -> List[ScoreHistory]:
    """Latest history point of each day within ``days``, oldest first (sparklines)."""
    await get_product(db, product_id)
    since = (now or datetime.utcnow()) - timedelta(days=days)
    query = (
        select(ScoreHistory)
        .where(ScoreHistory.product_id == product_id, ScoreHistory.recorded_at >= since)
        .order_by(ScoreHistory.recorded_at, ScoreHistory.id)
    )
    async with storage_errors("query.score_history"):
        result = await db.execute(query)
        by_day = {point.recorded_at.date(): point for point in result.scalars().all()}
    return list(by_day.values())


async def homepage_products(db: AsyncSession, limit: int = 50) -> List[Product]:
    """Products eligible for the homepage."""
    return await list_products(
        db,
        status=ProductStatus.PUBLISHED,
        min_score=settings.display_threshold,
        max_days=settings.display_max_days,
        limit=limit,
    )


async def trending_now(db: AsyncSession, limit: int = 20) -> List[Product]:
    return await list_products(
        db,
        status=ProductStatus.PUBLISHED,
        min_score=settings.trending_now_min_score,
        max_days=settings.section_max_days,
        limit=limit,
    )


async def about_to_explode(db: AsyncSession, limit: int = 20) -> List[Product]:
    """Published, young, and just under the trending-now bar."""
    return await list_products(
        db,
        status=ProductStatus.PUBLISHED,
        min_score=settings.about_to_explode_min_score,
        max_score=settings.trending_now_min_score - 1,
        max_days=settings.section_max_days,
        limit=limit,
    )


async def peak_viral(db: AsyncSession, limit: int = 20) -> List[Product]:
    return await list_products(
        db,
        status=ProductStatus.PUBLISHED,
        min_score=settings.peak_viral_min_score,
        max_days=settings.display_max_days,
        limit=limit,
    )
