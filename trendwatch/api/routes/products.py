"""Read-only product routes for display and content generation."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.api.deps import get_database
from trendwatch.db.models import Product
from trendwatch.lifecycle.controller import is_homepage_eligible
from trendwatch.query import ranking
from trendwatch.scoring.decay import timeline_text, trend_badge

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])


class ProductSummary(BaseModel):
    id: int
    name: str
    current_score: int
    base_score: int
    peak_score: int
    status: str
    days_trending: int

    class Config:
        from_attributes = True


class ProductDetail(ProductSummary):
    brand: str | None
    canonical_url: str | None
    external_key: str | None
    price: float | None
    image_url: str | None
    on_primary_source: bool
    last_seen_on_primary_source: datetime | None
    first_detected_at: datetime | None
    last_scored_at: datetime | None
    published_at: datetime | None
    badge: dict[str, str]
    timeline: str
    homepage_eligible: bool


class ScorePoint(BaseModel):
    base_score: int
    current_score: int
    recorded_at: datetime

    class Config:
        from_attributes = True


def _detail(product: Product) -> ProductDetail:
    summary = ProductSummary.model_validate(product)
    return ProductDetail(
        **summary.model_dump(),
        brand=product.brand,
        canonical_url=product.canonical_url,
        external_key=product.external_key,
        price=float(product.price) if product.price is not None else None,
        image_url=product.image_url,
        on_primary_source=product.on_primary_source,
        last_seen_on_primary_source=product.last_seen_on_primary_source,
        first_detected_at=product.first_detected_at,
        last_scored_at=product.last_scored_at,
        published_at=product.published_at,
        badge=trend_badge(product.current_score),
        timeline=timeline_text(product.days_trending),
        homepage_eligible=is_homepage_eligible(product),
    )


@router.get("", response_model=List[ProductSummary])
async def list_products(
    status: Optional[str] = Query(None, description="FLAGGED, DRAFT or PUBLISHED"),
    min_score: Optional[int] = Query(None, ge=0, le=100),
    max_score: Optional[int] = Query(None, ge=0, le=100),
    max_days: Optional[int] = Query(None, ge=0),
    sort: str = Query("current_score"),
    descending: bool = Query(True),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_database),
):
    """List products sorted and filtered by score, status and age."""
    return await ranking.list_products(
        db,
        status=status,
        min_score=min_score,
        max_score=max_score,
        max_days=max_days,
        sort=sort,
        descending=descending,
        limit=limit,
        offset=offset,
    )


@router.get("/needing-content", response_model=List[ProductSummary])
async def products_needing_content(
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_database),
):
    """FLAGGED products waiting for generated content."""
    return await ranking.products_needing_content(db, limit=limit)


@router.get("/sections/{section}", response_model=List[ProductSummary])
async def product_section(
    section: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_database),
):
    """Ranked display sections: homepage, trending-now, about-to-explode, peak-viral."""
    sections = {
        "homepage": ranking.homepage_products,
        "trending-now": ranking.trending_now,
        "about-to-explode": ranking.about_to_explode,
        "peak-viral": ranking.peak_viral,
    }
    query = sections.get(section)
    if query is None:
        raise HTTPException(status_code=404, detail=f"Unknown section '{section}'")
    return await query(db, limit=limit)


@router.get("/by-slug/{slug}", response_model=ProductDetail)
async def get_product_by_slug(slug: str, db: AsyncSession = Depends(get_database)):
    """Resolve a content slug or a merge alias."""
    return _detail(await ranking.find_by_slug(db, slug))


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: int, db: AsyncSession = Depends(get_database)):
    """Get a product with its display badge and timeline."""
    return _detail(await ranking.get_product(db, product_id))


@router.get("/{product_id}/history", response_model=List[ScorePoint])
async def get_score_history(
    product_id: int,
    days: int = Query(7, ge=1, le=90),
    db: AsyncSession = Depends(get_database),
):
    """Score points for sparklines, oldest first."""
    return await ranking.score_history(db, product_id, days=days)
