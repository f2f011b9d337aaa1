"""Scheduled refresh of slow-changing primary source metadata.

Ratings and review counts change slowly, so only published products are
refreshed, at most ``metadata_refresh_batch_size`` per run, highest score
first, skipping anything checked within ``metadata_refresh_skip_days``.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.batch import BatchSummary
from trendwatch.config import settings
from trendwatch.db.models import Product, ProductMetadata, ProductStatus
from trendwatch.db.session import AsyncSessionLocal, storage_errors
from trendwatch.errors import AdapterError, StorageError
from trendwatch.ingest.product_locks import product_locks
from trendwatch.ingest.rate_limiter import RateLimiter, rate_limiter
from trendwatch.ingest.signals.sources import MetadataAdapter, MetadataReading, SalesRankMetadataSource

logger = logging.getLogger(__name__)


class MetadataRefreshJob:
    """
    Refreshes ratings, review counts and price from the primary source.

    Runs periodically to:
    1. Pick published products with a URL not checked recently
    2. Fetch metadata through the (rate-limited) metadata adapter
    3. Store ratings; update price only on a meaningful change
    """

    def __init__(
        self,
        adapter: Optional[MetadataAdapter] = None,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        limiter: Optional[RateLimiter] = None,
        batch_size: Optional[int] = None,
    ):
        self.adapter = adapter or SalesRankMetadataSource()
        self.session_factory = session_factory
        self.limiter = limiter or rate_limiter
        self.batch_size = batch_size or settings.metadata_refresh_batch_size

    async def run(self, now: Optional[datetime] = None) -> BatchSummary:
        """
        Run one refresh pass.

        Returns:
            BatchSummary with updated/skipped/failed counts
        """
        now = now or datetime.utcnow()
        summary = BatchSummary()
        config = settings.source_adapters.get(self.adapter.source_name) or {}

        async with self.session_factory() as db:
            product_ids = await self._select_due(db, now)
            logger.info(f"Refreshing metadata for {len(product_ids)} products")

            for product_id in product_ids:
                try:
                    reading = await self._fetch(db, product_id, config)
                    if reading is None:
                        summary.skipped += 1
                        continue
                    async with product_locks.hold(product_id):
                        await self._apply(db, product_id, reading, now)
                    summary.updated += 1
                except AdapterError as e:
                    logger.warning(f"Metadata fetch failed for product {product_id}: {e}")
                    summary.add_error(f"product {product_id}: {e.message}")
                except StorageError as e:
                    await db.rollback()
                    logger.error(f"Error storing metadata for product {product_id}: {e}")
                    summary.add_error(f"product {product_id}: {e.message}")
                except Exception as e:
                    logger.error(f"Error refreshing metadata for product {product_id}: {e}")
                    summary.add_error(f"product {product_id}: {e}")

        logger.info(
            f"Metadata refresh complete: {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _select_due(self, db: AsyncSession, now: datetime) -> List[int]:
        cutoff = now - timedelta(days=settings.metadata_refresh_skip_days)
        query = (
            select(Product.id)
            .outerjoin(ProductMetadata, ProductMetadata.product_id == Product.id)
            .where(
                Product.status == ProductStatus.PUBLISHED,
                Product.canonical_url.is_not(None),
                or_(
                    ProductMetadata.last_checked_at.is_(None),
                    ProductMetadata.last_checked_at < cutoff,
                ),
            )
            .order_by(
                Product.current_score.desc(),
                ProductMetadata.last_checked_at.asc().nulls_first(),
            )
            .limit(self.batch_size)
        )
        async with storage_errors("metadata.select"):
            result = await db.execute(query)
            return list(result.scalars().all())

    async def _fetch(
        self, db: AsyncSession, product_id: int, config: dict
    ) -> Optional[MetadataReading]:
        async with storage_errors("metadata.load"):
            product = await db.get(Product, product_id)
        if product is None:
            return None
        await self.limiter.acquire(self.adapter.source_name)
        try:
            return await asyncio.wait_for(
                self.adapter.fetch_metadata(product, config),
                timeout=settings.adapter_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise AdapterError(self.adapter.source_name, "metadata fetch timed out") from e

    async def _apply(
        self, db: AsyncSession, product_id: int, reading: MetadataReading, now: datetime
    ) -> None:
        async with storage_errors("metadata.apply"):
            product = await db.get(Product, product_id)
            result = await db.execute(
                select(ProductMetadata).where(ProductMetadata.product_id == product_id)
            )
            metadata = result.scalar_one_or_none()
            if metadata is None:
                metadata = ProductMetadata(product_id=product_id)
                db.add(metadata)

            if reading.star_rating is not None:
                metadata.star_rating = reading.star_rating
            if reading.review_count is not None:
                metadata.review_count = reading.review_count
            metadata.last_checked_at = now

            if reading.price is not None and price_changed(
                product.price, reading.price, settings.metadata_price_change_ratio
            ):
                logger.info(f"Price of product {product_id}: {product.price} -> {reading.price}")
                product.price = Decimal(str(reading.price))
            if reading.image_url and not product.image_url:
                product.image_url = reading.image_url

            await db.commit()


def price_changed(current: Optional[Decimal], new_price: float, ratio: float) -> bool:
    """True when there is no price yet or it moved by more than ``ratio``."""
    if current is None or current == 0:
        return True
    return abs(float(new_price) - float(current)) / float(current) > ratio


# Global instance
metadata_refresh_job = MetadataRefreshJob()
