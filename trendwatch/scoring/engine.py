"""Scoring engine: the only writer of product score fields."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.batch import BatchSummary
from trendwatch.config import settings
from trendwatch.db.models import Product, ScoreHistory, Signal
from trendwatch.db.session import storage_errors
from trendwatch.errors import NotFoundError, StorageError
from trendwatch.ingest.product_locks import product_locks
from trendwatch.scoring.decay import (
    calculate_days_trending,
    decayed_score,
    update_peak_score,
)
from trendwatch.scoring.signal_scoring import compute_base_score, is_listed

logger = logging.getLogger(__name__)


@dataclass
class ScoreResult:
    """Score state after a recompute."""

    product_id: int
    base_score: int
    current_score: int
    peak_score: int
    days_trending: int
    listed: bool


class ScoringEngine:
    """
    Computes base, current (decayed) and peak scores from stored signals.

    Recompute is a pure function of the stored signals, the product's
    listing state and the clock, so calling it twice with the same clock
    writes the same values.
    """

    def listed(self, product: Product, now: datetime) -> bool:
        return is_listed(
            product.on_primary_source,
            product.last_seen_on_primary_source,
            now,
            settings.primary_listing_stale_days,
        )

    def apply_primary_sighting(self, product: Product, seen_at: datetime, now: datetime) -> bool:
        """
        Record that the product was seen on the primary source.

        When ``reset_days_on_reentry`` is on and the product was delisted,
        the decay anchor moves to ``seen_at`` so days trending restarts.

        Returns:
            True when the product re-entered the primary source
        """
        reentered = product.last_seen_on_primary_source is not None and not self.listed(product, now)
        if reentered and settings.reset_days_on_reentry:
            product.decay_anchor_at = seen_at
            logger.info(f"Product {product.id} re-entered primary source; decay anchor reset")

        product.on_primary_source = True
        if product.last_seen_on_primary_source is None or seen_at > product.last_seen_on_primary_source:
            product.last_seen_on_primary_source = seen_at
        return reentered

    async def recompute(
        self,
        db: AsyncSession,
        product_id: int,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None,
        commit: bool = True,
    ) -> ScoreResult:
        """
        Recompute one product's scores from its full signal set.

        The caller holds the product's lock.

        Args:
            db: Database session
            product_id: Product to score
            now: Clock override
            run_id: When set, a ScoreHistory row is written for this run
            commit: Commit the session (False when part of a larger transaction)

        Raises:
            NotFoundError: product does not exist
            StorageError: persistence failed
        """
        now = now or datetime.utcnow()

        async with storage_errors("scoring.recompute"):
            product = await db.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)

            result = await db.execute(select(Signal).where(Signal.product_id == product_id))
            signals = list(result.scalars().all())

            base_score = compute_base_score(signals, settings.source_categories, settings)
            anchor = product.decay_anchor_at or product.first_detected_at or product.created_at
            days_trending = calculate_days_trending(anchor, now)
            listed = self.listed(product, now)
            current_score, _ = decayed_score(
                base_score,
                days_trending,
                listed,
                settings.decay_listed_stages,
                settings.decay_listed_floor,
                settings.decay_delisted_stages,
                settings.decay_delisted_floor,
            )

            product.base_score = base_score
            product.current_score = current_score
            product.peak_score = update_peak_score(current_score, product.peak_score)
            product.days_trending = days_trending
            product.last_scored_at = now

            if run_id:
                db.add(
                    ScoreHistory(
                        product_id=product_id,
                        run_id=run_id,
                        base_score=base_score,
                        current_score=current_score,
                        recorded_at=now,
                    )
                )

            await db.flush()
            if commit:
                await db.commit()

        metrics.record_recompute()
        logger.debug(
            f"Scored product {product_id}: base={base_score} current={current_score} "
            f"peak={product.peak_score} days={days_trending} listed={listed}"
        )
        return ScoreResult(
            product_id=product_id,
            base_score=base_score,
            current_score=current_score,
            peak_score=product.peak_score,
            days_trending=days_trending,
            listed=listed,
        )

    async def recalculate_all(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None,
    ) -> BatchSummary:
        """
        Recompute every product and write one ScoreHistory row each.

        Returns:
            BatchSummary; per-product failures are counted, not raised
        """
        now = now or datetime.utcnow()
        run_id = run_id or f"recalc_{now.strftime('%Y%m%d%H%M%S')}"
        summary = BatchSummary()

        async with storage_errors("scoring.recalculate_all"):
            result = await db.execute(select(Product.id).order_by(Product.id))
            product_ids = list(result.scalars().all())

        logger.info(f"Recalculating scores for {len(product_ids)} products (run {run_id})")

        consecutive_storage_failures = 0
        for product_id in product_ids:
            try:
                async with product_locks.hold(product_id):
                    await self.recompute(db, product_id, now=now, run_id=run_id)
                summary.updated += 1
                consecutive_storage_failures = 0
            except NotFoundError:
                # Deleted or merged away mid-run
                summary.skipped += 1
            except StorageError as e:
                await db.rollback()
                logger.error(f"Error recomputing product {product_id}: {e}")
                summary.add_error(f"product {product_id}: {e.message}")
                consecutive_storage_failures += 1
                if consecutive_storage_failures >= settings.storage_failure_abort_threshold:
                    logger.error("Storage appears unavailable; aborting recalculation")
                    summary.aborted = True
                    break

        await self.refresh_status_gauge(db)
        logger.info(
            f"Recalculation complete: {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def backfill_decay_fields(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> BatchSummary:
        """
        Populate first_detected_at for rows that lack it, then rescore them.

        The earliest signal detection time is used, else the row's created_at.
        """
        summary = BatchSummary()
        async with storage_errors("scoring.backfill"):
            result = await db.execute(
                select(Product.id).where(Product.first_detected_at.is_(None)).order_by(Product.id)
            )
            product_ids = list(result.scalars().all())

        logger.info(f"Backfilling decay fields for {len(product_ids)} products")

        for product_id in product_ids:
            try:
                async with product_locks.hold(product_id):
                    async with storage_errors("scoring.backfill"):
                        product = await db.get(Product, product_id)
                        if product is None:
                            summary.skipped += 1
                            continue
                        earliest = await db.execute(
                            select(func.min(Signal.detected_at)).where(
                                Signal.product_id == product_id
                            )
                        )
                        product.first_detected_at = earliest.scalar_one_or_none() or product.created_at
                    await self.recompute(db, product_id, now=now)
                summary.updated += 1
            except StorageError as e:
                await db.rollback()
                logger.error(f"Error backfilling product {product_id}: {e}")
                summary.add_error(f"product {product_id}: {e.message}")

        return summary

    async def reset_peak(self, db: AsyncSession, product_id: int) -> ScoreResult:
        """Admin reset: peak drops to the current score."""
        async with product_locks.hold(product_id):
            async with storage_errors("scoring.reset_peak"):
                product = await db.get(Product, product_id)
                if product is None:
                    raise NotFoundError("Product", product_id)
                previous = product.peak_score
                product.peak_score = product.current_score
                await db.commit()

        logger.info(f"Reset peak of product {product_id}: {previous} -> {product.peak_score}")
        return ScoreResult(
            product_id=product_id,
            base_score=product.base_score,
            current_score=product.current_score,
            peak_score=product.peak_score,
            days_trending=product.days_trending,
            listed=self.listed(product, datetime.utcnow()),
        )

    async def refresh_status_gauge(self, db: AsyncSession) -> None:
        try:
            result = await db.execute(
                select(Product.status, func.count(Product.id)).group_by(Product.status)
            )
            metrics.update_products_by_status({status: count for status, count in result.all()})
        except Exception as e:
            logger.warning(f"Could not refresh status gauge: {e}")


# Global instance
scoring_engine = ScoringEngine()
