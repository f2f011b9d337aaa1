"""Consolidate a duplicate product into its canonical twin."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.db.models import (
    Product,
    ProductAlias,
    ProductContent,
    ProductMetadata,
    ProductReview,
    Signal,
)
from trendwatch.errors import MergeError, NotFoundError, ValidationError
from trendwatch.ingest.product_locks import product_locks
from trendwatch.scoring.engine import ScoreResult, scoring_engine

logger = logging.getLogger(__name__)

# Target keeps its own value; the duplicate's fills the gap
FILL_FIELDS = ("canonical_url", "brand", "price", "image_url")


@dataclass
class MergeResult:
    """What a merge moved and dropped."""

    target_id: int
    duplicate_id: int
    merged_signal_count: int
    dropped_signal_count: int
    transferred_review_count: int
    alias_slug: Optional[str]
    score: Optional[ScoreResult] = None


class MergeOperator:
    """
    Atomic duplicate merge.

    Steps, all in one transaction:
    1. Move signals, dropping the duplicate's copy on (source, external_ref) collisions
    2. Move reviews with the same dedupe rule
    3. Move content, or keep the duplicate's slug as an alias on the target
    4. Fill missing identity fields and combine detection/listing state
    5. Delete the duplicate and rescore the target from the merged signals
    """

    async def merge(self, db: AsyncSession, duplicate_id: int, target_id: int) -> MergeResult:
        """
        Merge ``duplicate_id`` into ``target_id``.

        Raises:
            ValidationError: ids are equal
            NotFoundError: either product is missing
            MergeError: anything failed after changes began; nothing was kept
        """
        if duplicate_id == target_id:
            raise ValidationError(
                "Cannot merge a product into itself", {"product_id": duplicate_id}
            )

        async with product_locks.hold(duplicate_id, target_id):
            duplicate = await db.get(Product, duplicate_id)
            if duplicate is None:
                raise NotFoundError("Product", duplicate_id)
            target = await db.get(Product, target_id)
            if target is None:
                raise NotFoundError("Product", target_id)

            try:
                result = await self._merge(db, duplicate, target)
                await db.commit()
            except Exception as e:
                await db.rollback()
                metrics.record_merge(success=False)
                logger.error(f"Merge of {duplicate_id} into {target_id} failed: {e}")
                raise MergeError(duplicate_id, target_id, e) from e

        metrics.record_merge(success=True)
        logger.info(
            f"Merged product {duplicate_id} into {target_id}: "
            f"{result.merged_signal_count} signals moved, "
            f"{result.dropped_signal_count} dropped, "
            f"{result.transferred_review_count} reviews moved"
        )
        return result

    async def _merge(self, db: AsyncSession, duplicate: Product, target: Product) -> MergeResult:
        merged, dropped = await self._transfer_signals(db, duplicate.id, target.id)
        reviews = await self._transfer_reviews(db, duplicate.id, target.id)
        alias_slug = await self._transfer_content(db, duplicate.id, target.id)
        await self._transfer_metadata(db, duplicate.id, target.id)
        await db.flush()

        for field in FILL_FIELDS:
            if getattr(target, field) is None and getattr(duplicate, field) is not None:
                setattr(target, field, getattr(duplicate, field))

        if target.external_key is None and duplicate.external_key is not None:
            external_key = duplicate.external_key
            # Release the unique key before handing it over
            duplicate.external_key = None
            await db.flush()
            target.external_key = external_key

        if duplicate.first_detected_at and (
            target.first_detected_at is None or duplicate.first_detected_at < target.first_detected_at
        ):
            target.first_detected_at = duplicate.first_detected_at

        target.on_primary_source = target.on_primary_source or duplicate.on_primary_source
        seen = [
            t for t in (target.last_seen_on_primary_source, duplicate.last_seen_on_primary_source) if t
        ]
        target.last_seen_on_primary_source = max(seen) if seen else None

        await db.flush()
        # Collections loaded before the transfer may still list moved rows
        db.expire(duplicate, ["signals", "reviews", "aliases", "content", "product_metadata"])
        await db.delete(duplicate)
        await db.flush()

        score = await scoring_engine.recompute(db, target.id, commit=False)

        return MergeResult(
            target_id=target.id,
            duplicate_id=duplicate.id,
            merged_signal_count=merged,
            dropped_signal_count=dropped,
            transferred_review_count=reviews,
            alias_slug=alias_slug,
            score=score,
        )

    async def _transfer_signals(
        self, db: AsyncSession, duplicate_id: int, target_id: int
    ) -> tuple[int, int]:
        existing = await db.execute(
            select(Signal.source, Signal.external_ref).where(Signal.product_id == target_id)
        )
        keys = {(source, ref) for source, ref in existing.all()}

        result = await db.execute(select(Signal).where(Signal.product_id == duplicate_id))
        merged = dropped = 0
        for signal in result.scalars().all():
            key = (signal.source, signal.external_ref)
            if key in keys:
                await db.delete(signal)
                dropped += 1
            else:
                signal.product_id = target_id
                keys.add(key)
                merged += 1
        return merged, dropped

    async def _transfer_reviews(self, db: AsyncSession, duplicate_id: int, target_id: int) -> int:
        existing = await db.execute(
            select(ProductReview.source, ProductReview.external_ref).where(
                ProductReview.product_id == target_id
            )
        )
        keys = {(source, ref) for source, ref in existing.all()}

        result = await db.execute(
            select(ProductReview).where(ProductReview.product_id == duplicate_id)
        )
        transferred = 0
        for review in result.scalars().all():
            key = (review.source, review.external_ref)
            if key in keys:
                await db.delete(review)
                continue
            review.product_id = target_id
            keys.add(key)
            transferred += 1
        return transferred

    async def _transfer_content(
        self, db: AsyncSession, duplicate_id: int, target_id: int
    ) -> Optional[str]:
        """Move content to the target, or keep the duplicate's slug as an alias."""
        aliases = await db.execute(
            select(ProductAlias).where(ProductAlias.product_id == duplicate_id)
        )
        for alias in aliases.scalars().all():
            alias.product_id = target_id

        duplicate_content = (
            await db.execute(
                select(ProductContent).where(ProductContent.product_id == duplicate_id)
            )
        ).scalar_one_or_none()
        if duplicate_content is None:
            return None

        target_content = (
            await db.execute(
                select(ProductContent).where(ProductContent.product_id == target_id)
            )
        ).scalar_one_or_none()
        if target_content is None:
            duplicate_content.product_id = target_id
            return None

        slug = duplicate_content.slug
        await db.delete(duplicate_content)
        await db.flush()
        db.add(ProductAlias(product_id=target_id, slug=slug))
        return slug

    async def _transfer_metadata(self, db: AsyncSession, duplicate_id: int, target_id: int) -> None:
        rows = await db.execute(
            select(ProductMetadata).where(
                ProductMetadata.product_id.in_([duplicate_id, target_id])
            )
        )
        by_product = {row.product_id: row for row in rows.scalars().all()}
        if duplicate_id in by_product and target_id not in by_product:
            by_product[duplicate_id].product_id = target_id


# Global instance
merge_operator = MergeOperator()
