"""Product review/publication lifecycle.

FLAGGED -> DRAFT when content is ready, DRAFT -> PUBLISHED on publish, and an
explicit, audited re-flag back to FLAGGED. Scores never change status.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.config import settings
from trendwatch.db.models import Product, ProductContent, ProductStatus, StatusAudit
from trendwatch.db.session import storage_errors
from trendwatch.errors import LifecycleError, NotFoundError
from trendwatch.ingest.product_locks import product_locks

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def is_homepage_eligible(product: Product) -> bool:
    """Published, scoring at least the display threshold and not too old."""
    return (
        product.status == ProductStatus.PUBLISHED
        and (product.current_score or 0) >= settings.display_threshold
        and (product.days_trending or 0) <= settings.display_max_days
    )


class LifecycleController:
    """Status transitions driven by external events."""

    async def _load(self, db: AsyncSession, product_id: int) -> Product:
        product = await db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def _has_content(self, db: AsyncSession, product_id: int) -> bool:
        result = await db.execute(
            select(ProductContent).where(ProductContent.product_id == product_id)
        )
        content = result.scalar_one_or_none()
        return content is not None and content.is_complete

    async def _transition(
        self,
        db: AsyncSession,
        product: Product,
        to_status: str,
        actor: str,
        reason: Optional[str] = None,
    ) -> Product:
        from_status = product.status
        product.status = to_status
        if to_status == ProductStatus.PUBLISHED:
            product.published_at = datetime.utcnow()
        db.add(
            StatusAudit(
                product_id=product.id,
                from_status=from_status,
                to_status=to_status,
                actor=actor,
                reason=reason,
            )
        )
        await db.commit()
        metrics.record_status_transition(from_status, to_status)
        logger.info(f"Product {product.id}: {from_status} -> {to_status} by {actor}")
        return product

    async def mark_content_ready(
        self, db: AsyncSession, product_id: int, actor: str = SYSTEM_ACTOR
    ) -> Product:
        """
        FLAGGED -> DRAFT once generated content exists.

        Idempotent: a product already in DRAFT is returned unchanged.

        Raises:
            NotFoundError: unknown product
            LifecycleError: wrong state or content missing
        """
        async with product_locks.hold(product_id):
            async with storage_errors("lifecycle.mark_content_ready"):
                product = await self._load(db, product_id)
                if product.status == ProductStatus.DRAFT:
                    return product
                if product.status != ProductStatus.FLAGGED:
                    raise LifecycleError(product_id, product.status, ProductStatus.DRAFT)
                if not await self._has_content(db, product_id):
                    raise LifecycleError(
                        product_id, product.status, ProductStatus.DRAFT, "content is missing"
                    )
                return await self._transition(db, product, ProductStatus.DRAFT, actor)

    async def publish(self, db: AsyncSession, product_id: int, actor: str) -> Product:
        """
        DRAFT -> PUBLISHED. Content must still be present.

        Idempotent: a product already PUBLISHED is returned unchanged.
        """
        async with product_locks.hold(product_id):
            async with storage_errors("lifecycle.publish"):
                product = await self._load(db, product_id)
                if product.status == ProductStatus.PUBLISHED:
                    return product
                if product.status != ProductStatus.DRAFT:
                    raise LifecycleError(
                        product_id, product.status, ProductStatus.PUBLISHED, "must be DRAFT first"
                    )
                if not await self._has_content(db, product_id):
                    raise LifecycleError(
                        product_id, product.status, ProductStatus.PUBLISHED, "content is missing"
                    )
                return await self._transition(db, product, ProductStatus.PUBLISHED, actor)

    async def reflag(
        self, db: AsyncSession, product_id: int, actor: str, reason: str
    ) -> Product:
        """
        Send a DRAFT or PUBLISHED product back to FLAGGED.

        Args:
            actor: Who requested the change
            reason: Why; required and written to the audit row
        """
        if not reason or not reason.strip():
            raise LifecycleError(product_id, "?", ProductStatus.FLAGGED, "a reason is required")

        async with product_locks.hold(product_id):
            async with storage_errors("lifecycle.reflag"):
                product = await self._load(db, product_id)
                if product.status == ProductStatus.FLAGGED:
                    return product
                return await self._transition(
                    db, product, ProductStatus.FLAGGED, actor, reason.strip()
                )

    async def delete_product(self, db: AsyncSession, product_id: int, actor: str) -> None:
        """Admin removal; cascades to signals, history, content and audits."""
        async with product_locks.hold(product_id):
            async with storage_errors("lifecycle.delete_product"):
                product = await self._load(db, product_id)
                await db.delete(product)
                await db.commit()
        logger.warning(f"Product {product_id} deleted by {actor}")


# Global instance
lifecycle_controller = LifecycleController()
