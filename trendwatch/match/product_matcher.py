"""Resolve signal candidates to tracked products."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.config import settings
from trendwatch.db.models import Product, ProductStatus
from trendwatch.db.session import storage_errors
from trendwatch.errors import ValidationError
from trendwatch.match.product_id import product_id_mapper
from trendwatch.match.similarity import calculate_name_similarity

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Result of resolving a candidate."""

    product_id: int
    is_new: bool
    method: str  # external_key, fuzzy, created
    similarity: float


class ProductMatcher:
    """
    Match candidates by hard key first, fuzzy name similarity second.

    Features:
    - External key lookup from retailer URLs (exact match wins)
    - Stopword-aware name similarity; keyed candidates only match unkeyed products
    - Back-fills the external key on fuzzy matches that lack one
    - Creates a FLAGGED product when nothing matches
    """

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = threshold if threshold is not None else settings.match_similarity_threshold

    async def resolve(
        self,
        db: AsyncSession,
        candidate_name: str,
        candidate_url: Optional[str],
        source: str,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """
        Resolve a candidate to an existing product, or create one.

        Args:
            db: Database session (flushed, not committed)
            candidate_name: Product name as reported by the source
            candidate_url: Optional product URL
            source: Source adapter name
            now: Clock override for first_detected_at

        Returns:
            MatchResult

        Raises:
            ValidationError: candidate has neither a name nor a usable URL
            StorageError: persistence failed
        """
        name = (candidate_name or "").strip()
        external_key = product_id_mapper.external_key(candidate_url)
        if not name and not external_key:
            raise ValidationError(
                "Candidate has no name and no recognizable URL",
                {"source": source, "candidate_url": candidate_url},
            )

        async with storage_errors("match.resolve"):
            if external_key:
                result = await db.execute(
                    select(Product.id).where(Product.external_key == external_key)
                )
                product_id = result.scalar_one_or_none()
                if product_id is not None:
                    metrics.record_match("external_key")
                    return MatchResult(product_id, False, "external_key", 1.0)

            best = await self._best_fuzzy_match(db, name, external_key) if name else None
            if best is not None:
                product, similarity = best
                if external_key and not product.external_key:
                    product.external_key = external_key
                    if not product.canonical_url:
                        product.canonical_url = candidate_url
                    await db.flush()
                    logger.info(f"Back-filled external key {external_key} on product {product.id}")
                metrics.record_match("fuzzy")
                return MatchResult(product.id, False, "fuzzy", similarity)

            product = Product(
                name=name or external_key,
                canonical_url=candidate_url,
                external_key=external_key,
                status=ProductStatus.FLAGGED,
                base_score=0,
                current_score=0,
                peak_score=0,
                first_detected_at=now or datetime.utcnow(),
            )
            db.add(product)
            await db.flush()

        logger.info(f"Created product {product.id} '{product.name}' from {source}")
        metrics.record_match("created")
        return MatchResult(product.id, True, "created", 0.0)

    async def _best_fuzzy_match(
        self, db: AsyncSession, name: str, external_key: Optional[str] = None
    ) -> Optional[tuple[Product, float]]:
        """
        Highest similarity at or above the threshold; ties go to the most recently updated.

        A candidate with a hard key never matches a product keyed to a different item.
        """
        query = select(Product)
        if external_key:
            query = query.where(Product.external_key.is_(None))
        result = await db.execute(query)
        best: Optional[tuple[Product, float]] = None
        for product in result.scalars():
            similarity = calculate_name_similarity(name, product.name, settings.match_stopwords)
            if similarity < self.threshold:
                continue
            if best is None or similarity > best[1] or (
                similarity == best[1] and product.updated_at > best[0].updated_at
            ):
                best = (product, similarity)
        return best


# Global instance
product_matcher = ProductMatcher()
