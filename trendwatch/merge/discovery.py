"""Find products that look like the same item and plan their merges."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch.batch import BatchSummary
from trendwatch.config import settings
from trendwatch.db.models import Product, ProductStatus
from trendwatch.db.session import storage_errors
from trendwatch.errors import TrendwatchError
from trendwatch.match.similarity import calculate_name_similarity
from trendwatch.merge.operator import merge_operator

logger = logging.getLogger(__name__)


@dataclass
class DuplicateGroup:
    """Products judged to be one item, and the one to keep."""

    target: Product
    duplicates: List[Product] = field(default_factory=list)

    @property
    def product_ids(self) -> List[int]:
        return [self.target.id] + [p.id for p in self.duplicates]


def _keys_compatible(a: Product, b: Product) -> bool:
    # Two different hard keys are two different retailer items
    return a.external_key is None or b.external_key is None or a.external_key == b.external_key


def pick_target(products: List[Product]) -> Product:
    """PUBLISHED first, then listed on the primary source, then the oldest."""
    return min(
        products,
        key=lambda p: (
            p.status != ProductStatus.PUBLISHED,
            not p.on_primary_source,
            p.id,
        ),
    )


async def find_duplicate_candidates(
    db: AsyncSession, threshold: Optional[float] = None
) -> List[DuplicateGroup]:
    """
    Group products whose names match at or above ``threshold``.

    Pairs are linked transitively, except that a group never holds two
    different external keys.

    Args:
        db: Database session
        threshold: Name similarity needed to link two products

    Returns:
        Groups with at least one duplicate, largest first
    """
    threshold = settings.duplicate_similarity_threshold if threshold is None else threshold
    async with storage_errors("merge.find_duplicates"):
        result = await db.execute(select(Product).order_by(Product.id))
        products = list(result.scalars().all())

    groups: List[List[Product]] = []
    for product in products:
        home = None
        for group in groups:
            if not all(_keys_compatible(product, member) for member in group):
                continue
            if any(
                calculate_name_similarity(product.name, member.name, settings.match_stopwords)
                >= threshold
                for member in group
            ):
                home = group
                break
        if home is None:
            groups.append([product])
        else:
            home.append(product)

    found = []
    for members in groups:
        if len(members) < 2:
            continue
        target = pick_target(members)
        found.append(DuplicateGroup(target, [p for p in members if p.id != target.id]))

    found.sort(key=lambda g: (-len(g.duplicates), g.target.id))
    logger.info(f"Found {len(found)} duplicate groups across {len(products)} products")
    return found


async def merge_duplicate_groups(db: AsyncSession, groups: List[DuplicateGroup]) -> BatchSummary:
    """Merge every duplicate into its group's target; one failed merge does not stop the rest."""
    summary = BatchSummary()
    plan = [(group.target.id, [p.id for p in group.duplicates]) for group in groups]
    for target_id, duplicate_ids in plan:
        for duplicate_id in duplicate_ids:
            try:
                await merge_operator.merge(db, duplicate_id, target_id)
                summary.updated += 1
            except TrendwatchError as e:
                logger.error(f"Could not merge {duplicate_id} into {target_id}: {e}")
                summary.add_error(f"merge {duplicate_id} -> {target_id}: {e.message}")
    return summary
