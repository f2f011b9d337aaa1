"""Signal ingestion: adapters -> matcher -> signal store -> scoring."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.batch import BatchSummary
from trendwatch.config import settings
from trendwatch.db.models import Product, ProductReview
from trendwatch.db.session import AsyncSessionLocal, storage_errors
from trendwatch.errors import AdapterError, StorageError, TrendwatchError
from trendwatch.ingest.product_locks import ProductLockRegistry, product_locks
from trendwatch.ingest.rate_limiter import RateLimiter, rate_limiter
from trendwatch.ingest.signals.sources import (
    DiscussionSource,
    ManualCurationSource,
    SalesRankSource,
    SignalReading,
    SourceAdapter,
)
from trendwatch.ingest.signals.store import signal_store, to_naive_utc, validate_signal
from trendwatch.logging_config import get_logger
from trendwatch.match.product_matcher import product_matcher
from trendwatch.scoring.engine import ScoreResult, scoring_engine

logger = logging.getLogger(__name__)


SOURCE_REGISTRY = {
    "primary_sales_source": SalesRankSource,
    "discussion_source": DiscussionSource,
    "manual_curation": ManualCurationSource,
}

# Sources whose feed is the authoritative listing; absence from a run means delisted
LISTING_SOURCES = {"primary_sales_source"}


@dataclass
class IngestOutcome:
    """Result of ingesting one reading."""

    product_id: int
    is_new_product: bool
    match_method: str
    inserted: bool
    signal_id: Optional[int]
    score: Optional[ScoreResult] = None


class SignalIngestor:
    """Orchestrates signal ingestion from configured source adapters."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        limiter: Optional[RateLimiter] = None,
        locks: Optional[ProductLockRegistry] = None,
        max_concurrency: Optional[int] = None,
        adapters: Optional[Dict[str, SourceAdapter]] = None,
    ):
        self.session_factory = session_factory
        self.limiter = limiter or rate_limiter
        self.locks = locks or product_locks
        self.max_concurrency = max_concurrency or settings.ingest_max_concurrency
        self._adapters: Dict[str, SourceAdapter] = dict(adapters or {})
        # New products must be committed before the next candidate is matched
        self._match_lock = asyncio.Lock()

    def _get_adapter(self, name: str) -> Optional[SourceAdapter]:
        if name not in self._adapters:
            adapter_cls = SOURCE_REGISTRY.get(name)
            if adapter_cls is None:
                return None
            self._adapters[name] = adapter_cls()
        return self._adapters[name]

    async def run(
        self,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None,
        sources: Optional[List[str]] = None,
    ) -> BatchSummary:
        """
        Fetch every enabled adapter and ingest the readings.

        Args:
            now: Clock override
            run_id: Identifier for log correlation
            sources: Restrict the run to these adapter names

        Returns:
            BatchSummary; aborted when every adapter fails or storage is down
        """
        now = now or datetime.utcnow()
        summary = BatchSummary()

        fetched = await self._fetch_all(sources, summary)
        if not fetched:
            if summary.failed:
                logger.error(f"Ingest run {run_id}: every source adapter failed, aborting")
                summary.aborted = True
            return summary

        readings = [reading for batch in fetched.values() for reading in batch]
        logger.info(f"Ingest run {run_id}: {len(readings)} readings from {len(fetched)} sources")

        seen_on_listing: set[int] = set()
        unresolved_listing: list[str] = []
        await self._ingest_readings(readings, now, summary, seen_on_listing, unresolved_listing)

        if summary.aborted:
            return summary

        listing_sources = [name for name in fetched if name in LISTING_SOURCES and fetched[name]]
        if listing_sources and unresolved_listing:
            # A failed listing reading may belong to any listed product
            logger.warning(
                f"Ingest run {run_id}: {len(unresolved_listing)} listing readings failed, "
                f"skipping delisting sweep"
            )
        elif listing_sources:
            await self._sweep_delisted(seen_on_listing, now, summary)

        logger.info(
            f"Ingest run {run_id} complete: {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _fetch_all(
        self, sources: Optional[List[str]], summary: BatchSummary
    ) -> Dict[str, List[SignalReading]]:
        """Fetch enabled adapters concurrently; failures are logged and counted."""
        names = []
        for name, config in settings.source_adapters.items():
            if sources is not None and name not in sources:
                continue
            if not config or not config.get("enabled"):
                continue
            if self._get_adapter(name) is None:
                logger.warning(f"Unknown source adapter: {name}")
                continue
            names.append(name)

        results = await asyncio.gather(*(self._fetch_one(name) for name in names))
        fetched: Dict[str, List[SignalReading]] = {}
        for name, (readings, error) in zip(names, results):
            if error is not None:
                summary.add_error(f"adapter {name}: {error}")
                continue
            fetched[name] = readings
        return fetched

    async def _fetch_one(self, name: str) -> tuple[List[SignalReading], Optional[str]]:
        adapter = self._get_adapter(name)
        config = settings.source_adapters.get(name) or {}
        await self.limiter.acquire(name)
        start = time.monotonic()
        try:
            readings = await asyncio.wait_for(
                adapter.fetch_readings(config),
                timeout=settings.adapter_timeout_seconds,
            )
            return readings, None
        except asyncio.TimeoutError:
            metrics.record_adapter_error(name, "timeout")
            logger.warning(f"Source adapter {name} timed out")
            return [], "timeout"
        except AdapterError as e:
            metrics.record_adapter_error(name, "blocked" if e.blocked else "adapter")
            logger.warning(f"Source adapter {name} failed: {e}")
            if e.blocked:
                self.limiter.set_cooldown(name, settings.source_blocked_cooldown_seconds)
            return [], e.message
        except Exception as e:
            metrics.record_adapter_error(name, type(e).__name__)
            logger.exception(f"Unexpected error from source adapter {name}")
            return [], str(e)
        finally:
            metrics.record_adapter_duration(name, time.monotonic() - start)

    async def _ingest_readings(
        self,
        readings: List[SignalReading],
        now: datetime,
        summary: BatchSummary,
        seen_on_listing: set[int],
        unresolved_listing: list[str],
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        consecutive_storage_failures = 0

        def _note_unresolved(reading: SignalReading) -> None:
            if reading.source in LISTING_SOURCES:
                unresolved_listing.append(reading.candidate_name)

        async def process(reading: SignalReading) -> None:
            nonlocal consecutive_storage_failures
            async with semaphore:
                if summary.aborted:
                    return
                candidate_log = get_logger(
                    __name__, source=reading.source, candidate=reading.candidate_name
                )
                try:
                    outcome = await self._ingest_with_retry(reading, now)
                except StorageError as e:
                    candidate_log.error(f"Storage failure for '{reading.candidate_name}': {e}")
                    _note_unresolved(reading)
                    summary.add_error(f"{reading.source}/{reading.candidate_name}: {e.message}")
                    consecutive_storage_failures += 1
                    if consecutive_storage_failures >= settings.storage_failure_abort_threshold:
                        logger.error("Storage appears unavailable; aborting ingest run")
                        summary.aborted = True
                    return
                except TrendwatchError as e:
                    candidate_log.warning(f"Rejected '{reading.candidate_name}': {e}")
                    _note_unresolved(reading)
                    summary.add_error(f"{reading.source}/{reading.candidate_name}: {e.message}")
                    consecutive_storage_failures = 0
                    return
                except Exception as e:
                    candidate_log.exception(f"Error ingesting '{reading.candidate_name}'")
                    _note_unresolved(reading)
                    summary.add_error(f"{reading.source}/{reading.candidate_name}: {e}")
                    return

                consecutive_storage_failures = 0
                if reading.source in LISTING_SOURCES:
                    seen_on_listing.add(outcome.product_id)
                if outcome.inserted:
                    summary.updated += 1
                else:
                    summary.skipped += 1

        await asyncio.gather(*(process(reading) for reading in readings))

    async def _ingest_with_retry(self, reading: SignalReading, now: datetime) -> IngestOutcome:
        attempts = max(1, settings.storage_retry_attempts)
        for attempt in range(1, attempts + 1):
            async with self.session_factory() as db:
                try:
                    return await self.ingest_reading(db, reading, now)
                except StorageError as e:
                    await db.rollback()
                    if attempt >= attempts:
                        raise
                    delay = settings.storage_retry_backoff_seconds * (2 ** (attempt - 1))
                    logger.warning(
                        f"Storage error on attempt {attempt}/{attempts} for "
                        f"'{reading.candidate_name}', retrying in {delay:.1f}s: {e}"
                    )
                    await asyncio.sleep(delay)
        raise StorageError("ingest.retry")

    async def ingest_reading(
        self,
        db: AsyncSession,
        reading: SignalReading,
        now: Optional[datetime] = None,
    ) -> IngestOutcome:
        """
        Match, store and score a single reading.

        A duplicate reading changes nothing and is not rescored.

        Raises:
            ValidationError: malformed reading, nothing stored
            StorageError: persistence failed
        """
        now = now or datetime.utcnow()
        validate_signal(
            reading.source, reading.signal_type, reading.value, reading.metadata, reading.detected_at
        )
        detected_at = to_naive_utc(reading.detected_at)

        async with self._match_lock:
            match = await product_matcher.resolve(
                db, reading.candidate_name, reading.candidate_url, reading.source, now=now
            )
            if match.is_new:
                async with storage_errors("ingest.create_product"):
                    await db.commit()

        async with self.locks.hold(match.product_id):
            result = await signal_store.ingest(
                db,
                product_id=match.product_id,
                source=reading.source,
                signal_type=reading.signal_type,
                value=reading.value,
                metadata=reading.metadata,
                detected_at=detected_at,
            )

            listing_changed = False
            if reading.source in LISTING_SOURCES:
                async with storage_errors("ingest.listing_state"):
                    product = await db.get(Product, match.product_id)
                    was_listed = scoring_engine.listed(product, now)
                    scoring_engine.apply_primary_sighting(product, detected_at, now)
                    listing_changed = not was_listed

            if result.inserted and reading.review:
                await self._store_review(db, match.product_id, reading)

            score = None
            if result.inserted or listing_changed:
                score = await scoring_engine.recompute(db, match.product_id, now=now, commit=False)

            async with storage_errors("ingest.commit"):
                await db.commit()

        return IngestOutcome(
            product_id=match.product_id,
            is_new_product=match.is_new,
            match_method=match.method,
            inserted=result.inserted,
            signal_id=result.signal_id,
            score=score,
        )

    async def _store_review(self, db: AsyncSession, product_id: int, reading: SignalReading) -> None:
        review = reading.review or {}
        quote = (review.get("quote") or "").strip()
        external_ref = str(review.get("external_ref") or reading.metadata.get("post_id") or "")
        if not quote or not external_ref:
            return
        async with storage_errors("ingest.review"):
            existing = await db.execute(
                select(ProductReview.id).where(
                    ProductReview.product_id == product_id,
                    ProductReview.source == reading.source,
                    ProductReview.external_ref == external_ref,
                )
            )
            if existing.scalar_one_or_none() is not None:
                return
            db.add(
                ProductReview(
                    product_id=product_id,
                    source=reading.source,
                    external_ref=external_ref,
                    author=review.get("author"),
                    quote=quote,
                    helpful_count=int(review.get("helpful_count") or 0),
                )
            )

    async def _sweep_delisted(
        self, seen_on_listing: set[int], now: datetime, summary: BatchSummary
    ) -> None:
        """Products missing from a successful listing run are no longer on the primary source."""
        async with self.session_factory() as db:
            async with storage_errors("ingest.sweep"):
                result = await db.execute(
                    select(Product.id).where(Product.on_primary_source.is_(True))
                )
                stale_ids = [pid for pid in result.scalars().all() if pid not in seen_on_listing]

            for product_id in stale_ids:
                try:
                    async with self.locks.hold(product_id):
                        async with storage_errors("ingest.sweep"):
                            product = await db.get(Product, product_id)
                            if product is None:
                                continue
                            product.on_primary_source = False
                        await scoring_engine.recompute(db, product_id, now=now)
                    logger.info(f"Product {product_id} dropped off the primary source")
                except StorageError as e:
                    await db.rollback()
                    logger.error(f"Error delisting product {product_id}: {e}")
                    summary.add_error(f"delist {product_id}: {e.message}")


# Global instance
signal_ingestor = SignalIngestor()
