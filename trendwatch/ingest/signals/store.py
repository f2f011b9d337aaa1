"""Append-only, idempotent signal log."""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trendwatch import metrics
from trendwatch.config import settings
from trendwatch.db.models import Product, Signal
from trendwatch.db.session import storage_errors
from trendwatch.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of a single ingest call."""

    inserted: bool
    signal_id: Optional[int]
    external_ref: str


def to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def extract_external_ref(metadata: Mapping, fields: Optional[list[str]] = None) -> Optional[str]:
    """First present idempotency field in the metadata, as a string."""
    for field in fields or settings.idempotency_fields:
        value = metadata.get(field)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def validate_signal(
    source: str,
    signal_type: str,
    value: Optional[float],
    metadata: Any,
    detected_at: Optional[datetime],
) -> str:
    """
    Validate a signal before anything is written.

    Returns:
        The external reference used for idempotency

    Raises:
        ValidationError: on any malformed field
    """
    if not source or not str(source).strip():
        raise ValidationError("Signal source is required")
    if not signal_type or not str(signal_type).strip():
        raise ValidationError("Signal type is required", {"source": source})
    if value is not None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("Signal value must be a number", {"source": source, "value": value})
        if not math.isfinite(value) or value < 0:
            raise ValidationError(
                "Signal value must be finite and non-negative",
                {"source": source, "value": value},
            )
    if not isinstance(metadata, Mapping):
        raise ValidationError("Signal metadata must be a mapping", {"source": source})
    if not isinstance(detected_at, datetime):
        raise ValidationError("Signal detected_at is required", {"source": source})

    external_ref = extract_external_ref(metadata)
    if external_ref is None:
        raise ValidationError(
            "Signal metadata carries no idempotency reference",
            {"source": source, "fields": settings.idempotency_fields},
        )
    return external_ref


class SignalStore:
    """Stores signals keyed by (product_id, source, external_ref)."""

    async def ingest(
        self,
        db: AsyncSession,
        product_id: int,
        source: str,
        signal_type: str,
        value: Optional[float],
        metadata: Mapping,
        detected_at: datetime,
    ) -> IngestResult:
        """
        Store a signal unless its idempotency key already exists.

        The insert runs inside a savepoint so a unique-constraint race with a
        concurrent writer rolls back only this row and reports a duplicate.

        Raises:
            ValidationError: malformed signal, nothing stored
            NotFoundError: product does not exist
            StorageError: persistence failed
        """
        try:
            external_ref = validate_signal(source, signal_type, value, metadata, detected_at)
        except ValidationError:
            metrics.record_signal_rejected(source)
            raise

        async with storage_errors("signal.ingest"):
            if await db.get(Product, product_id) is None:
                raise NotFoundError("Product", product_id)

            existing = await db.execute(
                select(Signal.id).where(
                    Signal.product_id == product_id,
                    Signal.source == source,
                    Signal.external_ref == external_ref,
                )
            )
            existing_id = existing.scalar_one_or_none()
            if existing_id is not None:
                metrics.record_signal_ingested(source, inserted=False)
                return IngestResult(False, existing_id, external_ref)

            signal = Signal(
                product_id=product_id,
                source=source,
                signal_type=signal_type,
                value=float(value) if value is not None else None,
                metadata_json=dict(metadata),
                external_ref=external_ref,
                detected_at=to_naive_utc(detected_at),
            )
            try:
                async with db.begin_nested():
                    db.add(signal)
            except IntegrityError:
                logger.debug(
                    f"Concurrent insert of {source}/{external_ref} for product {product_id}"
                )
                metrics.record_signal_ingested(source, inserted=False)
                return IngestResult(False, None, external_ref)

        metrics.record_signal_ingested(source, inserted=True)
        return IngestResult(True, signal.id, external_ref)


# Global instance
signal_store = SignalStore()
