"""Tests for the idempotent signal store."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from trendwatch.db.models import Signal
from trendwatch.errors import NotFoundError, ValidationError
from trendwatch.ingest.signals.store import extract_external_ref, signal_store


async def _signal_count(db, product_id):
    result = await db.execute(select(func.count(Signal.id)).where(Signal.product_id == product_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_duplicate_signal_not_stored_twice(db_session, make_product, now):
    product = await make_product(name="Ember Mug 2")

    first = await signal_store.ingest(
        db_session, product.id, "discussion_source", "mention", 120, {"post_id": "p1"}, now
    )
    await db_session.commit()
    second = await signal_store.ingest(
        db_session, product.id, "discussion_source", "mention", 120, {"post_id": "p1"}, now
    )
    await db_session.commit()

    assert first.inserted is True
    assert second.inserted is False
    assert second.signal_id == first.signal_id
    assert await _signal_count(db_session, product.id) == 1


@pytest.mark.asyncio
async def test_same_reference_from_other_source_is_distinct(db_session, make_product, now):
    product = await make_product(name="Ember Mug 2")

    await signal_store.ingest(
        db_session, product.id, "discussion_source", "mention", 80, {"external_id": "x1"}, now
    )
    result = await signal_store.ingest(
        db_session, product.id, "primary_sales_source", "sales_rank_jump", 300, {"external_id": "x1"}, now
    )
    await db_session.commit()

    assert result.inserted is True
    assert await _signal_count(db_session, product.id) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "value,metadata,detected",
    [
        (10, {}, True),
        (-1, {"post_id": "p1"}, True),
        (float("nan"), {"post_id": "p1"}, True),
        (float("inf"), {"post_id": "p1"}, True),
        (True, {"post_id": "p1"}, True),
        ("12", {"post_id": "p1"}, True),
        (10, ["post_id"], True),
        (10, {"post_id": "p1"}, False),
    ],
)
async def test_malformed_signal_rejected(db_session, make_product, now, value, metadata, detected):
    product = await make_product(name="Ember Mug 2")

    with pytest.raises(ValidationError):
        await signal_store.ingest(
            db_session,
            product.id,
            "discussion_source",
            "mention",
            value,
            metadata,
            now if detected else None,
        )

    assert await _signal_count(db_session, product.id) == 0


@pytest.mark.asyncio
async def test_unknown_product(db_session, now):
    with pytest.raises(NotFoundError):
        await signal_store.ingest(
            db_session, 9999, "discussion_source", "mention", 10, {"post_id": "p1"}, now
        )


@pytest.mark.asyncio
async def test_aware_timestamp_stored_as_naive_utc(db_session, make_product):
    product = await make_product(name="Ember Mug 2")
    detected = datetime(2026, 10, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    result = await signal_store.ingest(
        db_session, product.id, "discussion_source", "mention", 60, {"post_id": "p9"}, detected
    )
    await db_session.commit()

    signal = await db_session.get(Signal, result.signal_id)
    assert signal.detected_at == datetime(2026, 10, 1, 12, 0)
    assert signal.metadata_json == {"post_id": "p9"}


def test_external_ref_field_order():
    assert extract_external_ref({"url": "https://x", "external_id": "E1"}) == "E1"
    assert extract_external_ref({"post_id": 42}) == "42"
    assert extract_external_ref({"post_id": "  "}) is None
