"""Tests for the scoring engine against a real session."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from trendwatch.config import settings
from trendwatch.db.models import Product, ScoreHistory, Signal
from trendwatch.errors import NotFoundError
from trendwatch.scoring.engine import scoring_engine


async def _add_signals(db, product_id, readings, detected_at):
    for index, (source, value) in enumerate(readings):
        db.add(
            Signal(
                product_id=product_id,
                source=source,
                signal_type="mention" if source == "discussion_source" else "sales_rank_jump",
                value=value,
                metadata_json={"external_id": f"{source}-{index}"},
                external_ref=f"{source}-{index}",
                detected_at=detected_at,
            )
        )
    await db.commit()


# Primary 1200 -> 60 points, two strong mentions -> 30 points
BASE_90 = [("primary_sales_source", 1200), ("discussion_source", 120), ("discussion_source", 90)]


@pytest.mark.asyncio
async def test_recompute_new_listed_product(db_session, make_product, now):
    product = await make_product(
        name="CeraVe Moisturizing Cream",
        first_detected_at=now,
        on_primary_source=True,
        last_seen_on_primary_source=now,
    )
    await _add_signals(
        db_session,
        product.id,
        [
            ("primary_sales_source", 200),
            ("discussion_source", 120),
            ("discussion_source", 80),
            ("discussion_source", 60),
        ],
        now,
    )

    result = await scoring_engine.recompute(db_session, product.id, now=now)

    assert result.base_score == 40
    assert result.current_score == 40
    assert result.peak_score == 40
    assert result.days_trending == 0
    assert result.listed is True


@pytest.mark.asyncio
async def test_delisted_product_decays_faster(db_session, make_product, now):
    detected = now - timedelta(days=25)
    delisted = await make_product(name="Delisted Product", first_detected_at=detected)
    listed = await make_product(
        name="Listed Product",
        first_detected_at=detected,
        on_primary_source=True,
        last_seen_on_primary_source=now - timedelta(days=1),
    )
    await _add_signals(db_session, delisted.id, BASE_90, detected)
    await _add_signals(db_session, listed.id, BASE_90, detected)

    delisted_result = await scoring_engine.recompute(db_session, delisted.id, now=now)
    listed_result = await scoring_engine.recompute(db_session, listed.id, now=now)

    assert delisted_result.base_score == 90
    assert delisted_result.days_trending == 25
    assert delisted_result.current_score == 14
    assert listed_result.current_score == 45


@pytest.mark.asyncio
async def test_stale_listing_counts_as_delisted(db_session, make_product, now):
    product = await make_product(
        name="Stale Listing",
        first_detected_at=now - timedelta(days=25),
        on_primary_source=True,
        last_seen_on_primary_source=now - timedelta(days=5),
    )
    await _add_signals(db_session, product.id, BASE_90, now - timedelta(days=25))

    result = await scoring_engine.recompute(db_session, product.id, now=now)

    assert result.listed is False
    assert result.current_score == 14


@pytest.mark.asyncio
async def test_peak_never_decreases(db_session, make_product, now):
    detected = now - timedelta(days=25)
    product = await make_product(name="Peaked Product", first_detected_at=detected)
    await _add_signals(db_session, product.id, BASE_90, detected)

    early = await scoring_engine.recompute(db_session, product.id, now=detected)
    late = await scoring_engine.recompute(db_session, product.id, now=now)

    assert early.current_score == 90
    assert late.current_score == 14
    assert late.peak_score == 90


@pytest.mark.asyncio
async def test_recompute_is_idempotent(db_session, make_product, now):
    product = await make_product(name="Stable Product", first_detected_at=now - timedelta(days=4))
    await _add_signals(db_session, product.id, BASE_90, now - timedelta(days=4))

    first = await scoring_engine.recompute(db_session, product.id, now=now)
    second = await scoring_engine.recompute(db_session, product.id, now=now)

    assert first == second


@pytest.mark.asyncio
async def test_recompute_unknown_product(db_session, now):
    with pytest.raises(NotFoundError):
        await scoring_engine.recompute(db_session, 4242, now=now)


@pytest.mark.asyncio
async def test_recalculate_all_writes_history(db_session, make_product, now):
    first = await make_product(name="First Product", first_detected_at=now)
    second = await make_product(name="Second Product", first_detected_at=now)
    await _add_signals(db_session, first.id, [("primary_sales_source", 400)], now)

    summary = await scoring_engine.recalculate_all(db_session, now=now, run_id="run-1")

    assert summary.updated == 2
    assert summary.failed == 0
    rows = (await db_session.execute(select(ScoreHistory).order_by(ScoreHistory.product_id))).scalars().all()
    assert [(row.product_id, row.run_id, row.base_score) for row in rows] == [
        (first.id, "run-1", 20),
        (second.id, "run-1", 0),
    ]


@pytest.mark.asyncio
async def test_backfill_uses_earliest_signal(db_session, make_product, now):
    product = await make_product(name="Legacy Product")
    earliest = now - timedelta(days=5)
    await _add_signals(db_session, product.id, [("primary_sales_source", 400)], earliest)
    await _add_signals(db_session, product.id, [("discussion_source", 10)], now)

    summary = await scoring_engine.backfill_decay_fields(db_session, now=now)

    assert summary.updated == 1
    await db_session.refresh(product)
    assert product.first_detected_at == earliest
    assert product.days_trending == 5


@pytest.mark.asyncio
async def test_reset_peak(db_session, make_product):
    product = await make_product(name="Reset Me", current_score=14, peak_score=90)

    result = await scoring_engine.reset_peak(db_session, product.id)

    assert result.peak_score == 14
    refreshed = await db_session.get(Product, product.id)
    assert refreshed.peak_score == 14


@pytest.mark.asyncio
async def test_reentry_resets_anchor_when_enabled(make_product, now, monkeypatch):
    monkeypatch.setattr(settings, "reset_days_on_reentry", True)
    product = await make_product(
        name="Comeback Product",
        first_detected_at=now - timedelta(days=20),
        on_primary_source=False,
        last_seen_on_primary_source=now - timedelta(days=10),
    )

    reentered = scoring_engine.apply_primary_sighting(product, now, now)

    assert reentered is True
    assert product.decay_anchor_at == now
    assert product.on_primary_source is True
    assert product.last_seen_on_primary_source == now


@pytest.mark.asyncio
async def test_reentry_keeps_anchor_by_default(make_product, now):
    product = await make_product(
        name="Comeback Product",
        first_detected_at=now - timedelta(days=20),
        last_seen_on_primary_source=now - timedelta(days=10),
    )

    reentered = scoring_engine.apply_primary_sighting(product, now, now)

    assert reentered is True
    assert product.decay_anchor_at is None
