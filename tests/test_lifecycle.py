"""Tests for lifecycle transitions and homepage eligibility."""

import pytest
from sqlalchemy import func, select

from trendwatch.db.models import Product, ProductContent, ProductStatus, Signal, StatusAudit
from trendwatch.errors import LifecycleError, NotFoundError
from trendwatch.lifecycle.controller import is_homepage_eligible, lifecycle_controller


async def _with_content(db, product, slug="ember-mug-2-review"):
    db.add(ProductContent(product_id=product.id, slug=slug, body="A long review."))
    await db.commit()


async def _audits(db, product_id):
    result = await db.execute(
        select(StatusAudit).where(StatusAudit.product_id == product_id).order_by(StatusAudit.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_content_ready_requires_content(db_session, make_product):
    product = await make_product(name="Ember Mug 2")

    with pytest.raises(LifecycleError):
        await lifecycle_controller.mark_content_ready(db_session, product.id)


@pytest.mark.asyncio
async def test_content_ready_is_idempotent(db_session, make_product):
    product = await make_product(name="Ember Mug 2")
    await _with_content(db_session, product)

    first = await lifecycle_controller.mark_content_ready(db_session, product.id)
    second = await lifecycle_controller.mark_content_ready(db_session, product.id)

    assert first.status == ProductStatus.DRAFT
    assert second.status == ProductStatus.DRAFT
    audits = await _audits(db_session, product.id)
    assert [(a.from_status, a.to_status) for a in audits] == [("FLAGGED", "DRAFT")]


@pytest.mark.asyncio
async def test_publish_requires_draft(db_session, make_product):
    product = await make_product(name="Ember Mug 2")
    await _with_content(db_session, product)

    with pytest.raises(LifecycleError):
        await lifecycle_controller.publish(db_session, product.id, "editor")


@pytest.mark.asyncio
async def test_full_lifecycle_is_audited(db_session, make_product):
    product = await make_product(name="Ember Mug 2")
    await _with_content(db_session, product)

    await lifecycle_controller.mark_content_ready(db_session, product.id)
    published = await lifecycle_controller.publish(db_session, product.id, "editor")
    assert published.status == ProductStatus.PUBLISHED
    assert published.published_at is not None

    reflagged = await lifecycle_controller.reflag(db_session, product.id, "editor", "recalled")
    assert reflagged.status == ProductStatus.FLAGGED

    audits = await _audits(db_session, product.id)
    assert [(a.from_status, a.to_status, a.actor) for a in audits] == [
        ("FLAGGED", "DRAFT", "system"),
        ("DRAFT", "PUBLISHED", "editor"),
        ("PUBLISHED", "FLAGGED", "editor"),
    ]
    assert audits[-1].reason == "recalled"


@pytest.mark.asyncio
async def test_reflag_requires_reason(db_session, make_product):
    product = await make_product(name="Ember Mug 2", status=ProductStatus.PUBLISHED)

    with pytest.raises(LifecycleError):
        await lifecycle_controller.reflag(db_session, product.id, "editor", "  ")


@pytest.mark.asyncio
async def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        await lifecycle_controller.publish(db_session, 31337, "editor")


@pytest.mark.asyncio
async def test_delete_cascades(db_session, make_product, now):
    product = await make_product(name="Ember Mug 2")
    await _with_content(db_session, product)
    db_session.add(
        Signal(
            product_id=product.id,
            source="discussion_source",
            signal_type="mention",
            value=80,
            metadata_json={"post_id": "p1"},
            external_ref="p1",
            detected_at=now,
        )
    )
    await db_session.commit()

    await lifecycle_controller.delete_product(db_session, product.id, "admin")

    assert await db_session.get(Product, product.id) is None
    signals = await db_session.execute(select(func.count(Signal.id)))
    assert signals.scalar_one() == 0
    content = await db_session.execute(select(func.count(ProductContent.id)))
    assert content.scalar_one() == 0


@pytest.mark.parametrize(
    "status,score,days,expected",
    [
        (ProductStatus.PUBLISHED, 40, 30, True),
        (ProductStatus.PUBLISHED, 39, 5, False),
        (ProductStatus.PUBLISHED, 90, 31, False),
        (ProductStatus.DRAFT, 90, 1, False),
    ],
)
def test_homepage_eligibility(status, score, days, expected):
    product = Product(name="Ember Mug 2", status=status, current_score=score, days_trending=days)
    assert is_homepage_eligible(product) is expected
