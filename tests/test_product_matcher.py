"""Tests for candidate-to-product matching."""

from datetime import datetime

import pytest
from sqlalchemy import func, select

from trendwatch.db.models import Product, ProductStatus
from trendwatch.errors import ValidationError
from trendwatch.match.product_matcher import ProductMatcher, product_matcher


@pytest.mark.asyncio
async def test_unmatched_candidate_creates_flagged_product(db_session, now):
    result = await product_matcher.resolve(
        db_session, "Ninja Creami Ice Cream Maker", None, "discussion_source", now=now
    )
    await db_session.commit()

    assert result.is_new is True
    assert result.method == "created"
    product = await db_session.get(Product, result.product_id)
    assert product.status == ProductStatus.FLAGGED
    assert product.first_detected_at == now
    assert product.current_score == 0


@pytest.mark.asyncio
async def test_external_key_wins_over_name(db_session, make_product):
    product = await make_product(name="CeraVe Moisturizing Cream", external_key="amazon:B00TTD9BRC")

    result = await product_matcher.resolve(
        db_session,
        "Completely Different Listing Title",
        "https://www.amazon.com/some-title/dp/B00TTD9BRC",
        "primary_sales_source",
    )

    assert result.product_id == product.id
    assert result.method == "external_key"
    assert result.is_new is False


@pytest.mark.asyncio
async def test_fuzzy_match_backfills_external_key(db_session, make_product):
    product = await make_product(name="CeraVe Moisturizing Cream")
    url = "https://www.amazon.com/dp/B00TTD9BRC"

    result = await product_matcher.resolve(
        db_session, "CeraVe Moisturizing Cream 16oz", url, "primary_sales_source"
    )
    await db_session.commit()

    assert result.product_id == product.id
    assert result.method == "fuzzy"
    assert result.similarity == 0.8
    await db_session.refresh(product)
    assert product.external_key == "amazon:B00TTD9BRC"
    assert product.canonical_url == url


@pytest.mark.asyncio
async def test_below_threshold_creates_new_product(db_session, make_product):
    await make_product(name="Stanley Quencher Tumbler")

    result = await product_matcher.resolve(db_session, "Ninja Air Fryer", None, "discussion_source")
    await db_session.commit()

    assert result.is_new is True
    count = await db_session.execute(select(func.count(Product.id)))
    assert count.scalar_one() == 2


@pytest.mark.asyncio
async def test_tie_goes_to_most_recently_updated(db_session, make_product):
    await make_product(name="Ember Mug Black", updated_at=datetime(2026, 1, 1))
    newer = await make_product(name="Ember Mug White", updated_at=datetime(2026, 2, 1))

    result = await product_matcher.resolve(db_session, "Ember Mug", None, "discussion_source")

    assert result.product_id == newer.id


@pytest.mark.asyncio
async def test_threshold_is_configurable(db_session, make_product):
    await make_product(name="CeraVe Moisturizing Cream")
    strict = ProductMatcher(threshold=0.9)

    result = await strict.resolve(
        db_session, "CeraVe Moisturizing Cream 16oz", None, "discussion_source"
    )

    assert result.is_new is True


@pytest.mark.asyncio
async def test_candidate_without_name_or_key_rejected(db_session):
    with pytest.raises(ValidationError):
        await product_matcher.resolve(db_session, "  ", "https://example.com/x", "discussion_source")


@pytest.mark.asyncio
async def test_url_only_candidate_named_by_key(db_session):
    result = await product_matcher.resolve(
        db_session, "", "https://www.target.com/p/-/A-54321", "primary_sales_source"
    )
    await db_session.commit()

    product = await db_session.get(Product, result.product_id)
    assert product.name == "target:54321"
    assert product.external_key == "target:54321"


@pytest.mark.asyncio
async def test_distinct_hard_keys_never_fuzzy_match(db_session, make_product):
    existing = await make_product(
        name="CeraVe Moisturizing Cream 16 oz", external_key="amazon:B00TTD9BRC"
    )

    result = await product_matcher.resolve(
        db_session,
        "CeraVe Moisturizing Cream 19 oz",
        "https://www.amazon.com/dp/B0CZZZZZZZ",
        "primary_sales_source",
    )
    await db_session.commit()

    assert result.is_new is True
    assert result.product_id != existing.id
    product = await db_session.get(Product, result.product_id)
    assert product.external_key == "amazon:B0CZZZZZZZ"


@pytest.mark.asyncio
async def test_unkeyed_candidate_still_matches_keyed_product(db_session, make_product):
    existing = await make_product(name="CeraVe Moisturizing Cream", external_key="amazon:B00TTD9BRC")

    result = await product_matcher.resolve(
        db_session, "CeraVe Moisturizing Cream", None, "discussion_source"
    )

    assert result.product_id == existing.id
    assert result.method == "fuzzy"
