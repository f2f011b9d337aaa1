"""Tests for retailer URL hard-key extraction."""

import pytest

from trendwatch.match.product_id import product_id_mapper


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.amazon.com/CeraVe-Moisturizing-Cream/dp/B00TTD9BRC?th=1", "amazon:B00TTD9BRC"),
        ("https://www.amazon.com/gp/product/B0C1234567/ref=x", "amazon:B0C1234567"),
        ("https://www.walmart.com/ip/Ninja-Air-Fryer/123456789", "walmart:123456789"),
        ("https://www.walmart.com/ip/987654", "walmart:987654"),
        ("https://www.target.com/p/ember-mug/-/A-54321", "target:54321"),
        ("https://www.bestbuy.com/site/some-headphones/6505727.p?skuId=6505727", "bestbuy:6505727"),
    ],
)
def test_external_key_from_url(url, expected):
    assert product_id_mapper.external_key(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        None,
        "",
        "https://www.amazon.com/s?k=mug",
        "https://example.com/dp/B00TTD9BRC",
    ],
)
def test_no_external_key(url):
    assert product_id_mapper.external_key(url) is None


def test_retailer_for_url():
    assert product_id_mapper.retailer_for_url("https://amzn.to/dp/B00TTD9BRC") == "amazon"
    assert product_id_mapper.retailer_for_url("https://shop.example.com/item") is None
