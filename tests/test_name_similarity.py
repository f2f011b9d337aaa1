"""Tests for fuzzy product name similarity."""

import pytest

from trendwatch.match.similarity import calculate_name_similarity, normalize_name


def test_normalize_name_strips_stopwords_and_whitespace():
    assert normalize_name("  The   Best  Mug ") == "best mug"
    assert normalize_name(None) == ""


def test_identical_names_score_one():
    assert calculate_name_similarity("CeraVe Moisturizing Cream", "CeraVe Moisturizing Cream") == 1.0


def test_case_whitespace_and_stopwords_ignored():
    similarity = calculate_name_similarity("The CeraVe  Moisturizing Cream", "cerave moisturizing cream")
    assert similarity == 1.0


def test_containment_scores_point_eight():
    similarity = calculate_name_similarity("CeraVe Moisturizing Cream", "CeraVe Moisturizing Cream 16oz")
    assert similarity == 0.8


def test_word_overlap():
    """Two of four words pair exactly."""
    similarity = calculate_name_similarity("Stanley Quencher Tumbler 40oz", "Stanley Adventure Tumbler")
    assert similarity == pytest.approx(0.5)


def test_partial_word_match_counts_half():
    similarity = calculate_name_similarity("Wireless Earbuds", "Earbud Case")
    assert similarity == pytest.approx(0.25)


def test_unrelated_names_below_threshold():
    similarity = calculate_name_similarity("Stanley Quencher Tumbler", "Ninja Air Fryer")
    assert similarity < 0.6


@pytest.mark.parametrize(
    "name_a,name_b",
    [
        ("", "Ember Mug"),
        (None, "Ember Mug"),
        ("the", "a"),
    ],
)
def test_empty_names_score_zero(name_a, name_b):
    assert calculate_name_similarity(name_a, name_b) == 0.0


def test_custom_stopwords():
    assert calculate_name_similarity("Ember Mug Deluxe", "Ember Mug", stopwords=["deluxe"]) == 1.0
