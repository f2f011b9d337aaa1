"""Tests for base score composition and age decay."""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from trendwatch.config import Settings, settings
from trendwatch.scoring.decay import (
    calculate_days_trending,
    clamp_score,
    decayed_score,
    round_half_up,
    timeline_text,
    trend_badge,
    update_peak_score,
)
from trendwatch.scoring.signal_scoring import (
    compute_base_score,
    is_listed,
    primary_contribution,
    secondary_contribution,
)

NOW = datetime(2026, 10, 1, 12, 0, 0)


def _signal(source, value, signal_type="sales_rank_jump", detected_at=NOW):
    return SimpleNamespace(source=source, signal_type=signal_type, value=value, detected_at=detected_at)


def _decay(base, days, listed):
    score, _ = decayed_score(
        base,
        days,
        listed,
        settings.decay_listed_stages,
        settings.decay_listed_floor,
        settings.decay_delisted_stages,
        settings.decay_delisted_floor,
    )
    return score


@pytest.mark.parametrize(
    "values,expected",
    [
        ([200], 10),
        ([1500], 70),
        ([0], 10),
        ([None], 10),
        ([100, 600], 30),
    ],
)
def test_primary_contribution(values, expected):
    signals = [_signal("primary_sales_source", v) for v in values]
    assert primary_contribution(signals) == expected


def test_primary_contribution_empty():
    assert primary_contribution([]) == 0


def test_watch_list_flag_scores_flat():
    signals = [
        _signal("primary_sales_source", 40),
        _signal("primary_sales_source", None, signal_type="watch_list"),
    ]
    assert primary_contribution(signals) == 70


@pytest.mark.parametrize(
    "values,expected",
    [
        ([120, 80, 60], 30),
        ([51], 15),
        ([50], 0),
        ([None, 10], 0),
        ([], 0),
    ],
)
def test_secondary_contribution(values, expected):
    signals = [_signal("discussion_source", v, signal_type="mention") for v in values]
    assert secondary_contribution(signals) == expected


def test_base_score_primary_only():
    """A 200% sales rank jump alone scores the primary floor."""
    signals = [_signal("primary_sales_source", 200)]
    assert compute_base_score(signals, settings.source_categories, settings) == 10


def test_base_score_with_discussion():
    signals = [
        _signal("primary_sales_source", 200),
        _signal("discussion_source", 120, "mention"),
        _signal("discussion_source", 80, "mention"),
        _signal("discussion_source", 60, "mention"),
    ]
    assert compute_base_score(signals, settings.source_categories, settings) == 40


def test_base_score_ignores_unknown_sources():
    signals = [_signal("unknown_source", 5000)]
    assert compute_base_score(signals, settings.source_categories, settings) == 0


def test_base_score_bounded():
    signals = [_signal("primary_sales_source", None, "watch_list")] + [
        _signal("discussion_source", 500, "mention") for _ in range(5)
    ]
    assert compute_base_score(signals, settings.source_categories, settings) == 100


def test_delisted_decays_faster():
    """Base 90 delisted at day 25 sits below day 3 and below the listed curve."""
    day_25_delisted = _decay(90, 25, listed=False)
    day_3_delisted = _decay(90, 3, listed=False)
    day_25_listed = _decay(90, 25, listed=True)

    assert day_25_delisted == 14
    assert day_3_delisted == 77
    assert day_25_listed == 45
    assert day_25_delisted < day_3_delisted
    assert day_25_delisted <= day_25_listed


@pytest.mark.parametrize("base", [0, 1, 37, 90, 100])
@pytest.mark.parametrize("listed", [True, False])
def test_decay_monotonic_and_bounded(base, listed):
    previous = None
    for day in range(0, 61):
        score = _decay(base, day, listed)
        assert 0 <= score <= base
        if previous is not None:
            assert score <= previous
        previous = score


def test_day_zero_keeps_base_score():
    assert _decay(40, 0, listed=True) == 40
    assert _decay(40, 0, listed=False) == 40


def test_round_half_up_and_clamp():
    assert round_half_up(76.5) == 77
    assert round_half_up(13.5) == 14
    assert clamp_score(150) == 100
    assert clamp_score(-5) == 0
    assert clamp_score(float("nan")) == 0


def test_days_trending():
    assert calculate_days_trending(NOW - timedelta(days=2, hours=23), NOW) == 2
    assert calculate_days_trending(NOW + timedelta(days=1), NOW) == 0
    assert calculate_days_trending(None, NOW) == 0


def test_peak_only_moves_up():
    assert update_peak_score(60, 40) == 60
    assert update_peak_score(60, 70) == 70
    assert update_peak_score(5, None) == 5


def test_is_listed_requires_recent_sighting():
    assert is_listed(True, NOW - timedelta(days=2), NOW, 3) is True
    assert is_listed(True, NOW - timedelta(days=4), NOW, 3) is False
    assert is_listed(False, NOW, NOW, 3) is False
    assert is_listed(True, None, NOW, 3) is False


def test_display_helpers():
    assert timeline_text(0) == "New today"
    assert timeline_text(5) == "Trending for 5 days"
    assert timeline_text(20) == "Peaked 20 days ago"
    assert trend_badge(85)["label"] == "Peak Viral"
    assert trend_badge(None)["label"] == "Watching"


def test_settings_reject_bad_decay_table():
    with pytest.raises(ValueError):
        Settings(decay_listed_stages=[(3, 0.9)])
    with pytest.raises(ValueError):
        Settings(decay_listed_stages=[(3, 1.0), (7, 1.1)])


def test_settings_reject_delisted_above_listed():
    with pytest.raises(ValueError):
        Settings(decay_delisted_stages=[(1, 1.0), (40, 1.0)], decay_delisted_floor=0.0)
