"""Age-based decay for trend scores.

Products lose relevance over time so the homepage stays fresh. The decay
curve is a stage table of ``(last_day, multiplier)`` pairs with a floor for
ages past the last stage. Two tables are used: a gentle one while the
product is still listed on the primary source and a sharper one once it has
dropped off.

Everything here is a pure function of its arguments; no settings or
database access.
"""

import math
from datetime import datetime
from typing import Optional

SECONDS_PER_DAY = 24 * 60 * 60


def stage_multiplier(stages: list[tuple[int, float]], floor: float, day: int) -> float:
    """Return the multiplier of the first stage covering ``day``, else the floor."""
    for last_day, multiplier in stages:
        if day <= last_day:
            return multiplier
    return floor


def calculate_days_trending(anchor: Optional[datetime], now: datetime) -> int:
    """Whole days elapsed since ``anchor`` (0 when unknown or in the future)."""
    if anchor is None:
        return 0
    elapsed = (now - anchor).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """Clamp to the 0-100 score range, mapping NaN to 0."""
    if value is None or math.isnan(value):
        return 0
    return int(max(0, min(100, round_half_up(value))))


def decayed_score(
    base_score: int,
    days_trending: int,
    listed: bool,
    listed_stages: list[tuple[int, float]],
    listed_floor: float,
    delisted_stages: list[tuple[int, float]],
    delisted_floor: float,
) -> tuple[int, float]:
    """
    Apply age decay to a base score.

    Returns:
        Tuple of (current_score, multiplier)
    """
    if listed:
        multiplier = stage_multiplier(listed_stages, listed_floor, days_trending)
    else:
        multiplier = stage_multiplier(delisted_stages, delisted_floor, days_trending)
    multiplier = max(0.0, min(1.0, multiplier))
    return clamp_score(max(0, base_score) * multiplier), multiplier


def update_peak_score(current_score: int, existing_peak: Optional[int]) -> int:
    """Peak only ever moves up."""
    if not existing_peak:
        return current_score
    return max(current_score, existing_peak)


def timeline_text(days_trending: int) -> str:
    """Short display label for how long a product has been trending."""
    if days_trending == 0:
        return "New today"
    if days_trending == 1:
        return "Just detected"
    if days_trending <= 7:
        return f"Trending for {days_trending} days"
    if days_trending <= 14:
        return f"Hot for {days_trending} days"
    return f"Peaked {days_trending} days ago"


def trend_badge(current_score: Optional[int]) -> dict[str, str]:
    """Badge label and color for a current score."""
    score = current_score or 0
    if score >= 80:
        return {"label": "Peak Viral", "color": "red"}
    if score >= 60:
        return {"label": "Hot", "color": "orange"}
    if score >= 40:
        return {"label": "Rising", "color": "yellow"}
    return {"label": "Watching", "color": "gray"}
