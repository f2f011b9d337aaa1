"""Base score from a product's stored signals.

The base score is the sum of a primary contribution (0-70, one signal from
a sales-rank style source) and a secondary contribution (0-30, strong
discussion signals), clamped to 0-100.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from trendwatch.scoring.decay import clamp_score

PRIMARY = "primary"
SECONDARY = "secondary"


class ScoredSignal(Protocol):
    source: str
    signal_type: str
    value: Optional[float]
    detected_at: datetime


def split_by_category(
    signals: Iterable[ScoredSignal], categories: dict[str, str]
) -> tuple[list[ScoredSignal], list[ScoredSignal]]:
    """Split signals into (primary, secondary); unknown sources are dropped."""
    primary, secondary = [], []
    for signal in signals:
        category = categories.get(signal.source)
        if category == PRIMARY:
            primary.append(signal)
        elif category == SECONDARY:
            secondary.append(signal)
    return primary, secondary


def primary_contribution(
    signals: list[ScoredSignal],
    max_contribution: int = 70,
    min_contribution: int = 10,
    magnitude_divisor: float = 20.0,
    flag_signal_types: Iterable[str] = ("watch_list",),
    flag_contribution: int = 70,
) -> int:
    """
    Contribution of the single strongest primary signal.

    Listing flags (e.g. a watch-list entry) score a flat amount. Otherwise the
    largest magnitude wins, ties broken by the most recent detection, scored
    as ``floor(magnitude / divisor)`` between the floor and the cap.
    """
    if not signals:
        return 0

    flag_types = set(flag_signal_types)
    if any(s.signal_type in flag_types for s in signals):
        return min(max_contribution, flag_contribution)

    strongest = max(signals, key=lambda s: (s.value or 0.0, s.detected_at))
    magnitude = strongest.value or 0.0
    points = math.floor(magnitude / magnitude_divisor) if magnitude_divisor > 0 else 0
    return max(min_contribution, min(max_contribution, points))


def secondary_contribution(
    signals: list[ScoredSignal],
    min_value: float = 50.0,
    max_signals: int = 2,
    points_per_signal: int = 15,
    max_contribution: int = 30,
) -> int:
    """Points for the top secondary signals strictly above ``min_value``."""
    strong = sorted(
        (s.value for s in signals if s.value is not None and s.value > min_value),
        reverse=True,
    )[:max_signals]
    return min(max_contribution, len(strong) * points_per_signal)


def compute_base_score(
    signals: Iterable[ScoredSignal],
    categories: dict[str, str],
    settings,
) -> int:
    """Base score for a signal set using the configured weights."""
    primary, secondary = split_by_category(signals, categories)
    total = primary_contribution(
        primary,
        max_contribution=settings.primary_max_contribution,
        min_contribution=settings.primary_min_contribution,
        magnitude_divisor=settings.primary_magnitude_divisor,
        flag_signal_types=settings.primary_flag_signal_types,
        flag_contribution=settings.primary_flag_contribution,
    ) + secondary_contribution(
        secondary,
        min_value=settings.secondary_min_value,
        max_signals=settings.secondary_max_signals,
        points_per_signal=settings.secondary_points_per_signal,
        max_contribution=settings.secondary_max_contribution,
    )
    return clamp_score(total)


def is_listed(
    on_primary_source: bool,
    last_seen: Optional[datetime],
    now: datetime,
    stale_days: int,
) -> bool:
    """Listed while flagged on the primary source and seen recently."""
    if not on_primary_source or last_seen is None:
        return False
    return now - last_seen <= timedelta(days=stale_days)
