from __future__ import annotations

import math
from typing import Callable, Iterable, Sequence

from gsc_insights.models import MetricRow

ROW_KEY_SEPARATOR = "||"

# Rough organic CTR (%) by rounded position.
CTR_BENCHMARKS: dict[int, float] = {
    1: 28.5,
    2: 15.7,
    3: 11.0,
    4: 8.0,
    5: 7.2,
    6: 5.1,
    7: 4.0,
    8: 3.2,
    9: 2.8,
    10: 2.5,
}
DEFAULT_EXPECTED_CTR = 2.0

REDIRECT_MAX_CLICK_RATIO = 0.10
REDIRECT_MIN_POSITION_GAP = 5
CONSOLIDATE_MAX_CLICK_RATIO = 0.30


def row_key(row: MetricRow) -> str:
    return ROW_KEY_SEPARATOR.join(row.keys)


def group_by(
    rows: Iterable[MetricRow],
    key_fn: Callable[[MetricRow], str] = row_key,
) -> dict[str, list[MetricRow]]:
    """Group rows by key, keeping keys in first-seen order."""
    groups: dict[str, list[MetricRow]] = {}
    for row in rows:
        groups.setdefault(key_fn(row), []).append(row)
    return groups


def flatten_groups(groups: dict[str, list[MetricRow]]) -> list[MetricRow]:
    return [row for rows in groups.values() for row in rows]


def index_by_key(
    rows: Iterable[MetricRow],
    key_fn: Callable[[MetricRow], str] = row_key,
) -> dict[str, MetricRow]:
    """Map each key to its first row; the API returns one row per key."""
    index: dict[str, MetricRow] = {}
    for row in rows:
        index.setdefault(key_fn(row), row)
    return index


def percentage_change(current: float, previous: float) -> float | None:
    """Percent change from ``previous`` to ``current``.

    Returns ``math.inf`` when growing from zero and ``None`` when both sides
    are zero (or the current side is not positive).
    """
    if previous == 0:
        return math.inf if current > 0 else None
    return round((current - previous) / previous * 100, 2)


def drop_percentage(prior_clicks: float, recent_clicks: float) -> float:
    if prior_clicks == 0:
        return 0
    return round((prior_clicks - recent_clicks) / prior_clicks * 100, 1)


def position_variance(positions: Sequence[float]) -> float:
    """Population variance of positions, used as a cannibalization signal."""
    if not positions:
        return 0.0
    mean = sum(positions) / len(positions)
    return round(sum((value - mean) ** 2 for value in positions) / len(positions), 2)


def expected_ctr(position: float) -> float:
    # Python rounds halves to even; benchmark buckets use half-up.
    rounded = int(math.floor(position + 0.5))
    clamped = min(max(rounded, 1), 10)
    return CTR_BENCHMARKS.get(clamped, DEFAULT_EXPECTED_CTR)


def classify_cannibalization_action(
    winner_clicks: float,
    loser_clicks: float,
    winner_position: float,
    loser_position: float,
) -> str:
    click_ratio = loser_clicks / winner_clicks if winner_clicks > 0 else 0
    position_gap = loser_position - winner_position

    if click_ratio < REDIRECT_MAX_CLICK_RATIO and position_gap > REDIRECT_MIN_POSITION_GAP:
        return "redirect"
    if click_ratio < CONSOLIDATE_MAX_CLICK_RATIO:
        return "consolidate"
    return "differentiate"


def rank_competitors(rows: Sequence[MetricRow]) -> list[MetricRow]:
    """Most clicks first, ties broken by the better (lower) position."""
    return sorted(rows, key=lambda row: (-row.clicks, row.position))


def pick_winner(rows: Sequence[MetricRow]) -> MetricRow:
    if not rows:
        raise ValueError("Cannot pick a winner from an empty row list.")
    return rank_competitors(rows)[0]


def summarize_rows(rows: Iterable[MetricRow]) -> dict[str, float]:
    rows = list(rows)
    clicks = sum(row.clicks for row in rows)
    impressions = sum(row.impressions for row in rows)
    weighted_position = (
        sum(row.position * row.impressions for row in rows) / impressions
        if impressions
        else 0.0
    )
    return {
        "clicks": clicks,
        "impressions": impressions,
        "ctr": round(clicks / impressions * 100, 2) if impressions else 0.0,
        "position": round(weighted_position, 1),
    }
