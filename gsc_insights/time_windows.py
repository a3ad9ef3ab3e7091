from __future__ import annotations

from datetime import date, timedelta

from gsc_insights.errors import ConfigurationError
from gsc_insights.models import ComparisonWindows, DateWindow


def _yesterday(today: date | None) -> date:
    # Search Console data lags; the newest complete day is yesterday.
    return (today or date.today()) - timedelta(days=1)


def _as_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def relative_window(days: int, today: date | None = None) -> DateWindow:
    """Window of ``days`` calendar days (inclusive) ending yesterday."""
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")
    end = _yesterday(today)
    start = end - timedelta(days=days - 1)
    return DateWindow(f"Last {days} days", start, end)


def resolve_window(
    days: int | None = None,
    start_date: date | str | None = None,
    end_date: date | str | None = None,
    today: date | None = None,
) -> DateWindow:
    """Resolve either a relative ``days`` window or an explicit date range.

    ``days`` takes precedence. Explicit dates are returned verbatim.
    """
    if days:
        return relative_window(days, today=today)
    if start_date and end_date:
        return DateWindow("Explicit range", _as_date(start_date), _as_date(end_date))
    raise ConfigurationError(
        'Either "days" or both "start_date" and "end_date" must be provided.'
    )


def comparison_windows(days: int, today: date | None = None) -> ComparisonWindows:
    """Recent window ending yesterday plus the equal-length window right before it."""
    current = relative_window(days, today=today)
    previous_end = current.start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=days - 1)
    return ComparisonWindows(
        current=DateWindow(f"Current {days} days", current.start, current.end),
        previous=DateWindow(f"Previous {days} days", previous_start, previous_end),
    )


def rolling_windows(
    total_days: int,
    window_days: int,
    step_days: int | None = None,
    today: date | None = None,
) -> list[DateWindow]:
    """Equal-length windows covering the last ``total_days``, oldest first.

    Walks back from yesterday by ``step_days`` (defaults to ``window_days``).
    A trailing window that would reach past the lookback is not emitted.
    """
    step = window_days if step_days is None else step_days
    if window_days < 1:
        raise ValueError(f"window_days must be >= 1, got {window_days}")
    if step < 1:
        raise ValueError(f"step_days must be >= 1, got {step}")

    anchor = _yesterday(today)
    windows: list[DateWindow] = []
    offset = 0
    while offset + window_days <= total_days:
        end = anchor - timedelta(days=offset)
        start = end - timedelta(days=window_days - 1)
        windows.append(DateWindow(f"Window ending {end.isoformat()}", start, end))
        offset += step

    windows.reverse()
    return windows


def split_window(window: DateWindow, chunk_days: int) -> list[DateWindow]:
    """Cut an explicit range into consecutive chunks starting at ``window.start``.

    The final chunk may be shorter so the whole range stays covered.
    """
    if chunk_days < 1:
        raise ValueError(f"chunk_days must be >= 1, got {chunk_days}")
    chunks: list[DateWindow] = []
    cursor = window.start
    while cursor <= window.end:
        chunk_end = min(cursor + timedelta(days=chunk_days - 1), window.end)
        chunks.append(DateWindow(f"Chunk starting {cursor.isoformat()}", cursor, chunk_end))
        cursor = chunk_end + timedelta(days=1)
    return chunks
