from __future__ import annotations

from datetime import date
from typing import Any, Sequence

from gsc_insights.concurrency import Operation, run_parallel
from gsc_insights.metrics import drop_percentage, index_by_key, percentage_change, row_key
from gsc_insights.models import ComparisonWindows, DimensionFilter, MetricRow
from gsc_insights.time_windows import comparison_windows


def _empty_row(keys: tuple[str, ...]) -> MetricRow:
    return MetricRow(keys=keys, clicks=0, impressions=0, ctr=0.0, position=0.0)


def _first_key(row: MetricRow) -> str:
    return row.dimension(0)


def fetch_comparison_rows(
    client: Any,
    site_url: str,
    windows: ComparisonWindows,
    dimensions: Sequence[str],
    *,
    filters: Sequence[DimensionFilter] = (),
    search_type: str | None = None,
    row_limit: int = 1000,
    max_workers: int | None = None,
) -> tuple[list[MetricRow], list[MetricRow]]:
    """Fetch the current and previous window with identical query settings."""
    common = {
        "filters": tuple(filters),
        "search_type": search_type,
        "row_limit": row_limit,
    }
    current_rows, previous_rows = run_parallel(
        [
            Operation(
                "current period",
                client.query_rows,
                (site_url, windows.current, tuple(dimensions)),
                common,
            ),
            Operation(
                "previous period",
                client.query_rows,
                (site_url, windows.previous, tuple(dimensions)),
                common,
            ),
        ],
        max_workers=max_workers,
    )
    return current_rows, previous_rows


def _period_metrics(row: MetricRow) -> dict[str, float]:
    return {
        "clicks": row.clicks,
        "impressions": row.impressions,
        "ctr": round(row.ctr_pct, 2),
        "position": round(row.position, 1),
    }


def compare_periods(
    client: Any,
    site_url: str,
    *,
    days: int = 28,
    dimensions: Sequence[str] = ("query",),
    search_type: str | None = None,
    device: str | None = None,
    row_limit: int = 1000,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Compare the last ``days`` with the ``days`` right before them, per row key.

    Keys that only exist in the previous period are reported with zeroed
    current metrics.
    """
    windows = comparison_windows(days, today=today)
    filters = (DimensionFilter("device", device.upper()),) if device else ()
    current_rows, previous_rows = fetch_comparison_rows(
        client,
        site_url,
        windows,
        dimensions,
        filters=filters,
        search_type=search_type,
        row_limit=row_limit,
        max_workers=max_workers,
    )

    current_map = index_by_key(current_rows)
    previous_map = index_by_key(previous_rows)
    keys = list(current_map) + [key for key in previous_map if key not in current_map]

    comparisons: list[dict[str, Any]] = []
    for key in keys:
        reference = current_map.get(key) or previous_map[key]
        current = current_map.get(key) or _empty_row(reference.keys)
        previous = previous_map.get(key) or _empty_row(reference.keys)
        comparisons.append(
            {
                "keys": list(reference.keys),
                "period_a": _period_metrics(current),
                "period_b": _period_metrics(previous),
                "delta": {
                    "clicks": current.clicks - previous.clicks,
                    "impressions": current.impressions - previous.impressions,
                    "ctr": round(current.ctr_pct - previous.ctr_pct, 2),
                    "position": round(current.position - previous.position, 1),
                    "clicks_pct": percentage_change(current.clicks, previous.clicks),
                    "impressions_pct": percentage_change(current.impressions, previous.impressions),
                },
            }
        )

    comparisons.sort(key=lambda item: abs(item["delta"]["clicks"]), reverse=True)

    return {
        "site_url": site_url,
        "period_a": windows.current.as_dict(),
        "period_b": windows.previous.as_dict(),
        "dimensions": list(dimensions),
        "total_rows": len(comparisons),
        "comparisons": comparisons,
    }


def detect_content_decay(
    client: Any,
    site_url: str,
    *,
    days: int = 56,
    min_clicks_in_prior: float = 10,
    row_limit: int = 5000,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Pages whose clicks fell between the two halves of the lookback."""
    windows = comparison_windows(max(1, days // 2), today=today)
    recent_rows, prior_rows = fetch_comparison_rows(
        client,
        site_url,
        windows,
        ("page",),
        row_limit=row_limit,
        max_workers=max_workers,
    )
    recent_map = index_by_key(recent_rows)

    pages: list[dict[str, Any]] = []
    for prior in prior_rows:
        if prior.clicks < min_clicks_in_prior:
            continue
        recent = recent_map.get(row_key(prior))
        clicks_recent = recent.clicks if recent else 0
        clicks_lost = prior.clicks - clicks_recent
        if clicks_lost <= 0:
            continue
        pages.append(
            {
                "page": prior.dimension(0, "N/A"),
                "clicks_prior": prior.clicks,
                "clicks_recent": clicks_recent,
                "clicks_lost": clicks_lost,
                "decay_pct": percentage_change(clicks_recent, prior.clicks),
                "impressions_prior": prior.impressions,
                "impressions_recent": recent.impressions if recent else 0,
                "position_prior": round(prior.position, 1),
                "position_recent": round(recent.position, 1) if recent else 0.0,
            }
        )

    pages.sort(key=lambda item: item["clicks_lost"], reverse=True)

    return {
        "site_url": site_url,
        "recent_period": windows.current.as_dict(),
        "prior_period": windows.previous.as_dict(),
        "min_clicks_in_prior": min_clicks_in_prior,
        "decaying_pages": len(pages),
        "pages": pages,
    }


def _keyword_entry(query: str, row: MetricRow) -> dict[str, Any]:
    return {
        "query": query,
        "clicks": row.clicks,
        "impressions": row.impressions,
        "position": round(row.position, 1),
    }


def diff_keywords(
    client: Any,
    site_url: str,
    *,
    days: int = 28,
    min_impressions: float = 5,
    row_limit: int = 5000,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Queries that appeared in, or vanished from, the recent period."""
    windows = comparison_windows(days, today=today)
    current_rows, previous_rows = fetch_comparison_rows(
        client,
        site_url,
        windows,
        ("query",),
        row_limit=row_limit,
        max_workers=max_workers,
    )
    current_map = index_by_key(current_rows, key_fn=_first_key)
    previous_map = index_by_key(previous_rows, key_fn=_first_key)

    new_keywords = [
        _keyword_entry(query, row)
        for query, row in current_map.items()
        if query not in previous_map and row.impressions >= min_impressions
    ]
    lost_keywords = [
        _keyword_entry(query, row)
        for query, row in previous_map.items()
        if query not in current_map and row.impressions >= min_impressions
    ]
    new_keywords.sort(key=lambda item: item["impressions"], reverse=True)
    lost_keywords.sort(key=lambda item: item["impressions"], reverse=True)

    return {
        "site_url": site_url,
        "period_a": windows.current.as_dict(),
        "period_b": windows.previous.as_dict(),
        "new_keywords": {"count": len(new_keywords), "keywords": new_keywords},
        "lost_keywords": {"count": len(lost_keywords), "keywords": lost_keywords},
    }


def drop_alerts(
    client: Any,
    site_url: str,
    *,
    days: int = 7,
    threshold: float = 50,
    min_clicks: float = 10,
    row_limit: int = 5000,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Pages whose clicks dropped by at least ``threshold`` percent."""
    windows = comparison_windows(days, today=today)
    recent_rows, prior_rows = fetch_comparison_rows(
        client,
        site_url,
        windows,
        ("page",),
        row_limit=row_limit,
        max_workers=max_workers,
    )
    recent_map = index_by_key(recent_rows, key_fn=_first_key)

    alerts: list[dict[str, Any]] = []
    for prior in prior_rows:
        if prior.clicks < min_clicks:
            continue
        page = prior.dimension(0)
        recent = recent_map.get(page)
        clicks_recent = recent.clicks if recent else 0
        drop_pct = drop_percentage(prior.clicks, clicks_recent)
        if drop_pct < threshold:
            continue
        alerts.append(
            {
                "page": page,
                "clicks_prior": prior.clicks,
                "clicks_recent": clicks_recent,
                "clicks_lost": prior.clicks - clicks_recent,
                "drop_pct": drop_pct,
                "impressions_prior": prior.impressions,
                "impressions_recent": recent.impressions if recent else 0,
                "position_prior": round(prior.position, 1),
                "position_recent": round(recent.position, 1) if recent else None,
            }
        )

    alerts.sort(key=lambda item: item["clicks_lost"], reverse=True)

    return {
        "site_url": site_url,
        "recent_period": windows.current.as_dict(),
        "prior_period": windows.previous.as_dict(),
        "threshold": threshold,
        "min_clicks": min_clicks,
        "alert_count": len(alerts),
        "total_clicks_lost": sum(item["clicks_lost"] for item in alerts),
        "alerts": alerts,
    }
