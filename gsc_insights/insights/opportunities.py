from __future__ import annotations

from datetime import date
from typing import Any, Sequence

from gsc_insights.clients.gsc_client import MAX_ROWS_PER_REQUEST
from gsc_insights.concurrency import Operation, run_parallel
from gsc_insights.metrics import expected_ctr, summarize_rows
from gsc_insights.models import MetricRow
from gsc_insights.time_windows import resolve_window

DEFAULT_SEARCH_TYPES = ("web", "image", "video", "discover", "news")
QUICK_WIN_TARGET_CTR = 5.0


def find_quick_wins(
    rows: Sequence[MetricRow],
    *,
    min_impressions: float = 50,
    max_ctr: float = 2.0,
    position_range_min: float = 4,
    position_range_max: float = 10,
    target_ctr: float = QUICK_WIN_TARGET_CTR,
) -> list[dict[str, Any]]:
    """High-impression rows with low CTR on the edge of the top results.

    ``max_ctr`` and ``target_ctr`` are percentages.
    """
    wins: list[dict[str, Any]] = []
    for row in rows:
        if row.impressions < min_impressions or row.ctr_pct > max_ctr:
            continue
        if not position_range_min <= row.position <= position_range_max:
            continue
        potential_clicks = round(row.impressions * target_ctr / 100)
        additional_clicks = max(0, potential_clicks - row.clicks)
        wins.append(
            {
                "query": row.dimension(0, "N/A"),
                "page": row.dimension(1, "N/A"),
                "current_position": round(row.position, 1),
                "impressions": row.impressions,
                "current_clicks": row.clicks,
                "current_ctr": round(row.ctr_pct, 2),
                "potential_clicks": potential_clicks,
                "additional_clicks": additional_clicks,
                "opportunity": "High" if additional_clicks > 0 else "Low",
            }
        )
    wins.sort(key=lambda item: item["additional_clicks"], reverse=True)
    return wins


def detect_quick_wins(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    min_impressions: float = 50,
    max_ctr: float = 2.0,
    position_range_min: float = 4,
    position_range_max: float = 10,
    max_rows: int = MAX_ROWS_PER_REQUEST,
    today: date | None = None,
) -> dict[str, Any]:
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    rows = client.query_all_rows(site_url, window, ("query", "page"), max_rows=max_rows)
    wins = find_quick_wins(
        rows,
        min_impressions=min_impressions,
        max_ctr=max_ctr,
        position_range_min=position_range_min,
        position_range_max=position_range_max,
    )
    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "rows_analyzed": len(rows),
        "total_opportunities": len(wins),
        "thresholds": {
            "min_impressions": min_impressions,
            "max_ctr": max_ctr,
            "position_range_min": position_range_min,
            "position_range_max": position_range_max,
            "target_ctr": QUICK_WIN_TARGET_CTR,
        },
        "quick_wins": wins,
    }


def ctr_analysis(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    min_impressions: float = 50,
    row_limit: int = 5000,
    today: date | None = None,
) -> dict[str, Any]:
    """Actual CTR per query against the positional benchmark, worst gap first."""
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    rows = client.query_rows(site_url, window, ("query",), row_limit=row_limit)

    queries: list[dict[str, Any]] = []
    for row in rows:
        if row.impressions < min_impressions:
            continue
        benchmark = expected_ctr(row.position)
        gap = round(row.ctr_pct - benchmark, 2)
        queries.append(
            {
                "query": row.dimension(0, "N/A"),
                "position": round(row.position, 1),
                "impressions": row.impressions,
                "clicks": row.clicks,
                "actual_ctr": round(row.ctr_pct, 2),
                "expected_ctr": benchmark,
                "ctr_gap": gap,
                "status": "above_benchmark" if gap >= 0 else "below_benchmark",
            }
        )
    queries.sort(key=lambda item: item["ctr_gap"])

    underperformers = sum(1 for item in queries if item["status"] == "below_benchmark")
    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "total_analyzed": len(queries),
        "underperformers": underperformers,
        "overperformers": len(queries) - underperformers,
        "queries": queries,
    }


def search_type_breakdown(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    types: Sequence[str] = DEFAULT_SEARCH_TYPES,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Totals per search type (web, image, ...) with each type's share of clicks."""
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    results = run_parallel(
        [
            Operation(
                f"search type {search_type}",
                client.query_rows,
                (site_url, window, ()),
                {"search_type": search_type},
            )
            for search_type in types
        ],
        max_workers=max_workers,
    )

    breakdown: list[dict[str, Any]] = []
    for search_type, rows in zip(types, results):
        totals = summarize_rows(rows)
        breakdown.append(
            {
                "type": search_type,
                "clicks": totals["clicks"],
                "impressions": totals["impressions"],
                "ctr": totals["ctr"],
            }
        )
    breakdown.sort(key=lambda item: item["clicks"], reverse=True)

    total_clicks = sum(item["clicks"] for item in breakdown)
    for item in breakdown:
        item["click_share"] = round(item["clicks"] / total_clicks * 100, 1) if total_clicks else 0
    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "total_clicks": total_clicks,
        "breakdown": breakdown,
    }
