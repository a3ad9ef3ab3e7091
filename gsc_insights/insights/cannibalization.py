from __future__ import annotations

from datetime import date
from typing import Any

from gsc_insights.metrics import (
    classify_cannibalization_action,
    group_by,
    pick_winner,
    position_variance,
    rank_competitors,
)
from gsc_insights.models import MetricRow
from gsc_insights.time_windows import resolve_window

_RATIONALES = {
    "redirect": "Low traffic ({clicks:g} clicks) and poor position ({position:.1f}). 301 redirect to winner.",
    "consolidate": "Moderate traffic ({clicks:g} clicks). Merge unique content into winner, then redirect.",
    "differentiate": (
        "Significant traffic ({clicks:g} clicks). Differentiate targeting: adjust title "
        "and content to serve a distinct intent."
    ),
}


def _page_entry(row: MetricRow) -> dict[str, Any]:
    return {
        "page": row.dimension(1),
        "clicks": row.clicks,
        "impressions": row.impressions,
        "ctr": round(row.ctr_pct, 2),
        "position": round(row.position, 1),
    }


def _recommendation(ranked: list[MetricRow]) -> dict[str, Any]:
    winner = pick_winner(ranked)
    losers = [row for row in ranked if row is not winner]
    actions = []
    for loser in losers:
        action = classify_cannibalization_action(
            winner.clicks, loser.clicks, winner.position, loser.position
        )
        actions.append(
            {
                "url": loser.dimension(1),
                "clicks": loser.clicks,
                "position": round(loser.position, 1),
                "action": action,
                "rationale": _RATIONALES[action].format(
                    clicks=loser.clicks, position=loser.position
                ),
            }
        )
    return {
        "winner_url": winner.dimension(1),
        "winner_clicks": winner.clicks,
        "winner_position": round(winner.position, 1),
        "actions": actions,
    }


def find_cannibalized_queries(
    rows: list[MetricRow],
    min_impressions: float,
    ranked: bool = False,
    include_recommendation: bool = False,
) -> list[dict[str, Any]]:
    """Group ``(query, page)`` rows by query and keep queries split across pages."""
    issues: list[dict[str, Any]] = []
    for query, competing in group_by(rows, key_fn=lambda row: row.dimension(0)).items():
        if len(competing) < 2:
            continue
        total_impressions = sum(row.impressions for row in competing)
        if total_impressions < min_impressions:
            continue

        if ranked or include_recommendation:
            ordered = rank_competitors(competing)
        else:
            ordered = sorted(competing, key=lambda row: row.impressions, reverse=True)

        issue: dict[str, Any] = {
            "query": query,
            "page_count": len(competing),
            "total_impressions": total_impressions,
            "position_variance": position_variance([row.position for row in competing]),
            "pages": [_page_entry(row) for row in ordered],
        }
        if include_recommendation:
            issue["recommendation"] = _recommendation(ordered)
        issues.append(issue)

    issues.sort(key=lambda item: item["total_impressions"], reverse=True)
    return issues


def _fetch_query_page_rows(
    client: Any,
    site_url: str,
    days: int | None,
    start_date: str | None,
    end_date: str | None,
    row_limit: int,
    today: date | None,
):
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    rows = client.query_rows(site_url, window, ("query", "page"), row_limit=row_limit)
    return window, rows


def detect_cannibalization(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    min_impressions: float = 10,
    row_limit: int = 10000,
    today: date | None = None,
) -> dict[str, Any]:
    window, rows = _fetch_query_page_rows(
        client, site_url, days, start_date, end_date, row_limit, today
    )
    issues = find_cannibalized_queries(rows, min_impressions)
    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "cannibalization_issues": len(issues),
        "queries": issues,
    }


def resolve_cannibalization(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    min_impressions: float = 10,
    row_limit: int = 10000,
    include_recommendation: bool = True,
    today: date | None = None,
) -> dict[str, Any]:
    """Like ``detect_cannibalization`` but ranks pages and proposes an action per loser."""
    window, rows = _fetch_query_page_rows(
        client, site_url, days, start_date, end_date, row_limit, today
    )
    issues = find_cannibalized_queries(
        rows, min_impressions, ranked=True, include_recommendation=include_recommendation
    )
    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "cannibalization_issues": len(issues),
        "queries": issues,
    }
