from __future__ import annotations

from datetime import date
from typing import Any

from gsc_insights.concurrency import Operation, run_parallel
from gsc_insights.time_windows import resolve_window, rolling_windows, split_window

TREND_WINDOW_DAYS = 7


def track_serp_features(
    client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    row_limit: int = 5000,
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Weekly trend per search appearance (rich results, FAQ, video, ...).

    ``searchAppearance`` cannot be combined with other dimensions, so there is
    one request per window instead of a single ``date`` breakdown.
    """
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    window_days = min(TREND_WINDOW_DAYS, window.days)
    if days:
        windows = rolling_windows(window.days, window_days, today=today)
    else:
        windows = split_window(window, window_days)

    results = run_parallel(
        [
            Operation(
                f"search appearance {item.label}",
                client.query_rows,
                (site_url, item, ("searchAppearance",)),
                {"row_limit": row_limit},
            )
            for item in windows
        ],
        max_workers=max_workers,
    )

    trends: dict[str, list[dict[str, Any]]] = {}
    for item, rows in zip(windows, results):
        for row in rows:
            trends.setdefault(row.dimension(0, "unknown"), []).append(
                {
                    "period": item.label,
                    "clicks": row.clicks,
                    "impressions": row.impressions,
                    "ctr": round(row.ctr_pct, 2),
                    "position": round(row.position, 1),
                }
            )

    features: list[dict[str, Any]] = []
    for feature, points in trends.items():
        points.sort(key=lambda point: point["period"])
        total_clicks = sum(point["clicks"] for point in points)
        total_impressions = sum(point["impressions"] for point in points)
        features.append(
            {
                "feature": feature,
                "total_clicks": total_clicks,
                "total_impressions": total_impressions,
                "avg_ctr": round(total_clicks / total_impressions * 100, 2) if total_impressions else 0,
                "periods_with_data": len(points),
                "trend": points,
            }
        )
    features.sort(key=lambda item: item["total_clicks"], reverse=True)

    return {
        "site_url": site_url,
        "date_range": window.as_dict(),
        "window_days": window_days,
        "total_windows": len(windows),
        "total_features": len(features),
        "features": features,
    }
