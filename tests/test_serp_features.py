from __future__ import annotations

import threading
from datetime import date

from gsc_insights.insights.serp_features import track_serp_features
from gsc_insights.models import MetricRow

TODAY = date(2026, 1, 15)
SITE = "https://example.com/"


def _row(feature: str, clicks: float, impressions: float = 100) -> MetricRow:
    return MetricRow(keys=(feature,), clicks=clicks, impressions=impressions, ctr=clicks / impressions, position=3.0)


class _FakeGSC:
    def __init__(self) -> None:
        self.windows: list[str] = []
        self._lock = threading.Lock()

    def query_rows(self, site_url, window, dimensions=(), *, row_limit=None, **_):
        assert tuple(dimensions) == ("searchAppearance",)
        with self._lock:
            self.windows.append(window.label)
        rows = [_row("RICH_RESULTS", 10)]
        if window.end_date == "2026-01-14":
            rows.append(_row("VIDEO", 50))
        return rows


def test_one_call_per_rolling_window() -> None:
    client = _FakeGSC()

    result = track_serp_features(client, SITE, days=28, today=TODAY)

    assert sorted(client.windows) == [
        "2025-12-18/2025-12-24",
        "2025-12-25/2025-12-31",
        "2026-01-01/2026-01-07",
        "2026-01-08/2026-01-14",
    ]
    assert result["window_days"] == 7
    assert result["total_windows"] == 4
    assert result["total_features"] == 2

    video, rich = result["features"]
    assert video["feature"] == "VIDEO"
    assert video["periods_with_data"] == 1
    assert rich["total_clicks"] == 40
    assert [point["period"] for point in rich["trend"]] == sorted(client.windows)


def test_explicit_range_is_split_into_chunks() -> None:
    client = _FakeGSC()

    result = track_serp_features(client, SITE, start_date="2026-01-01", end_date="2026-01-10")

    assert sorted(client.windows) == ["2026-01-01/2026-01-07", "2026-01-08/2026-01-10"]
    assert result["total_windows"] == 2
    assert result["date_range"] == {"start_date": "2026-01-01", "end_date": "2026-01-10"}
