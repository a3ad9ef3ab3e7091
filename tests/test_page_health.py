from __future__ import annotations

import logging
from datetime import date

import requests

from gsc_insights.clients.page_signals_client import PageSignalsClient
from gsc_insights.concurrency import RateLimitedSequencer
from gsc_insights.errors import GSCConfigError, GSCPermissionError, GSCQuotaError
from gsc_insights.insights.page_health import (
    batch_inspect,
    indexing_health_report,
    page_health_dashboard,
)
from gsc_insights.models import MetricRow
from gsc_insights.retry import RetryPolicy
from gsc_insights.serialization import to_json

TODAY = date(2026, 1, 15)
SITE = "https://example.com/"


def _page_row(page: str, clicks: float = 10) -> MetricRow:
    return MetricRow(keys=(page,), clicks=clicks, impressions=200, ctr=clicks / 200, position=4.24)


def _inspection(verdict: str, coverage_state: str) -> dict:
    return {
        "inspectionResult": {
            "indexStatusResult": {
                "verdict": verdict,
                "coverageState": coverage_state,
                "lastCrawlTime": "2026-01-10T08:00:00Z",
                "pageFetchState": "SUCCESSFUL",
            }
        }
    }


class _FakeGSC:
    def __init__(self, rows=None, inspections=None) -> None:
        self.rows = rows or []
        self.inspections = inspections or {}
        self.query_calls: list[dict] = []
        self.inspected: list[str] = []

    def query_rows(self, site_url, window, dimensions=(), *, filters=(), row_limit=None, **_):
        self.query_calls.append({"dimensions": tuple(dimensions), "filters": tuple(filters), "row_limit": row_limit})
        return list(self.rows)

    def inspect_url(self, site_url, url, language_code="en-US"):
        self.inspected.append(url)
        outcome = self.inspections.get(url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeSignals:
    def __init__(self, crux_error: Exception | None = None) -> None:
        self.crux_error = crux_error

    def run_pagespeed(self, url, categories=("performance",), strategy="mobile", locale=None):
        return {
            "lighthouseResult": {"categories": {"performance": {"score": 0.93}}},
            "loadingExperience": {"overall_category": "FAST", "metrics": {}},
        }

    def query_crux_record(self, url=None, origin=None, form_factor=None, metrics=None):
        if self.crux_error:
            raise self.crux_error
        return {"record": {"key": {"url": url}}}


def _sequencer(sleeps: list[float]) -> RateLimitedSequencer:
    return RateLimitedSequencer(spacing_sec=1.0, sleep=sleeps.append)


def test_dashboard_reports_partial_failures() -> None:
    url = "https://example.com/a"
    gsc = _FakeGSC(
        rows=[_page_row(url, clicks=12)],
        inspections={url: GSCPermissionError(SITE)},
    )
    signals = _FakeSignals(crux_error=GSCConfigError("PAGESPEED_API_KEY is required"))

    result = page_health_dashboard(gsc, signals, SITE, url, days=28, today=TODAY)

    assert result["inspection"]["code"] == "PERMISSION_ERROR"
    assert "error" in result["inspection"]
    assert result["crux"] == {"error": "PAGESPEED_API_KEY is required", "code": "CONFIG_ERROR"}
    assert result["analytics"] == {"clicks": 12, "impressions": 200, "ctr": 6.0, "position": 4.2}
    assert result["page_speed"]["scores"] == {"performance": 93.0}
    assert result["page_speed"]["overall_category"] == "FAST"
    assert result["date_range"] == {"start_date": "2025-12-18", "end_date": "2026-01-14"}

    call = gsc.query_calls[0]
    assert call["dimensions"] == ("page",)
    assert call["row_limit"] == 1
    assert call["filters"][0].expression == url


def test_dashboard_notes_missing_analytics() -> None:
    url = "https://example.com/new"
    gsc = _FakeGSC(inspections={url: _inspection("PASS", "Submitted and indexed")})

    result = page_health_dashboard(gsc, _FakeSignals(), SITE, url, days=7, today=TODAY)

    assert result["analytics"]["note"] == "No data for this URL in date range"
    assert result["inspection"]["indexStatusResult"]["verdict"] == "PASS"
    assert result["crux"] == {"record": {"key": {"url": url}}}


def test_batch_inspect_returns_one_entry_per_url() -> None:
    urls = ["https://example.com/a", "https://example.com/b", "https://example.com/c"]
    gsc = _FakeGSC(
        inspections={
            urls[0]: _inspection("PASS", "Submitted and indexed"),
            urls[1]: GSCQuotaError(),
            urls[2]: _inspection("NEUTRAL", "Excluded by 'noindex' tag"),
        }
    )
    sleeps: list[float] = []

    result = batch_inspect(gsc, SITE, urls, sequencer=_sequencer(sleeps))

    assert gsc.inspected == urls
    assert sleeps == [1.0, 1.0]
    assert result["total"] == 3
    assert result["failed"] == 1
    assert [entry["url"] for entry in result["inspections"]] == urls
    assert result["inspections"][1]["code"] == "QUOTA_ERROR"
    assert result["inspections"][2]["result"]["indexStatusResult"]["verdict"] == "NEUTRAL"


def test_indexing_health_report_counts_coverage_states() -> None:
    pages = ["https://example.com/a", "https://example.com/b", "https://example.com/c"]
    gsc = _FakeGSC(
        rows=[_page_row(page) for page in pages],
        inspections={
            pages[0]: _inspection("PASS", "Submitted and indexed"),
            pages[1]: _inspection("NEUTRAL", "Discovered - currently not indexed"),
            pages[2]: GSCQuotaError(),
        },
    )
    sleeps: list[float] = []

    result = indexing_health_report(
        gsc, SITE, days=28, top_n=3, sequencer=_sequencer(sleeps), today=TODAY
    )

    assert gsc.query_calls[0]["row_limit"] == 3
    assert result["total_urls"] == 3
    assert result["quota_used"] == 3
    assert result["indexed"] == 1
    assert result["not_indexed"] == 1
    assert result["inspection_errors"] == 1
    assert result["by_coverage_state"] == {
        "Submitted and indexed": 1,
        "Discovered - currently not indexed": 1,
    }
    assert result["urls"][2]["error"]
    assert result["urls"][2]["verdict"] is None
    assert sleeps == [1.0, 1.0]


def test_indexing_health_report_without_pages() -> None:
    gsc = _FakeGSC()
    result = indexing_health_report(gsc, SITE, days=28, today=TODAY)
    assert result["total_urls"] == 0
    assert result["urls"] == []
    assert gsc.inspected == []


class _NotFoundSession:
    def request(self, method, url, params=(), json=None, timeout=None):
        query = "&".join(f"{name}={value}" for name, value in params)
        response = requests.Response()
        response.status_code = 404
        response.reason = "Not Found"
        response._content = b"{}"
        response.url = f"{url}?{query}"
        return response


def test_dashboard_output_and_logs_never_carry_the_api_key(caplog) -> None:
    url = "https://example.com/a"
    gsc = _FakeGSC(inspections={url: _inspection("PASS", "Submitted and indexed")})
    signals = PageSignalsClient(
        api_key="SECRET-KEY-123",
        retry_policy=RetryPolicy(max_attempts=1),
        sleep=lambda _: None,
        session=_NotFoundSession(),
    )

    with caplog.at_level(logging.WARNING):
        result = page_health_dashboard(gsc, signals, SITE, url, days=7, today=TODAY)

    assert result["crux"]["code"] == "API_ERROR"
    assert "HTTP 404" in result["page_speed"]["error"]
    assert "SECRET-KEY-123" not in to_json(result)
    assert "SECRET-KEY-123" not in caplog.text
