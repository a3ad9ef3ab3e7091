from __future__ import annotations

from datetime import date
from typing import Any, Sequence

from gsc_insights.concurrency import Operation, RateLimitedSequencer, settle_all
from gsc_insights.models import DimensionFilter, PageHealthSources, SourceResult
from gsc_insights.time_windows import resolve_window


def _inspection_body(response: Any) -> dict[str, Any]:
    if not isinstance(response, dict):
        return {}
    return response.get("inspectionResult") or response


def _index_status(response: Any) -> dict[str, Any]:
    return _inspection_body(response).get("indexStatusResult") or {}


def _analytics_section(result: SourceResult) -> dict[str, Any]:
    if not result.ok:
        return result.error_payload()
    rows = result.value or []
    if not rows:
        return {
            "clicks": 0,
            "impressions": 0,
            "ctr": 0,
            "position": 0,
            "note": "No data for this URL in date range",
        }
    row = rows[0]
    return {
        "clicks": row.clicks,
        "impressions": row.impressions,
        "ctr": round(row.ctr_pct, 2),
        "position": round(row.position, 1),
    }


def _page_speed_section(result: SourceResult) -> dict[str, Any]:
    if not result.ok:
        return result.error_payload()
    payload = result.value or {}
    categories = (payload.get("lighthouseResult") or {}).get("categories") or {}
    loading = payload.get("loadingExperience") or {}
    return {
        "scores": {
            name: round(float(category.get("score") or 0) * 100, 1)
            for name, category in categories.items()
        }
        or None,
        "field_data": loading.get("metrics"),
        "overall_category": loading.get("overall_category"),
    }


def _crux_section(result: SourceResult) -> Any:
    if not result.ok:
        return result.error_payload()
    return result.value


def page_health_dashboard(
    gsc_client: Any,
    signals_client: Any,
    site_url: str,
    url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    strategy: str = "mobile",
    categories: Sequence[str] = ("performance",),
    language_code: str = "en-US",
    max_workers: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Inspection, analytics, PageSpeed and CrUX for one URL.

    The four lookups run concurrently; a failing source is reported as
    ``{"error": ..., "code": ...}`` while the others are still returned.
    """
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    settled = settle_all(
        {
            "inspection": Operation(
                "url inspection",
                gsc_client.inspect_url,
                (site_url, url),
                {"language_code": language_code},
            ),
            "analytics": Operation(
                "page analytics",
                gsc_client.query_rows,
                (site_url, window, ("page",)),
                {"filters": (DimensionFilter("page", url),), "row_limit": 1},
            ),
            "page_speed": Operation(
                "pagespeed insights",
                signals_client.run_pagespeed,
                (url,),
                {"categories": tuple(categories), "strategy": strategy},
            ),
            "crux": Operation(
                "chrome ux report",
                signals_client.query_crux_record,
                (),
                {"url": url},
            ),
        },
        max_workers=max_workers,
    )
    sources = PageHealthSources(**settled)

    return {
        "url": url,
        "site_url": site_url,
        "date_range": window.as_dict(),
        "inspection": (
            _inspection_body(sources.inspection.value)
            if sources.inspection.ok
            else sources.inspection.error_payload()
        ),
        "analytics": _analytics_section(sources.analytics),
        "page_speed": _page_speed_section(sources.page_speed),
        "crux": _crux_section(sources.crux),
    }


def _inspection_operations(
    gsc_client: Any,
    site_url: str,
    urls: Sequence[str],
    language_code: str,
) -> list[Operation]:
    return [
        Operation(
            f"inspect {url}",
            gsc_client.inspect_url,
            (site_url, url),
            {"language_code": language_code},
        )
        for url in urls
    ]


def batch_inspect(
    gsc_client: Any,
    site_url: str,
    urls: Sequence[str],
    *,
    language_code: str = "en-US",
    sequencer: RateLimitedSequencer | None = None,
) -> dict[str, Any]:
    """Inspect URLs one per second; each entry carries its result or its error."""
    sequencer = sequencer or RateLimitedSequencer()
    results = sequencer.run(_inspection_operations(gsc_client, site_url, urls, language_code))

    inspections: list[dict[str, Any]] = []
    for url, result in zip(urls, results):
        entry: dict[str, Any] = {"url": url}
        if result.ok:
            entry["result"] = _inspection_body(result.value)
        else:
            entry.update(result.error_payload())
        inspections.append(entry)

    return {
        "site_url": site_url,
        "total": len(inspections),
        "failed": sum(1 for result in results if not result.ok),
        "inspections": inspections,
    }


def indexing_health_report(
    gsc_client: Any,
    site_url: str,
    *,
    days: int | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    top_n: int = 50,
    language_code: str = "en-US",
    sequencer: RateLimitedSequencer | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Inspect the top pages by clicks and summarize their index coverage."""
    window = resolve_window(days=days, start_date=start_date, end_date=end_date, today=today)
    rows = gsc_client.query_rows(site_url, window, ("page",), row_limit=top_n)
    urls = [row.dimension(0) for row in rows if row.dimension(0)][:top_n]

    if not urls:
        return {
            "site_url": site_url,
            "source": "analytics",
            "date_range": window.as_dict(),
            "total_urls": 0,
            "note": "No URLs found from the specified source",
            "by_coverage_state": {},
            "urls": [],
        }

    sequencer = sequencer or RateLimitedSequencer()
    results = sequencer.run(_inspection_operations(gsc_client, site_url, urls, language_code))

    by_coverage_state: dict[str, int] = {}
    indexed = 0
    not_indexed = 0
    inspection_errors = 0
    entries: list[dict[str, Any]] = []
    for url, result in zip(urls, results):
        if not result.ok:
            inspection_errors += 1
            entries.append(
                {
                    "url": url,
                    "verdict": None,
                    "coverage_state": None,
                    "last_crawl_time": None,
                    "page_fetch_state": None,
                    "error": result.error,
                }
            )
            continue

        status = _index_status(result.value)
        coverage_state = status.get("coverageState") or "UNKNOWN"
        verdict = status.get("verdict") or "UNKNOWN"
        by_coverage_state[coverage_state] = by_coverage_state.get(coverage_state, 0) + 1
        if verdict == "PASS":
            indexed += 1
        else:
            not_indexed += 1
        entries.append(
            {
                "url": url,
                "verdict": status.get("verdict"),
                "coverage_state": status.get("coverageState"),
                "last_crawl_time": status.get("lastCrawlTime"),
                "page_fetch_state": status.get("pageFetchState"),
                "error": None,
            }
        )

    return {
        "site_url": site_url,
        "source": "analytics",
        "date_range": window.as_dict(),
        "total_urls": len(urls),
        "quota_used": len(results),
        "indexed": indexed,
        "not_indexed": not_indexed,
        "inspection_errors": inspection_errors,
        "by_coverage_state": by_coverage_state,
        "urls": entries,
    }
