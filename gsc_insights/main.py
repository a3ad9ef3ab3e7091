from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable

from dotenv import find_dotenv, load_dotenv

from gsc_insights.clients.gsc_client import GSCClient
from gsc_insights.clients.page_signals_client import PageSignalsClient
from gsc_insights.concurrency import RateLimitedSequencer
from gsc_insights.config import InsightsConfig
from gsc_insights.errors import ConfigurationError, GSCError
from gsc_insights.insights.cannibalization import detect_cannibalization, resolve_cannibalization
from gsc_insights.insights.comparison import (
    compare_periods,
    detect_content_decay,
    diff_keywords,
    drop_alerts,
)
from gsc_insights.insights.opportunities import (
    ctr_analysis,
    detect_quick_wins,
    search_type_breakdown,
)
from gsc_insights.insights.page_health import (
    batch_inspect,
    indexing_health_report,
    page_health_dashboard,
)
from gsc_insights.insights.serp_features import track_serp_features
from gsc_insights.observability import configure_logging
from gsc_insights.serialization import to_json

logger = logging.getLogger(__name__)


class Runtime:
    """Collaborators shared by one CLI invocation."""

    def __init__(self, config: InsightsConfig, today: date) -> None:
        self.config = config
        self.today = today
        self.gsc = GSCClient(
            credentials_path=config.gsc_credentials_path,
            oauth_client_secret_path=config.gsc_oauth_client_secret_path,
            oauth_refresh_token=config.gsc_oauth_refresh_token,
            oauth_token_uri=config.gsc_oauth_token_uri,
            country_filter=config.gsc_country_filter,
            row_limit=config.gsc_row_limit,
            retry_policy=config.retry_policy,
        )
        self.signals = PageSignalsClient(
            api_key=config.pagespeed_api_key,
            retry_policy=config.retry_policy,
        )
        self.sequencer = RateLimitedSequencer(spacing_sec=config.inspection_spacing_sec)


def _csv(raw: str | None) -> tuple[str, ...] | None:
    if not raw:
        return None
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _window_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    return {"days": args.days, "start_date": args.start_date, "end_date": args.end_date}


def _given(args: argparse.Namespace, *names: str) -> dict[str, Any]:
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def _run_compare_periods(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    kwargs = _given(args, "days", "search_type", "device", "row_limit")
    dimensions = _csv(args.dimensions)
    if dimensions:
        kwargs["dimensions"] = dimensions
    return compare_periods(
        rt.gsc, args.site_url, max_workers=rt.config.max_workers, today=rt.today, **kwargs
    )


def _run_content_decay(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    kwargs = _given(args, "days", "row_limit")
    if args.min_clicks is not None:
        kwargs["min_clicks_in_prior"] = args.min_clicks
    return detect_content_decay(
        rt.gsc, args.site_url, max_workers=rt.config.max_workers, today=rt.today, **kwargs
    )


def _run_diff_keywords(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return diff_keywords(
        rt.gsc,
        args.site_url,
        max_workers=rt.config.max_workers,
        today=rt.today,
        **_given(args, "days", "min_impressions", "row_limit"),
    )


def _run_drop_alerts(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return drop_alerts(
        rt.gsc,
        args.site_url,
        max_workers=rt.config.max_workers,
        today=rt.today,
        **_given(args, "days", "threshold", "min_clicks", "row_limit"),
    )


def _run_cannibalization(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    kwargs = {**_window_kwargs(args), **_given(args, "min_impressions", "row_limit")}
    if args.resolve:
        return resolve_cannibalization(
            rt.gsc,
            args.site_url,
            include_recommendation=not args.no_recommendation,
            today=rt.today,
            **kwargs,
        )
    return detect_cannibalization(rt.gsc, args.site_url, today=rt.today, **kwargs)


def _run_quick_wins(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return detect_quick_wins(
        rt.gsc,
        args.site_url,
        today=rt.today,
        **_window_kwargs(args),
        **_given(
            args,
            "min_impressions",
            "max_ctr",
            "position_range_min",
            "position_range_max",
            "max_rows",
        ),
    )


def _run_ctr_analysis(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return ctr_analysis(
        rt.gsc,
        args.site_url,
        today=rt.today,
        **_window_kwargs(args),
        **_given(args, "min_impressions", "row_limit"),
    )


def _run_search_types(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    types = _csv(args.types)
    if types:
        kwargs["types"] = types
    return search_type_breakdown(
        rt.gsc,
        args.site_url,
        max_workers=rt.config.max_workers,
        today=rt.today,
        **_window_kwargs(args),
        **kwargs,
    )


def _run_serp_features(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return track_serp_features(
        rt.gsc,
        args.site_url,
        max_workers=rt.config.max_workers,
        today=rt.today,
        **_window_kwargs(args),
        **_given(args, "row_limit"),
    )


def _run_page_health(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    kwargs = _given(args, "strategy", "language_code")
    categories = _csv(args.categories)
    if categories:
        kwargs["categories"] = categories
    return page_health_dashboard(
        rt.gsc,
        rt.signals,
        args.site_url,
        args.url,
        max_workers=rt.config.max_workers,
        today=rt.today,
        **_window_kwargs(args),
        **kwargs,
    )


def _run_indexing_health(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return indexing_health_report(
        rt.gsc,
        args.site_url,
        sequencer=rt.sequencer,
        today=rt.today,
        **_window_kwargs(args),
        **_given(args, "top_n", "language_code"),
    )


def _run_batch_inspect(args: argparse.Namespace, rt: Runtime) -> dict[str, Any]:
    return batch_inspect(
        rt.gsc,
        args.site_url,
        args.urls,
        sequencer=rt.sequencer,
        **_given(args, "language_code"),
    )


COMMANDS: dict[str, tuple[str, Callable[[argparse.Namespace, Runtime], dict[str, Any]]]] = {
    "compare-periods": ("Recent period vs the previous one, per row key.", _run_compare_periods),
    "content-decay": ("Pages losing clicks between two halves of the lookback.", _run_content_decay),
    "diff-keywords": ("Queries gained and lost between two periods.", _run_diff_keywords),
    "drop-alerts": ("Pages whose clicks dropped past a threshold.", _run_drop_alerts),
    "cannibalization": ("Queries split across several pages.", _run_cannibalization),
    "quick-wins": ("High-impression, low-CTR queries near the top results.", _run_quick_wins),
    "ctr-analysis": ("CTR per query against positional benchmarks.", _run_ctr_analysis),
    "search-types": ("Clicks and impressions per search type.", _run_search_types),
    "serp-features": ("Weekly trend per search appearance.", _run_serp_features),
    "page-health": ("Inspection, analytics, PageSpeed and CrUX for one URL.", _run_page_health),
    "indexing-health": ("Index coverage of the top pages.", _run_indexing_health),
    "batch-inspect": ("URL inspection for an explicit list of URLs.", _run_batch_inspect),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search Console insights")
    parser.add_argument("--site-url", dest="site_url", help="GSC property (default: GSC_SITE_URL)")
    parser.add_argument(
        "--run-date",
        dest="run_date",
        help="Reference date in YYYY-MM-DD format (default: today)",
    )
    parser.add_argument("--output", help="Write the JSON report to this file instead of stdout.")
    parser.add_argument("--log-level", dest="log_level", help="Override LOG_LEVEL.")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subs = {
        name: subparsers.add_parser(name, help=help_text)
        for name, (help_text, _) in COMMANDS.items()
    }

    for name in ("cannibalization", "quick-wins", "ctr-analysis", "search-types",
                 "serp-features", "page-health", "indexing-health"):
        subs[name].add_argument("--days", type=int)
        subs[name].add_argument("--start-date", dest="start_date")
        subs[name].add_argument("--end-date", dest="end_date")
    for name in ("compare-periods", "content-decay", "diff-keywords", "drop-alerts"):
        subs[name].add_argument("--days", type=int)
    for name in ("compare-periods", "content-decay", "diff-keywords", "drop-alerts",
                 "cannibalization", "ctr-analysis", "serp-features"):
        subs[name].add_argument("--row-limit", dest="row_limit", type=int)
    for name in ("diff-keywords", "cannibalization", "quick-wins", "ctr-analysis"):
        subs[name].add_argument("--min-impressions", dest="min_impressions", type=float)
    for name in ("content-decay", "drop-alerts"):
        subs[name].add_argument("--min-clicks", dest="min_clicks", type=float)
    for name in ("page-health", "indexing-health", "batch-inspect"):
        subs[name].add_argument("--language-code", dest="language_code")

    subs["compare-periods"].add_argument("--dimensions", help="Comma separated, e.g. query,page")
    subs["compare-periods"].add_argument("--search-type", dest="search_type")
    subs["compare-periods"].add_argument("--device", help="MOBILE, DESKTOP or TABLET")
    subs["drop-alerts"].add_argument("--threshold", type=float)
    subs["cannibalization"].add_argument(
        "--resolve", action="store_true", help="Rank pages and propose an action per loser."
    )
    subs["cannibalization"].add_argument("--no-recommendation", action="store_true")
    subs["quick-wins"].add_argument("--max-ctr", dest="max_ctr", type=float)
    subs["quick-wins"].add_argument("--position-min", dest="position_range_min", type=float)
    subs["quick-wins"].add_argument("--position-max", dest="position_range_max", type=float)
    subs["quick-wins"].add_argument("--max-rows", dest="max_rows", type=int)
    subs["search-types"].add_argument("--types", help="Comma separated search types.")
    subs["page-health"].add_argument("--url", required=True)
    subs["page-health"].add_argument("--strategy", choices=("mobile", "desktop"))
    subs["page-health"].add_argument("--categories", help="Comma separated Lighthouse categories.")
    subs["indexing-health"].add_argument("--top-n", dest="top_n", type=int)
    subs["batch-inspect"].add_argument("urls", nargs="+")
    return parser


def _parse_run_date(raw: str | None) -> date:
    if not raw:
        return date.today()
    return date.fromisoformat(raw)


def main(argv: list[str] | None = None) -> None:
    try:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    except Exception:
        pass

    args = _build_parser().parse_args(argv)
    config = InsightsConfig.from_env()
    configure_logging(args.log_level or config.log_level)

    args.site_url = args.site_url or config.gsc_site_url
    if not args.site_url:
        raise SystemExit("No GSC property given. Pass --site-url or set GSC_SITE_URL.")
    if not config.gsc_enabled:
        raise SystemExit(
            "GSC is not configured. Provide either "
            "GSC_CREDENTIALS_PATH or GSC_OAUTH_CLIENT_SECRET_PATH + GSC_OAUTH_REFRESH_TOKEN."
        )

    runtime = Runtime(config, _parse_run_date(args.run_date))
    _, runner = COMMANDS[args.command]
    try:
        payload = runner(args, runtime)
    except (ConfigurationError, GSCError) as exc:
        raise SystemExit(f"{args.command} failed: {exc}") from exc

    text = to_json(payload)
    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n", encoding="utf-8")
        print(f"Report written: {output_path}")
    else:
        print(text)
    logger.debug("Finished %s for %s", args.command, args.site_url)


if __name__ == "__main__":
    main()
