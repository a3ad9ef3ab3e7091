from __future__ import annotations

import os
from dataclasses import dataclass

from gsc_insights.retry import RetryPolicy


def _env(name: str, default: str = "") -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default.strip()
    value = raw.strip()
    placeholder = f"{name}="
    unquoted = value.strip("'\"").strip()
    if unquoted.lower() == placeholder.lower():
        return default.strip()
    return value if value else default.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


def _env_first(*names: str) -> str:
    for name in names:
        value = _env(name)
        if value:
            return value
    return ""


def _normalize_site_url(raw: str) -> str:
    value = raw.strip().strip("'\"")
    if not value or value.startswith("sc-domain:"):
        return value
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    return value if value.endswith("/") else f"{value}/"


def _normalize_gsc_country_filter(raw: str) -> str:
    value = raw.strip().strip("'\"")
    if not value:
        return ""

    lowered = value.lower()
    if lowered in {"all", "none"}:
        return ""

    upper = value.upper()
    if upper == "PL":
        return "pol"
    if len(upper) == 3 and upper.isalpha():
        return upper.lower()
    return lowered


@dataclass(frozen=True)
class InsightsConfig:
    gsc_site_url: str
    gsc_credentials_path: str
    gsc_oauth_client_secret_path: str
    gsc_oauth_refresh_token: str
    gsc_oauth_token_uri: str
    gsc_country_filter: str
    gsc_row_limit: int
    pagespeed_api_key: str
    retry_max_attempts: int
    retry_base_delay_sec: float
    retry_jitter_sec: float
    retry_max_delay_sec: float
    inspection_spacing_sec: float
    max_workers: int
    log_level: str

    @property
    def gsc_enabled(self) -> bool:
        return bool(
            self.gsc_credentials_path
            or (self.gsc_oauth_client_secret_path and self.gsc_oauth_refresh_token)
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max(1, self.retry_max_attempts),
            base_delay_sec=max(0.0, self.retry_base_delay_sec),
            jitter_sec=max(0.0, self.retry_jitter_sec),
            max_delay_sec=max(0.0, self.retry_max_delay_sec),
        )

    @classmethod
    def from_env(cls) -> "InsightsConfig":
        return cls(
            gsc_site_url=_normalize_site_url(_env("GSC_SITE_URL")),
            gsc_credentials_path=_env_first("GSC_CREDENTIALS_PATH", "GOOGLE_APPLICATION_CREDENTIALS"),
            gsc_oauth_client_secret_path=_env("GSC_OAUTH_CLIENT_SECRET_PATH"),
            gsc_oauth_refresh_token=_env("GSC_OAUTH_REFRESH_TOKEN"),
            gsc_oauth_token_uri=_env("GSC_OAUTH_TOKEN_URI", "https://oauth2.googleapis.com/token"),
            gsc_country_filter=_normalize_gsc_country_filter(_env("GSC_COUNTRY_FILTER")),
            gsc_row_limit=min(25000, max(1, _env_int("GSC_ROW_LIMIT", 1000))),
            pagespeed_api_key=_env_first("PAGESPEED_API_KEY", "GOOGLE_CLOUD_API_KEY"),
            retry_max_attempts=_env_int("GSC_RETRY_MAX_ATTEMPTS", 3),
            retry_base_delay_sec=_env_float("GSC_RETRY_BASE_DELAY_SEC", 1.0),
            retry_jitter_sec=_env_float("GSC_RETRY_JITTER_SEC", 0.5),
            retry_max_delay_sec=_env_float("GSC_RETRY_MAX_DELAY_SEC", 30.0),
            inspection_spacing_sec=_env_float("GSC_INSPECTION_SPACING_SEC", 1.0),
            max_workers=max(1, _env_int("GSC_MAX_WORKERS", 4)),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )
