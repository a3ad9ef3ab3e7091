from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Sequence
from urllib.parse import urlparse

import httplib2
from google.auth.credentials import Credentials
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

from gsc_insights.errors import GSCConfigError, GSCPermissionError, to_gsc_error
from gsc_insights.models import DateWindow, DimensionFilter, MetricRow
from gsc_insights.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

# Search Analytics caps a single response at this many rows.
MAX_ROWS_PER_REQUEST = 25000


class GSCClient:
    """Search Console collaborator: analytics rows and URL inspection."""

    SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]
    HTTP_TIMEOUT_SEC = 30

    def __init__(
        self,
        credentials_path: str = "",
        oauth_client_secret_path: str = "",
        oauth_refresh_token: str = "",
        oauth_token_uri: str = "https://oauth2.googleapis.com/token",
        country_filter: str = "",
        row_limit: int = 1000,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        service_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.credentials_path = credentials_path
        self.oauth_client_secret_path = oauth_client_secret_path
        self.oauth_refresh_token = oauth_refresh_token
        self.oauth_token_uri = oauth_token_uri
        self.country_filter = country_filter
        self.row_limit = row_limit
        self.retry_policy = retry_policy
        self._sleep = sleep
        self._service_factory = service_factory or self._build_service
        # httplib2 transports are not thread-safe; keep one service per thread.
        self._local = threading.local()

    @staticmethod
    def domain_property(site_url: str) -> str:
        if site_url.startswith("sc-domain:"):
            return site_url
        parsed = urlparse(site_url)
        host = (parsed.netloc or "").strip().lower()
        return f"sc-domain:{host}" if host else site_url

    def _service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            service = self._service_factory()
            self._local.service = service
        return service

    def _build_service(self):
        credentials = self._build_credentials()
        http = AuthorizedHttp(
            credentials,
            http=httplib2.Http(timeout=self.HTTP_TIMEOUT_SEC),
        )
        return build(
            "searchconsole",
            "v1",
            http=http,
            cache_discovery=False,
        )

    def _build_credentials(self) -> Credentials:
        if self.credentials_path:
            payload = self._load_json(self.credentials_path)
            if payload.get("type") == "service_account":
                return service_account.Credentials.from_service_account_file(
                    self.credentials_path,
                    scopes=self.SCOPES,
                )
            return self._oauth_credentials_from_payload(payload)

        if self.oauth_client_secret_path:
            payload = self._load_json(self.oauth_client_secret_path)
            return self._oauth_credentials_from_payload(payload)

        raise GSCConfigError(
            "Missing GSC credentials. Set GSC_CREDENTIALS_PATH (service account or oauth JSON) "
            "or set GSC_OAUTH_CLIENT_SECRET_PATH + GSC_OAUTH_REFRESH_TOKEN."
        )

    def _oauth_credentials_from_payload(self, payload: dict) -> UserCredentials:
        # OAuth JSON can be either {"installed": {...}} or {"web": {...}}.
        client_section = payload.get("installed") or payload.get("web") or payload
        client_id = client_section.get("client_id")
        client_secret = client_section.get("client_secret")
        token_uri = client_section.get("token_uri") or self.oauth_token_uri

        if not (client_id and client_secret):
            raise GSCConfigError("OAuth client JSON is missing client_id/client_secret.")
        if not self.oauth_refresh_token:
            raise GSCConfigError("Missing GSC_OAUTH_REFRESH_TOKEN for OAuth credentials.")

        return UserCredentials(
            token=None,
            refresh_token=self.oauth_refresh_token,
            token_uri=token_uri,
            client_id=client_id,
            client_secret=client_secret,
            scopes=self.SCOPES,
        )

    @staticmethod
    def _load_json(path_value: str) -> dict:
        path = Path(path_value)
        if not path.exists():
            raise GSCConfigError(f"GSC credentials file not found: {path_value}")
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise GSCConfigError(f"Invalid JSON in credentials file: {path_value}") from exc

    def _filter_groups(self, filters: Sequence[DimensionFilter]) -> list[dict] | None:
        api_filters = [item.as_api() for item in filters]
        if self.country_filter:
            api_filters.append(
                DimensionFilter(dimension="country", expression=self.country_filter).as_api()
            )
        if not api_filters:
            return None
        return [{"groupType": "and", "filters": api_filters}]

    def _attempt(
        self,
        site_url: str,
        make_request: Callable[[Any, str], Any],
        allow_domain_fallback: bool,
    ) -> dict:
        service = self._service()
        try:
            return make_request(service, site_url).execute(num_retries=0)
        except Exception as exc:
            error = to_gsc_error(exc, site_url)
            fallback_site = self.domain_property(site_url)
            if (
                not allow_domain_fallback
                or not isinstance(error, GSCPermissionError)
                or fallback_site == site_url
            ):
                raise error from exc

        # URL-prefix property without access; the same site may be a domain property.
        logger.info("Permission denied for %s, retrying as %s", site_url, fallback_site)
        try:
            return make_request(service, fallback_site).execute(num_retries=0)
        except Exception as fallback_exc:
            fallback_error = to_gsc_error(fallback_exc, site_url)
            if isinstance(fallback_error, GSCPermissionError):
                raise GSCPermissionError(site_url) from fallback_exc
            raise fallback_error from fallback_exc

    def _execute(
        self,
        description: str,
        site_url: str,
        make_request: Callable[[Any, str], Any],
        allow_domain_fallback: bool = True,
    ) -> dict:
        return call_with_retry(
            self._attempt,
            site_url,
            make_request,
            allow_domain_fallback,
            policy=self.retry_policy,
            sleep=self._sleep,
            description=description,
        )

    def query_rows(
        self,
        site_url: str,
        window: DateWindow,
        dimensions: Sequence[str] = (),
        *,
        filters: Sequence[DimensionFilter] = (),
        search_type: str | None = None,
        row_limit: int | None = None,
        start_row: int = 0,
    ) -> list[MetricRow]:
        body: dict[str, Any] = {
            "startDate": window.start_date,
            "endDate": window.end_date,
            "rowLimit": min(MAX_ROWS_PER_REQUEST, row_limit or self.row_limit),
        }
        if dimensions:
            body["dimensions"] = list(dimensions)
        if search_type:
            body["type"] = search_type
        if start_row:
            body["startRow"] = start_row
        filter_groups = self._filter_groups(filters)
        if filter_groups:
            body["dimensionFilterGroups"] = filter_groups

        def make_request(service: Any, target_site: str) -> Any:
            return service.searchanalytics().query(siteUrl=target_site, body=body)

        response = self._execute(
            f"searchanalytics.query {list(dimensions) or 'totals'} {window.label}",
            site_url,
            make_request,
        )
        return [MetricRow.from_api(row) for row in response.get("rows", [])]

    def query_all_rows(
        self,
        site_url: str,
        window: DateWindow,
        dimensions: Sequence[str] = (),
        *,
        filters: Sequence[DimensionFilter] = (),
        search_type: str | None = None,
        max_rows: int = MAX_ROWS_PER_REQUEST,
    ) -> list[MetricRow]:
        """Page through Search Analytics with ``startRow`` until ``max_rows``."""
        rows: list[MetricRow] = []
        while len(rows) < max_rows:
            requested = min(MAX_ROWS_PER_REQUEST, max_rows - len(rows))
            page = self.query_rows(
                site_url,
                window,
                dimensions,
                filters=filters,
                search_type=search_type,
                row_limit=requested,
                start_row=len(rows),
            )
            rows.extend(page)
            if len(page) < requested:
                break
        return rows

    def inspect_url(self, site_url: str, url: str, language_code: str = "en-US") -> dict:
        body = {
            "inspectionUrl": url,
            "siteUrl": site_url,
            "languageCode": language_code,
        }

        def make_request(service: Any, target_site: str) -> Any:
            return service.urlInspection().index().inspect(body={**body, "siteUrl": target_site})

        return self._execute(f"urlInspection {url}", site_url, make_request)
