from __future__ import annotations

import re
import time
from typing import Any, Callable, Sequence

import requests

from gsc_insights.errors import (
    ErrorKind,
    GSCConfigError,
    GSCError,
    GSCQuotaError,
    GSCTransientError,
    classify_error,
    status_code_of,
)
from gsc_insights.retry import RetryPolicy, call_with_retry

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
CRUX_ENDPOINT = "https://chromeuxreport.googleapis.com/v1/records:queryRecord"

_KEY_PARAM = re.compile(r"([?&])key=[^&\s'\"]+")


class PageSignalsClient:
    """PageSpeed Insights and Chrome UX Report lookups for a single page."""

    def __init__(
        self,
        api_key: str = "",
        timeout: int = 60,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key.strip()
        self.timeout = timeout
        self.retry_policy = retry_policy
        self._sleep = sleep
        self._session = session

    def _redact(self, text: str) -> str:
        text = _KEY_PARAM.sub(r"\1key=REDACTED", text)
        if self.api_key:
            text = text.replace(self.api_key, "REDACTED")
        return text

    def _signals_error(self, exc: Exception, service: str, context: str) -> GSCError:
        """Map a ``requests`` failure to a ``GSCError`` whose text never carries the API key."""
        status = status_code_of(exc)
        response = getattr(exc, "response", None)
        if isinstance(exc, requests.HTTPError) and response is not None:
            detail = f"HTTP {response.status_code} {response.reason or ''}".strip()
        else:
            detail = self._redact(str(exc)) or exc.__class__.__name__
        target = f" for {context}" if context else ""

        kind = classify_error(exc)
        if kind is ErrorKind.PERMISSION_DENIED:
            return GSCError(
                f"{service} rejected the request{target} ({detail}). Check that "
                "PAGESPEED_API_KEY (or GOOGLE_CLOUD_API_KEY) is valid and the API is "
                "enabled for the key's Google Cloud project.",
                code="PERMISSION_ERROR",
                status_code=status,
                kind=ErrorKind.PERMISSION_DENIED,
            )
        if kind is ErrorKind.QUOTA_EXCEEDED:
            return GSCQuotaError(f"{service} quota exceeded{target} ({detail}).")
        if kind is ErrorKind.TRANSIENT:
            return GSCTransientError(f"{service} request failed{target}: {detail}", status)
        return GSCError(f"{service} request failed{target}: {detail}", status_code=status)

    def _request_once(
        self,
        method: str,
        url: str,
        params: Sequence[tuple[str, Any]],
        json_body: dict[str, Any] | None,
        service: str,
        context: str,
    ) -> dict[str, Any]:
        requester = self._session.request if self._session is not None else requests.request
        try:
            response = requester(
                method=method,
                url=url,
                params=list(params),
                json=json_body,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except Exception as exc:
            error = self._signals_error(exc, service, context)
            # The original exception embeds the request URL, API key included.
            raise error from None
        if not isinstance(payload, dict):
            raise GSCError(f"{service} returned an unexpected JSON payload for {context}.")
        return payload

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        service: str,
        params: Sequence[tuple[str, Any]] = (),
        json_body: dict[str, Any] | None = None,
        context: str = "",
    ) -> dict[str, Any]:
        return call_with_retry(
            self._request_once,
            method,
            url,
            params,
            json_body,
            service,
            context,
            policy=self.retry_policy,
            sleep=self._sleep,
            description=f"{method} {url}",
        )

    def run_pagespeed(
        self,
        url: str,
        categories: Sequence[str] = ("performance",),
        strategy: str = "mobile",
        locale: str | None = None,
    ) -> dict[str, Any]:
        params: list[tuple[str, Any]] = [("url", url), ("strategy", strategy)]
        params.extend(("category", category) for category in categories)
        if locale:
            params.append(("locale", locale))
        if self.api_key:
            params.append(("key", self.api_key))
        return self._request_json(
            "GET",
            PAGESPEED_ENDPOINT,
            service="PageSpeed Insights",
            params=params,
            context=url,
        )

    def query_crux_record(
        self,
        url: str | None = None,
        origin: str | None = None,
        form_factor: str | None = None,
        metrics: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        if not self.api_key:
            raise GSCConfigError(
                "PAGESPEED_API_KEY (or GOOGLE_CLOUD_API_KEY) is required for CrUX API lookups."
            )
        if not (url or origin):
            raise GSCConfigError("CrUX lookup needs either a url or an origin.")

        body: dict[str, Any] = {"url": url} if url else {"origin": origin}
        if form_factor:
            body["formFactor"] = form_factor
        if metrics:
            body["metrics"] = list(metrics)
        return self._request_json(
            "POST",
            CRUX_ENDPOINT,
            service="CrUX API",
            params=[("key", self.api_key)],
            json_body=body,
            context=url or origin or "",
        )
