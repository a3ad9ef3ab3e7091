from __future__ import annotations

import socket
from enum import Enum
from typing import Any

import requests


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    QUOTA_EXCEEDED = "quota_exceeded"
    PERMISSION_DENIED = "permission_denied"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT, ErrorKind.QUOTA_EXCEEDED)


class ConfigurationError(ValueError):
    """Caller supplied an unusable combination of inputs."""


class GSCError(RuntimeError):
    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int | None = None,
        kind: ErrorKind = ErrorKind.FATAL,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.kind = kind


class GSCAuthError(GSCError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Authentication failed. Check GSC_CREDENTIALS_PATH points to a valid "
            "service account key or OAuth client JSON.",
            code="AUTH_ERROR",
            status_code=401,
            kind=ErrorKind.PERMISSION_DENIED,
        )


class GSCQuotaError(GSCError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "API quota exceeded. Wait a moment and retry, or reduce request frequency.",
            code="QUOTA_ERROR",
            status_code=429,
            kind=ErrorKind.QUOTA_EXCEEDED,
        )


class GSCPermissionError(GSCError):
    def __init__(self, site_url: str) -> None:
        super().__init__(
            f'No access to "{site_url}". Verify the service account has been added '
            "as a user in Search Console for this property.",
            code="PERMISSION_ERROR",
            status_code=403,
            kind=ErrorKind.PERMISSION_DENIED,
        )
        self.site_url = site_url


class GSCTransientError(GSCError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(
            message,
            code="TRANSIENT_ERROR",
            status_code=status_code,
            kind=ErrorKind.TRANSIENT,
        )


class GSCConfigError(GSCError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIG_ERROR", kind=ErrorKind.FATAL)


_TRANSIENT_STATUSES = {408, 500, 502, 503, 504}
_TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    socket.timeout,
    requests.ConnectionError,
    requests.Timeout,
)


def status_code_of(exc: BaseException) -> int | None:
    """Pull an HTTP status out of googleapiclient, requests or plain errors."""
    resp = getattr(exc, "resp", None)
    status = getattr(resp, "status", None)
    if status is not None:
        try:
            return int(status)
        except (TypeError, ValueError):
            pass

    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status

    for attr in ("status_code", "status", "code"):
        value: Any = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def classify_error(exc: BaseException) -> ErrorKind:
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind

    message = str(exc).lower()
    status = status_code_of(exc)

    if status == 401 or "authentication" in message or "credentials" in message:
        return ErrorKind.PERMISSION_DENIED
    if status == 429 or "quota" in message or "rate limit" in message:
        return ErrorKind.QUOTA_EXCEEDED
    if (
        status == 403
        or "permission" in message
        or "forbidden" in message
        or "not authorized" in message
    ):
        return ErrorKind.PERMISSION_DENIED
    if status in _TRANSIENT_STATUSES or isinstance(exc, _TRANSIENT_EXCEPTIONS):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def to_gsc_error(exc: BaseException, context: str = "") -> GSCError:
    """Convert a raw library failure into the matching ``GSCError`` subclass."""
    if isinstance(exc, GSCError):
        return exc

    kind = classify_error(exc)
    status = status_code_of(exc)
    if kind is ErrorKind.QUOTA_EXCEEDED:
        return GSCQuotaError()
    if kind is ErrorKind.PERMISSION_DENIED:
        message = str(exc).lower()
        if status == 401 or "authentication" in message or "credentials" in message:
            return GSCAuthError()
        return GSCPermissionError(context or "unknown")
    if kind is ErrorKind.TRANSIENT:
        return GSCTransientError(f"{context}: {exc}" if context else str(exc), status)
    prefix = f"{context}: " if context else ""
    return GSCError(f"{prefix}{exc}", status_code=status)
