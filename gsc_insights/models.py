from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any


@dataclass(frozen=True)
class DateWindow:
    name: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Window '{self.name}' starts after it ends: {self.start} > {self.end}"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def start_date(self) -> str:
        return self.start.isoformat()

    @property
    def end_date(self) -> str:
        return self.end.isoformat()

    @property
    def label(self) -> str:
        return f"{self.start_date}/{self.end_date}"

    def as_dict(self) -> dict[str, str]:
        return {"start_date": self.start_date, "end_date": self.end_date}


@dataclass(frozen=True)
class ComparisonWindows:
    """Two equal-length windows; ``current`` is the recent one."""

    current: DateWindow
    previous: DateWindow


@dataclass(frozen=True)
class MetricRow:
    keys: tuple[str, ...]
    clicks: float
    impressions: float
    ctr: float
    position: float

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "MetricRow":
        return cls(
            keys=tuple(str(value) for value in row.get("keys") or ()),
            clicks=row.get("clicks", 0) or 0,
            impressions=row.get("impressions", 0) or 0,
            ctr=float(row.get("ctr", 0.0) or 0.0),
            position=float(row.get("position", 0.0) or 0.0),
        )

    def dimension(self, index: int, default: str = "") -> str:
        if 0 <= index < len(self.keys):
            return self.keys[index]
        return default

    @property
    def ctr_pct(self) -> float:
        return self.ctr * 100


@dataclass(frozen=True)
class DimensionFilter:
    dimension: str
    expression: str
    operator: str = "equals"

    def as_api(self) -> dict[str, str]:
        return {
            "dimension": self.dimension,
            "operator": self.operator,
            "expression": self.expression,
        }


@dataclass
class SourceResult:
    """Outcome of one remote source: either ``value`` or ``error``."""

    value: Any = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "SourceResult":
        message = str(exc) or exc.__class__.__name__
        code = getattr(exc, "code", None)
        return cls(error=message, code=code if isinstance(code, str) else None)

    def error_payload(self) -> dict[str, str]:
        payload = {"error": self.error or "unknown error"}
        if self.code:
            payload["code"] = self.code
        return payload


@dataclass
class PageHealthSources:
    inspection: SourceResult = field(default_factory=SourceResult)
    analytics: SourceResult = field(default_factory=SourceResult)
    page_speed: SourceResult = field(default_factory=SourceResult)
    crux: SourceResult = field(default_factory=SourceResult)
