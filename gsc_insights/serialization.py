from __future__ import annotations

import json
import math
from dataclasses import asdict, is_dataclass
from datetime import date
from enum import Enum
from typing import Any


def _float_to_json(value: float) -> float | str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def to_jsonable(value: Any) -> Any:
    """Convert a report payload into JSON-safe primitives.

    Non-finite floats become their textual names instead of being dropped.
    """
    if isinstance(value, bool) or value is None or isinstance(value, (int, str)):
        return value
    if isinstance(value, float):
        return _float_to_json(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(item) for item in value]
    return str(value)


def to_json(payload: Any, indent: int | None = 2) -> str:
    return json.dumps(to_jsonable(payload), ensure_ascii=False, indent=indent, allow_nan=False)
