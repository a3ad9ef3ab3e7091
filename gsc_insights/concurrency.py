from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from gsc_insights.models import SourceResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class Operation:
    """A named remote call: ``func(*args, **kwargs)``."""

    label: str
    func: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=dict)

    def invoke(self) -> Any:
        return self.func(*self.args, **dict(self.kwargs))


def _worker_count(count: int, max_workers: int | None) -> int:
    return max(1, min(count, max_workers or DEFAULT_MAX_WORKERS))


def run_parallel(
    operations: Sequence[Operation],
    max_workers: int | None = None,
) -> list[Any]:
    """Run operations concurrently; results follow input order, first failure is raised."""
    if not operations:
        return []
    if len(operations) == 1:
        return [operations[0].invoke()]

    with ThreadPoolExecutor(max_workers=_worker_count(len(operations), max_workers)) as executor:
        futures = [executor.submit(operation.invoke) for operation in operations]
        return [future.result() for future in futures]


def settle_all(
    operations: Mapping[str, Operation],
    max_workers: int | None = None,
) -> dict[str, SourceResult]:
    """Run every operation concurrently and wait for all of them to settle.

    Never raises for an operation failure; each failure is recorded on its own
    ``SourceResult`` so the other sources are still reported.
    """
    if not operations:
        return {}

    results: dict[str, SourceResult] = {}
    with ThreadPoolExecutor(max_workers=_worker_count(len(operations), max_workers)) as executor:
        futures = {name: executor.submit(operation.invoke) for name, operation in operations.items()}
        for name, future in futures.items():
            try:
                results[name] = SourceResult(value=future.result())
            except Exception as exc:
                logger.warning("Source %s (%s) failed: %s", name, operations[name].label, exc)
                results[name] = SourceResult.from_exception(exc)
    return results


class RateLimitedSequencer:
    """Runs operations one at a time with a fixed pause between them.

    Used for quota-bound endpoints such as URL inspection. Every input yields
    exactly one ``SourceResult`` in the same position.
    """

    def __init__(
        self,
        spacing_sec: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if spacing_sec < 0:
            raise ValueError(f"spacing_sec must be >= 0, got {spacing_sec}")
        self.spacing_sec = spacing_sec
        self._sleep = sleep

    def run(self, operations: Sequence[Operation]) -> list[SourceResult]:
        queue = list(operations)
        results: list[SourceResult] = []
        total = len(queue)
        for index, operation in enumerate(queue):
            if index > 0 and self.spacing_sec > 0:
                self._sleep(self.spacing_sec)
            try:
                results.append(SourceResult(value=operation.invoke()))
            except Exception as exc:
                logger.warning(
                    "Sequenced operation %d/%d (%s) failed: %s",
                    index + 1,
                    total,
                    operation.label,
                    exc,
                )
                results.append(SourceResult.from_exception(exc))
        logger.info(
            "Sequenced %d operations (%d failed)",
            total,
            sum(1 for result in results if not result.ok),
        )
        return results
