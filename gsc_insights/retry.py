from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from gsc_insights.errors import ErrorKind, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_sec: float = 1.0
    jitter_sec: float = 0.5
    max_delay_sec: float = 30.0

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt counts from 0)."""
        backoff = min(self.max_delay_sec, self.base_delay_sec * (2**attempt))
        return backoff + rng() * self.jitter_sec


DEFAULT_RETRY_POLICY = RetryPolicy()


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    policy: RetryPolicy | None = None,
    classify: Callable[[BaseException], ErrorKind] = classify_error,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
    description: str = "",
    **kwargs: Any,
) -> T:
    """Run ``func`` and retry transient or quota failures with exponential backoff.

    Terminal failures and the failure of the last attempt are re-raised as-is.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    attempts = max(1, policy.max_attempts)
    label = description or getattr(func, "__name__", "remote call")

    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            kind = classify(exc)
            if not kind.retryable or attempt + 1 >= attempts:
                raise
            delay = policy.delay_for(attempt, rng=rng)
            logger.warning(
                "%s failed (%s, attempt %d/%d): %s; retrying in %.2fs",
                label,
                kind.value,
                attempt + 1,
                attempts,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1
