import pytest

from gsc_insights.errors import ErrorKind, GSCPermissionError, GSCQuotaError, GSCTransientError
from gsc_insights.retry import RetryPolicy, call_with_retry


class _Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self, *args, **kwargs) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def test_delay_grows_exponentially_and_is_capped() -> None:
    policy = RetryPolicy(base_delay_sec=1.0, jitter_sec=0.5, max_delay_sec=3.0)
    assert policy.delay_for(0, rng=lambda: 0.0) == 1.0
    assert policy.delay_for(1, rng=lambda: 0.0) == 2.0
    assert policy.delay_for(2, rng=lambda: 0.0) == 3.0
    assert policy.delay_for(0, rng=lambda: 1.0) == 1.5


def test_transient_failures_are_retried_until_success() -> None:
    delays: list[float] = []
    func = _Flaky([GSCTransientError("503"), GSCQuotaError()])

    result = call_with_retry(
        func,
        policy=RetryPolicy(max_attempts=3, base_delay_sec=1.0, jitter_sec=0.5),
        sleep=delays.append,
        rng=lambda: 0.0,
    )

    assert result == "ok"
    assert func.calls == 3
    assert delays == [1.0, 2.0]


def test_terminal_failure_propagates_without_retry() -> None:
    delays: list[float] = []
    error = GSCPermissionError("https://example.com/")
    func = _Flaky([error])

    with pytest.raises(GSCPermissionError) as excinfo:
        call_with_retry(func, sleep=delays.append)

    assert excinfo.value is error
    assert func.calls == 1
    assert delays == []


def test_exhaustion_reraises_last_error_unchanged() -> None:
    delays: list[float] = []
    last = GSCTransientError("third")
    func = _Flaky([GSCTransientError("first"), GSCTransientError("second"), last])

    with pytest.raises(GSCTransientError) as excinfo:
        call_with_retry(
            func,
            policy=RetryPolicy(max_attempts=3),
            sleep=delays.append,
            rng=lambda: 0.0,
        )

    assert excinfo.value is last
    assert func.calls == 3
    assert len(delays) == 2


def test_custom_classifier_and_arguments_are_forwarded() -> None:
    seen: list[tuple] = []

    def func(a, b, *, c):
        seen.append((a, b, c))
        if len(seen) == 1:
            raise ValueError("boom")
        return a + b + c

    result = call_with_retry(
        func,
        1,
        2,
        c=3,
        classify=lambda exc: ErrorKind.TRANSIENT,
        sleep=lambda _: None,
    )

    assert result == 6
    assert seen == [(1, 2, 3), (1, 2, 3)]


def test_single_attempt_policy_never_sleeps() -> None:
    delays: list[float] = []
    func = _Flaky([GSCTransientError("503")])

    with pytest.raises(GSCTransientError):
        call_with_retry(func, policy=RetryPolicy(max_attempts=1), sleep=delays.append)

    assert delays == []
