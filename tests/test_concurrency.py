import threading

import pytest

from gsc_insights.concurrency import Operation, RateLimitedSequencer, run_parallel, settle_all
from gsc_insights.errors import GSCConfigError


def _fail(message: str):
    raise RuntimeError(message)


def test_sequencer_keeps_order_and_captures_failures() -> None:
    events: list[str] = []

    def record(name: str) -> str:
        events.append(f"call {name}")
        if name == "b":
            raise GSCConfigError("no key")
        return name.upper()

    def fake_sleep(seconds: float) -> None:
        events.append(f"sleep {seconds}")

    sequencer = RateLimitedSequencer(spacing_sec=1.0, sleep=fake_sleep)
    results = sequencer.run([Operation(name, record, (name,)) for name in ("a", "b", "c")])

    assert [result.value for result in results] == ["A", None, "C"]
    assert results[1].ok is False
    assert results[1].error == "no key"
    assert results[1].code == "CONFIG_ERROR"
    assert events == ["call a", "sleep 1.0", "call b", "sleep 1.0", "call c"]


def test_sequencer_never_overlaps_operations() -> None:
    active = 0
    peak = 0
    lock = threading.Lock()

    def work() -> None:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        with lock:
            active -= 1

    RateLimitedSequencer(spacing_sec=0, sleep=lambda _: None).run(
        [Operation(str(index), work) for index in range(5)]
    )
    assert peak == 1


def test_sequencer_empty_input() -> None:
    assert RateLimitedSequencer(sleep=lambda _: None).run([]) == []


def test_sequencer_rejects_negative_spacing() -> None:
    with pytest.raises(ValueError):
        RateLimitedSequencer(spacing_sec=-1)


def test_settle_all_isolates_failures() -> None:
    results = settle_all(
        {
            "inspection": Operation("inspection", lambda: {"verdict": "PASS"}),
            "crux": Operation("crux", _fail, ("crux down",)),
            "page_speed": Operation("page speed", lambda: {"score": 0.9}),
        }
    )

    assert set(results) == {"inspection", "crux", "page_speed"}
    assert results["inspection"].value == {"verdict": "PASS"}
    assert results["page_speed"].ok
    assert not results["crux"].ok
    assert results["crux"].error_payload() == {"error": "crux down"}


def test_run_parallel_preserves_input_order() -> None:
    operations = [Operation(str(value), lambda v=value: v * 10) for value in range(6)]
    assert run_parallel(operations, max_workers=3) == [0, 10, 20, 30, 40, 50]


def test_run_parallel_raises_first_failure() -> None:
    with pytest.raises(RuntimeError, match="period b"):
        run_parallel([Operation("a", lambda: 1), Operation("b", _fail, ("period b",))])
