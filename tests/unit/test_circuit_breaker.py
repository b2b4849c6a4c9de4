from __future__ import annotations

import asyncio
import threading
import time

import pytest

from docvault_worker.app.domain.circuit_breaker import BreakerPolicy, BreakerState, CircuitBreaker
from docvault_worker.app.domain.errors import CircuitOpenError, ClientError, ServerError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def _ok() -> str:
    return "ok"


async def _fail() -> None:
    raise ServerError("upstream 503", status_code=503)


async def _reject() -> None:
    raise ClientError("bad request", status_code=400)


def _breaker(clock: FakeClock, **policy) -> CircuitBreaker:
    return CircuitBreaker("ocr-service", BreakerPolicy(**policy), clock=clock, excluded=(ClientError,))


async def _fail_times(breaker: CircuitBreaker, n: int) -> None:
    for _ in range(n):
        with pytest.raises(ServerError):
            await breaker.call(_fail)


def test_opens_after_threshold_failures_within_window():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=3, window_seconds=60)
        await _fail_times(breaker, 2)
        assert breaker.state is BreakerState.CLOSED
        await _fail_times(breaker, 1)
        assert breaker.state is BreakerState.OPEN

    asyncio.run(_run())


def test_failures_outside_window_do_not_count():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=3, window_seconds=60)
        await _fail_times(breaker, 2)
        clock.advance(61)
        await _fail_times(breaker, 1)
        assert breaker.state is BreakerState.CLOSED
        assert breaker.failure_count == 1

    asyncio.run(_run())


def test_open_breaker_short_circuits_without_calling():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=30)
        await _fail_times(breaker, 1)
        calls = []

        async def _tracked():
            calls.append(1)

        clock.advance(10)
        with pytest.raises(CircuitOpenError) as excinfo:
            await breaker.call(_tracked)
        assert calls == []
        assert excinfo.value.retry_after_seconds == pytest.approx(20)
        assert breaker.snapshot().cooldown_remaining_seconds == pytest.approx(20)

    asyncio.run(_run())


def test_half_open_success_closes():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=30)
        await _fail_times(breaker, 1)
        clock.advance(30)
        assert await breaker.call(_ok) == "ok"
        assert breaker.state is BreakerState.CLOSED
        assert breaker.failure_count == 0

    asyncio.run(_run())


def test_half_open_failure_reopens_and_restarts_cooldown():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=30)
        await _fail_times(breaker, 1)
        clock.advance(31)
        await _fail_times(breaker, 1)
        assert breaker.state is BreakerState.OPEN
        clock.advance(29)
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

    asyncio.run(_run())


def test_half_open_admits_only_configured_trials():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=5, half_open_max_calls=1)
        await _fail_times(breaker, 1)
        clock.advance(5)
        gate = asyncio.Event()

        async def _slow():
            await gate.wait()
            return "slow"

        trial = asyncio.create_task(breaker.call(_slow))
        await asyncio.sleep(0)
        assert breaker.state is BreakerState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)
        gate.set()
        assert await trial == "slow"
        assert breaker.state is BreakerState.CLOSED

    asyncio.run(_run())


def test_success_threshold_requires_several_trials():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=1, success_threshold=2)
        await _fail_times(breaker, 1)
        clock.advance(1)
        await breaker.call(_ok)
        assert breaker.state is BreakerState.HALF_OPEN
        await breaker.call(_ok)
        assert breaker.state is BreakerState.CLOSED

    asyncio.run(_run())


def test_client_errors_do_not_trip_the_breaker():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=2)
        for _ in range(5):
            with pytest.raises(ClientError):
                await breaker.call(_reject)
        assert breaker.state is BreakerState.CLOSED

    asyncio.run(_run())


def test_cancelled_trial_frees_its_slot():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=1)
        await _fail_times(breaker, 1)
        clock.advance(1)

        async def _hang():
            await asyncio.Event().wait()

        trial = asyncio.create_task(breaker.call(_hang))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial
        assert await breaker.call(_ok) == "ok"
        assert breaker.state is BreakerState.CLOSED

    asyncio.run(_run())


def test_reset_forces_closed():
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1)
        await _fail_times(breaker, 1)
        breaker.reset()
        assert breaker.snapshot().to_dict() == {
            "name": "ocr-service",
            "state": "closed",
            "failure_count": 0,
            "cooldown_remaining_seconds": 0.0,
        }

    asyncio.run(_run())


def test_policy_validation():
    with pytest.raises(ValueError):
        BreakerPolicy(failure_threshold=0)
    with pytest.raises(ValueError):
        BreakerPolicy(half_open_max_calls=0)
    defaults = BreakerPolicy()
    assert (defaults.failure_threshold, defaults.window_seconds, defaults.cooldown_seconds) == (5, 60.0, 30.0)


def test_half_open_admits_one_trial_across_threads():
    clock = FakeClock()
    breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=5)
    asyncio.run(_fail_times(breaker, 1))
    clock.advance(5)

    callers = 8
    start = threading.Barrier(callers)
    release = threading.Event()
    admitted: list[int] = []
    rejected: list[int] = []

    async def _held():
        admitted.append(1)
        while not release.is_set():
            await asyncio.sleep(0.001)
        return "ok"

    def _caller():
        start.wait()
        try:
            asyncio.run(breaker.call(_held))
        except CircuitOpenError:
            rejected.append(1)

    threads = [threading.Thread(target=_caller) for _ in range(callers)]
    for thread in threads:
        thread.start()
    deadline = time.monotonic() + 5
    while len(rejected) < callers - 1 and time.monotonic() < deadline:
        time.sleep(0.001)
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert len(admitted) == 1
    assert len(rejected) == callers - 1
    assert breaker.state is BreakerState.CLOSED


def test_state_changes_are_logged(log_records):
    async def _run():
        clock = FakeClock()
        breaker = _breaker(clock, failure_threshold=1, cooldown_seconds=1)
        await _fail_times(breaker, 1)
        clock.advance(1)
        await breaker.call(_ok)

    asyncio.run(_run())

    changes = [r["extra"] for r in log_records if r["extra"].get("event") == "breaker_state_change"]
    assert [(c["old_state"], c["new_state"]) for c in changes] == [
        ("closed", "open"),
        ("open", "half-open"),
        ("half-open", "closed"),
    ]
    assert {c["breaker"] for c in changes} == {"ocr-service"}
