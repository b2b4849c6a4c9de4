"""Circuit breaker guarding one downstream service boundary.

States:
  CLOSED     calls pass through; failures inside the rolling window are counted and
             reaching `failure_threshold` opens the breaker.
  OPEN       calls fail fast with CircuitOpenError without touching the service.
             The first call after `cooldown_seconds` moves the breaker to HALF_OPEN.
  HALF_OPEN  up to `half_open_max_calls` trial calls are admitted (default one);
             other callers are rejected as if OPEN. `success_threshold` trial
             successes close the breaker and reset the failure count; any trial
             failure reopens it and restarts the cool-down.

One instance is shared by every caller of a boundary and injected where it is used.
State and counters live in pybreaker; admission is guarded by a threading.Lock that
is never held across an await, so the breaker is safe both for coroutines on one
loop and for worker threads.

Exceptions listed in `excluded` are the caller's fault (e.g. 4xx): they are re-raised
but count as a response from a healthy service.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

import pybreaker
from loguru import logger

from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.errors import CircuitOpenError

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerPolicy:
    failure_threshold: int = 5
    window_seconds: float = 60.0
    cooldown_seconds: float = 30.0
    half_open_max_calls: int = 1
    success_threshold: int = 1

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.cooldown_seconds < 0 or self.window_seconds <= 0:
            raise ValueError("cooldown_seconds must be >= 0 and window_seconds > 0")

    @classmethod
    def from_settings(cls, settings: Any) -> "BreakerPolicy":
        """Read the `breaker_*` fields shared by the worker and API settings."""
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            window_seconds=settings.breaker_window_seconds,
            cooldown_seconds=settings.breaker_cooldown_seconds,
            half_open_max_calls=settings.breaker_half_open_max_calls,
            success_threshold=settings.breaker_success_threshold,
        )


@dataclass(frozen=True)
class BreakerSnapshot:
    name: str
    state: BreakerState
    failure_count: int
    cooldown_remaining_seconds: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "cooldown_remaining_seconds": round(self.cooldown_remaining_seconds, 3),
        }


_STATES = {
    pybreaker.STATE_CLOSED: BreakerState.CLOSED,
    pybreaker.STATE_OPEN: BreakerState.OPEN,
    pybreaker.STATE_HALF_OPEN: BreakerState.HALF_OPEN,
}


def _reraise(error: BaseException) -> None:
    raise error


def _noop() -> None:
    return None


class _StateChangeLogger(pybreaker.CircuitBreakerListener):
    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        logger.bind(
            service_name=SERVICE_NAME,
            event="breaker_state_change",
            breaker=cb.name,
            old_state=getattr(old_state, "name", None),
            new_state=getattr(new_state, "name", None),
        ).warning("")


class CircuitBreaker:
    """Async admission in front of a pybreaker.CircuitBreaker.

    pybreaker owns the state, the failure and success counters and the excluded
    exception types. Its own reset timer reads the wall clock, so the cool-down is
    timed here with `clock` and the OPEN -> HALF_OPEN move is made explicitly.
    """

    def __init__(
        self,
        name: str,
        policy: BreakerPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        excluded: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._name = name
        self._policy = policy or BreakerPolicy()
        self._clock = clock
        self._lock = threading.Lock()
        self._storage = pybreaker.CircuitMemoryStorage(pybreaker.STATE_CLOSED)
        self._breaker = pybreaker.CircuitBreaker(
            fail_max=self._policy.failure_threshold,
            reset_timeout=self._policy.cooldown_seconds,
            success_threshold=self._policy.success_threshold,
            exclude=list(excluded),
            listeners=[_StateChangeLogger()],
            state_storage=self._storage,
            name=name,
        )
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None
        # Trial admissions carry the generation they were admitted in, so a late
        # result from an earlier HALF_OPEN period cannot decide the current one.
        self._generation = 0
        self._trials_in_flight = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> BreakerPolicy:
        return self._policy

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._failures)

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            now = self._clock()
            self._prune(now)
            state = self._state()
            remaining = 0.0
            if state is BreakerState.OPEN and self._opened_at is not None:
                remaining = max(0.0, self._policy.cooldown_seconds - (now - self._opened_at))
            return BreakerSnapshot(self._name, state, len(self._failures), remaining)

    def reset(self) -> None:
        """Force the breaker closed (operator action)."""
        with self._lock:
            self._breaker.close()
            self._failures.clear()
            self._opened_at = None
            self._trials_in_flight = 0

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        trial = self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            self._settle(trial, exc)
            raise
        except BaseException:
            self._release(trial)
            raise
        self._settle(trial, None)
        return result

    def _state(self) -> BreakerState:
        return _STATES[self._breaker.current_state]

    def _admit(self) -> int | None:
        """Admit one call. Returns the HALF_OPEN generation for trial calls, else None."""
        with self._lock:
            state = self._state()
            if state is BreakerState.OPEN:
                now = self._clock()
                elapsed = now - (self._opened_at if self._opened_at is not None else now)
                if elapsed < self._policy.cooldown_seconds:
                    raise CircuitOpenError(
                        self._name,
                        retry_after_seconds=self._policy.cooldown_seconds - elapsed,
                    )
                self._breaker.half_open()
                self._storage.reset_success_counter()
                self._generation += 1
                self._trials_in_flight = 0
                state = BreakerState.HALF_OPEN

            if state is BreakerState.HALF_OPEN:
                if self._trials_in_flight >= self._policy.half_open_max_calls:
                    raise CircuitOpenError(self._name)
                self._trials_in_flight += 1
                return self._generation
            return None

    def _settle(self, trial: int | None, error: Exception | None) -> None:
        with self._lock:
            state = self._state()
            if trial is None and state is not BreakerState.CLOSED:
                return
            if trial is not None:
                if trial != self._generation or state is not BreakerState.HALF_OPEN:
                    return
                self._trials_in_flight = max(0, self._trials_in_flight - 1)

            now = self._clock()
            counted = error is not None and self._breaker.is_system_error(error)
            if counted and state is BreakerState.CLOSED:
                self._sync_counter(now)
            self._record(error)

            if counted:
                self._failures.append(now)
            elif state is BreakerState.CLOSED or self._state() is BreakerState.CLOSED:
                self._failures.clear()
            if self._state() is BreakerState.OPEN:
                self._opened_at = now
                self._trials_in_flight = 0

    def _release(self, trial: int | None) -> None:
        with self._lock:
            if trial is not None and trial == self._generation and self._state() is BreakerState.HALF_OPEN:
                self._trials_in_flight = max(0, self._trials_in_flight - 1)

    def _record(self, error: Exception | None) -> None:
        """Feed one result to pybreaker; a trip surfaces there as CircuitBreakerError."""
        try:
            if error is None:
                self._breaker.call(_noop)
            else:
                self._breaker.call(_reraise, error)
        except pybreaker.CircuitBreakerError:
            pass
        except Exception as exc:
            if exc is not error:
                raise

    def _sync_counter(self, now: float) -> None:
        # pybreaker counts consecutive failures; keep it equal to the failures still
        # inside the rolling window.
        self._prune(now)
        if self._storage.counter != len(self._failures):
            self._storage.reset_counter()
            for _ in self._failures:
                self._storage.increment_counter()

    def _prune(self, now: float) -> None:
        # Only the CLOSED state counts against the window; once open the count is kept
        # for reporting until the breaker closes again.
        if self._state() is not BreakerState.CLOSED:
            return
        horizon = now - self._policy.window_seconds
        while self._failures and self._failures[0] < horizon:
            self._failures.popleft()
