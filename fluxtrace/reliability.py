"""Concurrency limiting, timeouts, retry classification and circuit breaking.

All state lives on instances: a :class:`CircuitBreaker` and a
:class:`FifoSemaphore` are created once per process by the service and can
be reset or replaced in tests.  Time is read through an injectable clock.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import deque
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from enum import Enum
from typing import Any, Callable, Deque, Optional

import requests

from .errors import LLMCallError, LLMError, LLMRateLimited, LLMTimeout, LLMTransient

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

TRANSIENT_STATUSES = (500, 502, 503, 504)
_RETRYABLE_MESSAGE = re.compile(r"429|rate limit|timeout|timed out|ECONNRESET|ETIMEDOUT|EAI_AGAIN", re.IGNORECASE)


# ===================================================================
# Circuit breaker
# ===================================================================

class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Three-state breaker guarding the reasoning collaborator.

    ``failure_threshold`` consecutive failures open the circuit for
    ``open_seconds``.  Afterwards a single probe is let through
    (HALF_OPEN); its success closes the circuit, its failure reopens it.
    """

    def __init__(self, failure_threshold: int = 3, open_seconds: float = 30.0, clock: Optional[Clock] = None):
        self.failure_threshold = failure_threshold
        self.open_seconds = open_seconds
        self.clock = clock or time.monotonic
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failures = 0
            self.opened_at = 0.0
            self._probe_in_flight = False

    def allow(self) -> bool:
        """Whether a call may be attempted now; claims the probe in HALF_OPEN."""
        with self._lock:
            if self.state is CircuitState.OPEN:
                if self.clock() - self.opened_at < self.open_seconds:
                    return False
                self._transition(CircuitState.HALF_OPEN)
                self._probe_in_flight = True
                return True
            if self.state is CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    return False
                self._probe_in_flight = True
                return True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self.state is not CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
            self.failures = 0
            self.opened_at = 0.0
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self.failures += 1
            self._probe_in_flight = False
            if self.state is CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
                self.opened_at = self.clock()
                if self.state is not CircuitState.OPEN:
                    self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        logger.info("Circuit %s -> %s (failures=%d)", self.state.value, state.value, self.failures)
        self.state = state


# ===================================================================
# Concurrency
# ===================================================================

class FifoSemaphore:
    """Counting semaphore whose waiters are released in arrival order."""

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._active = 0
        self._lock = threading.Lock()
        self._waiters: Deque[threading.Event] = deque()

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def acquire(self) -> None:
        with self._lock:
            if self._active < self.limit and not self._waiters:
                self._active += 1
                return
            event = threading.Event()
            self._waiters.append(event)
        # Slot is handed over by release() before the event is set
        event.wait()

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                self._waiters.popleft().set()
            else:
                self._active -= 1

    def __enter__(self) -> "FifoSemaphore":
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


# ===================================================================
# Timeout and error classification
# ===================================================================

def call_with_timeout(fn: Callable[[], Any], timeout: float) -> Any:
    """Run *fn* on its own daemon thread, raising :class:`LLMTimeout` past *timeout*.

    The thread is not interrupted; a timed-out call keeps running until the
    provider's own request timeout and its result is discarded.  Abandoned
    calls never delay later ones.
    """
    future: Future = Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn())
        except Exception as exc:
            future.set_exception(exc)

    threading.Thread(target=run, name="llm-call", daemon=True).start()
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        raise LLMTimeout(f"LLM call exceeded {timeout:.1f}s") from exc


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    response = getattr(exc, "response", None)
    if status is None and response is not None:
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> LLMError:
    """Map any collaborator failure onto the LLM error taxonomy."""
    if isinstance(exc, LLMError):
        return exc
    if isinstance(exc, (requests.Timeout, TimeoutError)):
        return LLMTimeout(str(exc))
    if isinstance(exc, (requests.ConnectionError, ConnectionError)):
        return LLMTransient(str(exc))
    status = _status_of(exc)
    if status == 429:
        return LLMRateLimited(str(exc), status=status)
    if status in TRANSIENT_STATUSES:
        return LLMTransient(str(exc), status=status)
    message = str(exc)
    if _RETRYABLE_MESSAGE.search(message):
        if "429" in message or "rate limit" in message.lower():
            return LLMRateLimited(message, status=status)
        if "time" in message.lower():
            return LLMTimeout(message, status=status)
        return LLMTransient(message, status=status)
    return LLMCallError(message, status=status)
