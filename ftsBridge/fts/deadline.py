from __future__ import annotations

"""Deadlines, cancellation and failure classification for search calls."""

import math
import time
from threading import Event, Lock
from typing import Callable

import requests
from urllib3.exceptions import ProtocolError, ReadTimeoutError

from ftsBridge.fts.errors import (
    EndpointRejectedError,
    EndpointUnreachableError,
    FTSError,
    MalformedResponseError,
    SearchTimeoutError,
)

Clock = Callable[[], float]

# Budgets above this are treated as unbounded for socket reads; larger values
# overflow the platform timestamp in urllib3.
MAX_REQUEST_TIMEOUT_S = 24 * 60 * 60.0


class Deadline:
    """Absolute deadline derived from a timeout in milliseconds.

    The timer starts when :meth:`start` is called, i.e. when the request is
    dispatched. ``timeout_ms=None`` means unbounded.
    """

    def __init__(self, timeout_ms: int | None, *, clock: Clock = time.monotonic) -> None:
        if timeout_ms is not None and timeout_ms < 0:
            raise ValueError("timeout_ms must be non-negative")
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._started_at: float | None = None

    @property
    def bounded(self) -> bool:
        return self.timeout_ms is not None

    @property
    def started(self) -> bool:
        return self._started_at is not None

    def start(self) -> "Deadline":
        if self._started_at is None:
            self._started_at = self._clock()
        return self

    def elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        return (self._clock() - self._started_at) * 1000.0

    def remaining_ms(self) -> float:
        if self.timeout_ms is None:
            return math.inf
        return max(0.0, self.timeout_ms - self.elapsed_ms())

    def expired(self) -> bool:
        if self.timeout_ms is None or self._started_at is None:
            return False
        return self.remaining_ms() <= 0.0

    def request_timeout(self, connect_timeout_s: float | None = None) -> tuple[float | None, float | None] | None:
        """Translate the remaining budget into a ``requests`` timeout tuple."""

        if self.timeout_ms is None:
            if connect_timeout_s is None:
                return None
            return (connect_timeout_s, None)
        remaining_s = self.remaining_ms() / 1000.0
        if remaining_s <= 0.0:
            raise SearchTimeoutError(f"Deadline of {self.timeout_ms} ms expired before the request was sent")
        if remaining_s > MAX_REQUEST_TIMEOUT_S:
            return (min(connect_timeout_s or MAX_REQUEST_TIMEOUT_S, MAX_REQUEST_TIMEOUT_S), None)
        connect = remaining_s if connect_timeout_s is None else min(connect_timeout_s, remaining_s)
        return (connect, remaining_s)


class CancellationToken:
    """Thread-safe cancellation flag shared between a query and its operators."""

    def __init__(self) -> None:
        self._event = Event()
        self._lock = Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, immediately if already cancelled."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


def _is_read_timeout(exc: BaseException) -> bool:
    # requests wraps body-read timeouts in ConnectionError.
    for arg in getattr(exc, "args", ()):
        if isinstance(arg, ReadTimeoutError):
            return True
    return False


def classify_failure(exc: BaseException, *, endpoint: str | None = None) -> FTSError:
    """Map a transport or decoding failure onto the error taxonomy."""

    if isinstance(exc, FTSError):
        return exc
    where = f" ({endpoint})" if endpoint else ""
    if isinstance(exc, requests.Timeout) or _is_read_timeout(exc):
        return SearchTimeoutError(f"Search endpoint timed out{where}: {exc}")
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return EndpointRejectedError(f"Search endpoint rejected the request{where}: {exc}", status=status)
    if isinstance(exc, (requests.ConnectionError, ProtocolError)):
        return EndpointUnreachableError(f"Search endpoint unreachable{where}: {exc}")
    if isinstance(exc, ValueError):
        return MalformedResponseError(f"Unparseable search response{where}: {exc}")
    if isinstance(exc, requests.RequestException):
        return EndpointUnreachableError(f"Search request failed{where}: {exc}")
    raise exc


__all__ = ["Clock", "MAX_REQUEST_TIMEOUT_S", "Deadline", "CancellationToken", "classify_failure"]
