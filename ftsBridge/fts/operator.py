from __future__ import annotations

"""Bindings iterator that evaluates one search call.

Lifecycle::

    CREATED --open()--> OPEN --next()--> STREAMING --> CLOSED
                          \\                 \\
                           `----> FAILED <----'

``close()`` is legal from every state and idempotent.
"""

import itertools
import time
from enum import Enum
from typing import Iterator

import requests

from ftsBridge.config.settings import FTSSettings, get_settings
from ftsBridge.fts.adapters import HitStream, adapter_for
from ftsBridge.fts.deadline import CancellationToken, Clock, Deadline
from ftsBridge.fts.errors import FTSError, SearchCancelledError, SearchTimeoutError
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.projector import BindingRow, project
from ftsBridge.utils.log_json import JsonLogger

_logger = JsonLogger("fts-operator")
_CALL_IDS = itertools.count(1)


class OperatorState(str, Enum):
    CREATED = "CREATED"
    OPEN = "OPEN"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


class SearchOperator:
    """Pull-based operator over the hits of a single :class:`SearchCall`."""

    def __init__(
        self,
        call: SearchCall,
        *,
        settings: FTSSettings | None = None,
        session: requests.Session | None = None,
        clock: Clock = time.monotonic,
        token: CancellationToken | None = None,
    ) -> None:
        self.call = call
        self.settings = settings or get_settings()
        self.session = session
        self.token = token or CancellationToken()
        self.deadline = Deadline(call.timeout_ms, clock=clock)
        self.call_id = next(_CALL_IDS)
        self.state = OperatorState.CREATED
        self.partial = False
        self.warnings: list[str] = []
        self.error: FTSError | None = None
        self.hits_received = 0
        self.rows_emitted = 0
        self._stream: HitStream | None = None
        self.token.on_cancel(self._release)

    @property
    def produced_variables(self):
        return self.call.produced_variables

    def open(self) -> "SearchOperator":
        if self.state is not OperatorState.CREATED:
            raise RuntimeError(f"Cannot open operator in state {self.state.value}")
        self._check_cancelled()
        try:
            adapter = adapter_for(self.call.endpoint_kind, settings=self.settings, session=self.session)
            self.deadline.start()
            if self.deadline.expired():
                raise SearchTimeoutError(f"Deadline of {self.call.timeout_ms} ms expired before dispatch")
            self._stream = adapter.dispatch(self.call, self.deadline)
        except FTSError as exc:
            self._fail(exc)
            raise
        if self.token.cancelled:
            self._release()
            self._check_cancelled()
        self.state = OperatorState.OPEN
        return self

    def next(self) -> BindingRow | None:
        """Return the next binding row, or ``None`` once the stream is over."""

        self._check_cancelled()
        if self.state is OperatorState.CREATED:
            raise RuntimeError("Operator must be opened before next()")
        if self.state in (OperatorState.CLOSED, OperatorState.FAILED):
            return None
        self.state = OperatorState.STREAMING
        assert self._stream is not None
        while True:
            if self.deadline.expired():
                return self._on_deadline()
            try:
                hit = next(self._stream)
            except StopIteration:
                self.close()
                return None
            except FTSError as exc:
                self._check_cancelled()
                self._fail(exc)
                raise
            if self.deadline.expired():
                return self._on_deadline()
            self._check_cancelled()
            self.hits_received += 1
            row = project(hit, self.call)
            if row is not None:
                self.rows_emitted += 1
                return row

    def close(self) -> None:
        self._release()
        if self.state is not OperatorState.FAILED:
            self.state = OperatorState.CLOSED

    def cancel(self) -> None:
        """Abort in-flight I/O; subsequent ``next()`` calls raise ``Cancelled``."""

        self.token.cancel()

    def __iter__(self) -> Iterator[BindingRow]:
        if self.state is OperatorState.CREATED:
            self.open()
        try:
            while True:
                row = self.next()
                if row is None:
                    return
                yield row
        finally:
            self.close()

    def __enter__(self) -> "SearchOperator":
        if self.state is OperatorState.CREATED:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _on_deadline(self) -> None:
        if self.hits_received == 0:
            exc = SearchTimeoutError(f"Deadline of {self.call.timeout_ms} ms expired before the first hit")
            self._fail(exc)
            raise exc
        self.partial = True
        message = (
            f"fts:search {self.call.query!r} truncated after {self.hits_received} hits: "
            f"deadline of {self.call.timeout_ms} ms expired"
        )
        self.warnings.append(message)
        _logger.warning(
            "fts.truncated",
            call_id=self.call_id,
            endpoint=self.call.endpoint,
            hits_received=self.hits_received,
            rows_emitted=self.rows_emitted,
            timeout_ms=self.call.timeout_ms,
        )
        self.close()
        return None

    def _check_cancelled(self) -> None:
        if self.token.cancelled:
            self._release()
            if self.state is not OperatorState.FAILED:
                self.state = OperatorState.CLOSED
            raise SearchCancelledError("Search call cancelled by the enclosing query")

    def _fail(self, exc: FTSError) -> None:
        self.error = exc
        self.state = OperatorState.FAILED
        self._release()
        _logger.error(
            "fts.failure",
            call_id=self.call_id,
            endpoint=self.call.endpoint,
            kind=exc.kind,
            error=str(exc),
            latency_ms=round(self.deadline.elapsed_ms(), 3),
        )

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()


__all__ = ["OperatorState", "SearchOperator"]
