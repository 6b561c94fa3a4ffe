from __future__ import annotations

"""Contracts shared by every endpoint adapter."""

from dataclasses import dataclass
from typing import Iterator, Protocol, runtime_checkable

from ftsBridge.fts.deadline import Deadline
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.vocabulary import EndpointKind


@dataclass(frozen=True, slots=True)
class Hit:
    """One ranked result item as returned by the endpoint."""

    identifier: str
    score: float = 0.0
    snippet: str = ""


@runtime_checkable
class HitStream(Protocol):
    """Lazy, finite, non-restartable sequence of hits in endpoint rank order.

    ``close`` releases the underlying connection and must be idempotent.
    """

    def __iter__(self) -> Iterator[Hit]: ...

    def __next__(self) -> Hit: ...

    def close(self) -> None: ...


@runtime_checkable
class EndpointAdapter(Protocol):
    kind: EndpointKind

    def dispatch(self, call: SearchCall, deadline: Deadline) -> HitStream:
        """Issue the request for ``call`` and return its hit stream.

        Transport failures during dispatch are raised as taxonomy errors.
        """
        ...


__all__ = ["Hit", "HitStream", "EndpointAdapter"]
