from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from ftsBridge.config import settings as settings_module
from ftsBridge.config.settings import FTSSettings
from ftsBridge.fts.adapters import register_adapter
from ftsBridge.fts.adapters.solr import SolrAdapter
from ftsBridge.fts.vocabulary import EndpointKind
from ftsBridge.kg import sparql_eval

try:
    from pytest_socket import disable_socket, enable_socket, socket_allow_hosts
except Exception:  # pragma: no cover - pytest_socket optional in some environments
    disable_socket = enable_socket = None  # type: ignore[assignment]
    socket_allow_hosts = None  # type: ignore[assignment]


SOLR = "http://h:1/solr"
SOLR_SELECT = f"{SOLR}/select"


@pytest.fixture(autouse=True)
def _disable_network(request: pytest.FixtureRequest):
    """Restrict network access while allowing opt-in socket usage."""

    if os.getenv("PYTEST_ALLOW_NETWORK", "0") == "1" or not (
        disable_socket and enable_socket
    ):
        yield
        return

    allow_marker = request.node.get_closest_marker("network")
    if allow_marker:
        enable_socket()
        try:
            yield
        finally:
            disable_socket()
    else:
        disable_socket()
        try:
            yield
        finally:
            enable_socket()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for name in (
        settings_module.CONFIG_ENV,
        settings_module.ENDPOINT_ENV,
        settings_module.ENDPOINT_TYPE_ENV,
        settings_module.TIMEOUT_ENV,
    ):
        monkeypatch.delenv(name, raising=False)
    settings_module.reset_settings()
    yield
    settings_module.reset_settings()
    sparql_eval.unregister()


@pytest.fixture()
def settings() -> FTSSettings:
    return FTSSettings()


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


class SteppingClock(FakeClock):
    """Clock that moves forward by a fixed step every time it is read."""

    def __init__(self, step_ms: float, start: float = 100.0) -> None:
        super().__init__(start)
        self.step_ms = step_ms

    def __call__(self) -> float:
        now = self.now
        self.advance_ms(self.step_ms)
        return now


class ScriptedStream:
    """Hit stream that advances a fake clock before handing out each hit."""

    def __init__(self, hits, clock, step_ms: float, on_pull=None) -> None:
        self._hits = iter(hits)
        self._clock = clock
        self._step_ms = step_ms
        self._on_pull = on_pull
        self._pulled = 0
        self.closed = 0

    def __iter__(self):
        return self

    def __next__(self):
        hit = next(self._hits)
        self._clock.advance_ms(self._step_ms)
        if self._on_pull is not None:
            self._on_pull(self._pulled)
        self._pulled += 1
        return hit

    def close(self) -> None:
        self.closed += 1


class ScriptedAdapter:
    kind = EndpointKind.SOLR

    def __init__(self, stream: ScriptedStream) -> None:
        self.stream = stream
        self.dispatched = 0

    def dispatch(self, call, deadline):
        self.dispatched += 1
        return self.stream


@pytest.fixture()
def scripted(clock):
    """Install a scripted SOLR adapter; restores the real one afterwards."""

    def install(hits, step_ms: float = 0.0, on_pull=None) -> ScriptedAdapter:
        adapter = ScriptedAdapter(ScriptedStream(hits, clock, step_ms, on_pull))
        register_adapter(EndpointKind.SOLR, lambda **_kw: adapter)
        return adapter

    yield install
    register_adapter(EndpointKind.SOLR, SolrAdapter)


def solr_payload(docs: list[dict], highlighting: dict | None = None) -> dict:
    payload: dict = {
        "responseHeader": {"status": 0, "QTime": 1},
        "response": {"numFound": len(docs), "start": 0, "docs": docs},
    }
    if highlighting is not None:
        payload["highlighting"] = highlighting
    return payload
