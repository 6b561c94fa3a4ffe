from __future__ import annotations

from urllib.parse import parse_qsl, urlsplit

import pytest
import requests
from rdflib import Variable

from conftest import SOLR, SOLR_SELECT, solr_payload
from ftsBridge.config.settings import FTSSettings, SolrSettings
from ftsBridge.fts.adapters import Hit, adapter_for, register_adapter
from ftsBridge.fts.adapters.solr import SolrAdapter, select_url
from ftsBridge.fts.deadline import Deadline
from ftsBridge.fts.errors import (
    BadEndpointError,
    EndpointRejectedError,
    EndpointUnreachableError,
    MalformedResponseError,
    SearchTimeoutError,
    UnknownEndpointTypeError,
)
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.vocabulary import EndpointKind


def _call(**kwargs) -> SearchCall:
    kwargs.setdefault("endpoint", SOLR)
    return SearchCall(subject=Variable("r"), query="blue !red", **kwargs)


def _sent_params(requests_mock) -> list[tuple[str, str]]:
    return parse_qsl(urlsplit(requests_mock.last_request.url).query, keep_blank_values=True)


@pytest.fixture()
def adapter(settings: FTSSettings) -> SolrAdapter:
    return SolrAdapter(settings=settings, session=requests.Session())


@pytest.mark.parametrize(
    "endpoint,expected",
    [
        ("http://h:1/solr", "http://h:1/solr/select"),
        ("http://h:1/solr/", "http://h:1/solr/select"),
        ("http://h:1/solr/core/select", "http://h:1/solr/core/select"),
    ],
)
def test_select_url(endpoint: str, expected: str) -> None:
    assert select_url(endpoint) == expected


def test_request_wire_format(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    stream = adapter.dispatch(_call(params="defType=dismax&bf=uses^50"), Deadline(None))
    assert list(stream) == []
    assert _sent_params(requests_mock) == [
        ("q", "blue !red"),
        ("fl", "*,score"),
        ("defType", "dismax"),
        ("bf", "uses^50"),
        ("wt", "json"),
    ]
    assert requests_mock.last_request.headers["Accept"] == "application/json"


def test_caller_params_override_defaults(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    list(adapter.dispatch(_call(params="fl=id&wt=json&timeAllowed=50", timeout_ms=1000), Deadline(1000).start()))
    assert _sent_params(requests_mock) == [
        ("q", "blue !red"),
        ("fl", "id"),
        ("wt", "json"),
        ("timeAllowed", "50"),
    ]


def test_snippet_request_enables_highlighting(requests_mock) -> None:
    settings = FTSSettings(solr=SolrSettings(snippet_field="text"))
    adapter = SolrAdapter(settings=settings, session=requests.Session())
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    list(adapter.dispatch(_call(snippet_var=Variable("n")), Deadline(None)))
    sent = dict(_sent_params(requests_mock))
    assert sent["hl"] == "true"
    assert sent["hl.fl"] == "text"


def test_bounded_deadline_forwards_time_allowed(adapter: SolrAdapter, requests_mock, clock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    deadline = Deadline(750, clock=clock).start()
    clock.advance_ms(250)
    list(adapter.dispatch(_call(timeout_ms=750), deadline))
    assert dict(_sent_params(requests_mock))["timeAllowed"] == "500"
    assert requests_mock.last_request.timeout == (0.5, 0.5)


def test_hits_in_endpoint_order_with_defaults(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(
        SOLR_SELECT,
        json=solr_payload(
            [
                {"id": "http://a", "score": 0.9},
                {"id": "http://b", "score": 0.5},
                {"id": ["http://c", "http://d"]},
                {"title": "no id"},
            ]
        ),
    )
    hits = list(adapter.dispatch(_call(), Deadline(None)))
    assert hits == [
        Hit("http://a", 0.9, ""),
        Hit("http://b", 0.5, ""),
        Hit("http://c", 0.0, ""),
    ]


def test_snippets_from_highlighting(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(
        SOLR_SELECT,
        json=solr_payload(
            [{"id": "http://a", "score": 1.0}, {"id": "http://b", "score": 0.4}],
            highlighting={"http://a": {"text": ["...blue...", "...sky..."]}, "http://b": {}},
        ),
    )
    hits = list(adapter.dispatch(_call(), Deadline(None)))
    assert [h.snippet for h in hits] == ["...blue... ...sky...", ""]


def test_configured_field_names(requests_mock) -> None:
    settings = FTSSettings(solr=SolrSettings(id_field="uri", score_field="rank", snippet_field="abstract"))
    adapter = SolrAdapter(settings=settings, session=requests.Session())
    requests_mock.get(SOLR_SELECT, json=solr_payload([{"uri": "http://a", "rank": "2.5", "abstract": "about a"}]))
    (hit,) = adapter.dispatch(_call(), Deadline(None))
    assert hit == Hit("http://a", 2.5, "about a")


def test_stream_is_lazy_and_not_restartable(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([{"id": "http://a"}, {"id": "http://b"}]))
    stream = adapter.dispatch(_call(), Deadline(None))
    assert stream.num_found is None
    assert next(stream).identifier == "http://a"
    assert stream.num_found == 2
    assert [h.identifier for h in stream] == ["http://b"]
    assert list(stream) == []
    assert stream.closed


def test_close_is_idempotent(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([{"id": "http://a"}]))
    stream = adapter.dispatch(_call(), Deadline(None))
    stream.close()
    stream.close()
    assert list(stream) == []


def test_http_error_is_rejected(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, status_code=400, text="undefined field")
    with pytest.raises(EndpointRejectedError) as excinfo:
        adapter.dispatch(_call(), Deadline(None))
    assert excinfo.value.status == 400
    assert excinfo.value.kind == "EndpointRejected"


def test_connection_error_is_unreachable(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, exc=requests.exceptions.ConnectionError("dns failure"))
    with pytest.raises(EndpointUnreachableError):
        adapter.dispatch(_call(), Deadline(None))


def test_read_timeout_is_timeout(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, exc=requests.exceptions.ReadTimeout("slow"))
    with pytest.raises(SearchTimeoutError):
        adapter.dispatch(_call(timeout_ms=1000), Deadline(1000).start())


@pytest.mark.parametrize(
    "kwargs",
    [
        {"text": "<html>not json</html>"},
        {"json": ["a", "list"]},
        {"json": {"response": {"numFound": 0}}},
        {"json": solr_payload([{"id": "http://a", "score": "high"}])},
        {"json": solr_payload([{"id": "http://a", "score": -1}])},
        {"json": solr_payload(["http://a"])},
    ],
)
def test_malformed_responses(adapter: SolrAdapter, requests_mock, kwargs) -> None:
    requests_mock.get(SOLR_SELECT, **kwargs)
    stream = adapter.dispatch(_call(), Deadline(None))
    with pytest.raises(MalformedResponseError):
        list(stream)


def test_missing_endpoint(adapter: SolrAdapter) -> None:
    with pytest.raises(BadEndpointError):
        adapter.dispatch(_call(endpoint=None), Deadline(None))


def test_default_endpoint_from_settings(requests_mock) -> None:
    adapter = SolrAdapter(settings=FTSSettings(default_endpoint=SOLR), session=requests.Session())
    requests_mock.get(SOLR_SELECT, json=solr_payload([{"id": "http://a"}]))
    assert [h.identifier for h in adapter.dispatch(_call(endpoint=None), Deadline(None))] == ["http://a"]


def test_adapter_registry(settings: FTSSettings) -> None:
    assert isinstance(adapter_for(EndpointKind.SOLR, settings=settings), SolrAdapter)

    class FakeKind:
        value = "ELASTIC"

    with pytest.raises(UnknownEndpointTypeError):
        adapter_for(FakeKind(), settings=settings)  # type: ignore[arg-type]

    calls = []
    register_adapter(EndpointKind.SOLR, lambda **kw: calls.append(kw) or "custom")
    try:
        assert adapter_for(EndpointKind.SOLR, settings=settings) == "custom"
        assert calls == [{"settings": settings, "session": None}]
    finally:
        register_adapter(EndpointKind.SOLR, SolrAdapter)


def test_time_allowed_fits_solr_int(adapter: SolrAdapter, requests_mock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    huge = 9223372036854775807
    list(adapter.dispatch(_call(timeout_ms=huge), Deadline(huge).start()))
    assert dict(_sent_params(requests_mock))["timeAllowed"] == "2147483647"
    assert requests_mock.last_request.timeout == (10.0, None)


def test_spent_deadline_is_not_sent(adapter: SolrAdapter, requests_mock, clock) -> None:
    requests_mock.get(SOLR_SELECT, json=solr_payload([]))
    deadline = Deadline(5, clock=clock).start()
    clock.advance_ms(10)
    with pytest.raises(SearchTimeoutError):
        adapter.dispatch(_call(timeout_ms=5), deadline)
    assert not requests_mock.called
