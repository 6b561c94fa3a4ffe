from __future__ import annotations

"""Solr endpoint adapter.

Requests go to ``{endpoint}/select`` as a GET with the search string in
``q``, the caller's ``fts:params`` after it and ``wt=json`` unless the caller
chose a writer. The body is decoded on the first pull from the hit stream.
"""

import logging
import math
from typing import Any, Iterator, Mapping

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from ftsBridge.config.settings import FTSSettings, SolrSettings, get_settings
from ftsBridge.fts.deadline import Deadline, classify_failure
from ftsBridge.fts.errors import BadEndpointError, EndpointRejectedError, MalformedResponseError
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.vocabulary import EndpointKind
from ftsBridge.utils.http_session import shared_session
from ftsBridge.utils.log_json import JsonLogger

from .base import Hit

logger = logging.getLogger(__name__)
_logger = JsonLogger("fts-solr")

# timeAllowed is a Java int on the Solr side.
SOLR_MAX_INT = 2**31 - 1


def select_url(endpoint: str) -> str:
    base = endpoint.strip().rstrip("/")
    if base.endswith("/select"):
        return base
    return f"{base}/select"


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_text(value: Any) -> str:
    value = _first(value)
    if value is None:
        return ""
    return str(value)


def _as_score(value: Any, doc_id: str) -> float:
    value = _first(value)
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise MalformedResponseError(f"Non-numeric score for {doc_id!r}: {value!r}")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"Non-numeric score for {doc_id!r}: {value!r}") from None
    if not math.isfinite(score) or score < 0:
        raise MalformedResponseError(f"Score for {doc_id!r} must be finite and >= 0, got {value!r}")
    return score


class SolrHitStream:
    """Hit stream over one Solr ``select`` response."""

    def __init__(
        self,
        response: requests.Response,
        *,
        url: str,
        fields: SolrSettings,
    ) -> None:
        self._response = response
        self._url = url
        self._fields = fields
        self._hits: Iterator[Hit] | None = None
        self._closed = False
        self.num_found: int | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "SolrHitStream":
        return self

    def __next__(self) -> Hit:
        if self._closed:
            raise StopIteration
        if self._hits is None:
            self._hits = self._generate()
        return next(self._hits)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()

    def _decode(self) -> Mapping[str, Any]:
        try:
            body = self._response.content
        except (requests.RequestException, Urllib3HTTPError) as exc:
            raise classify_failure(exc, endpoint=self._url) from exc
        try:
            payload = self._response.json() if body else None
        except ValueError as exc:
            content_type = self._response.headers.get("Content-Type", "")
            _logger.error(
                "fts.invalid_json",
                endpoint=self._url,
                content_type=content_type,
                preview=(self._response.text or "")[:200],
            )
            raise MalformedResponseError(f"Invalid JSON from Solr endpoint {self._url}") from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Solr response from {self._url} is not a JSON object")
        response = payload.get("response")
        if not isinstance(response, dict) or not isinstance(response.get("docs"), list):
            raise MalformedResponseError(f"Solr response from {self._url} lacks response.docs")
        return payload

    def _generate(self) -> Iterator[Hit]:
        payload = self._decode()
        response = payload["response"]
        docs = response["docs"]
        num_found = response.get("numFound")
        self.num_found = num_found if isinstance(num_found, int) else None
        highlighting = payload.get("highlighting")
        if not isinstance(highlighting, dict):
            highlighting = {}
        _logger.info(
            "fts.response",
            endpoint=self._url,
            status=self._response.status_code,
            result_count=len(docs),
            num_found=self.num_found,
        )
        for doc in docs:
            if not isinstance(doc, dict):
                raise MalformedResponseError(f"Solr document is not an object: {doc!r}")
            hit = self._to_hit(doc, highlighting)
            if hit is not None:
                yield hit
        self.close()

    def _to_hit(self, doc: Mapping[str, Any], highlighting: Mapping[str, Any]) -> Hit | None:
        identifier = _as_text(doc.get(self._fields.id_field))
        if not identifier:
            logger.debug("Skipping Solr document without %r: %r", self._fields.id_field, doc)
            return None
        score = _as_score(doc.get(self._fields.score_field), identifier)
        return Hit(identifier=identifier, score=score, snippet=self._snippet(doc, identifier, highlighting))

    def _snippet(self, doc: Mapping[str, Any], identifier: str, highlighting: Mapping[str, Any]) -> str:
        field = self._fields.snippet_field
        entry = highlighting.get(identifier)
        if isinstance(entry, dict) and entry:
            fragments = entry.get(field) if field and field in entry else next(iter(entry.values()))
            if isinstance(fragments, (list, tuple)):
                return " ".join(str(f) for f in fragments if f is not None)
            if fragments is not None:
                return str(fragments)
        if field and field in doc:
            return _as_text(doc.get(field))
        return ""


class SolrAdapter:
    """Translate a :class:`SearchCall` into a Solr ``select`` request."""

    kind = EndpointKind.SOLR

    def __init__(
        self,
        *,
        settings: FTSSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or shared_session()

    @property
    def fields(self) -> SolrSettings:
        return self.settings.solr

    def resolve_endpoint(self, call: SearchCall) -> str:
        endpoint = call.endpoint or self.settings.default_endpoint
        if not endpoint:
            raise BadEndpointError("No Solr endpoint given and no default endpoint configured")
        return select_url(endpoint)

    def build_params(self, call: SearchCall, deadline: Deadline) -> list[tuple[str, str]]:
        """Return request parameters in wire order.

        Adapter defaults are skipped when the caller's params set the same key.
        """

        user = call.param_pairs
        user_keys = {key for key, _value in user}
        defaults: list[tuple[str, str]] = [("fl", self.fields.default_fl)]
        if call.snippet_var is not None:
            defaults.append(("hl", "true"))
            if self.fields.snippet_field:
                defaults.append(("hl.fl", self.fields.snippet_field))

        pairs: list[tuple[str, str]] = [("q", call.query)]
        pairs.extend((key, value) for key, value in defaults if key not in user_keys)
        pairs.extend(user)
        if "wt" not in user_keys:
            pairs.append(("wt", "json"))
        if deadline.bounded and self.fields.forward_time_allowed and "timeAllowed" not in user_keys:
            pairs.append(("timeAllowed", str(min(int(deadline.remaining_ms()), SOLR_MAX_INT))))
        return pairs

    def dispatch(self, call: SearchCall, deadline: Deadline) -> SolrHitStream:
        url = self.resolve_endpoint(call)
        # Raises Timeout when the budget ran out between open() and here.
        timeout = deadline.request_timeout(self.settings.connect_timeout_s)
        params = self.build_params(call, deadline)
        _logger.info("fts.request", endpoint=url, query=call.query, params=params, timeout=timeout)
        try:
            resp = self.session.get(
                url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            failure = classify_failure(exc, endpoint=url)
            _logger.error("fts.failure", endpoint=url, kind=failure.kind, error=str(exc))
            raise failure from exc
        if resp.status_code >= 400:
            try:
                preview = (resp.text or "")[:200]
            except requests.RequestException:
                preview = ""
            finally:
                resp.close()
            _logger.error("fts.failure", endpoint=url, status=resp.status_code, kind="EndpointRejected", preview=preview)
            raise EndpointRejectedError(
                f"Solr endpoint {url} answered HTTP {resp.status_code}: {preview}",
                status=resp.status_code,
            )
        return SolrHitStream(resp, url=url, fields=self.fields)


__all__ = ["select_url", "SolrHitStream", "SolrAdapter"]
