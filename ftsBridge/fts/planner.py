from __future__ import annotations

"""Group vocabulary patterns into validated search calls.

Every check here runs before an endpoint is contacted, so a query that fails
planning never causes network I/O.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Container, Iterable, Sequence, Tuple
from urllib.parse import parse_qsl, urlsplit

from rdflib import BNode, Literal, URIRef, Variable
from rdflib.namespace import XSD
from rdflib.term import Node

from ftsBridge.config.settings import FTSSettings, get_settings
from ftsBridge.fts.errors import (
    BadEndpointError,
    BoundSubjectError,
    DuplicateSearchError,
    InvalidVocabularyError,
    MissingSearchError,
)
from ftsBridge.fts.vocabulary import (
    DEFAULT_TARGET_KIND,
    VOCABULARY,
    EndpointKind,
    TargetKind,
    Vocabulary,
)

Triple = Tuple[Node, Node, Node]

_ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True, slots=True)
class OutputManifest:
    """Variables a search call produces, subject first."""

    subject: Variable | BNode
    score: Variable | None = None
    snippet: Variable | None = None

    @property
    def variables(self) -> tuple[Variable | BNode, ...]:
        return tuple(v for v in (self.subject, self.score, self.snippet) if v is not None)


@dataclass(frozen=True, slots=True)
class SearchCall:
    subject: Variable | BNode
    query: str
    endpoint: str | None = None
    endpoint_kind: EndpointKind = EndpointKind.SOLR
    params: str | None = None
    target: TargetKind = DEFAULT_TARGET_KIND
    timeout_ms: int | None = None
    score_var: Variable | None = None
    snippet_var: Variable | None = None

    @property
    def manifest(self) -> OutputManifest:
        return OutputManifest(self.subject, self.score_var, self.snippet_var)

    @property
    def produced_variables(self) -> tuple[Variable | BNode, ...]:
        return self.manifest.variables

    @property
    def param_pairs(self) -> list[tuple[str, str]]:
        return parse_params(self.params)

    def describe(self) -> dict[str, object]:
        return {
            "subject": str(self.subject),
            "query": self.query,
            "endpoint": self.endpoint,
            "endpoint_type": self.endpoint_kind.value,
            "params": self.params,
            "target_type": self.target.value,
            "timeout_ms": self.timeout_ms,
            "score": str(self.score_var) if self.score_var is not None else None,
            "snippet": str(self.snippet_var) if self.snippet_var is not None else None,
        }


def parse_params(params: str | None) -> list[tuple[str, str]]:
    """Decode a caller-encoded ``fts:params`` string into key/value pairs."""

    if not params:
        return []
    pairs: list[tuple[str, str]] = []
    for segment in params.lstrip("?&").split("&"):
        if not segment:
            continue
        if "=" not in segment:
            raise InvalidVocabularyError(f"fts:params segment {segment!r} is not key=value")
        decoded = parse_qsl(segment, keep_blank_values=True)
        if not decoded or not decoded[0][0].strip():
            raise InvalidVocabularyError(f"fts:params segment {segment!r} has an empty key")
        pairs.extend(decoded)
    return pairs


def validate_endpoint(url: str) -> str:
    """Return ``url`` stripped if it is an absolute http(s) URL with host and port."""

    text = str(url or "").strip()
    try:
        parts = urlsplit(text)
        parts.port  # raises ValueError for an out-of-range or non-numeric port
    except ValueError as exc:
        raise BadEndpointError(f"Malformed endpoint URL: {url!r}") from exc
    if parts.scheme.lower() not in _ALLOWED_SCHEMES or not parts.hostname:
        raise BadEndpointError(f"Endpoint must be an absolute http(s) URL with a host: {url!r}")
    if parts.port is None:
        raise BadEndpointError(f"Endpoint URL must name a port: {url!r}")
    return text


def _is_plain_literal(term: Node) -> bool:
    return isinstance(term, Literal) and term.datatype in (None, XSD.string)


def _literal_text(term: Node, local_name: str) -> str:
    if not isinstance(term, Literal):
        raise InvalidVocabularyError(f"fts:{local_name} expects a literal, got {term!r}")
    return str(term)


def _parse_timeout(term: Node, default: int | None) -> int | None:
    # Invalid values fall back to the default rather than failing the query.
    if not isinstance(term, Literal):
        return default
    try:
        value = int(str(term).strip())
    except ValueError:
        return default
    return value if value >= 0 else default


def _single(objects: Sequence[Node], local_name: str) -> Node | None:
    if not objects:
        return None
    if len(objects) > 1:
        raise InvalidVocabularyError(f"fts:{local_name} may appear at most once per search")
    return objects[0]


def _output_variable(term: Node | None, local_name: str) -> Variable | None:
    if term is None:
        return None
    if not isinstance(term, Variable):
        raise InvalidVocabularyError(f"fts:{local_name} expects a variable, got {term!r}")
    return term


def split_patterns(
    triples: Iterable[Triple],
    vocabulary: Vocabulary = VOCABULARY,
) -> tuple[list[Triple], list[Triple]]:
    """Separate vocabulary patterns from ordinary graph patterns.

    Duplicate patterns are collapsed since a basic graph pattern is a set.
    """

    search: list[Triple] = []
    other: list[Triple] = []
    seen: set[Triple] = set()
    for triple in triples:
        triple = tuple(triple)  # type: ignore[assignment]
        if triple in seen:
            continue
        seen.add(triple)
        if vocabulary.local_name(triple[1]) is None:
            other.append(triple)
        else:
            search.append(triple)
    return search, other


def _build_call(
    subject: Node,
    by_name: dict[str, list[Node]],
    bound: Container[Node],
    settings: FTSSettings,
) -> SearchCall:
    if not isinstance(subject, (Variable, BNode)) or subject in bound:
        raise BoundSubjectError(f"Search subject must be an unbound variable, got {subject!r}")

    searches = by_name.get("search", [])
    if not searches:
        raise MissingSearchError(f"No fts:search pattern for {subject.n3()}")
    if len(searches) > 1:
        raise DuplicateSearchError(f"Multiple fts:search patterns for {subject.n3()}")
    search = searches[0]
    if not _is_plain_literal(search):
        raise InvalidVocabularyError(f"fts:search expects a bound plain literal, got {search!r}")

    endpoint_term = _single(by_name.get("endpoint", []), "endpoint")
    if endpoint_term is not None:
        if not isinstance(endpoint_term, Literal):
            raise BadEndpointError(f"fts:endpoint expects a literal URL, got {endpoint_term!r}")
        endpoint = validate_endpoint(str(endpoint_term))
    elif settings.default_endpoint:
        endpoint = validate_endpoint(settings.default_endpoint)
    else:
        raise BadEndpointError("No fts:endpoint given and no default endpoint configured")

    kind_term = _single(by_name.get("endpointType", []), "endpointType")
    kind = settings.default_endpoint_type
    if kind_term is not None:
        kind = EndpointKind.parse(_literal_text(kind_term, "endpointType"))

    params_term = _single(by_name.get("params", []), "params")
    params = None
    if params_term is not None:
        params = _literal_text(params_term, "params")
        parse_params(params)

    target_term = _single(by_name.get("targetType", []), "targetType")
    target = DEFAULT_TARGET_KIND
    if target_term is not None:
        target = TargetKind.parse(_literal_text(target_term, "targetType"))

    timeout_term = _single(by_name.get("timeout", []), "timeout")
    timeout_ms = settings.default_timeout_ms
    if timeout_term is not None:
        timeout_ms = _parse_timeout(timeout_term, settings.default_timeout_ms)

    score_var = _output_variable(_single(by_name.get("score", []), "score"), "score")
    snippet_var = _output_variable(_single(by_name.get("snippet", []), "snippet"), "snippet")
    outputs = [v for v in (subject, score_var, snippet_var) if v is not None]
    if len(set(outputs)) != len(outputs):
        raise InvalidVocabularyError("Search output variables must be pairwise distinct")

    return SearchCall(
        subject=subject,
        query=str(search),
        endpoint=endpoint,
        endpoint_kind=kind,
        params=params,
        target=target,
        timeout_ms=timeout_ms,
        score_var=score_var,
        snippet_var=snippet_var,
    )


def _term_occurrences(triples: Iterable[Triple]) -> dict[Node, int]:
    counts: dict[Node, int] = defaultdict(int)
    for triple in triples:
        for term in triple:
            if isinstance(term, Variable):
                counts[term] += 1
    return counts


def plan(
    triples: Iterable[Triple],
    *,
    bound: Container[Node] = (),
    settings: FTSSettings | None = None,
    vocabulary: Vocabulary = VOCABULARY,
) -> list[SearchCall]:
    """Plan one :class:`SearchCall` per subject of the vocabulary patterns.

    ``triples`` may mix vocabulary and ordinary patterns; the ordinary ones
    are only used to check that score/snippet variables stay fresh. ``bound``
    holds the variables already bound when the patterns are evaluated.
    """

    settings = settings or get_settings()
    search, other = split_patterns(triples, vocabulary)

    groups: dict[Node, dict[str, list[Node]]] = {}
    for s, p, o in search:
        local = vocabulary.local_name(p)
        groups.setdefault(s, defaultdict(list))[local].append(o)  # type: ignore[index]

    calls = [_build_call(subject, by_name, bound, settings) for subject, by_name in groups.items()]

    other_counts = _term_occurrences(other)
    seen_outputs: set[Node] = set()
    for call in calls:
        for var in (call.score_var, call.snippet_var):
            if var is None:
                continue
            if other_counts.get(var) or var in seen_outputs or var in bound:
                raise InvalidVocabularyError(f"Output variable {var.n3()} is already used in this scope")
            seen_outputs.add(var)
    subjects = {call.subject for call in calls}
    if subjects & seen_outputs:
        raise InvalidVocabularyError("A search subject cannot also be a score or snippet variable")
    return calls


def plan_service(
    triples: Iterable[Triple],
    *,
    bound: Container[Node] = (),
    settings: FTSSettings | None = None,
    vocabulary: Vocabulary = VOCABULARY,
) -> SearchCall:
    """Plan the single search call delimited by a ``SERVICE fts:search`` block."""

    triples = list(triples)
    search, other = split_patterns(triples, vocabulary)
    if other:
        raise InvalidVocabularyError("A SERVICE fts:search block may only contain fts patterns")
    if not search:
        raise MissingSearchError("Empty SERVICE fts:search block")
    subjects = {s for s, _p, _o in search}
    if len(subjects) != 1:
        raise InvalidVocabularyError("A SERVICE fts:search block must describe exactly one subject")
    return plan(search, bound=bound, settings=settings, vocabulary=vocabulary)[0]


__all__ = [
    "Triple",
    "OutputManifest",
    "SearchCall",
    "parse_params",
    "validate_endpoint",
    "split_patterns",
    "plan",
    "plan_service",
]
