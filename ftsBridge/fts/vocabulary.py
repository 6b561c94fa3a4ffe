from __future__ import annotations

"""Vocabulary for the external full-text search facility.

The predicates below are "magic": they never match stored triples. A group of
them sharing one subject describes a single call against an external ranked
search service, e.g.::

    PREFIX fts: <http://www.bigdata.com/rdf/fts#>
    SELECT ?res ?score ?snippet WHERE {
      ?res fts:search "blue !red" .
      ?res fts:endpoint "http://my.external.solr.endpoint:5656" .
      ?res fts:endpointType "Solr" .
      ?res fts:params "defType=dismax&bf=uses^50" .
      ?res fts:targetType "URI" .
      ?res fts:score ?score .
      ?res fts:snippet ?snippet .
    }

``fts:search`` also doubles as a service IRI, so the same patterns may be
wrapped in ``SERVICE <http://www.bigdata.com/rdf/fts#search> { ... }``.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping

from rdflib import URIRef

from ftsBridge.fts.errors import InvalidVocabularyError, UnknownEndpointTypeError
from ftsBridge.kg.namespaces import FTS, FTS_NS


class EndpointKind(str, Enum):
    """Type of the external search service. Only Solr is implemented."""

    SOLR = "SOLR"

    @classmethod
    def parse(cls, value: object) -> "EndpointKind":
        name = str(value or "").strip().upper()
        try:
            return cls[name]
        except KeyError:
            raise UnknownEndpointTypeError(f"Unknown endpoint type: {value!r}") from None


class TargetKind(str, Enum):
    """Whether hit identifiers become IRIs or plain literals."""

    URI = "URI"
    LITERAL = "LITERAL"

    @classmethod
    def parse(cls, value: object) -> "TargetKind":
        name = str(value or "").strip().upper()
        try:
            return cls[name]
        except KeyError:
            raise InvalidVocabularyError(f"Unknown target type: {value!r}") from None


DEFAULT_ENDPOINT_KIND = EndpointKind.SOLR
DEFAULT_TARGET_KIND = TargetKind.URI
# None means the call is not bounded by a deadline.
DEFAULT_TIMEOUT_MS: int | None = None


@dataclass(frozen=True, slots=True)
class Predicate:
    local_name: str
    iri: URIRef
    obj: str
    cardinality: str
    description: str


def _predicate(local_name: str, obj: str, cardinality: str, description: str) -> Predicate:
    return Predicate(local_name, FTS[local_name], obj, cardinality, description)


_PREDICATES = (
    _predicate("search", "bound plain literal", "exactly 1", "Search string sent to the endpoint."),
    _predicate("endpoint", "literal URL", "at most 1", "Endpoint to query; defaults to FTS_DEFAULT_ENDPOINT."),
    _predicate("endpointType", "EndpointKind name", "at most 1", "Kind of endpoint, e.g. SOLR."),
    _predicate("params", "opaque literal", "at most 1", "Endpoint-native query parameters."),
    _predicate("targetType", "URI or LITERAL", "at most 1", "How hit identifiers are bound."),
    _predicate("timeout", "integer literal (ms)", "at most 1", "Deadline for the call in milliseconds."),
    _predicate("score", "variable", "at most 1", "Receives the xsd:double score of a hit."),
    _predicate("snippet", "variable", "at most 1", "Receives a plain-literal snippet of a hit."),
)


class Vocabulary:
    """Read-only registry mapping local names to predicate IRIs."""

    namespace = FTS_NS

    def __init__(self, predicates: tuple[Predicate, ...] = _PREDICATES) -> None:
        self._by_name: Mapping[str, Predicate] = MappingProxyType({p.local_name: p for p in predicates})
        self._by_iri: Mapping[URIRef, Predicate] = MappingProxyType({p.iri: p for p in predicates})

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, iri: object) -> bool:
        return iri in self._by_iri

    def predicate(self, local_name: str) -> URIRef:
        try:
            return self._by_name[local_name].iri
        except KeyError:
            raise InvalidVocabularyError(f"Unknown fts predicate: {local_name!r}") from None

    def in_namespace(self, iri: object) -> bool:
        return isinstance(iri, URIRef) and str(iri).startswith(self.namespace)

    def local_name(self, iri: object) -> str | None:
        """Return the local name of ``iri``.

        ``None`` is returned for IRIs outside the namespace. Unknown IRIs
        inside the namespace are rejected rather than ignored. Matching is
        case-sensitive.
        """

        if not self.in_namespace(iri):
            return None
        entry = self._by_iri.get(iri)  # type: ignore[arg-type]
        if entry is None:
            raise InvalidVocabularyError(f"Unknown predicate in fts namespace: <{iri}>")
        return entry.local_name


VOCABULARY = Vocabulary()

SEARCH = VOCABULARY.predicate("search")
ENDPOINT = VOCABULARY.predicate("endpoint")
ENDPOINT_TYPE = VOCABULARY.predicate("endpointType")
PARAMS = VOCABULARY.predicate("params")
TARGET_TYPE = VOCABULARY.predicate("targetType")
TIMEOUT = VOCABULARY.predicate("timeout")
SCORE = VOCABULARY.predicate("score")
SNIPPET = VOCABULARY.predicate("snippet")

SERVICE_IRI = SEARCH

__all__ = [
    "EndpointKind",
    "TargetKind",
    "DEFAULT_ENDPOINT_KIND",
    "DEFAULT_TARGET_KIND",
    "DEFAULT_TIMEOUT_MS",
    "Predicate",
    "Vocabulary",
    "VOCABULARY",
    "SEARCH",
    "ENDPOINT",
    "ENDPOINT_TYPE",
    "PARAMS",
    "TARGET_TYPE",
    "TIMEOUT",
    "SCORE",
    "SNIPPET",
    "SERVICE_IRI",
]
