from __future__ import annotations

"""Turn endpoint hits into binding rows."""

import logging
from typing import Dict, Iterable, Iterator

from rdflib import BNode, Literal, URIRef, Variable
from rdflib.namespace import XSD
from rdflib.term import Identifier

from ftsBridge.fts.adapters.base import Hit
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.vocabulary import TargetKind
from ftsBridge.kg.iri import is_legal_iri

logger = logging.getLogger(__name__)

BindingRow = Dict[Variable | BNode, Identifier]


def subject_term(identifier: str, target: TargetKind) -> Identifier | None:
    """Coerce a hit identifier per the target type; ``None`` drops the hit."""

    if target is TargetKind.LITERAL:
        return Literal(identifier)
    if not is_legal_iri(identifier):
        return None
    return URIRef(identifier)


def project(hit: Hit, call: SearchCall) -> BindingRow | None:
    subject = subject_term(hit.identifier, call.target)
    if subject is None:
        logger.debug("Dropping hit with non-IRI identifier %r", hit.identifier)
        return None
    row: BindingRow = {call.subject: subject}
    if call.score_var is not None:
        row[call.score_var] = Literal(float(hit.score), datatype=XSD.double)
    if call.snippet_var is not None:
        row[call.snippet_var] = Literal(hit.snippet)
    return row


def project_all(hits: Iterable[Hit], call: SearchCall) -> Iterator[BindingRow]:
    """Lazily project ``hits`` in order, skipping dropped ones."""

    for hit in hits:
        row = project(hit, call)
        if row is not None:
            yield row


__all__ = ["BindingRow", "subject_term", "project", "project_all"]
