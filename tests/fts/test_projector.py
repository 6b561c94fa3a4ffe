from __future__ import annotations

from rdflib import Literal, URIRef, Variable
from rdflib.namespace import XSD

from ftsBridge.fts.adapters import Hit
from ftsBridge.fts.planner import SearchCall
from ftsBridge.fts.projector import project, project_all, subject_term
from ftsBridge.fts.vocabulary import TargetKind

R, S, N = Variable("r"), Variable("s"), Variable("n")


def _call(**kwargs) -> SearchCall:
    return SearchCall(subject=R, query="blue", endpoint="http://h:1/solr", **kwargs)


def test_uri_target_binds_iri_and_typed_score() -> None:
    row = project(Hit("http://a", 0.9, "...blue..."), _call(score_var=S, snippet_var=N))
    assert row == {
        R: URIRef("http://a"),
        S: Literal(0.9, datatype=XSD.double),
        N: Literal("...blue..."),
    }
    assert row[S].datatype == XSD.double
    assert row[N].datatype is None and row[N].language is None


def test_only_requested_variables_are_bound() -> None:
    assert project(Hit("http://a", 0.9, "x"), _call()) == {R: URIRef("http://a")}


def test_literal_target_wraps_identifier_verbatim() -> None:
    row = project(Hit("not a uri"), _call(target=TargetKind.LITERAL))
    assert row == {R: Literal("not a uri")}


def test_uri_target_drops_illegal_identifiers() -> None:
    assert project(Hit("not a uri"), _call()) is None
    assert subject_term("not a uri", TargetKind.URI) is None


def test_project_all_preserves_order_and_skips_dropped() -> None:
    hits = [Hit("http://b", 0.2), Hit("bad id"), Hit("http://a", 0.1)]
    rows = list(project_all(hits, _call(score_var=S)))
    assert [row[R] for row in rows] == [URIRef("http://b"), URIRef("http://a")]
    assert len(rows) <= len(hits)


def test_missing_score_is_zero_double() -> None:
    row = project(Hit("http://a"), _call(score_var=S))
    assert row[S] == Literal(0.0, datatype=XSD.double)
