from __future__ import annotations

"""Namespaces used by the external full-text search vocabulary.

This module is the single source of truth for the namespace string; the
predicate registry in :mod:`ftsBridge.fts.vocabulary` is built on top of it.
"""

from rdflib import Namespace
from rdflib.namespace import XSD

FTS_NS = "http://www.bigdata.com/rdf/fts#"

# rdflib Namespace helpers.
FTS = Namespace(FTS_NS)

__all__ = ["FTS_NS", "FTS", "XSD"]
