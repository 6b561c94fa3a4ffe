from __future__ import annotations

"""IRI legality checks applied to identifiers returned by search endpoints."""

import re

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
# Characters excluded from IRIREF by the SPARQL/Turtle grammars, plus whitespace.
_FORBIDDEN_RE = re.compile(r"[\x00-\x20<>\"{}|\\^`\x7f]")


def is_legal_iri(value: object | None) -> bool:
    """Return ``True`` if ``value`` is an absolute IRI usable as a graph node."""

    if not isinstance(value, str) or not value:
        return False
    if _FORBIDDEN_RE.search(value):
        return False
    scheme, sep, rest = value.partition(":")
    if not sep or not rest:
        return False
    return bool(_SCHEME_RE.match(scheme))


__all__ = ["is_legal_iri"]
