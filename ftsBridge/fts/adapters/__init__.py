"""Endpoint adapters keyed by :class:`~ftsBridge.fts.vocabulary.EndpointKind`."""

from __future__ import annotations

from typing import Callable, Dict

import requests

from ftsBridge.config.settings import FTSSettings
from ftsBridge.fts.errors import UnknownEndpointTypeError
from ftsBridge.fts.vocabulary import EndpointKind

from .base import EndpointAdapter, Hit, HitStream
from .solr import SolrAdapter

AdapterFactory = Callable[..., EndpointAdapter]

_ADAPTERS: Dict[EndpointKind, AdapterFactory] = {
    EndpointKind.SOLR: SolrAdapter,
}


def register_adapter(kind: EndpointKind, factory: AdapterFactory) -> None:
    """Register ``factory(settings=..., session=...)`` for ``kind``."""

    _ADAPTERS[kind] = factory


def adapter_for(
    kind: EndpointKind,
    *,
    settings: FTSSettings | None = None,
    session: requests.Session | None = None,
) -> EndpointAdapter:
    try:
        factory = _ADAPTERS[kind]
    except KeyError:
        raise UnknownEndpointTypeError(f"No adapter registered for endpoint type {kind.value}") from None
    return factory(settings=settings, session=session)


__all__ = [
    "AdapterFactory",
    "EndpointAdapter",
    "Hit",
    "HitStream",
    "SolrAdapter",
    "register_adapter",
    "adapter_for",
]
