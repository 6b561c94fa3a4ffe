from __future__ import annotations

"""Process-wide settings for external full-text search calls.

Values come from an optional YAML file (path in ``FTS_CONFIG``) overlaid by
the ``FTS_DEFAULT_*`` environment variables. Settings are read once and
treated as read-only afterwards.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Mapping

import yaml

from ftsBridge.fts.errors import UnknownEndpointTypeError
from ftsBridge.fts.vocabulary import DEFAULT_ENDPOINT_KIND, DEFAULT_TIMEOUT_MS, EndpointKind

CONFIG_ENV = "FTS_CONFIG"
ENDPOINT_ENV = "FTS_DEFAULT_ENDPOINT"
ENDPOINT_TYPE_ENV = "FTS_DEFAULT_ENDPOINT_TYPE"
TIMEOUT_ENV = "FTS_DEFAULT_TIMEOUT_MS"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SolrSettings:
    """Field names and request defaults for Solr endpoints."""

    id_field: str = "id"
    score_field: str = "score"
    snippet_field: str | None = None
    default_fl: str = "*,score"
    forward_time_allowed: bool = True


@dataclass(frozen=True, slots=True)
class FTSSettings:
    default_endpoint: str | None = None
    default_endpoint_type: EndpointKind = DEFAULT_ENDPOINT_KIND
    default_timeout_ms: int | None = DEFAULT_TIMEOUT_MS
    connect_timeout_s: float | None = 10.0
    solr: SolrSettings = field(default_factory=SolrSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "default_endpoint": self.default_endpoint,
            "default_endpoint_type": self.default_endpoint_type.value,
            "default_timeout_ms": self.default_timeout_ms,
            "connect_timeout_s": self.connect_timeout_s,
            "solr": {
                "id_field": self.solr.id_field,
                "score_field": self.solr.score_field,
                "snippet_field": self.solr.snippet_field,
                "default_fl": self.solr.default_fl,
                "forward_time_allowed": self.solr.forward_time_allowed,
            },
        }


def _coerce_timeout_ms(value: Any, default: int | None) -> int | None:
    if value is None or value == "":
        return default
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid timeout %r", value)
        return default
    if parsed < 0:
        logger.warning("Ignoring negative timeout %r", value)
        return default
    return parsed


def _coerce_float(value: Any, default: float | None) -> float | None:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):  # pragma: no cover - defensive guard
        return default


def _coerce_kind(value: Any, default: EndpointKind) -> EndpointKind:
    if value is None or value == "":
        return default
    try:
        return EndpointKind.parse(value)
    except UnknownEndpointTypeError:
        logger.warning("Ignoring unknown endpoint type %r", value)
        return default


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _load_solr(data: Mapping[str, Any] | None) -> SolrSettings:
    if not data:
        return SolrSettings()
    base = SolrSettings()
    return SolrSettings(
        id_field=_as_optional_str(data.get("id_field")) or base.id_field,
        score_field=_as_optional_str(data.get("score_field")) or base.score_field,
        snippet_field=_as_optional_str(data.get("snippet_field")),
        default_fl=_as_optional_str(data.get("default_fl")) or base.default_fl,
        forward_time_allowed=bool(data.get("forward_time_allowed", base.forward_time_allowed)),
    )


def _read_yaml(path: Path | None) -> dict[str, Any]:
    if path is None or not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping")
    return raw


def load_settings(
    env: Mapping[str, str] | None = None,
    path: Path | None = None,
) -> FTSSettings:
    """Build settings from YAML (if any) and environment overrides."""

    env = os.environ if env is None else env
    if path is None and env.get(CONFIG_ENV):
        path = Path(env[CONFIG_ENV])
    raw = _read_yaml(path)

    endpoint = _as_optional_str(env.get(ENDPOINT_ENV)) or _as_optional_str(raw.get("default_endpoint"))
    kind = _coerce_kind(raw.get("default_endpoint_type"), DEFAULT_ENDPOINT_KIND)
    kind = _coerce_kind(env.get(ENDPOINT_TYPE_ENV), kind)
    timeout_ms = _coerce_timeout_ms(raw.get("default_timeout_ms"), DEFAULT_TIMEOUT_MS)
    timeout_ms = _coerce_timeout_ms(env.get(TIMEOUT_ENV), timeout_ms)
    return FTSSettings(
        default_endpoint=endpoint,
        default_endpoint_type=kind,
        default_timeout_ms=timeout_ms,
        connect_timeout_s=_coerce_float(raw.get("connect_timeout_s"), 10.0),
        solr=_load_solr(raw.get("solr")),
    )


_SETTINGS: FTSSettings | None = None
_LOCK = Lock()


def get_settings() -> FTSSettings:
    """Return the cached process-wide settings, loading them on first use."""

    global _SETTINGS
    with _LOCK:
        if _SETTINGS is None:
            _SETTINGS = load_settings()
        return _SETTINGS


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""

    global _SETTINGS
    with _LOCK:
        _SETTINGS = None


__all__ = [
    "CONFIG_ENV",
    "ENDPOINT_ENV",
    "ENDPOINT_TYPE_ENV",
    "TIMEOUT_ENV",
    "SolrSettings",
    "FTSSettings",
    "load_settings",
    "get_settings",
    "reset_settings",
]
