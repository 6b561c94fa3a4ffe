"""Shared, lazily created HTTP session for search endpoints."""
from __future__ import annotations

from threading import Lock

import requests

from ftsBridge import __version__

_SESSION: requests.Session | None = None
_LOCK = Lock()

USER_AGENT = f"ftsBridge/{__version__}"


def shared_session() -> requests.Session:
    """Return the process-wide pooled session, creating it on first use."""

    global _SESSION
    with _LOCK:
        if _SESSION is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
            _SESSION = session
        return _SESSION


def close_shared_session() -> None:
    global _SESSION
    with _LOCK:
        if _SESSION is not None:
            _SESSION.close()
            _SESSION = None


__all__ = ["USER_AGENT", "shared_session", "close_shared_session"]
