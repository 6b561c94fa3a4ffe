"""External full-text search operator: planning, endpoint calls and projection."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "adapters",
    "deadline",
    "errors",
    "operator",
    "planner",
    "projector",
    "vocabulary",
]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in __all__:
        return importlib.import_module(f"{__name__}.{name}")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover
    return sorted(set(list(globals().keys()) + __all__))
