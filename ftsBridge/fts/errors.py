"""Error taxonomy for external full-text search calls."""
from __future__ import annotations


class FTSError(Exception):
    """Base class for every failure raised by the search operator."""

    kind = "FTSError"


class PlanningError(FTSError):
    """Raised when vocabulary patterns fail validation before any I/O."""


class InvalidVocabularyError(PlanningError):
    """Unknown predicate in the namespace or a cardinality violation."""

    kind = "InvalidVocabulary"


class MissingSearchError(PlanningError):
    kind = "MissingSearch"


class DuplicateSearchError(PlanningError):
    kind = "DuplicateSearch"


class BoundSubjectError(PlanningError):
    kind = "BoundSubject"


class BadEndpointError(PlanningError):
    kind = "BadEndpoint"


class UnknownEndpointTypeError(PlanningError):
    kind = "UnknownEndpointType"


class EndpointUnreachableError(FTSError):
    """Network, DNS or TLS failure while talking to the endpoint."""

    kind = "EndpointUnreachable"


class EndpointRejectedError(FTSError):
    """The endpoint answered with an HTTP error status."""

    kind = "EndpointRejected"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedResponseError(FTSError):
    kind = "MalformedResponse"


class SearchTimeoutError(FTSError, TimeoutError):
    """The deadline expired before the first hit was received."""

    kind = "Timeout"


class SearchCancelledError(FTSError):
    """The enclosing query aborted the operator."""

    kind = "Cancelled"


__all__ = [
    "FTSError",
    "PlanningError",
    "InvalidVocabularyError",
    "MissingSearchError",
    "DuplicateSearchError",
    "BoundSubjectError",
    "BadEndpointError",
    "UnknownEndpointTypeError",
    "EndpointUnreachableError",
    "EndpointRejectedError",
    "MalformedResponseError",
    "SearchTimeoutError",
    "SearchCancelledError",
]
