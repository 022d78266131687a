"""Exceptions raised by the GBIF clients and the RecordSet.

Nothing here is retried internally.  Callers catch ``TransientNetworkError``
and ``QuotaExceeded`` and apply their own backoff; everything else is
terminal for the request that raised it.
"""

from __future__ import annotations


class GBIFError(Exception):
    """Base class for all errors raised by occurrence_atlas."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidArgument(GBIFError, ValueError):
    """Bad input: unknown rank, empty name, negative limit, wrong return mode."""


class MissingCredentials(InvalidArgument):
    """A bulk download was submitted without account credentials."""


class NotFound(GBIFError, LookupError):
    """No taxon or download matches the request."""


class QuotaExceeded(GBIFError):
    """The service rejected the request with HTTP 429."""


class TransientNetworkError(GBIFError):
    """Connection failure, timeout, or a 5xx response."""


class NotReady(GBIFError):
    """An archive was requested for a job that has not SUCCEEDED."""


class MissingDoi(GBIFError):
    """A citation was requested for a job without an assigned DOI."""


class InvalidTransition(GBIFError):
    """A polled download status moved against the job lifecycle."""


class EmptySet(GBIFError, ValueError):
    """No record in the set carries usable coordinates."""
