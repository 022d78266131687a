"""
Shared HTTP client for the GBIF transport.

One ``requests.Session`` for the whole process, mounted with an adapter that
applies a default timeout to every request.  The adapter does not retry:
transient errors reach the caller as exceptions, and the Prefect tasks in
``flows/`` decide whether to try again.  Pass a ``Retry`` to
``create_session`` to opt in to adapter-level retries.

Usage::

    from occurrence_atlas.services.http import session

    resp = session.get("https://api.gbif.org/v1/species/suggest", params={"q": "Puma"})
"""

from __future__ import annotations

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from occurrence_atlas.config import get_settings

#: Follow redirects (archive links point at a mirror) but never re-send a request.
DEFAULT_RETRY = Retry(total=0, redirect=5, raise_on_status=False, raise_on_redirect=False)

DEFAULT_TIMEOUT = 30  # seconds

USER_AGENT = "occurrence-atlas/0.1 (python-requests)"


class TimeoutAdapter(HTTPAdapter):
    """``HTTPAdapter`` that fills in ``timeout`` when the caller leaves it out."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, **kwargs: Any) -> None:
        self.timeout = timeout
        super().__init__(**kwargs)

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        if kwargs.get("timeout") is None:
            kwargs["timeout"] = self.timeout
        return super().send(request, **kwargs)


def create_session(
    retry: Retry | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = USER_AGENT,
) -> requests.Session:
    """
    Build a session for talking to GBIF.

    Args:
        retry: Adapter retry strategy (defaults to ``DEFAULT_RETRY``).
        timeout: Applied to every request that doesn't pass its own.
        user_agent: Sent with every request; GBIF asks clients to identify themselves.
    """
    s = requests.Session()
    adapter = TimeoutAdapter(timeout=timeout, max_retries=retry or DEFAULT_RETRY)
    for prefix in ("https://", "http://"):
        s.mount(prefix, adapter)
    s.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    return s


#: Process-wide session used by ``HttpGBIFService``; timeout from ``TIMEOUT``.
session: requests.Session = create_session(timeout=get_settings().timeout)
