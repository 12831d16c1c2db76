"""Thin HTTP helpers shared by the ETL pipelines."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

LOGGER = logging.getLogger(__name__)

USER_AGENT = "uganda-infra-etl/1.0"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"
DEFAULT_TIMEOUT_S = 120.0


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session


def _merge_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    merged = {"User-Agent": USER_AGENT}
    if headers:
        merged.update(headers)
    return merged


def request(
    url: str,
    *,
    method: str = "GET",
    data: Any = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    session: Optional[Any] = None,
) -> requests.Response:
    """Issue a request and raise ``requests.HTTPError`` on non-2xx status.

    ``session`` is any transport exposing ``request(method, url, **kwargs)``
    (a ``requests.Session`` by default), which keeps the network swappable in
    tests and in restricted environments.
    """

    LOGGER.debug("%s %s", method, url)
    if session is None:
        # one-off session, closed before returning; the body is already read
        with build_session() as transport:
            return _send(transport, method, url, data, headers, timeout)
    return _send(session, method, url, data, headers, timeout)


def _send(
    transport: Any,
    method: str,
    url: str,
    data: Any,
    headers: Optional[Mapping[str, str]],
    timeout: float,
) -> requests.Response:
    response = transport.request(method, url, data=data, headers=_merge_headers(headers), timeout=timeout)
    response.raise_for_status()
    return response


def fetch_text(url: str, **kwargs: Any) -> str:
    return request(url, **kwargs).text


def post_form(url: str, fields: Mapping[str, str], **kwargs: Any) -> requests.Response:
    """POST url-encoded ``fields`` (Overpass reads its query from ``data``)."""

    headers = dict(kwargs.pop("headers", None) or {})
    headers.setdefault("Content-Type", FORM_CONTENT_TYPE)
    return request(url, method="POST", data=dict(fields), headers=headers, **kwargs)
