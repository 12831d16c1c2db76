"""Overpass API queries and the multi-endpoint retry coordinator."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from etl.config import BoundingBox, RetryPolicy
from etl.errors import OverpassRemarkError, RetryExhaustedError
from utils import http

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Query builders
# ---------------------------------------------------------------------------

def build_fiber_query(country: str = "Uganda") -> str:
    return f"""
[out:json][timeout:180];
area["name"="{country}"]["boundary"="administrative"]["admin_level"="2"]->.searchArea;
(
  // Fiber optic cables (lines)
  way["cable"="telecom"]["cable:medium"~"(?i)fibre|fiber"](area.searchArea);
  relation["cable"="telecom"]["cable:medium"~"(?i)fibre|fiber"](area.searchArea);
  way["communication:line"]["communication:medium"~"(?i)fibre|fiber"](area.searchArea);
  relation["communication:line"]["communication:medium"~"(?i)fibre|fiber"](area.searchArea);

  // Telecom points of presence
  node["telecom"~"^(exchange|distribution_point|data_center)$"](area.searchArea);
  node["man_made"="street_cabinet"]["telecom"](area.searchArea);
  node["man_made"="utility_pole"]["utility"="telecom"](area.searchArea);
);
out body geom qt;"""


def build_schools_query(bbox: BoundingBox) -> str:
    bbox_str = bbox.overpass_bbox()
    return f"""
[out:json][timeout:25];
(
  node["amenity"="school"]["school:level"~"secondary"]({bbox_str});
  way["amenity"="school"]["school:level"~"secondary"]({bbox_str});
  relation["amenity"="school"]["school:level"~"secondary"]({bbox_str});
  node["amenity"="school"]["isced:level"~"2|3"]({bbox_str});
  way["amenity"="school"]["isced:level"~"2|3"]({bbox_str});
  relation["amenity"="school"]["isced:level"~"2|3"]({bbox_str});
);
out center tags;"""


# ---------------------------------------------------------------------------
# Retry coordinator
# ---------------------------------------------------------------------------

@dataclass
class OverpassResponse:
    payload: Dict[str, Any]
    endpoint: str
    attempts: int
    endpoints_tried: List[str] = field(default_factory=list)
    duration_ms: int = 0


def endpoint_for_attempt(endpoints: Sequence[str], attempt: int) -> str:
    """Endpoint used for 1-based ``attempt``; rotation wraps around."""

    return endpoints[(attempt - 1) % len(endpoints)]


def _query_once(endpoint: str, query: str, timeout: float, session: Optional[Any]) -> Dict[str, Any]:
    response = http.post_form(endpoint, {"data": query}, timeout=timeout, session=session)
    payload = response.json()
    if isinstance(payload, dict) and payload.get("remark"):
        raise OverpassRemarkError(str(payload["remark"]))
    if not isinstance(payload, dict):
        raise ValueError("Overpass response is not a JSON object")
    return payload


def post_with_retry(
    endpoints: Sequence[str],
    query: str,
    policy: RetryPolicy,
    *,
    session: Optional[Any] = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.monotonic,
) -> OverpassResponse:
    """POST ``query`` across ``endpoints`` until one returns a usable payload.

    Attempt ``i`` goes to ``endpoints[(i - 1) % len(endpoints)]``. Transport
    errors, non-2xx statuses, undecodable bodies and Overpass ``remark``
    markers all count as failed attempts. Before attempt ``i + 1`` the
    coordinator sleeps ``base_delay * 2 ** (i - 1) * jitter``. After
    ``policy.max_attempts`` failures a ``RetryExhaustedError`` carrying the
    last error message is raised.
    """

    if not endpoints:
        raise ValueError("At least one Overpass endpoint is required")
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    rng = rng or random.Random()
    started = clock()
    last_error: Optional[BaseException] = None
    tried: List[str] = []

    for attempt in range(1, policy.max_attempts + 1):
        endpoint = endpoint_for_attempt(endpoints, attempt)
        tried.append(endpoint)
        try:
            payload = _query_once(endpoint, query, policy.request_timeout_s, session)
            duration_ms = int(round((clock() - started) * 1000))
            LOGGER.info("Downloaded Overpass data from %s (attempt %d)", endpoint, attempt)
            return OverpassResponse(
                payload=payload,
                endpoint=endpoint,
                attempts=attempt,
                endpoints_tried=tried,
                duration_ms=duration_ms,
            )
        except (requests.RequestException, OverpassRemarkError, ValueError) as exc:
            last_error = exc

        if attempt >= policy.max_attempts:
            LOGGER.error("Final attempt %d against %s failed: %s", attempt, endpoint, last_error)
            break

        low, high = policy.jitter
        delay = policy.delay_for(attempt, rng.uniform(low, high))
        if policy.deadline_s is not None and (clock() - started) + delay > policy.deadline_s:
            LOGGER.error(
                "Attempt %d against %s failed: %s. Deadline of %.1fs reached, giving up",
                attempt,
                endpoint,
                last_error,
                policy.deadline_s,
            )
            break
        LOGGER.warning(
            "Attempt %d/%d against %s failed: %s. Retrying in %.2fs",
            attempt,
            policy.max_attempts,
            endpoint,
            last_error,
            delay,
        )
        sleep(delay)

    raise RetryExhaustedError(len(tried), tried, last_error)
