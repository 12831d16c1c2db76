"""Fetch-once access to the published GeoJSON datasets."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from utils import http
from utils.memo import CacheState, OnceCache

LOGGER = logging.getLogger(__name__)


def _is_url(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and source.startswith(("http://", "https://"))


def read_collection(source: Union[str, Path], *, session: Optional[Any] = None) -> Dict[str, Any]:
    if _is_url(source):
        text = http.fetch_text(str(source), session=session)
    else:
        text = Path(source).read_text(encoding="utf-8")
    collection = json.loads(text)
    if not isinstance(collection, dict) or not isinstance(collection.get("features"), list):
        raise ValueError(f"Failed to load dataset {source}: not a FeatureCollection")
    return collection


class DatasetLoader:
    """Load one published dataset at most once per process.

    Concurrent ``get`` calls share the in-flight load; a failed load is
    raised to every waiter and retried by the next ``get``.
    """

    def __init__(
        self,
        source: Union[str, Path],
        *,
        reader: Optional[Callable[[], Dict[str, Any]]] = None,
        session: Optional[Any] = None,
    ) -> None:
        self.source = source
        self._cache: OnceCache[Dict[str, Any]] = OnceCache(
            reader or (lambda: read_collection(source, session=session))
        )

    @property
    def state(self) -> CacheState:
        return self._cache.state

    def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self._cache.get(timeout=timeout)

    def prefetch(self) -> None:
        LOGGER.debug("Prefetching %s", self.source)
        self._cache.prefetch()
