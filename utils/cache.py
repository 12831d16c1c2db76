"""Append-only, content-addressed cache for raw upstream responses."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable, Optional


def query_digest(query: str, length: int = 12) -> str:
    """Return the truncated sha256 hex digest of ``query``."""

    return sha256(query.encode("utf-8")).hexdigest()[:length]


def sanitize_timestamp(moment: datetime) -> str:
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    iso = iso.replace("+00:00", "Z")
    return re.sub(r"[:.]", "-", iso)


@dataclass
class CacheEntry:
    path: Path
    digest: str
    timestamp: str


class RawResponseCache:
    """Filesystem-backed store of verbatim upstream JSON payloads.

    Files are named ``<prefix>-<timestamp>-<digest>.json`` where the digest
    depends only on the query text, so runs with an unchanged query share a
    suffix. Entries are never overwritten or read back by the pipelines.
    """

    def __init__(self, root: Path, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.root = root
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _path_for(self, prefix: str, timestamp: str, digest: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in {"_", "-"} else "_" for ch in prefix)
        return self.root / f"{safe}-{timestamp}-{digest}.json"

    def write(self, prefix: str, query: str, payload: Any) -> CacheEntry:
        self.root.mkdir(parents=True, exist_ok=True)
        digest = query_digest(query)
        timestamp = sanitize_timestamp(self._clock())
        path = self._path_for(prefix, timestamp, digest)
        tmp = path.with_suffix(".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2)
            tmp.replace(path)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass
        return CacheEntry(path=path, digest=digest, timestamp=timestamp)
