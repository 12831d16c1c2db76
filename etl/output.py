"""Serialization of finished FeatureCollections."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)


def write_geojson(path: Path, collection: Dict[str, Any], *, indent: Optional[int] = None) -> Path:
    """Replace ``path`` with ``collection``; the old file is never merged.

    The payload is written to a sibling temp file first so a failed run never
    leaves a truncated artifact behind.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(collection, handle, ensure_ascii=False, indent=indent)
        tmp.replace(path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass
    LOGGER.info("Wrote %d features to %s", len(collection.get("features", [])), path)
    return path
