#!/usr/bin/env python3
"""Build the telecom fiber GeoJSON for a country from OpenStreetMap.

The Overpass query is POSTed with endpoint rotation and exponential
backoff, the raw response is cached under ``data/raw`` and the elements
are normalized to Point/LineString/MultiLineString features written to
``public/data/fiber.geojson``.
"""
from __future__ import annotations

import argparse
import logging
import random
import re
import sys
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from tqdm import tqdm

from etl.config import FiberConfig
from etl.elements import OsmNode, OsmRelation, OsmVariant, OsmWay, iter_elements
from etl.errors import EtlError
from etl.geometry import element_to_geometry, has_numeric_coordinates
from etl.output import write_geojson
from etl.overpass import OverpassResponse, build_fiber_query, post_with_retry
from utils import http
from utils.cache import RawResponseCache

LOGGER = logging.getLogger(__name__)

SOURCE = "OpenStreetMap"
LICENCE_ID = "ODbL-1.0"
LICENCE = "Open Database License (ODbL) v1.0"
ATTRIBUTION = "© OpenStreetMap contributors"

DESCRIPTION = (
    "Telecom fiber ETL. Includes ways/relations tagged as cable=telecom with "
    "cable:medium=fibre/fiber or communication:line with communication:medium=fibre/fiber, "
    "and telecom nodes such as exchanges and distribution points."
)

ASSUMPTIONS = (
    "Fiber optic lines are tagged either as cable=telecom + cable:medium=fibre/fiber or "
    "communication:line + communication:medium=fibre/fiber in OSM.",
    "Telecom points of presence are represented by nodes with "
    "telecom=exchange|distribution_point|data_center, street cabinets with "
    "man_made=street_cabinet + telecom=*, and poles with man_made=utility_pole + utility=telecom.",
    "Not all real-world fiber may be mapped; coverage depends on OSM contributions.",
    "Geometry for ways/relations is derived using out geom; relations become a LineString "
    "or MultiLineString by concatenating member way geometries in member order.",
)

FIBER_MEDIUM = re.compile(r"fibre|fiber", re.IGNORECASE)
SITE_TELECOM = re.compile(r"^(exchange|distribution_point|data_center)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _is_fiber_line(tags: Dict[str, str]) -> bool:
    if tags.get("cable") == "telecom" and FIBER_MEDIUM.search(tags.get("cable:medium") or ""):
        return True
    return bool(tags.get("communication:line")) and bool(
        FIBER_MEDIUM.search(tags.get("communication:medium") or "")
    )


NODE_RULES = (
    (lambda tags: bool(SITE_TELECOM.match(tags.get("telecom") or "")), "telecom_site"),
    (lambda tags: tags.get("man_made") == "street_cabinet" and bool(tags.get("telecom")), "telecom_cabinet"),
    (lambda tags: tags.get("man_made") == "utility_pole" and tags.get("utility") == "telecom", "telecom_pole"),
)


def classify_feature_type(element: OsmVariant) -> Optional[str]:
    """``fiber_line`` for matching ways/relations, site/cabinet/pole for nodes."""

    tags = element.tags
    if isinstance(element, (OsmWay, OsmRelation)):
        return "fiber_line" if _is_fiber_line(tags) else None
    if isinstance(element, OsmNode):
        for predicate, feature_type in NODE_RULES:
            if predicate(tags):
                return feature_type
    return None


# ---------------------------------------------------------------------------
# Feature assembly
# ---------------------------------------------------------------------------

def fiber_properties(element: OsmVariant) -> Dict[str, Any]:
    tags = element.tags
    return {
        "osm_id": element.id,
        "osm_type": element.osm_type,
        "name": tags.get("name") or tags.get("ref") or None,
        "operator": tags.get("operator") or None,
        "owner": tags.get("owner") or None,
        "telecom": tags.get("telecom") or None,
        "cable_medium": tags.get("cable:medium") or None,
        "communication_medium": tags.get("communication:medium") or None,
        "feature_type": classify_feature_type(element),
        "source": SOURCE,
        "licence": LICENCE_ID,
        "attribution": ATTRIBUTION,
        "tags": dict(tags),
    }


def element_to_feature(element: OsmVariant) -> Optional[Dict[str, Any]]:
    geometry = element_to_geometry(element)
    if geometry is None or not has_numeric_coordinates(geometry):
        LOGGER.debug("Dropping %s without usable geometry", element.ref)
        return None
    return {
        "type": "Feature",
        "id": element.ref,
        "geometry": geometry,
        "properties": fiber_properties(element),
    }


def build_feature_collection(
    elements: Iterable[OsmVariant],
    metadata: Dict[str, Any],
    *,
    name: str = "uganda_telecom_fiber",
    show_progress: bool = False,
) -> Dict[str, Any]:
    features: List[Dict[str, Any]] = []
    dropped = 0
    for element in tqdm(elements, desc="Normalizing elements", unit="el", disable=not show_progress):
        feature = element_to_feature(element)
        if feature is None:
            dropped += 1
            continue
        features.append(feature)
    metadata = dict(metadata, feature_count=len(features), dropped_count=dropped)
    return {
        "type": "FeatureCollection",
        "name": name,
        "features": features,
        "metadata": metadata,
    }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class FiberPipeline:
    config: FiberConfig
    session: Optional[Any] = None
    sleep: Callable[[float], None] = time.sleep
    rng: Optional[random.Random] = None
    show_progress: bool = False
    now: Callable[[], str] = field(default=_iso_now)

    def fetch(self, query: str) -> OverpassResponse:
        return post_with_retry(
            self.config.endpoints,
            query,
            self.config.retry,
            session=self.session,
            sleep=self.sleep,
            rng=self.rng,
        )

    def _relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.config.project_root))
        except ValueError:
            return str(path)

    def build_metadata(self, query: str, response: OverpassResponse, raw_path: Path) -> Dict[str, Any]:
        return {
            "generated_at": self.now(),
            "duration_ms": response.duration_ms,
            "query": query,
            "source": "Overpass API",
            "endpoints": list(self.config.endpoints),
            "endpoints_tried": list(response.endpoints_tried),
            "description": DESCRIPTION,
            "assumptions": list(ASSUMPTIONS),
            "licence": LICENCE,
            "attribution": ATTRIBUTION,
            "raw_cache_path": self._relative(raw_path),
        }

    def run(self) -> Dict[str, Any]:
        query = build_fiber_query(self.config.country)
        LOGGER.info("Starting Overpass query for %s telecom fiber features", self.config.country)
        response = self.fetch(query)

        cache = RawResponseCache(self.config.resolved_raw_dir)
        entry = cache.write(self.config.cache_prefix, query, response.payload)
        LOGGER.info("Cached raw response at %s", entry.path)

        elements = list(iter_elements(response.payload))
        LOGGER.info("Received %d elements", len(elements))
        collection = build_feature_collection(
            elements,
            self.build_metadata(query, response, entry.path),
            name=self.config.collection_name,
            show_progress=self.show_progress,
        )
        write_geojson(self.config.resolved_output_path, collection, indent=2)
        return collection


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the telecom fiber GeoJSON from OpenStreetMap.")
    parser.add_argument("--project-root", type=Path, default=None, help="Base directory for data/ and public/")
    parser.add_argument("--output", type=Path, default=None, help="Output GeoJSON path")
    parser.add_argument("--country", type=str, default=None, help="Country name (admin_level=2) to query")
    parser.add_argument("--overpass-url", type=str, default=None, help="Extra Overpass endpoint tried first")
    parser.add_argument("--max-attempts", type=int, default=None, help="Maximum Overpass attempts (default: 6)")
    parser.add_argument("--base-delay", type=float, default=None, help="Base retry delay in seconds (default: 1.5)")
    parser.add_argument("--deadline", type=float, default=None, help="Overall retry deadline in seconds")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar while normalizing")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> FiberConfig:
    config = FiberConfig.from_env()
    if args.project_root is not None:
        config = replace(config, project_root=args.project_root.resolve())
    if args.output is not None:
        config = replace(config, output_path=args.output)
    if args.country:
        config = replace(config, country=args.country)
    if args.overpass_url and args.overpass_url not in config.endpoints:
        config = replace(config, endpoints=(args.overpass_url,) + config.endpoints)
    retry = config.retry
    if args.max_attempts is not None:
        retry = replace(retry, max_attempts=args.max_attempts)
    if args.base_delay is not None:
        retry = replace(retry, base_delay_s=args.base_delay)
    if args.deadline is not None:
        retry = replace(retry, deadline_s=args.deadline)
    return replace(config, retry=retry)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        with http.build_session() as session:
            pipeline = FiberPipeline(config_from_args(args), session=session, show_progress=args.progress)
            collection = pipeline.run()
    except EtlError as exc:
        LOGGER.error("Fiber ETL failed: %s", exc)
        return 1
    except requests.RequestException as exc:
        LOGGER.error("Network error while contacting Overpass API: %s", exc)
        return 1
    except (OSError, ValueError) as exc:
        LOGGER.exception("Fiber ETL failed: %s", exc)
        return 1
    LOGGER.info("Fiber dataset ready with %d features", len(collection["features"]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
