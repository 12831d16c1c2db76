#!/usr/bin/env python3
"""Build the secondary schools GeoJSON.

Sources are tried in order of trust: a curated local file, a curated remote
URL, then OpenStreetMap through Overpass. The first source that yields a
non-empty collection wins and its label is recorded in ``meta.source``.
"""
from __future__ import annotations

import argparse
import enum
import logging
import sys
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import requests

from etl.config import SchoolsConfig
from etl.elements import iter_elements
from etl.enrichment import enrich_properties, load_district_region_map
from etl.errors import EtlError, NoUsableSourceError, SourceUnavailableError
from etl.formats import (
    OfficialArray,
    OfficialCsvRows,
    OfficialEmpty,
    OfficialGeoJSON,
    OfficialPayload,
    parse_csv,
    rows_to_features,
    sniff_payload,
)
from etl.geometry import element_point, has_numeric_coordinates, to_point_geometry
from etl.output import write_geojson
from etl.overpass import build_schools_query
from utils import http

LOGGER = logging.getLogger(__name__)


class SourceLabel(str, enum.Enum):
    OFFICIAL_LOCAL = "official-local"
    OFFICIAL_REMOTE = "official-remote"
    OFFICIAL_REMOTE_CSV = "official-remote-csv"
    OVERPASS = "overpass"


@dataclass
class SourcingResult:
    source: SourceLabel
    features: List[Dict[str, Any]]


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------

def coerce_to_points(features: List[Any]) -> List[Dict[str, Any]]:
    """Collapse every geometry to a Point; features without one are dropped."""

    out: List[Dict[str, Any]] = []
    for feature in features:
        if not isinstance(feature, dict):
            continue
        geometry = to_point_geometry(feature.get("geometry"))
        if geometry is None or not has_numeric_coordinates(geometry):
            LOGGER.debug("Dropping feature without point geometry")
            continue
        props = feature.get("properties")
        out.append({"type": "Feature", "geometry": geometry, "properties": dict(props) if isinstance(props, dict) else {}})
    return out


def payload_to_features(payload: OfficialPayload) -> Tuple[List[Dict[str, Any]], bool]:
    """Return ``(features, from_csv)`` for an official payload variant."""

    if isinstance(payload, (OfficialGeoJSON, OfficialArray)):
        return coerce_to_points(payload.features), False
    if isinstance(payload, OfficialCsvRows):
        return rows_to_features(payload.rows), True
    if isinstance(payload, OfficialEmpty):
        return [], False
    raise TypeError(f"Unsupported payload variant: {type(payload).__name__}")


def overpass_tags_to_properties(tags: Mapping[str, Any]) -> Dict[str, Any]:
    props = dict(tags)
    props["name"] = props.get("name") or props.get("official_name") or None
    props["ownership"] = (
        props.get("ownership") or props.get("operator:type") or props.get("operator_type") or props.get("operator")
    )
    props["gender"] = props.get("gender") or props.get("student:gender")
    props["district"] = props.get("addr:district") or props.get("district") or props.get("is_in:district") or None
    return props


def overpass_to_features(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
        raise ValueError("Invalid Overpass response")
    features: List[Dict[str, Any]] = []
    for element in iter_elements(payload):
        geometry = element_point(element)
        if geometry is None:
            continue
        features.append(
            {"type": "Feature", "geometry": geometry, "properties": overpass_tags_to_properties(element.tags)}
        )
    return features


def enrich_features(features: List[Dict[str, Any]], district_map: Mapping[str, str]) -> List[Dict[str, Any]]:
    return [
        {"type": "Feature", "geometry": feature["geometry"], "properties": enrich_properties(feature.get("properties") or {}, district_map)}
        for feature in features
    ]


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SchoolsAssembler:
    """Sourcing state machine: local official -> remote official -> Overpass."""

    def __init__(
        self,
        config: SchoolsConfig,
        *,
        session: Optional[Any] = None,
        now: Callable[[], str] = _iso_now,
    ) -> None:
        self.config = config
        self._session = session
        self._now = now
        self.district_map: Mapping[str, str] = load_district_region_map(config.resolved_regions_path)

    # -- states -----------------------------------------------------------

    def find_local_official(self) -> Optional[Path]:
        for candidate in self.config.official_candidates():
            if candidate.exists():
                return candidate
        return None

    def try_local_official(self) -> SourcingResult:
        path = self.find_local_official()
        if path is None:
            raise SourceUnavailableError("no local official dataset")
        LOGGER.info("Reading official dataset from %s", path)
        text = path.read_text(encoding="utf-8-sig")
        if path.suffix.lower() == ".csv":
            payload = _csv_payload(text)
        else:
            payload = sniff_payload(text, allow_csv=False)
        features, _ = payload_to_features(payload)
        return SourcingResult(SourceLabel.OFFICIAL_LOCAL, features)

    def try_remote_official(self) -> SourcingResult:
        url = self.config.official_url
        if not url:
            raise SourceUnavailableError("OFFICIAL_SCHOOLS_URL not set")
        LOGGER.info("Fetching official dataset from %s", url)
        text = http.fetch_text(url, timeout=self.config.request_timeout_s, session=self._session)
        features, from_csv = payload_to_features(sniff_payload(text))
        label = SourceLabel.OFFICIAL_REMOTE_CSV if from_csv else SourceLabel.OFFICIAL_REMOTE
        return SourcingResult(label, features)

    def try_overpass(self) -> SourcingResult:
        LOGGER.info("Falling back to Overpass API at %s", self.config.overpass_endpoint)
        response = http.post_form(
            self.config.overpass_endpoint,
            {"data": build_schools_query(self.config.bbox)},
            timeout=self.config.request_timeout_s,
            session=self._session,
        )
        return SourcingResult(SourceLabel.OVERPASS, overpass_to_features(response.json()))

    def states(self) -> List[Tuple[str, Callable[[], SourcingResult]]]:
        return [
            ("try-local-official", self.try_local_official),
            ("try-remote-official", self.try_remote_official),
            ("fallback-overpass", self.try_overpass),
        ]

    # -- driver -----------------------------------------------------------

    def assemble(self) -> SourcingResult:
        failures: List[str] = []
        for state, attempt in self.states():
            try:
                result = attempt()
            except SourceUnavailableError as exc:
                LOGGER.info("Skipping %s: %s", state, exc)
                failures.append(f"{state}: {exc}")
                continue
            except (requests.RequestException, ValueError, OSError) as exc:
                LOGGER.warning("%s failed: %s", state, exc)
                failures.append(f"{state}: {exc}")
                continue
            if not result.features:
                LOGGER.warning("%s produced no usable features", state)
                failures.append(f"{state}: empty collection")
                continue
            result.features = enrich_features(result.features, self.district_map)
            return result
        raise NoUsableSourceError(failures)

    def build(self) -> Dict[str, Any]:
        result = self.assemble()
        return {
            "type": "FeatureCollection",
            "features": result.features,
            "meta": {"generatedAt": self._now(), "source": result.source.value},
        }

    def run(self) -> Dict[str, Any]:
        collection = self.build()
        write_geojson(self.config.resolved_output_path, collection)
        LOGGER.info("Data source used: %s", collection["meta"]["source"])
        return collection


def _csv_payload(text: str) -> OfficialPayload:
    delimiter, rows = parse_csv(text)
    if not rows:
        return OfficialEmpty(reason="CSV file has no data rows")
    return OfficialCsvRows(rows=rows, delimiter=delimiter)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the secondary schools GeoJSON.")
    parser.add_argument("--project-root", type=Path, default=None, help="Base directory for data/ and public/")
    parser.add_argument("--output", type=Path, default=None, help="Output GeoJSON path")
    parser.add_argument("--official-url", type=str, default=None, help="Remote official dataset (JSON or CSV)")
    parser.add_argument("--overpass-url", type=str, default=None, help="Overpass endpoint for the fallback")
    parser.add_argument("--regions", type=Path, default=None, help="District to region lookup document")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> SchoolsConfig:
    config = SchoolsConfig.from_env()
    overrides: Dict[str, Any] = {}
    if args.project_root is not None:
        overrides["project_root"] = args.project_root.resolve()
    if args.output is not None:
        overrides["output_path"] = args.output
    if args.official_url:
        overrides["official_url"] = args.official_url
    if args.overpass_url:
        overrides["overpass_endpoint"] = args.overpass_url
    if args.regions is not None:
        overrides["regions_path"] = args.regions
    return replace(config, **overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        with http.build_session() as session:
            SchoolsAssembler(config_from_args(args), session=session).run()
    except EtlError as exc:
        LOGGER.error("Error building schools dataset: %s", exc)
        return 1
    except (OSError, ValueError) as exc:
        LOGGER.exception("Error building schools dataset: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
